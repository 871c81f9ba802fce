#!/usr/bin/env python3
"""
Main pipeline orchestrator for the PRISM heat index pipeline.
Lists the local archive, ingests daily grid pairs into date partitions,
then derives heat index partitions and a dataset summary.
"""

import sys
import os
import argparse
import logging
from datetime import datetime

# Add project root to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import (
    IngestConfig, PRISM_ARCHIVE_DIR, PROC_CLIMATE_DIR, PROC_HEAT_INDEX_DIR,
    OUTPUTS_DIR, PIPELINE_LOG_NAME, SUMMARY_CSV_NAME, DEFAULT_DATE_RANGE, parse_date_range_arg,
)

logger = logging.getLogger(__name__)


def setup_logging(outputs_dir=OUTPUTS_DIR):
    os.makedirs(outputs_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(os.path.join(outputs_dir, PIPELINE_LOG_NAME)),
            logging.StreamHandler()
        ]
    )


def setup_directories(config: IngestConfig, outputs_dir=OUTPUTS_DIR, derived_root=None):
    """Create all necessary directories."""
    directories = [config.destination_root, outputs_dir]
    if derived_root:
        directories.append(derived_root)

    for directory in directories:
        os.makedirs(directory, exist_ok=True)
        logger.info(f"Ensured directory exists: {directory}")


def run_ingestion(archive_dir, config: IngestConfig):
    """List the archive and ingest every matched (tmean, tdmean) pair."""
    logger.info("Starting ingestion...")

    from data_ingest.archive import pair_archive
    from data_ingest.ingest_pairs import IngestOrchestrator

    pairs = pair_archive(
        archive_dir,
        date_range=config.date_range,
        temperature_variable=config.temperature_variable,
        dewpoint_variable=config.dewpoint_variable,
        variable_pattern=config.variable_pattern,
    )
    for date in pairs.missing_dewpoint:
        logger.warning(f"No {config.dewpoint_variable} grid for {date}, date not ingested")
    for date in pairs.missing_temperature:
        logger.warning(f"No {config.temperature_variable} grid for {date}, date not ingested")
    logger.info(f"Found {len(pairs.dates)} paired date(s) in {archive_dir}")

    report = IngestOrchestrator(config).run(pairs.temperature_files, pairs.dewpoint_files)
    logger.info(f"Ingestion finished | {report.summary()}")
    return report


def run_derivation(config: IngestConfig, derived_root, outputs_dir=OUTPUTS_DIR):
    """Derive heat index partitions and write the summary CSV."""
    logger.info("Starting heat index derivation...")

    from publish_derived import publish, summarize, write_summary_csv

    written, skipped, n_rows = publish(
        config.destination_root, derived_root,
        date_range=config.date_range,
        overwrite_policy=config.overwrite_policy,
        high_humidity=config.high_humidity_adjustment,
        compression=config.parquet_compression,
    )
    stats = summarize(config.destination_root, config.date_range)
    write_summary_csv(stats, os.path.join(outputs_dir, SUMMARY_CSV_NAME))
    logger.info(
        f"Derived {written} partition(s), {skipped} skipped, {n_rows} rows | "
        f"Mean tmean: {stats['mean_temperature']:.2f} C | Mean tdmean: {stats['mean_dew_point']:.2f} C"
    )
    return stats


def build_parser():
    parser = argparse.ArgumentParser(description="PRISM daily grids -> partitioned Parquet -> heat index")
    parser.add_argument("command", nargs="?", default="all", choices=["all", "ingest", "derive", "summary"])
    parser.add_argument("--archive-dir", default=PRISM_ARCHIVE_DIR, help="Directory of downloaded PRISM grids")
    parser.add_argument("--dest", default=PROC_CLIMATE_DIR, help="Root of the partitioned dataset")
    parser.add_argument("--derived-dest", default=PROC_HEAT_INDEX_DIR, help="Root of derived partitions")
    parser.add_argument("--outputs-dir", default=OUTPUTS_DIR, help="Log file and summary CSV location")
    parser.add_argument("--dates", default=DEFAULT_DATE_RANGE, help="Date or range like '20200101-20201231'")
    parser.add_argument("--overwrite-policy", default=None,
                        choices=["skip-if-exists", "overwrite", "fail-if-exists"],
                        help="Applies to both ingested and derived partitions")
    parser.add_argument("--precision", type=int, default=None, help="Decimal places for x/y")
    parser.add_argument("--join", dest="join_how", default=None, choices=["left", "inner"])
    parser.add_argument("--compression", default=None, help="Parquet compression (snappy, zstd, none)")
    parser.add_argument("--workers", type=int, default=None, help="Pairs ingested in parallel")
    parser.add_argument("--high-humidity-adjustment", action="store_true", default=None,
                        help="Apply the NOAA rh > 85 correction")
    return parser


def config_from_args(args) -> IngestConfig:
    return IngestConfig().with_overrides(
        destination_root=args.dest,
        overwrite_policy=args.overwrite_policy,
        coordinate_precision=args.precision,
        date_range=parse_date_range_arg(args.dates) if args.dates else None,
        join_how=args.join_how,
        parquet_compression=args.compression,
        max_workers=args.workers,
        high_humidity_adjustment=args.high_humidity_adjustment,
    )


def main(argv=None):
    """Main pipeline execution."""
    args = build_parser().parse_args(argv)
    setup_logging(args.outputs_dir)
    start_time = datetime.now()
    logger.info(f"Starting PRISM heat index pipeline ({args.command}) at {start_time}")

    try:
        config = config_from_args(args)
        setup_directories(config, args.outputs_dir, args.derived_dest if args.command in ("all", "derive") else None)

        exit_code = 0
        if args.command in ("all", "ingest"):
            report = run_ingestion(args.archive_dir, config)
            if not report.ok:
                exit_code = 2
        if args.command in ("all", "derive"):
            run_derivation(config, args.derived_dest, args.outputs_dir)
        if args.command == "summary":
            from publish_derived import summarize
            stats = summarize(config.destination_root, config.date_range)
            for key, value in stats.items():
                print(f"{key}: {value}")

        end_time = datetime.now()
        duration = end_time - start_time
        logger.info(f"Pipeline completed in {duration}")

    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
