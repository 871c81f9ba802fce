import os
import shutil
import argparse
import logging

import numpy as np
import pandas as pd

from config import (
    PROC_CLIMATE_DIR,
    PROC_HEAT_INDEX_DIR,
    PUBLISH_SUCCESS_MARK,
    SUMMARY_CSV,
    HIGH_HUMIDITY_ADJUSTMENT,
    PARQUET_COMPRESSION,
    parse_date_range_arg,
)
from data_transform.heat_index import derive
from utils.io_utils import (
    DERIVED_SCHEMA,
    PARTITION_SCHEMA,
    atomic_write_csv,
    discover_partitions,
    ensure_dir,
    extract_date_from_path,
    load_partitions,
    write_partition,
    WriteStatus,
)

logger = logging.getLogger(__name__)


def _in_range(date, date_range):
    return date is not None and (date_range is None or date_range[0] <= date <= date_range[1])


def iter_derived_partitions(root: str, date_range=None, high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT):
    """Yield (date, derived DataFrame) one partition at a time."""
    for path in discover_partitions(root):
        date = extract_date_from_path(path)
        if not _in_range(date, date_range):
            continue
        df = load_partitions([path], schema=PARTITION_SCHEMA)
        yield date, derive(df, high_humidity=high_humidity)


def summarize(root: str, date_range=None) -> dict:
    """Dataset-wide averages ignoring missing values, accumulated partition by partition."""
    paths = [p for p in discover_partitions(root) if _in_range(extract_date_from_path(p), date_range)]
    if not paths:
        raise FileNotFoundError(f"No partitions found under {root}")

    n_rows = 0
    sums = {"temperature": 0.0, "dew_point": 0.0}
    counts = {"temperature": 0, "dew_point": 0}
    dates = []
    for path in paths:
        df = load_partitions([path], schema=PARTITION_SCHEMA)
        n_rows += len(df)
        dates.append(extract_date_from_path(path))
        for col in sums:
            values = df[col].dropna()
            sums[col] += float(values.sum())
            counts[col] += int(values.count())

    return {
        "n_partitions": len(paths),
        "n_rows": n_rows,
        "date_min": min(dates),
        "date_max": max(dates),
        "mean_temperature": sums["temperature"] / counts["temperature"] if counts["temperature"] else np.nan,
        "mean_dew_point": sums["dew_point"] / counts["dew_point"] if counts["dew_point"] else np.nan,
    }


def publish(source_root: str, derived_root: str, date_range=None,
            overwrite_policy: str = "overwrite",
            high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT,
            compression: str = PARQUET_COMPRESSION,
            write_success_marker: bool = True) -> tuple[int, int, int]:
    """
    Derive heat index for every source partition and write it under derived_root.
    Returns (partitions written, partitions skipped, rows written).
    """
    written = skipped = n_rows = 0
    for date, derived in iter_derived_partitions(source_root, date_range, high_humidity):
        status = write_partition(
            derived, date, derived_root,
            overwrite_policy=overwrite_policy,
            compression=compression,
            schema=DERIVED_SCHEMA,
        )
        if status is WriteStatus.SKIPPED:
            skipped += 1
        else:
            written += 1
            n_rows += len(derived)

    if written + skipped == 0:
        raise FileNotFoundError(f"No partitions to derive under {source_root}")

    # optional success marker
    if write_success_marker:
        marker = os.path.join(derived_root, PUBLISH_SUCCESS_MARK)
        ensure_dir(derived_root)
        # Remove if it's a directory (from previous runs)
        if os.path.isdir(marker):
            shutil.rmtree(marker)
        with open(marker, "w") as f:
            f.write("ok\n")

    return written, skipped, n_rows


def write_summary_csv(stats: dict, dst_path: str = SUMMARY_CSV) -> None:
    atomic_write_csv(pd.DataFrame([stats]), dst_path)


def main():
    parser = argparse.ArgumentParser(description="Derive heat index partitions from ingested PRISM partitions")
    parser.add_argument("--source", default=PROC_CLIMATE_DIR, help="Root of ingested partitions")
    parser.add_argument("--dest", default=PROC_HEAT_INDEX_DIR, help="Root for derived partitions")
    parser.add_argument("--dates", default=None, help="Date or range like '20200101-20201231'")
    parser.add_argument("--overwrite-policy", default="overwrite",
                        choices=["skip-if-exists", "overwrite", "fail-if-exists"])
    parser.add_argument("--high-humidity-adjustment", action="store_true",
                        help="Apply the NOAA rh > 85 correction")
    parser.add_argument("--no-success-marker", action="store_true", help="Do not write _SUCCESS marker")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    date_range = parse_date_range_arg(args.dates) if args.dates else None

    written, skipped, n_rows = publish(
        args.source, args.dest,
        date_range=date_range,
        overwrite_policy=args.overwrite_policy,
        high_humidity=args.high_humidity_adjustment,
        write_success_marker=not args.no_success_marker,
    )
    stats = summarize(args.source, date_range)
    write_summary_csv(stats)

    print(
        f"Derived heat index to {args.dest} | Dates: {stats['date_min']}..{stats['date_max']} | "
        f"Partitions: {written} written, {skipped} skipped | Rows: {n_rows}"
    )


if __name__ == "__main__":
    main()
