# config.py
"""
Central configuration for the PRISM heat index pipeline.
Edit this file to change paths, variable names, precision, etc.
Entry points build an IngestConfig from these defaults and pass it
explicitly down every call.
"""
import os
from dataclasses import dataclass, replace
from typing import Optional, Tuple

# --- PRISM archive settings ---
TEMPERATURE_VARIABLE = "tmean"   # mean daily temperature (deg C)
DEWPOINT_VARIABLE = "tdmean"     # mean daily dew point temperature (deg C)
# band/file identifiers look like PRISM_tmean_stable_4kmD2_20200101_bil
VARIABLE_PATTERN = r"PRISM_(?P<name>[a-z]+)_(?:stable|provisional|early)"
DATE_PATTERN = r"(?<![0-9])[0-9]{8}(?![0-9])"
RASTER_EXTENSIONS = (".bil", ".tif", ".tiff")

# Project root directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Data paths
RAW_DATA_DIR = os.path.join(BASE_DIR, "data", "raw")
PROCESSED_DATA_DIR = os.path.join(BASE_DIR, "data", "processed")
PRISM_ARCHIVE_DIR = os.path.join(RAW_DATA_DIR, "prism")

# --- Processed (partitioned) ---
PROC_CLIMATE_DIR = os.path.join(PROCESSED_DATA_DIR, "climate")
PROC_HEAT_INDEX_DIR = os.path.join(PROCESSED_DATA_DIR, "heat_index")
PARTITION_DIR_TEMPLATE = "date={date}"
PARTITION_FILENAME = "part.parquet"

# --- Output/Reporting Settings ---
OUTPUTS_DIR = os.path.join(BASE_DIR, "outputs")
SUMMARY_CSV_NAME = "climate_summary.csv"
SUMMARY_CSV = os.path.join(OUTPUTS_DIR, SUMMARY_CSV_NAME)
PUBLISH_SUCCESS_MARK = "_SUCCESS"  # tiny marker file in the derived root
PIPELINE_LOG_NAME = "pipeline.log"

# --- Grid normalisation ---
COORDINATE_PRECISION = 5   # decimal places for x/y join keys

# --- Join / write policy ---
JOIN_HOW = "left"                 # keep every temperature cell
OVERWRITE_POLICY = "skip-if-exists"
OVERWRITE_POLICIES = ("skip-if-exists", "overwrite", "fail-if-exists")

# --- Heat index ---
HIGH_HUMIDITY_ADJUSTMENT = False  # NOAA rh > 85 correction, off by default

# --- Parquet I/O ---
PARQUET_ENGINE = "pyarrow"
PARQUET_COMPRESSION = "snappy"  # or "zstd", or "none" for uncompressed files

# --- Orchestration ---
MAX_WORKERS = 1           # > 1 runs pairs on a thread pool
PROGRESS_EVERY = 10       # log progress every N pairs

# --- CLI defaults (overridable by flags) ---
DEFAULT_DATE_RANGE = "20200101-20201231"


@dataclass(frozen=True)
class IngestConfig:
    """Settings threaded through reading, joining, writing and deriving."""
    destination_root: str = PROC_CLIMATE_DIR
    overwrite_policy: str = OVERWRITE_POLICY
    coordinate_precision: int = COORDINATE_PRECISION
    date_range: Optional[Tuple[str, str]] = None  # inclusive YYYYMMDD bounds
    join_how: str = JOIN_HOW
    parquet_compression: str = PARQUET_COMPRESSION
    max_workers: int = MAX_WORKERS
    temperature_variable: str = TEMPERATURE_VARIABLE
    dewpoint_variable: str = DEWPOINT_VARIABLE
    variable_pattern: str = VARIABLE_PATTERN
    high_humidity_adjustment: bool = HIGH_HUMIDITY_ADJUSTMENT

    def __post_init__(self):
        if self.join_how not in ("left", "inner"):
            raise ValueError(f"join_how must be 'left' or 'inner', got {self.join_how!r}")
        if self.overwrite_policy not in OVERWRITE_POLICIES:
            raise ValueError(f"overwrite_policy must be one of {OVERWRITE_POLICIES}, got {self.overwrite_policy!r}")
        if self.coordinate_precision < 0:
            raise ValueError("coordinate_precision must be >= 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.date_range is not None:
            lo, hi = self.date_range
            if lo > hi:
                raise ValueError(f"Empty date range: {lo} > {hi}")

    def with_overrides(self, **changes) -> "IngestConfig":
        """Return a copy with the non-None entries of `changes` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def parse_date_range_arg(range_str):
    """Parse 'YYYYMMDD-YYYYMMDD' (or a single YYYYMMDD) into an inclusive tuple."""
    range_str = range_str.strip()
    if "-" in range_str:
        a, b = range_str.split("-", 1)
        lo, hi = a.strip(), b.strip()
    else:
        lo = hi = range_str
    for d in (lo, hi):
        if len(d) != 8 or not d.isdigit():
            raise ValueError(f"Expected YYYYMMDD dates, got {range_str!r}")
    return lo, hi
