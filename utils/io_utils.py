import os
import re
import glob
import logging
from enum import Enum

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from config import (
    PARQUET_ENGINE, PARQUET_COMPRESSION,
    PARTITION_DIR_TEMPLATE, PARTITION_FILENAME, OVERWRITE_POLICY,
)
from utils.errors import PartitionExistsError, FormatError

logger = logging.getLogger(__name__)

# Fixed schema of every ingested partition
PARTITION_SCHEMA = pa.schema([
    ("x", pa.float64()),
    ("y", pa.float64()),
    ("date", pa.string()),
    ("temperature", pa.float64()),
    ("dew_point", pa.float64()),
])

# Ingested schema plus the derived heat index columns
DERIVED_SCHEMA = pa.schema(list(PARTITION_SCHEMA) + [
    ("relative_humidity", pa.float64()),
    ("temperature_f", pa.float64()),
    ("heat_index", pa.float64()),
])


class OverwritePolicy(str, Enum):
    SKIP = "skip-if-exists"
    OVERWRITE = "overwrite"
    FAIL = "fail-if-exists"


class WriteStatus(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    FILTERED = "filtered"  # outside the requested date range, not written


def ensure_dir(path):
    d = path if os.path.splitext(path)[1] == "" else os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


def atomic_replace(src_tmp, dst_final):
    ensure_dir(dst_final)
    os.replace(src_tmp, dst_final)


def atomic_write_csv(df: pd.DataFrame, dst_path: str) -> None:
    ensure_dir(dst_path)
    tmp_path = f"{dst_path}.tmp"
    df.to_csv(tmp_path, index=False)
    os.replace(tmp_path, dst_path)


def partition_path(root: str, date: str) -> str:
    return os.path.join(root, PARTITION_DIR_TEMPLATE.format(date=date), PARTITION_FILENAME)


def partition_exists(root: str, date: str) -> bool:
    return os.path.isfile(partition_path(root, date))


def discover_partitions(root: str) -> list:
    pattern = os.path.join(root, PARTITION_DIR_TEMPLATE.format(date="*"), PARTITION_FILENAME)
    return sorted(glob.glob(pattern))


def extract_date_from_path(path: str) -> str | None:
    # expects .../date=YYYYMMDD/part.parquet
    m = re.search(r"date=(\d{8})", path)
    return m.group(1) if m else None


def _compression_arg(compression):
    if compression is None or str(compression).lower() in ("none", "uncompressed"):
        return None
    return compression


def _conform(df: pd.DataFrame, schema: pa.Schema) -> pd.DataFrame:
    expected = schema.names
    missing = set(expected) - set(df.columns)
    unexpected = set(df.columns) - set(expected)
    if missing or unexpected:
        raise FormatError(
            f"Partition schema mismatch: missing={sorted(missing)} unexpected={sorted(unexpected)}"
        )
    out = df[expected].copy()
    for field in schema:
        if pa.types.is_string(field.type):
            out[field.name] = out[field.name].astype(str)
        else:
            out[field.name] = out[field.name].astype("float64")
    # raster order: north to south, west to east
    return out.sort_values(["y", "x"], ascending=[False, True], kind="mergesort").reset_index(drop=True)


def write_partition(df: pd.DataFrame, date: str, root: str,
                    overwrite_policy=OVERWRITE_POLICY,
                    compression=PARQUET_COMPRESSION,
                    schema: pa.Schema = PARTITION_SCHEMA) -> WriteStatus:
    """
    Write `df` as the partition for `date` under `root`.

    The file is written to a temp path and renamed into place, so a partition
    is either complete or absent. Returns WriteStatus.SKIPPED when the
    partition exists and the policy is skip-if-exists.
    """
    policy = OverwritePolicy(overwrite_policy)
    final_path = partition_path(root, date)

    if os.path.exists(final_path):
        if policy is OverwritePolicy.SKIP:
            logger.info(f"Partition {date} exists, skipping: {final_path}")
            return WriteStatus.SKIPPED
        if policy is OverwritePolicy.FAIL:
            raise PartitionExistsError(f"Partition {date} already exists: {final_path}")

    out = _conform(df, schema)
    dates = out["date"].unique()
    if len(dates) and (len(dates) > 1 or dates[0] != date):
        raise FormatError(f"Partition {date} holds rows for other dates: {sorted(dates)[:5]}")

    ensure_dir(final_path)
    tmp_path = f"{final_path}.tmp"
    try:
        out.to_parquet(
            tmp_path,
            engine=PARQUET_ENGINE,
            compression=_compression_arg(compression),
            index=False,
            schema=schema,
        )
        atomic_replace(tmp_path, final_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    logger.info(f"Wrote partition {date}: {len(out):,} rows -> {final_path}")
    return WriteStatus.WRITTEN


def validate_parquet_schema(parquet_path: str, schema: pa.Schema = PARTITION_SCHEMA) -> None:
    cols = set(pq.ParquetFile(parquet_path).schema_arrow.names)
    required = set(schema.names)
    missing = required - cols
    unexpected = cols - required
    if missing or unexpected:
        raise FormatError(
            f"Schema mismatch in {parquet_path}: missing={sorted(missing)} unexpected={sorted(unexpected)}"
        )


def read_partition(root: str, date: str, schema: pa.Schema = PARTITION_SCHEMA) -> pd.DataFrame:
    path = partition_path(root, date)
    if not os.path.exists(path):
        raise FileNotFoundError(f"No partition for {date} under {root}")
    validate_parquet_schema(path, schema)
    df = pd.read_parquet(path, engine=PARQUET_ENGINE, columns=schema.names)
    df["date"] = df["date"].astype(str)
    return df


def load_partitions(paths: list, date_range=None, schema: pa.Schema = PARTITION_SCHEMA) -> pd.DataFrame:
    frames = []
    for p in paths:
        date = extract_date_from_path(p)
        if date is None:
            continue
        if date_range is not None and not (date_range[0] <= date <= date_range[1]):
            continue
        validate_parquet_schema(p, schema)
        df = pd.read_parquet(p, engine=PARQUET_ENGINE, columns=schema.names)
        df["date"] = df["date"].astype(str)
        frames.append(df)

    if not frames:
        return pd.DataFrame(columns=schema.names)  # empty

    return pd.concat(frames, ignore_index=True)
