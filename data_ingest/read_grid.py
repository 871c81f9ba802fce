"""
Raster reader for daily PRISM grids:
- Open a raster stack (one or more bands) with rioxarray, nodata -> NaN
- Parse date and variable name out of each band identifier
- Flatten to long format: one row per (x, y) per band
- Round x/y so cells from different files share join keys
"""

import os
import re
import logging
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd
import rioxarray
import xarray as xr
from rasterio.errors import RasterioIOError

from config import COORDINATE_PRECISION, VARIABLE_PATTERN, DATE_PATTERN
from utils.errors import GridIOError, FormatError, MetadataParseError

logger = logging.getLogger(__name__)

GRID_COLUMNS = ["x", "y", "date", "variable_name", "value"]

_DATE_RE = re.compile(DATE_PATTERN)


def identifier_from_path(path) -> str:
    """PRISM names its band after the file, e.g. PRISM_tmean_stable_4kmD2_20200101_bil."""
    return Path(path).stem


def extract_date(identifier: str) -> str:
    """Return the first 8-digit YYYYMMDD run in `identifier`."""
    m = _DATE_RE.search(identifier)
    if m is None:
        raise MetadataParseError(f"No YYYYMMDD date in identifier {identifier!r}")
    date = m.group(0)
    try:
        datetime.strptime(date, "%Y%m%d")
    except ValueError:
        raise MetadataParseError(f"Invalid calendar date {date!r} in identifier {identifier!r}") from None
    return date


def extract_variable(identifier: str, variable_pattern: str = VARIABLE_PATTERN) -> str:
    """Strip the PRISM_ prefix and stability suffix: PRISM_tmean_stable -> tmean."""
    m = re.search(variable_pattern, identifier)
    if m is None:
        raise MetadataParseError(
            f"Identifier {identifier!r} does not match variable pattern {variable_pattern!r}"
        )
    return m.group("name") if "name" in m.groupdict() else m.group(1)


def parse_identifier(identifier: str, variable_pattern: str = VARIABLE_PATTERN):
    return extract_date(identifier), extract_variable(identifier, variable_pattern)


def band_identifiers(da: xr.DataArray, path, variable_pattern: str = VARIABLE_PATTERN) -> list:
    """One identifier per band: the band description if it names a variable, else the file stem."""
    n_bands = da.sizes.get("band", 1)
    long_name = da.attrs.get("long_name")
    if isinstance(long_name, str):
        names = [long_name] * n_bands
    elif isinstance(long_name, (tuple, list)) and len(long_name) == n_bands:
        names = list(long_name)
    else:
        names = [None] * n_bands

    stem = identifier_from_path(path)
    return [
        name if name and re.search(variable_pattern, name) else stem
        for name in names
    ]


def _open_raster(path) -> xr.DataArray:
    if not os.path.exists(path):
        raise GridIOError(f"Raster file not found: {path}")
    if not os.access(path, os.R_OK):
        raise GridIOError(f"Raster file not readable: {path}")
    try:
        da = rioxarray.open_rasterio(path, masked=True)
    except RasterioIOError as e:
        raise FormatError(f"Not a readable raster: {path} ({e})") from e
    if not isinstance(da, xr.DataArray):
        raise FormatError(f"Expected a single raster stack, got subdatasets in {path}")
    return da


def read_grid(path, precision: int = COORDINATE_PRECISION,
              variable_pattern: str = VARIABLE_PATTERN,
              drop_missing: bool = True) -> pd.DataFrame:
    """
    Read one raster file into long format.

    Returns a DataFrame with columns x, y, date, variable_name, value.
    Rows follow raster order (north to south, west to east) band by band.
    Cells without data (outside the grid mask) are dropped unless
    drop_missing is False.
    """
    da = _open_raster(path)
    with da:
        if "band" not in da.dims:
            da = da.expand_dims("band")
        if not np.issubdtype(da.dtype, np.number) or np.issubdtype(da.dtype, np.bool_):
            raise FormatError(f"Raster {path} has non-numeric dtype {da.dtype}")
        identifiers = band_identifiers(da, path, variable_pattern)
        parsed = [parse_identifier(ident, variable_pattern) for ident in identifiers]

        try:
            values = da.transpose("band", "y", "x").values.astype("float64")
        except RasterioIOError as e:
            raise FormatError(f"Failed to read raster data from {path} ({e})") from e
        xs = da["x"].values
        ys = da["y"].values

    # meshgrid is y x x, ravel keeps raster order
    X, Y = np.meshgrid(xs, ys)
    x_flat = np.round(X.ravel().astype("float64"), precision)
    y_flat = np.round(Y.ravel().astype("float64"), precision)

    frames = []
    for (date, variable_name), band_values in zip(parsed, values):
        frames.append(pd.DataFrame({
            "x": x_flat,
            "y": y_flat,
            "date": date,
            "variable_name": variable_name,
            "value": band_values.ravel(),
        }))
    df = pd.concat(frames, ignore_index=True)

    if drop_missing:
        df = df.dropna(subset=["value"]).reset_index(drop=True)

    df["date"] = df["date"].astype(str)
    df["variable_name"] = df["variable_name"].astype(str)
    logger.debug(f"Read {len(df):,} cells from {path} ({len(parsed)} band(s))")
    return df[GRID_COLUMNS]
