"""Shared fixtures: small synthetic PRISM-like GeoTIFF grids."""

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from config import IngestConfig

PRISM_RES = 1.0 / 24.0  # 2.5 arc-minutes
ORIGIN_X = -125.0208333333
ORIGIN_Y = 49.9375
NODATA = -9999.0


def prism_name(variable, date, stability="stable", ext=".tif"):
    return f"PRISM_{variable}_{stability}_4kmD2_{date}_bil{ext}"


def write_grid(path, values, x0=ORIGIN_X, y0=ORIGIN_Y, res=PRISM_RES, descriptions=None):
    """Write a float32 GeoTIFF. `values` is (H, W) or (bands, H, W); NaN becomes nodata."""
    values = np.asarray(values, dtype="float32")
    if values.ndim == 2:
        values = values[None]
    count, height, width = values.shape
    data = np.where(np.isnan(values), NODATA, values).astype("float32")
    with rasterio.open(
        path, "w", driver="GTiff",
        height=height, width=width, count=count, dtype="float32",
        crs="EPSG:4269", transform=from_origin(x0, y0, res, res), nodata=NODATA,
    ) as dst:
        dst.write(data)
        if descriptions:
            for i, desc in enumerate(descriptions, start=1):
                dst.set_band_description(i, desc)
    return path


@pytest.fixture
def temperature_values():
    return np.array([
        [20.5, 21.0, 22.25],
        [25.0, np.nan, 30.0],
    ])


@pytest.fixture
def dewpoint_values():
    return np.array([
        [10.0, 11.5, 12.0],
        [15.0, 16.0, np.nan],
    ])


@pytest.fixture
def day_pair(tmp_path, temperature_values, dewpoint_values):
    """One day of co-registered tmean/tdmean grids."""
    archive = tmp_path / "prism"
    archive.mkdir()
    t = write_grid(archive / prism_name("tmean", "20200101"), temperature_values)
    d = write_grid(archive / prism_name("tdmean", "20200101"), dewpoint_values)
    return t, d


@pytest.fixture
def archive_days(tmp_path, temperature_values, dewpoint_values):
    """Three days of grids; returns (archive_dir, temperature_files, dewpoint_files)."""
    archive = tmp_path / "prism"
    archive.mkdir(exist_ok=True)
    t_files, d_files = [], []
    for offset, date in enumerate(["20200101", "20200102", "20200103"]):
        t_files.append(write_grid(archive / prism_name("tmean", date), temperature_values + offset))
        d_files.append(write_grid(archive / prism_name("tdmean", date), dewpoint_values + offset))
    return archive, t_files, d_files


@pytest.fixture
def ingest_config(tmp_path):
    return IngestConfig(destination_root=str(tmp_path / "parquet"))
