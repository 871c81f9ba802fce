"""Tests for the raster reader: metadata parsing, flattening and coordinate rounding."""

import numpy as np
import pandas as pd
import pytest

from conftest import write_grid, prism_name, ORIGIN_X, ORIGIN_Y, PRISM_RES
from data_ingest.read_grid import (
    GRID_COLUMNS, extract_date, extract_variable, parse_identifier, read_grid,
)
from utils.errors import GridIOError, FormatError, MetadataParseError


def test_prism_identifier():
    """Date and variable come out of a standard PRISM band name."""
    assert parse_identifier("PRISM_tmean_stable_4kmD2_20200101_bil") == ("20200101", "tmean")


def test_provisional_suffix():
    assert extract_variable("PRISM_tdmean_provisional_4kmD2_20240228_bil") == "tdmean"


def test_missing_date():
    with pytest.raises(MetadataParseError):
        extract_date("PRISM_tmean_stable_4kmD2_bil")


def test_impossible_date():
    with pytest.raises(MetadataParseError):
        extract_date("PRISM_tmean_stable_4kmD2_20201341_bil")


def test_variable_pattern_mismatch():
    with pytest.raises(MetadataParseError):
        extract_variable("tmean_20200101")


def test_custom_pattern():
    assert extract_variable("ERA_t2m_final_20200101", r"ERA_(?P<name>[a-z0-9]+)_final") == "t2m"


def test_long_format(day_pair):
    """Grid flattens to one row per valid cell with the long-table columns."""
    t_file, _ = day_pair
    df = read_grid(t_file)
    assert list(df.columns) == GRID_COLUMNS
    # 6 cells, one nodata dropped
    assert len(df) == 5
    assert set(df["date"]) == {"20200101"}
    assert set(df["variable_name"]) == {"tmean"}
    assert df["value"].dtype == np.float64


def test_raster_order_and_values(day_pair):
    """Rows run top row first, west to east, with nodata kept when asked."""
    t_file, _ = day_pair
    df = read_grid(t_file, drop_missing=False)
    assert len(df) == 6
    assert df["value"].iloc[:3].tolist() == [20.5, 21.0, 22.25]
    assert np.isnan(df["value"].iloc[4])
    assert (df["y"].iloc[:3].to_numpy() > df["y"].iloc[3:].to_numpy()).all()
    assert df["x"].iloc[0] < df["x"].iloc[1] < df["x"].iloc[2]


def test_coordinates_rounded(day_pair):
    t_file, _ = day_pair
    df = read_grid(t_file)
    assert (df["x"] == df["x"].round(5)).all()
    assert (df["y"] == df["y"].round(5)).all()
    assert df["x"].iloc[0] == round(ORIGIN_X + PRISM_RES / 2, 5)


def test_configured_precision(day_pair):
    t_file, _ = day_pair
    df = read_grid(t_file, precision=2)
    assert (df["x"] == df["x"].round(2)).all()
    assert (df["y"] == df["y"].round(2)).all()


def test_rereads_identical(day_pair):
    t_file, _ = day_pair
    pd.testing.assert_frame_equal(read_grid(t_file), read_grid(t_file))


def test_float_artifacts_collapse(tmp_path, temperature_values):
    """Sub-precision origin jitter rounds to the same join keys."""
    a = write_grid(tmp_path / prism_name("tmean", "20200101"), temperature_values)
    b = write_grid(tmp_path / prism_name("tdmean", "20200101"), temperature_values,
                   x0=ORIGIN_X + 1e-9, y0=ORIGIN_Y - 1e-9)
    da, db = read_grid(a), read_grid(b)
    assert da[["x", "y"]].equals(db[["x", "y"]])


def test_band_description_preferred(tmp_path, temperature_values):
    """A PRISM band description wins over an unhelpful file name."""
    path = write_grid(tmp_path / "grid.tif", temperature_values,
                      descriptions=["PRISM_tdmean_provisional_4kmD2_20200105_bil"])
    df = read_grid(path)
    assert set(df["date"]) == {"20200105"}
    assert set(df["variable_name"]) == {"tdmean"}


def test_multiband_carries_each_date(tmp_path, temperature_values):
    stack = np.stack([temperature_values, temperature_values + 1])
    path = write_grid(tmp_path / "stack.tif", stack, descriptions=[
        "PRISM_tmean_stable_4kmD2_20200101_bil",
        "PRISM_tmean_stable_4kmD2_20200102_bil",
    ])
    df = read_grid(path)
    assert sorted(df["date"].unique()) == ["20200101", "20200102"]
    assert len(df) == 10


def test_unparseable_name(tmp_path, temperature_values):
    path = write_grid(tmp_path / "tmean_grid.tif", temperature_values)
    with pytest.raises(MetadataParseError):
        read_grid(path)


def test_missing_file(tmp_path):
    """A missing raster is an I/O error, not a format error."""
    with pytest.raises(GridIOError) as exc:
        read_grid(tmp_path / prism_name("tmean", "20200101"))
    assert isinstance(exc.value, OSError)


def test_corrupt_file(tmp_path):
    path = tmp_path / prism_name("tmean", "20200101")
    path.write_bytes(b"this is not a raster")
    with pytest.raises(FormatError):
        read_grid(path)
