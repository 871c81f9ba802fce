# join_pairs.py
import logging

import pandas as pd

from config import TEMPERATURE_VARIABLE, DEWPOINT_VARIABLE, JOIN_HOW
from utils.errors import MultipleDatesError, MetadataParseError, DuplicateCellError, FormatError

logger = logging.getLogger(__name__)

JOIN_KEYS = ["x", "y", "date"]
JOINED_COLUMNS = ["x", "y", "date", "temperature", "dew_point"]


def partition_label(df: pd.DataFrame) -> str:
    """The single date a per-day table covers."""
    dates = df["date"].dropna().unique()
    if len(dates) == 0:
        raise MetadataParseError("Cannot label an empty table: no date values")
    if len(dates) > 1:
        raise MultipleDatesError(
            f"Expected one date per input file, found {len(dates)}: {sorted(dates)[:5]}"
        )
    return str(dates[0])


def _value_table(df: pd.DataFrame, expected_variable: str, out_col: str, role: str) -> pd.DataFrame:
    missing = {"x", "y", "date", "value"} - set(df.columns)
    if missing:
        raise FormatError(f"{role} table is missing columns {sorted(missing)}")

    if "variable_name" in df.columns:
        found = sorted(df["variable_name"].dropna().unique().tolist())
        if found and found != [expected_variable]:
            logger.warning(f"{role} table holds variable(s) {found}, expected '{expected_variable}'")

    dupes = df.duplicated(subset=JOIN_KEYS)
    if dupes.any():
        raise DuplicateCellError(
            f"{role} table repeats {int(dupes.sum())} (x, y, date) key(s)"
        )
    return df[JOIN_KEYS + ["value"]].rename(columns={"value": out_col})


def join_pair(temperature: pd.DataFrame, dewpoint: pd.DataFrame, how: str = JOIN_HOW,
              temperature_variable: str = TEMPERATURE_VARIABLE,
              dewpoint_variable: str = DEWPOINT_VARIABLE) -> pd.DataFrame:
    """
    Join a temperature and a dew point long table on (x, y, date).

    how="left" (default) keeps every temperature cell; dew_point is NaN where
    the dew point raster has no matching cell. how="inner" keeps only cells
    present in both. Missing values stay NaN.
    """
    if how not in ("left", "inner"):
        raise ValueError(f"Unsupported join policy: {how!r}")

    t = _value_table(temperature, temperature_variable, "temperature", "Temperature")
    d = _value_table(dewpoint, dewpoint_variable, "dew_point", "Dew point")

    result = t.merge(d, on=JOIN_KEYS, how=how, validate="one_to_one", sort=False, indicator=True)
    unmatched = int((result["_merge"] == "left_only").sum())
    if unmatched:
        logger.debug(f"{unmatched:,} temperature cells without a dew point match")

    result["temperature"] = result["temperature"].astype("float64")
    result["dew_point"] = result["dew_point"].astype("float64")
    return result[JOINED_COLUMNS].reset_index(drop=True)
