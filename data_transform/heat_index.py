"""
Relative humidity and NOAA heat index per grid cell.

The formulas are written once as term helpers that accept floats or numpy
arrays. Scalar entry points (relative_humidity, heat_index, derive_row) branch
with plain `if`; the table entry point (derive) evaluates the same terms
column-wise and selects with np.where.

Heat index follows the NWS procedure:
  1. Steadman simple estimate, kept when its mean with T is below 80 F
  2. Rothfusz regression otherwise
  3. additive adjustments for very dry and very humid air
"""

import math
import logging
from typing import NamedTuple

import numpy as np
import pandas as pd

from config import HIGH_HUMIDITY_ADJUSTMENT
from utils.errors import ArithmeticDomainError

logger = logging.getLogger(__name__)

# Magnus coefficients (Alduchov & Eskridge), Celsius
MAGNUS_A = 17.625
MAGNUS_B = 243.04

SIMPLE_THRESHOLD_F = 80.0


class DerivedMetrics(NamedTuple):
    relative_humidity: float
    temperature_f: float
    heat_index: float


# --- Term helpers (float or ndarray) ---

def _magnus(t):
    return np.exp(MAGNUS_A * t / (MAGNUS_B + t))


def _simple(tf, rh):
    return 0.5 * (tf + 61.0 + (tf - 68.0) * 1.2 + rh * 0.094)


def _rothfusz(tf, rh):
    return (-42.379
            + 2.04901523 * tf
            + 10.14333127 * rh
            - 0.22475541 * tf * rh
            - 0.00683783 * tf * tf
            - 0.05481717 * rh * rh
            + 0.00122874 * tf * tf * rh
            + 0.00085282 * tf * rh * rh
            - 0.00000199 * tf * tf * rh * rh)


def _is_dry(tf, rh):
    return (rh < 13.0) & (tf > 80.0) & (tf < 112.0)


def _dry_adjustment(tf, rh):
    # only evaluated where _is_dry holds, so the sqrt argument is positive
    return -((13.0 - rh) / 4.0) * np.sqrt((17.0 - np.abs(tf - 95.0)) / 17.0)


def _is_humid(tf, rh):
    return (rh > 85.0) & (tf > 80.0) & (tf < 87.0)


def _humid_adjustment(tf, rh):
    return ((rh - 85.0) / 10.0) * ((87.0 - tf) / 5.0)


LOW_HUMIDITY = (_is_dry, _dry_adjustment)
HIGH_HUMIDITY = (_is_humid, _humid_adjustment)


def adjustments(high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT) -> list:
    """(condition, term) pairs added to the Rothfusz value where condition holds."""
    table = [LOW_HUMIDITY]
    if high_humidity:
        table.append(HIGH_HUMIDITY)
    return table


# --- Scalar formulas ---

def _is_missing(*values) -> bool:
    return any(v is None or pd.isna(v) for v in values)


def relative_humidity(t_c: float, td_c: float) -> float:
    """Magnus approximation, percent. NaN in, NaN out."""
    if _is_missing(t_c, td_c):
        return float("nan")
    try:
        rh = 100.0 * math.exp(MAGNUS_A * td_c / (MAGNUS_B + td_c)) / math.exp(MAGNUS_A * t_c / (MAGNUS_B + t_c))
    except (ZeroDivisionError, OverflowError) as e:
        raise ArithmeticDomainError(f"relative humidity undefined for T={t_c}, Td={td_c}: {e}") from e
    if not math.isfinite(rh):
        raise ArithmeticDomainError(f"relative humidity not finite for T={t_c}, Td={td_c}")
    return rh


def celsius_to_fahrenheit(t_c):
    return t_c * 9.0 / 5.0 + 32.0


def simple_heat_index(tf: float, rh: float) -> float:
    return float(_simple(tf, rh))


def rothfusz(tf: float, rh: float) -> float:
    return float(_rothfusz(tf, rh))


def heat_index(tf: float, rh: float, high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT) -> float:
    """NOAA heat index (F) from temperature (F) and relative humidity (%)."""
    if _is_missing(tf, rh):
        return float("nan")
    simple = simple_heat_index(tf, rh)
    if (simple + tf) / 2.0 < SIMPLE_THRESHOLD_F:
        return simple

    hi = rothfusz(tf, rh)
    for applies, term in adjustments(high_humidity):
        if applies(tf, rh):
            hi += float(term(tf, rh))
    if not math.isfinite(hi):
        raise ArithmeticDomainError(f"heat index not finite for T={tf}, RH={rh}")
    return hi


def derive_row(t_c: float, td_c: float, high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT) -> DerivedMetrics:
    """All derived metrics for one cell; domain failures come back as NaN."""
    nan = float("nan")
    if _is_missing(t_c):
        return DerivedMetrics(nan, nan, nan)
    tf = celsius_to_fahrenheit(float(t_c))
    try:
        rh = relative_humidity(t_c, td_c)
        hi = heat_index(tf, rh, high_humidity)
    except ArithmeticDomainError as e:
        logger.debug(f"Derived metrics set to missing: {e}")
        return DerivedMetrics(nan, tf, nan)
    return DerivedMetrics(rh, tf, hi)


# --- Vectorized ---

def relative_humidity_array(t_c, td_c) -> np.ndarray:
    t = np.asarray(t_c, dtype="float64")
    td = np.asarray(td_c, dtype="float64")
    with np.errstate(all="ignore"):
        num = _magnus(td)
        den = _magnus(t)
        rh = 100.0 * num / den
    ok = ((MAGNUS_B + t != 0) & (MAGNUS_B + td != 0)
          & np.isfinite(num) & np.isfinite(den) & (den != 0) & np.isfinite(rh))
    return np.where(ok, rh, np.nan)


def heat_index_array(tf, rh, high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT) -> np.ndarray:
    tf = np.asarray(tf, dtype="float64")
    rh = np.asarray(rh, dtype="float64")
    with np.errstate(all="ignore"):
        simple = _simple(tf, rh)
        hi = _rothfusz(tf, rh)
        for applies, term in adjustments(high_humidity):
            mask = applies(tf, rh)
            hi = np.where(mask, hi + term(tf, rh), hi)
        out = np.where((simple + tf) / 2.0 < SIMPLE_THRESHOLD_F, simple, hi)
    # NaN inputs fail every comparison above, so force them back to missing
    out = np.where(np.isnan(tf) | np.isnan(rh), np.nan, out)
    return np.where(np.isfinite(out), out, np.nan)


def derive(df: pd.DataFrame, high_humidity: bool = HIGH_HUMIDITY_ADJUSTMENT) -> pd.DataFrame:
    """Return `df` with relative_humidity, temperature_f and heat_index columns added."""
    out = df.copy()
    t = out["temperature"].to_numpy(dtype="float64")
    td = out["dew_point"].to_numpy(dtype="float64")
    rh = relative_humidity_array(t, td)
    tf = celsius_to_fahrenheit(t)
    out["relative_humidity"] = rh
    out["temperature_f"] = tf
    out["heat_index"] = heat_index_array(tf, rh, high_humidity)
    return out
