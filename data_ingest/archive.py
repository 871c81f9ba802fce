"""
Listing of a local PRISM archive (already downloaded; fetching is not done here).
Finds the raster for each (variable, date), sorts by date, and pairs the
temperature and dew point lists so the orchestrator can walk them by position.
"""

import os
import logging
from typing import NamedTuple

from config import (
    RASTER_EXTENSIONS, VARIABLE_PATTERN, TEMPERATURE_VARIABLE, DEWPOINT_VARIABLE,
)
from data_ingest.read_grid import identifier_from_path, parse_identifier
from utils.errors import MetadataParseError

logger = logging.getLogger(__name__)

# stable grids supersede provisional ones, which supersede early releases
_STABILITY_RANK = {"stable": 0, "provisional": 1, "early": 2}


class ArchivePairs(NamedTuple):
    dates: list
    temperature_files: list
    dewpoint_files: list
    missing_temperature: list  # dates with a dew point file only
    missing_dewpoint: list     # dates with a temperature file only


def _stability_rank(identifier: str) -> int:
    for token, rank in _STABILITY_RANK.items():
        if f"_{token}" in identifier:
            return rank
    return len(_STABILITY_RANK)


def scan_archive(archive_dir: str, variable_pattern: str = VARIABLE_PATTERN) -> dict:
    """Map (variable, date) -> path for every recognisable raster under archive_dir."""
    found = {}
    for dirpath, _dirnames, filenames in os.walk(archive_dir):
        for name in sorted(filenames):
            if os.path.splitext(name)[1].lower() not in RASTER_EXTENSIONS:
                continue
            path = os.path.join(dirpath, name)
            identifier = identifier_from_path(path)
            try:
                date, variable = parse_identifier(identifier, variable_pattern)
            except MetadataParseError:
                logger.debug(f"Ignoring unrecognised file in archive: {path}")
                continue
            key = (variable, date)
            if key in found:
                kept = found[key]
                if _stability_rank(identifier) >= _stability_rank(identifier_from_path(kept)):
                    logger.warning(f"Duplicate {variable} grid for {date}: keeping {kept}, ignoring {path}")
                    continue
                logger.warning(f"Duplicate {variable} grid for {date}: {path} supersedes {kept}")
            found[key] = path
    return found


def list_archive(archive_dir: str, variable: str, date_range=None,
                 variable_pattern: str = VARIABLE_PATTERN) -> list:
    """Raster paths for one variable, sorted by date, optionally limited to [min, max] dates."""
    found = scan_archive(archive_dir, variable_pattern)
    dated = [
        (date, path) for (var, date), path in found.items()
        if var == variable and (date_range is None or date_range[0] <= date <= date_range[1])
    ]
    return [path for _date, path in sorted(dated)]


def pair_archive(archive_dir: str, date_range=None,
                 temperature_variable: str = TEMPERATURE_VARIABLE,
                 dewpoint_variable: str = DEWPOINT_VARIABLE,
                 variable_pattern: str = VARIABLE_PATTERN) -> ArchivePairs:
    """Match temperature and dew point files by date; report dates present for one variable only."""
    found = scan_archive(archive_dir, variable_pattern)

    def _dates(variable):
        return {
            date: path for (var, date), path in found.items()
            if var == variable and (date_range is None or date_range[0] <= date <= date_range[1])
        }

    temps = _dates(temperature_variable)
    dews = _dates(dewpoint_variable)
    common = sorted(set(temps) & set(dews))
    missing_temperature = sorted(set(dews) - set(temps))
    missing_dewpoint = sorted(set(temps) - set(dews))

    if missing_temperature or missing_dewpoint:
        logger.warning(
            f"Archive coverage gaps: {len(missing_temperature)} date(s) without {temperature_variable}, "
            f"{len(missing_dewpoint)} date(s) without {dewpoint_variable}"
        )

    return ArchivePairs(
        dates=common,
        temperature_files=[temps[d] for d in common],
        dewpoint_files=[dews[d] for d in common],
        missing_temperature=missing_temperature,
        missing_dewpoint=missing_dewpoint,
    )
