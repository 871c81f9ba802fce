"""
Batch ingest of daily PRISM grids into date-partitioned Parquet:
- Walk temperature / dew point file lists pairwise by position
- Per pair: read both rasters, join on (x, y, date), write the date partition
- Skip dates already written (skip-if-exists), filter to an optional date range
- Date checks use the date the rasters report; each date is owned by one pair
- Record per-pair failures and keep going; only a list-length mismatch aborts
"""

import time
import threading
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from config import IngestConfig, PROGRESS_EVERY
from data_ingest.read_grid import read_grid, extract_date, identifier_from_path
from data_transform.join_pairs import join_pair, partition_label
from utils.errors import PairingError, MetadataParseError
from utils.io_utils import write_partition, partition_exists, OverwritePolicy, WriteStatus

logger = logging.getLogger(__name__)


class PairFailure(NamedTuple):
    date: Optional[str]
    temperature_file: str
    dewpoint_file: str
    error_type: str
    message: str


@dataclass
class IngestReport:
    succeeded: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    filtered: int = 0  # pairs outside the configured date range

    @property
    def n_processed(self) -> int:
        return len(self.succeeded) + len(self.skipped) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (f"Written: {len(self.succeeded)} | Skipped: {len(self.skipped)} | "
                f"Failed: {len(self.failed)} | Out of range: {self.filtered}")


def _file_date(path) -> Optional[str]:
    try:
        return extract_date(identifier_from_path(path))
    except MetadataParseError:
        return None


def _in_range(date, date_range) -> bool:
    return date_range is None or date_range[0] <= date <= date_range[1]


class DateClaims:
    """Thread-safe registry of which temperature file owns each partition date."""

    def __init__(self):
        self._owners = {}
        self._lock = threading.Lock()

    def claim(self, date: str, owner) -> bool:
        """True if `owner` holds `date` (first claim wins)."""
        owner = str(owner)
        with self._lock:
            return self._owners.setdefault(date, owner) == owner

    def owner(self, date: str) -> Optional[str]:
        with self._lock:
            return self._owners.get(date)


def ingest_pair(temperature_file, dewpoint_file, config: IngestConfig, claims: DateClaims = None):
    """
    Read, join and write one day. Returns (date, WriteStatus).

    The date range and the one-pair-per-date rule are checked against the date
    read from the rasters, which may come from a band description rather than
    the file name. A date already claimed by another pair raises PairingError.
    """
    temperature = read_grid(temperature_file, config.coordinate_precision, config.variable_pattern)
    date = partition_label(temperature)
    if not _in_range(date, config.date_range):
        logger.debug(f"{temperature_file} holds {date}, outside {config.date_range}")
        return date, WriteStatus.FILTERED
    if claims is not None and not claims.claim(date, temperature_file):
        raise PairingError(f"Date {date} already ingested from {claims.owner(date)} ({temperature_file})")

    dewpoint = read_grid(dewpoint_file, config.coordinate_precision, config.variable_pattern)
    dewpoint_date = partition_label(dewpoint)
    if dewpoint_date != date:
        raise PairingError(f"Pair dates differ: {temperature_file} is {date}, {dewpoint_file} is {dewpoint_date}")
    joined = join_pair(
        temperature, dewpoint, how=config.join_how,
        temperature_variable=config.temperature_variable,
        dewpoint_variable=config.dewpoint_variable,
    )
    status = write_partition(
        joined, date, config.destination_root,
        overwrite_policy=config.overwrite_policy,
        compression=config.parquet_compression,
    )
    return date, status


def _attempt(temperature_file, dewpoint_file, expected_date, config, claims):
    try:
        date, status = ingest_pair(temperature_file, dewpoint_file, config, claims)
    except Exception as e:
        logger.error(f"Ingest failed for {expected_date or temperature_file}: {type(e).__name__}: {e}")
        return PairFailure(expected_date, str(temperature_file), str(dewpoint_file), type(e).__name__, str(e))
    return date, status


def _record(report: IngestReport, outcome) -> None:
    if isinstance(outcome, PairFailure):
        report.failed.append(outcome)
        return
    date, status = outcome
    if status is WriteStatus.FILTERED:
        report.filtered += 1
    elif status is WriteStatus.SKIPPED:
        report.skipped.append(date)
    else:
        report.succeeded.append(date)


def run_ingest(temperature_files, dewpoint_files, config: IngestConfig = None) -> IngestReport:
    """
    Ingest pairs of (temperature, dew point) rasters, one partition per date.

    Lists must be the same length and aligned by date; a mismatch raises
    PairingError before anything is read. Every other error is recorded per
    pair in the returned IngestReport.
    """
    config = config or IngestConfig()
    temperature_files = list(temperature_files)
    dewpoint_files = list(dewpoint_files)
    if len(temperature_files) != len(dewpoint_files):
        raise PairingError(
            f"Got {len(temperature_files)} temperature files but {len(dewpoint_files)} dew point files"
        )

    report = IngestReport()
    policy = OverwritePolicy(config.overwrite_policy)
    tasks = []
    seen = set()
    claims = DateClaims()
    for t_file, d_file in zip(temperature_files, dewpoint_files):
        t_date, d_date = _file_date(t_file), _file_date(d_file)
        if config.date_range is not None and t_date is not None:
            lo, hi = config.date_range
            if not (lo <= t_date <= hi):
                report.filtered += 1
                continue
        if t_date is not None and d_date is not None and t_date != d_date:
            msg = f"Pair dates differ: {t_file} is {t_date}, {d_file} is {d_date}"
            logger.error(msg)
            report.failed.append(PairFailure(t_date, str(t_file), str(d_file), PairingError.__name__, msg))
            continue
        if t_date is not None and t_date in seen:
            msg = f"Date {t_date} listed more than once ({t_file})"
            logger.error(msg)
            report.failed.append(PairFailure(t_date, str(t_file), str(d_file), PairingError.__name__, msg))
            continue
        seen.add(t_date)
        if policy is OverwritePolicy.SKIP and t_date is not None and partition_exists(config.destination_root, t_date):
            logger.debug(f"Partition {t_date} exists, not reading rasters")
            report.skipped.append(t_date)
            continue
        tasks.append((t_file, d_file, t_date))

    n_tasks = len(tasks)
    logger.info(f"Ingesting {n_tasks} pair(s) into {config.destination_root} "
                f"({len(report.skipped)} already present, {report.filtered} out of range)")
    t_start = time.time()

    def _progress(done):
        if done % PROGRESS_EVERY == 0 or done == n_tasks:
            pct = 100.0 * done / n_tasks if n_tasks else 100.0
            logger.info(f"Ingested {done}/{n_tasks} pairs ({pct:.0f}%, {time.time() - t_start:.1f}s)")

    if config.max_workers > 1 and n_tasks > 1:
        # claims keep any one date to a single worker
        with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
            futures = [pool.submit(_attempt, t, d, date, config, claims) for t, d, date in tasks]
            for done, future in enumerate(as_completed(futures), start=1):
                _record(report, future.result())
                _progress(done)
    else:
        for done, (t, d, date) in enumerate(tasks, start=1):
            _record(report, _attempt(t, d, date, config, claims))
            _progress(done)

    report.succeeded.sort()
    report.skipped.sort()
    report.failed.sort(key=lambda f: (f.date or "", f.temperature_file))
    logger.info(report.summary())
    return report


class IngestOrchestrator:
    """Holds an IngestConfig and runs batches against it."""

    def __init__(self, config: IngestConfig = None):
        self.config = config or IngestConfig()

    def run(self, temperature_files, dewpoint_files, destination_root=None) -> IngestReport:
        config = self.config.with_overrides(destination_root=destination_root)
        return run_ingest(temperature_files, dewpoint_files, config)
