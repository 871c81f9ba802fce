"""Error taxonomy for the ingestion pipeline.

Per-file errors subclass IngestError so the orchestrator can record them per
date. Each also derives from the closest builtin so callers catching
OSError / ValueError keep working.
"""


class IngestError(Exception):
    """Base class for pipeline errors."""


class GridIOError(IngestError, OSError):
    """Raster file is missing or unreadable."""


class FormatError(IngestError, ValueError):
    """File exists but is not a numeric raster, or a table has the wrong shape."""


class MetadataParseError(IngestError, ValueError):
    """Date or variable name not found in a band identifier."""


class PairingError(IngestError, ValueError):
    """Temperature and dew point file lists do not line up."""


class MultipleDatesError(IngestError, ValueError):
    """A table that should cover one day spans several."""


class DuplicateCellError(IngestError, ValueError):
    """An input table repeats an (x, y, date) key."""


class PartitionExistsError(IngestError, FileExistsError):
    """Partition already written and the policy forbids replacing it."""


class ArithmeticDomainError(IngestError, ArithmeticError):
    """Derived metric formula left its defined domain."""
