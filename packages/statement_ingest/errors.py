"""Error taxonomy for statement ingestion.

Structural errors abort a whole run; row/line errors are recoverable and are
absorbed into the run's counters by the pipelines. ``NotATransactionLine`` is
a value returned by the line parser, not an exception: most statement lines
are not transactions and callers must not treat a rejection as fatal.
"""

from __future__ import annotations

from dataclasses import dataclass


class IngestError(Exception):
    """Base class for ingestion failures."""


class StructuralParseError(IngestError):
    """The input cannot be processed at all (unknown CSV header, unreadable PDF)."""


class RowParseError(IngestError):
    """One CSV row is malformed. Carries the 1-based physical line number."""

    def __init__(self, line_no: int, reason: str) -> None:
        super().__init__(f"line {line_no}: {reason}")
        self.line_no = line_no
        self.reason = reason


class LineParseError(RowParseError):
    """One statement line looked like a transaction but could not be parsed."""


class ImportRunFinalizedError(IngestError):
    """An outcome was recorded on an import run that has already been finalized."""


@dataclass(frozen=True, slots=True)
class NotATransactionLine:
    """Typed rejection from the transaction line parser.

    ``looks_like_transaction`` is true when the line starts with a date token;
    such lines are reported as skipped by the import pipelines, while all other
    rejections are plain statement text and are discarded silently.
    """

    line: str
    reason: str
    looks_like_transaction: bool = False


__all__ = [
    "IngestError",
    "StructuralParseError",
    "RowParseError",
    "LineParseError",
    "ImportRunFinalizedError",
    "NotATransactionLine",
]
