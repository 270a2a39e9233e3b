"""Incremental builder for :class:`ImportRun` records.

Pipelines stream outcomes into an :class:`ImportRunBuilder` one row at a time
and call :meth:`ImportRunBuilder.finalize` once at the end. The builder holds
only counters and the first few row errors, so memory does not grow with the
size of the input. A builder that is abandoned before ``finalize`` leaves no
trace; a finalized run is frozen and further recording raises
:class:`ImportRunFinalizedError`.
"""

from __future__ import annotations

from .config import DEFAULT_ERROR_DIGEST_LIMIT
from .errors import ImportRunFinalizedError, RowParseError
from .logging_setup import get_logger
from .models import ImportRun, ImportStatus, RowError, SourceKind

NO_TRANSACTIONS_MESSAGE = "no transactions found"

_logger = get_logger("statement_ingest.aggregator")


def derive_status(imported: int, skipped: int, *, failed: bool = False) -> ImportStatus:
    if failed or imported == 0:
        return ImportStatus.FAILED
    if skipped == 0:
        return ImportStatus.SUCCESS
    return ImportStatus.PARTIAL


def error_digest(errors: list[RowError] | tuple[RowError, ...], total_errors: int) -> str:
    """Render ``line N: reason`` entries joined by ``; `` with an overflow suffix."""

    digest = "; ".join(str(e) for e in errors)
    extra = total_errors - len(errors)
    if extra > 0:
        digest = f"{digest} (+{extra} more)"
    return digest


class ImportRunBuilder:
    """Accumulates row outcomes for one import job."""

    def __init__(
        self,
        file_name: str,
        source_kind: SourceKind,
        *,
        format: str | None = None,
        account_id: int | None = None,
        error_digest_limit: int = DEFAULT_ERROR_DIGEST_LIMIT,
    ) -> None:
        if error_digest_limit <= 0:
            raise ValueError("error_digest_limit must be positive")
        self.file_name = file_name
        self.source_kind = source_kind
        self.format = format
        self.account_id = account_id
        self._limit = error_digest_limit
        self._imported = 0
        self._skipped = 0
        self._errors: list[RowError] = []
        self._failure: str | None = None
        self._run: ImportRun | None = None

    # -- accessors ---------------------------------------------------------

    @property
    def imported_rows(self) -> int:
        return self._imported

    @property
    def skipped_rows(self) -> int:
        return self._skipped

    @property
    def total_rows(self) -> int:
        return self._imported + self._skipped

    @property
    def finalized(self) -> bool:
        return self._run is not None

    # -- recording ---------------------------------------------------------

    def _check_open(self) -> None:
        if self._run is not None:
            raise ImportRunFinalizedError(f"import run for {self.file_name!r} is already finalized")

    def set_format(self, format: str | None) -> None:
        self._check_open()
        self.format = format

    def record_imported(self) -> None:
        self._check_open()
        self._imported += 1

    def record_skipped(self, line_no: int, reason: str) -> None:
        self._check_open()
        self._skipped += 1
        if len(self._errors) < self._limit:
            self._errors.append(RowError(line_no, reason))
        _logger.debug("aggregator:skipped file=%s line=%d reason=%s", self.file_name, line_no, reason)

    def record_error(self, error: RowParseError) -> None:
        """Count a recoverable row/line failure as skipped."""

        self.record_skipped(error.line_no, error.reason)

    def fail(self, message: str) -> None:
        """Mark a structural failure; the run finalizes as FAILED."""

        self._check_open()
        self._failure = message

    # -- finalize ----------------------------------------------------------

    def _error_message(self, status: ImportStatus) -> str | None:
        parts: list[str] = []
        if self._failure:
            parts.append(self._failure)
        if self._errors:
            parts.append(error_digest(self._errors, self._skipped))
        if not parts and status is ImportStatus.FAILED:
            parts.append(NO_TRANSACTIONS_MESSAGE)
        return "; ".join(parts) if parts else None

    def finalize(self) -> ImportRun:
        """Freeze and return the run. Repeated calls return the same record."""

        if self._run is not None:
            return self._run
        status = derive_status(self._imported, self._skipped, failed=self._failure is not None)
        run = ImportRun(
            file_name=self.file_name,
            source_kind=self.source_kind,
            format=self.format,
            total_rows=self.total_rows,
            imported_rows=self._imported,
            skipped_rows=self._skipped,
            status=status,
            error_message=self._error_message(status),
            account_id=self.account_id,
            errors=tuple(self._errors),
        )
        self._run = run

        match status:
            case ImportStatus.SUCCESS:
                _logger.info(
                    "aggregator:finalize file=%s status=%s imported=%d",
                    run.file_name,
                    status,
                    run.imported_rows,
                )
            case ImportStatus.PARTIAL:
                _logger.warning(
                    "aggregator:finalize file=%s status=%s imported=%d skipped=%d",
                    run.file_name,
                    status,
                    run.imported_rows,
                    run.skipped_rows,
                )
            case ImportStatus.FAILED:
                _logger.warning(
                    "aggregator:finalize file=%s status=%s error=%s",
                    run.file_name,
                    status,
                    run.error_message,
                )
        return run


__all__ = ["ImportRunBuilder", "derive_status", "error_digest", "NO_TRANSACTIONS_MESSAGE"]
