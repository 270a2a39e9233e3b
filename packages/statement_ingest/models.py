"""Data models for ``statement_ingest``.

All records are frozen dataclasses: a parsed statement, its sections, and the
finalized import run are immutable once produced. Ownership is explicit: a
``CardSection`` owns its tuple of ``ParsedTransaction`` values, while a
``DescriptionMapping`` is only ever looked up, never owned by a transaction.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from .errors import NotATransactionLine

# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------


class SourceKind(StrEnum):
    CSV = "csv"
    PDF = "pdf"


class ImportStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class TransactionType(StrEnum):
    INSTALLMENT = "INSTALLMENT"
    ONE_TIME = "ONE_TIME"


# ---------------------------------------------------------------------------
# Parsed statement records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """One transaction candidate recovered from a statement line or CSV row.

    ``value_primary`` is in the statement's home currency and
    ``value_secondary`` in the foreign currency, both with the sign printed on
    the statement. ``raw_line`` is kept for audit and fingerprinting.
    ``category_hint`` carries a category column from CSV exports that provide
    one; it is informational and never overrides a resolved mapping.
    """

    date: dt.date
    description: str
    value_primary: Decimal | None
    value_secondary: Decimal | None = None
    current_installment: int | None = None
    total_installments: int | None = None
    card_last_four_digits: str | None = None
    card_holder_name: str | None = None
    raw_line: str = ""
    category_hint: str | None = None

    def __post_init__(self) -> None:
        if self.value_primary is None and self.value_secondary is None:
            raise ValueError("ParsedTransaction requires value_primary or value_secondary")
        current, total = self.current_installment, self.total_installments
        if (current is None) != (total is None):
            raise ValueError(
                "ParsedTransaction installments must set both current and total, or neither"
            )
        if current is not None and total is not None and not (1 <= current <= total):
            raise ValueError(
                f"ParsedTransaction installment {current}/{total} must satisfy 1 <= current <= total"
            )

    @property
    def is_installment(self) -> bool:
        return self.current_installment is not None

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType.INSTALLMENT if self.is_installment else TransactionType.ONE_TIME

    @property
    def amount(self) -> Decimal:
        """The home-currency value, falling back to the foreign value."""

        value = self.value_primary if self.value_primary is not None else self.value_secondary
        assert value is not None  # guaranteed by __post_init__
        return value

    @property
    def is_credit(self) -> bool:
        """True for refunds, payments and other values printed as negative."""

        return self.amount < 0


@dataclass(frozen=True, slots=True)
class CardSectionHeader:
    """Identity of one physical card within a multi-card statement."""

    last_four_digits: str
    holder_name: str


@dataclass(frozen=True, slots=True)
class CardSection:
    last_four_digits: str
    holder_name: str
    transactions: tuple[ParsedTransaction, ...] = ()

    @property
    def header(self) -> CardSectionHeader:
        return CardSectionHeader(self.last_four_digits, self.holder_name)


# Events produced by the streaming statement parser, in line order.
type StatementEvent = CardSectionHeader | ParsedTransaction | NotATransactionLine


# ---------------------------------------------------------------------------
# Description mappings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DescriptionMapping:
    """A user-owned rewrite of a raw description into a simplified, categorized form.

    ``original_description`` is unique per account once canonicalized. Learned
    suggestions carry neither a simplified description nor a category until a
    user completes them.
    """

    original_description: str
    simplified_description: str | None
    category: str | None
    account_id: int | None = None

    @property
    def is_incomplete(self) -> bool:
        return not (self.simplified_description or "").strip() or self.category is None


@dataclass(frozen=True, slots=True)
class ResolvedDescription:
    canonical: str
    simplified: str
    category: str | None
    matched: bool


@dataclass(frozen=True, slots=True)
class ResolvedTransaction:
    """A parsed transaction enriched with its resolved description/category."""

    transaction: ParsedTransaction
    resolved: ResolvedDescription

    def ledger_value(self, charges_positive: bool) -> Decimal:
        """Return the amount in ledger polarity (outflows negative).

        Credit-card sources print purchases as positive values; for those the
        sign is flipped. Bank sources already print outflows as negative.
        """

        amount = self.transaction.amount
        return -amount if charges_positive else amount


# ---------------------------------------------------------------------------
# Import bookkeeping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RowError:
    line_no: int
    reason: str

    def __str__(self) -> str:
        return f"line {self.line_no}: {self.reason}"


@dataclass(frozen=True, slots=True)
class ImportRun:
    """Audit record of one ingestion attempt.

    Invariants
    ----------
    - ``imported_rows + skipped_rows == total_rows``.
    - ``status`` is SUCCESS iff nothing was skipped and something was
      imported, PARTIAL iff both counters are positive, FAILED iff nothing was
      imported. A FAILED run always carries an ``error_message``.
    """

    file_name: str
    source_kind: SourceKind
    format: str | None
    total_rows: int
    imported_rows: int
    skipped_rows: int
    status: ImportStatus
    error_message: str | None = None
    account_id: int | None = None
    errors: tuple[RowError, ...] = ()

    def __post_init__(self) -> None:
        if self.imported_rows + self.skipped_rows != self.total_rows:
            raise ValueError(
                "ImportRun counters must reconcile: "
                f"{self.imported_rows} + {self.skipped_rows} != {self.total_rows}"
            )
        if self.status is ImportStatus.FAILED and not self.error_message:
            raise ValueError("FAILED ImportRun requires an error_message")


@dataclass(frozen=True, slots=True)
class ImportOutcome:
    """What a pipeline hands to the persistence collaborator."""

    run: ImportRun
    transactions: tuple[ResolvedTransaction, ...] = ()
    pending_mappings: tuple[DescriptionMapping, ...] = ()
    charges_positive: bool = False


__all__ = [
    "SourceKind",
    "ImportStatus",
    "TransactionType",
    "ParsedTransaction",
    "CardSectionHeader",
    "CardSection",
    "StatementEvent",
    "DescriptionMapping",
    "ResolvedDescription",
    "ResolvedTransaction",
    "RowError",
    "ImportRun",
    "ImportOutcome",
]
