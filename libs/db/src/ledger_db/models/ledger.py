from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Audit: si_import_runs
# ---------------------------


class SiImportRun(Base):
    __tablename__ = "si_import_runs"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    source_kind: Mapped[str] = mapped_column(String, nullable=False)
    format: Mapped[str | None] = mapped_column(String, nullable=True)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    imported_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    # Set when the run's transactions were removed; the run itself is kept.
    rolled_back_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status in ('SUCCESS','PARTIAL','FAILED')",
            name="ck_si_import_runs_status",
        ),
        CheckConstraint("source_kind in ('csv','pdf')", name="ck_si_import_runs_source_kind"),
        CheckConstraint(
            "imported_rows + skipped_rows = total_rows",
            name="ck_si_import_runs_counts",
        ),
    )


# ---------------------------
# Core: si_transactions
# ---------------------------


class SiTransaction(Base):
    __tablename__ = "si_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    import_run_id: Mapped[int] = mapped_column(
        ForeignKey("si_import_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    # SHA-256 over the raw statement line plus card identity.
    fingerprint_sha256: Mapped[str] = mapped_column(CHAR(64), nullable=False, unique=True)
    # Source-independent key: date | folded description | |amount| | account.
    normalized_checksum: Mapped[str] = mapped_column(CHAR(64), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    simplified_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    # Ledger polarity: outflows negative
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    value_primary: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    value_secondary: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    current_installment: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_installments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    card_last_four: Mapped[str | None] = mapped_column(CHAR(4), nullable=True)
    card_holder: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_line: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String, nullable=False, default="ONE_TIME")
    # Set on both sides of a purchase and its refund or reversal
    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    related_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("si_transactions.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "transaction_type in ('INSTALLMENT','ONE_TIME')",
            name="ck_si_tx_transaction_type",
        ),
        CheckConstraint(
            "(current_installment IS NULL AND total_installments IS NULL) OR "
            "(current_installment >= 1 AND current_installment <= total_installments)",
            name="ck_si_tx_installments",
        ),
    )


# ---------------------------
# Reference: si_description_mappings
# ---------------------------


class SiDescriptionMapping(Base):
    __tablename__ = "si_description_mappings"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    original_description: Mapped[str] = mapped_column(Text, nullable=False)
    # Canonical lookup key (statement_ingest.normalizers.normalize_description)
    normalized_description: Mapped[str] = mapped_column(Text, nullable=False)
    simplified_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "normalized_description",
            name="uq_si_description_mappings_account_key",
        ),
    )


__all__ = [
    "Base",
    "SiImportRun",
    "SiTransaction",
    "SiDescriptionMapping",
]
