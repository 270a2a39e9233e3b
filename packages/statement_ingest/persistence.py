"""Persistence adapter: hand finalized import outcomes to ``ledger_db``.

The parsing core never imports this module. Callers that want durable
storage load a mapping snapshot, run an import, then pass the outcome here
inside a ``ledger_db.client.session_scope``.

Scope:
- Record every :class:`ImportRun`, including FAILED ones, for audit history.
- Insert resolved transactions for non-FAILED runs, skipping duplicates by
  raw-line fingerprint or by source-independent normalized checksum.
- Save learned mapping suggestions.
- Link each charge to its refund or reversal (same account and card,
  opposite amount, nearby date, similar description).
- Roll back an import by deleting its transactions.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

from rapidfuzz.distance import Levenshtein
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import SiDescriptionMapping, SiImportRun, SiTransaction

from .amounts import format_amount
from .config import DEFAULT_REVERSAL_WINDOW_DAYS
from .logging_setup import get_logger
from .mappings import MappingSnapshot
from .models import DescriptionMapping, ImportOutcome, ImportStatus, ParsedTransaction
from .normalizers import normalize_description

_logger = get_logger("statement_ingest.persistence")

REVERSAL_SIMILARITY_THRESHOLD = 0.6


@dataclass(frozen=True, slots=True)
class PersistResult:
    run_id: int
    inserted: int
    duplicates: int
    reversals: int = 0


def compute_fingerprint(tx: ParsedTransaction, account_id: int | None = None) -> str:
    """SHA-256 over the raw line, card identity and account (stable JSON encoding)."""

    payload = {
        "account": account_id,
        "raw_line": " ".join(tx.raw_line.split()),
        "card": tx.card_last_four_digits,
    }
    s = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def normalized_checksum(
    tx_date: date, description: str, value: Decimal, account_id: int | None
) -> str:
    """Key matching the same purchase whether it came from a PDF or a CSV."""

    folded = " ".join(description.split()).lower()
    amount = format_amount(abs(value))
    key = f"{tx_date.isoformat()}|{folded}|{amount}|{account_id if account_id is not None else ''}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def load_mapping_snapshot(session: Session, account_id: int) -> MappingSnapshot:
    """Snapshot the account's mappings before an import starts."""

    rows = session.scalars(
        select(SiDescriptionMapping)
        .where(SiDescriptionMapping.account_id == account_id)
        .order_by(SiDescriptionMapping.id)
    ).all()
    return MappingSnapshot.from_mappings(
        account_id,
        (
            DescriptionMapping(
                original_description=r.original_description,
                simplified_description=r.simplified_description,
                category=r.category,
                account_id=r.account_id,
            )
            for r in rows
        ),
    )


def persist_outcome(
    session: Session,
    outcome: ImportOutcome,
    *,
    account_id: int | None,
    reversal_window_days: int = DEFAULT_REVERSAL_WINDOW_DAYS,
) -> PersistResult:
    """Record the run, insert its non-duplicate transactions and link reversals.

    Runs once per finalized outcome. The caller owns the transaction boundary
    (commit/rollback).
    """

    run = outcome.run
    run_row = SiImportRun(
        account_id=account_id,
        file_name=run.file_name,
        source_kind=str(run.source_kind),
        format=run.format,
        total_rows=run.total_rows,
        imported_rows=run.imported_rows,
        skipped_rows=run.skipped_rows,
        status=str(run.status),
        error_message=run.error_message,
    )
    session.add(run_row)
    session.flush()

    if run.status is ImportStatus.FAILED:
        _logger.info("persist:run id=%d status=%s", run_row.id, run.status)
        return PersistResult(run_id=run_row.id, inserted=0, duplicates=0)

    seen_fingerprints: set[str] = set()
    seen_checksums: set[str] = set()
    new_rows: list[SiTransaction] = []
    duplicates = 0
    for item in outcome.transactions:
        tx = item.transaction
        fp = compute_fingerprint(tx, account_id)
        checksum = normalized_checksum(tx.date, tx.description, tx.amount, account_id)
        if fp in seen_fingerprints or checksum in seen_checksums or _exists(session, fp, checksum):
            duplicates += 1
            _logger.debug("persist:duplicate fingerprint=%s", fp[:12])
            continue
        seen_fingerprints.add(fp)
        seen_checksums.add(checksum)
        row = SiTransaction(
            import_run_id=run_row.id,
            account_id=account_id,
            fingerprint_sha256=fp,
            normalized_checksum=checksum,
            date=tx.date,
            description=tx.description,
            simplified_description=item.resolved.simplified,
            category=item.resolved.category,
            amount=item.ledger_value(outcome.charges_positive),
            value_primary=tx.value_primary,
            value_secondary=tx.value_secondary,
            current_installment=tx.current_installment,
            total_installments=tx.total_installments,
            card_last_four=tx.card_last_four_digits,
            card_holder=tx.card_holder_name,
            raw_line=tx.raw_line,
            transaction_type=str(tx.transaction_type),
            is_reversal=False,
        )
        session.add(row)
        new_rows.append(row)
    session.flush()
    inserted = len(new_rows)
    reversals = link_reversals(session, new_rows, window_days=reversal_window_days)
    _logger.info(
        "persist:run id=%d status=%s inserted=%d duplicates=%d reversals=%d",
        run_row.id,
        run.status,
        inserted,
        duplicates,
        reversals,
    )
    return PersistResult(
        run_id=run_row.id, inserted=inserted, duplicates=duplicates, reversals=reversals
    )


def description_similarity(a: str, b: str) -> float:
    """Levenshtein similarity of the canonical descriptions, from 0.0 to 1.0."""

    ca, cb = normalize_description(a), normalize_description(b)
    if not ca or not cb:
        return 0.0
    return Levenshtein.normalized_similarity(ca, cb)


def _same(column, value):
    return column.is_(None) if value is None else column == value


def link_reversals(
    session: Session,
    rows: Iterable[SiTransaction],
    *,
    window_days: int = DEFAULT_REVERSAL_WINDOW_DAYS,
    threshold: float = REVERSAL_SIMILARITY_THRESHOLD,
) -> int:
    """Pair each row with its refund or the charge it refunds.

    A partner has the same account and card, the opposite amount, a date at
    most ``window_days`` away and a description at least ``threshold``
    similar. The closest date wins, then the lowest id. Both sides get
    ``is_reversal`` and point at each other. Returns the number of pairs.
    """

    if window_days < 0:
        raise ValueError("window_days must not be negative")
    window = timedelta(days=window_days)
    linked = 0
    for row in rows:
        if row.is_reversal or row.amount == 0:
            continue
        candidates = session.scalars(
            select(SiTransaction).where(
                SiTransaction.id != row.id,
                _same(SiTransaction.account_id, row.account_id),
                _same(SiTransaction.card_last_four, row.card_last_four),
                SiTransaction.amount == -row.amount,
                SiTransaction.date.between(row.date - window, row.date + window),
                SiTransaction.is_reversal.is_(False),
            )
        ).all()
        ranked = sorted(candidates, key=lambda c: (abs((c.date - row.date).days), c.id))
        partner = next(
            (
                c
                for c in ranked
                if description_similarity(row.description, c.description) >= threshold
            ),
            None,
        )
        if partner is None:
            continue
        row.is_reversal = partner.is_reversal = True
        row.related_transaction_id = partner.id
        partner.related_transaction_id = row.id
        session.flush()
        linked += 1
        _logger.info("persist:reversal id=%d related=%d", row.id, partner.id)
    return linked


def _exists(session: Session, fingerprint: str, checksum: str) -> bool:
    stmt = select(func.count()).select_from(SiTransaction).where(
        (SiTransaction.fingerprint_sha256 == fingerprint)
        | (SiTransaction.normalized_checksum == checksum)
    )
    return bool(session.scalar(stmt))


def save_pending_mappings(
    session: Session, account_id: int, mappings: Iterable[DescriptionMapping]
) -> int:
    """Insert learned suggestions whose canonical key is new for the account."""

    existing = set(
        session.scalars(
            select(SiDescriptionMapping.normalized_description).where(
                SiDescriptionMapping.account_id == account_id
            )
        ).all()
    )
    added = 0
    for m in mappings:
        key = normalize_description(m.original_description)
        if not key or key in existing:
            continue
        existing.add(key)
        session.add(
            SiDescriptionMapping(
                account_id=account_id,
                original_description=m.original_description,
                normalized_description=key,
                simplified_description=m.simplified_description,
                category=m.category,
            )
        )
        added += 1
    session.flush()
    if added:
        _logger.info("persist:mappings account=%d added=%d", account_id, added)
    return added


def list_import_runs(session: Session, account_id: int) -> list[SiImportRun]:
    """Import history for an account, newest first."""

    return list(
        session.scalars(
            select(SiImportRun)
            .where(SiImportRun.account_id == account_id)
            .order_by(SiImportRun.created_at.desc(), SiImportRun.id.desc())
        ).all()
    )


def rollback_import(session: Session, run_id: int, *, account_id: int) -> int:
    """Delete the run's transactions and stamp ``rolled_back_at``.

    Returns the number of deleted transactions; a repeated call is a no-op
    returning 0. Raises ``LookupError`` for an unknown run and ``ValueError``
    when the run belongs to another account.
    """

    run_row = session.get(SiImportRun, run_id)
    if run_row is None:
        raise LookupError(f"import run {run_id} not found")
    if run_row.account_id != account_id:
        raise ValueError(f"import run {run_id} does not belong to account {account_id}")
    if run_row.rolled_back_at is not None:
        _logger.warning("persist:rollback_repeat run=%d", run_id)
        return 0

    run_tx_ids = select(SiTransaction.id).where(SiTransaction.import_run_id == run_id)
    # Partners in other runs stop being reversals once their pair is gone
    partners = session.scalars(
        select(SiTransaction).where(
            SiTransaction.related_transaction_id.in_(run_tx_ids),
            SiTransaction.import_run_id != run_id,
        )
    ).all()
    for partner in partners:
        partner.is_reversal = False
        partner.related_transaction_id = None
    result = session.execute(delete(SiTransaction).where(SiTransaction.import_run_id == run_id))
    run_row.rolled_back_at = datetime.now(UTC)
    session.flush()
    deleted = result.rowcount or 0
    _logger.info("persist:rollback run=%d deleted=%d", run_id, deleted)
    return deleted


__all__ = [
    "PersistResult",
    "REVERSAL_SIMILARITY_THRESHOLD",
    "compute_fingerprint",
    "normalized_checksum",
    "load_mapping_snapshot",
    "persist_outcome",
    "link_reversals",
    "description_similarity",
    "save_pending_mappings",
    "list_import_runs",
    "rollback_import",
]
