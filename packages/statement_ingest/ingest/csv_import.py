"""CSV import pipeline.

Fail-fast on structure, fail-soft on rows:

- An unknown header signature (or a declared format whose header cannot be
  found), an undecodable file, or an unknown declared format ends the run as
  FAILED before any row is read.
- Each data row is parsed independently. A malformed row is counted as skipped
  and its reason is kept for the run's error digest; the run continues.
- Empty rows, repeated header rows, card section rows and noise rows are not
  transactions and are excluded from every counter.

Line numbers reported in errors are 1-based physical line numbers of the
decoded file, preamble included.
"""

from __future__ import annotations

import csv
import datetime as dt
import re
from decimal import Decimal

from ..aggregator import ImportRunBuilder
from ..amounts import parse_amount
from ..config import DEFAULT_ERROR_DIGEST_LIMIT
from ..errors import RowParseError, StructuralParseError
from ..logging_setup import get_logger
from ..mappings import MappingResolver, MappingSnapshot
from ..models import (
    CardSectionHeader,
    ImportOutcome,
    ImportRun,
    ParsedTransaction,
    ResolvedTransaction,
    SourceKind,
)
from ..normalizers import clean_description
from .csv_formats import (
    CsvFormatSpec,
    CsvImportFormat,
    decode_csv_bytes,
    default_format_table,
    detect_csv_format,
    fold_header,
    locate_header,
    table_encodings,
)
from .transaction_line import extract_installment

_logger = get_logger("statement_ingest.ingest.csv_import")


class _RowParser:
    """Compiled view of a :class:`CsvFormatSpec` for row-level parsing."""

    def __init__(self, spec: CsvFormatSpec, header: list[str]) -> None:
        self.spec = spec
        self.header_folded = [fold_header(h) for h in header]
        positions = {name: i for i, name in reversed(list(enumerate(self.header_folded)))}
        cols = spec.columns
        self.idx_date = positions[fold_header(cols.date)]
        self.idx_description = positions[fold_header(cols.description)]
        self.idx_primary = positions[fold_header(cols.value_primary)]
        self.idx_secondary = (
            positions[fold_header(cols.value_secondary)] if cols.value_secondary else None
        )
        self.idx_category = positions[fold_header(cols.category)] if cols.category else None
        self.section_headers = tuple(re.compile(p) for p in spec.section_header_patterns)
        self.noise = tuple(re.compile(p) for p in spec.noise_patterns)
        self.installment = re.compile(spec.installment_pattern)

    def is_header_row(self, row: list[str]) -> bool:
        return [fold_header(c) for c in row] == self.header_folded

    def match_section(self, text: str) -> CardSectionHeader | None:
        for pattern in self.section_headers:
            m = pattern.match(text)
            if m is not None:
                holder = " ".join(m.group("holder").split())
                if holder:
                    return CardSectionHeader(m.group("digits"), holder)
        return None

    def is_noise(self, text: str) -> bool:
        return any(p.search(text) for p in self.noise)

    def _cell(self, row: list[str], idx: int, line_no: int, role: str) -> str:
        if idx >= len(row):
            raise RowParseError(line_no, f"missing {role} column")
        return row[idx].strip()

    def _date(self, raw: str, line_no: int) -> dt.date:
        for fmt in self.spec.date_formats:
            try:
                return dt.datetime.strptime(raw, fmt).date()
            except ValueError:
                continue
        raise RowParseError(line_no, f"invalid date: {raw!r}")

    def _amount(self, raw: str, line_no: int) -> Decimal:
        try:
            return parse_amount(
                raw, decimal_sep=self.spec.decimal_sep, thousands_sep=self.spec.thousands_sep
            )
        except ValueError as exc:
            raise RowParseError(line_no, str(exc)) from exc

    def parse(
        self, row: list[str], line_no: int, card: CardSectionHeader | None
    ) -> ParsedTransaction:
        tx_date = self._date(self._cell(row, self.idx_date, line_no, "date"), line_no)
        raw_description = clean_description(
            self._cell(row, self.idx_description, line_no, "description").replace('"', "")
        )
        if not raw_description:
            raise RowParseError(line_no, "empty description")
        primary = self._amount(self._cell(row, self.idx_primary, line_no, "value"), line_no)

        secondary = None
        if self.idx_secondary is not None and self.idx_secondary < len(row):
            raw_secondary = row[self.idx_secondary].strip()
            if raw_secondary:
                secondary = self._amount(raw_secondary, line_no)
                if secondary == 0:
                    secondary = None

        category = None
        if self.idx_category is not None and self.idx_category < len(row):
            category = row[self.idx_category].strip() or None

        description, current, total = extract_installment(raw_description, self.installment)
        if not description:
            raise RowParseError(line_no, "empty description")
        return ParsedTransaction(
            date=tx_date,
            description=description,
            value_primary=primary,
            value_secondary=secondary,
            current_installment=current,
            total_installments=total,
            card_last_four_digits=card.last_four_digits if card else None,
            card_holder_name=card.holder_name if card else None,
            raw_line=self.spec.delimiter.join(row),
            category_hint=category,
        )


def _split_row(line: str, line_no: int, delimiter: str) -> list[str]:
    """Split one physical line into cells.

    Every line is read on its own, so an unbalanced quote damages only its own
    row. Quoted fields spanning several lines are not supported.
    """

    try:
        return next(csv.reader([line], delimiter=delimiter, strict=True), [])
    except csv.Error as exc:
        raise RowParseError(line_no, f"csv error: {exc}") from exc


def _resolve_spec(
    data: bytes,
    declared_format: CsvImportFormat | str | None,
    table: dict[str, CsvFormatSpec],
) -> tuple[CsvFormatSpec, str, int]:
    """Return ``(spec, decoded_text, header_index)`` or raise StructuralParseError."""

    if declared_format is not None:
        key = str(declared_format)
        spec = table.get(key) or table.get(key.strip().upper())
        if spec is None:
            raise StructuralParseError(f"unknown CSV format: {key!r}")
        text, _enc = decode_csv_bytes(data, spec.encodings)
        idx = locate_header(text, spec)
        if idx is None:
            raise StructuralParseError(
                f"CSV header does not match format {spec.name}. Expected columns: "
                + ", ".join(spec.signature)
            )
        return spec, text, idx

    text, _enc = decode_csv_bytes(data, table_encodings(table))
    spec, idx = detect_csv_format(text, table)
    return spec, text, idx


def import_csv_transactions(
    data: bytes,
    declared_format: CsvImportFormat | str | None = None,
    *,
    file_name: str = "<memory>",
    mappings: MappingSnapshot | None = None,
    formats: dict[str, CsvFormatSpec] | None = None,
    learn: bool = False,
    error_digest_limit: int = DEFAULT_ERROR_DIGEST_LIMIT,
) -> ImportOutcome:
    """Import one CSV file and return the run plus resolved transactions.

    Never raises for data problems: structural failures yield a FAILED run
    with zero rows; row failures are counted as skipped.
    """

    table = formats if formats is not None else default_format_table()
    snapshot = mappings if mappings is not None else MappingSnapshot.empty()
    builder = ImportRunBuilder(
        file_name,
        SourceKind.CSV,
        format=str(declared_format) if declared_format is not None else None,
        account_id=snapshot.account_id,
        error_digest_limit=error_digest_limit,
    )
    _logger.info("csv_import:start file=%s declared=%s", file_name, declared_format)

    try:
        spec, text, header_idx = _resolve_spec(data, declared_format, table)
    except StructuralParseError as exc:
        _logger.warning("csv_import:structural_error file=%s error=%s", file_name, exc)
        builder.fail(str(exc))
        return ImportOutcome(run=builder.finalize())

    builder.set_format(spec.name)
    lines = text.splitlines()
    header = next(csv.reader([lines[header_idx]], delimiter=spec.delimiter))
    parser = _RowParser(spec, header)
    resolver = MappingResolver(snapshot, learn=learn)
    transactions: list[ResolvedTransaction] = []
    card: CardSectionHeader | None = None

    # header_idx is 0-based, so data starts on physical line header_idx + 2
    for line_no, line in enumerate(lines[header_idx + 1 :], start=header_idx + 2):
        try:
            row = _split_row(line, line_no, spec.delimiter)
        except RowParseError as exc:
            builder.record_error(exc)
            continue
        cells = [c.strip() for c in row]
        if not any(cells):
            continue
        if parser.is_header_row(row):
            continue
        text_line = " ".join(c for c in cells if c)
        section = parser.match_section(text_line)
        if section is not None:
            card = section
            _logger.debug(
                "csv_import:section card=%s holder=%s", card.last_four_digits, card.holder_name
            )
            continue
        if parser.is_noise(text_line) or parser.is_noise(spec.delimiter.join(row)):
            continue
        try:
            tx = parser.parse(row, line_no, card)
        except RowParseError as exc:
            builder.record_error(exc)
            continue
        transactions.append(ResolvedTransaction(tx, resolver.resolve(tx.description)))
        builder.record_imported()

    run = builder.finalize()
    resolver.log_summary()
    _logger.info(
        "csv_import:summary file=%s format=%s total=%d imported=%d skipped=%d status=%s",
        file_name,
        spec.name,
        run.total_rows,
        run.imported_rows,
        run.skipped_rows,
        run.status,
    )
    return ImportOutcome(
        run=run,
        transactions=tuple(transactions),
        pending_mappings=resolver.pending_mappings(),
        charges_positive=spec.charges_positive,
    )


def import_csv(
    data: bytes,
    declared_format: CsvImportFormat | str | None = None,
    *,
    file_name: str = "<memory>",
    mappings: MappingSnapshot | None = None,
    formats: dict[str, CsvFormatSpec] | None = None,
    learn: bool = False,
    error_digest_limit: int = DEFAULT_ERROR_DIGEST_LIMIT,
) -> ImportRun:
    """Import one CSV file and return only the finalized :class:`ImportRun`."""

    return import_csv_transactions(
        data,
        declared_format,
        file_name=file_name,
        mappings=mappings,
        formats=formats,
        learn=learn,
        error_digest_limit=error_digest_limit,
    ).run


__all__ = ["import_csv", "import_csv_transactions"]
