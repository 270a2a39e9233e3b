"""Public entry points for the ``statement_ingest`` package.

These wrap the PDF and CSV pipelines with the runtime settings from
:mod:`statement_ingest.config`: the configured statement grammar, extra CSV
formats, the learn flag, the fallback statement year and the error digest
limit. Pass ``settings=`` explicitly to bypass environment lookup.

Import functions never raise for data problems or for grammar and format
files that cannot be read; they return a finalized :class:`ImportRun` (or an
:class:`ImportOutcome` carrying one), FAILED in the latter case. Only
:func:`parse_pdf_statement` raises, with :class:`StructuralParseError`, since
it returns sections rather than a run.
"""

from __future__ import annotations

from .aggregator import ImportRunBuilder
from .config import IngestSettings, load_settings
from .errors import StructuralParseError
from .grammar import DEFAULT_GRAMMAR, StatementGrammar, get_grammar, load_grammar
from .ingest import csv_import, pdf_statement
from .ingest.csv_formats import (
    CsvFormatSpec,
    CsvImportFormat,
    decode_csv_bytes,
    default_format_table,
    load_format_table,
    merge_format_tables,
    table_encodings,
)
from .ingest.csv_formats import detect_csv_format as _detect_in_text
from .ingest.pdf_text import extract_statement_text
from .logging_setup import get_logger
from .mappings import MappingSnapshot
from .models import CardSection, ImportOutcome, ImportRun, SourceKind

_logger = get_logger("statement_ingest.api")

# Unreadable or invalid grammar/format files named by the settings
_CONFIG_ERRORS = (OSError, ValueError)


def _settings(settings: IngestSettings | None) -> IngestSettings:
    return settings if settings is not None else load_settings()


def _grammar(grammar: StatementGrammar | str | None, settings: IngestSettings) -> StatementGrammar:
    if isinstance(grammar, StatementGrammar):
        return grammar
    if isinstance(grammar, str):
        return get_grammar(grammar)
    if settings.statement_grammar_path is not None:
        return load_grammar(settings.statement_grammar_path)
    return DEFAULT_GRAMMAR


def _failed_outcome(
    file_name: str,
    source_kind: SourceKind,
    message: str,
    *,
    mappings: MappingSnapshot | None,
    settings: IngestSettings,
    format: str | None = None,
) -> ImportOutcome:
    builder = ImportRunBuilder(
        file_name,
        source_kind,
        format=format,
        account_id=mappings.account_id if mappings is not None else None,
        error_digest_limit=settings.error_digest_limit,
    )
    builder.fail(message)
    return ImportOutcome(run=builder.finalize())


def format_table(settings: IngestSettings | None = None) -> dict[str, CsvFormatSpec]:
    """Built-in CSV formats merged with ``SI_CSV_FORMATS_PATH`` (file entries win)."""

    s = _settings(settings)
    table = default_format_table()
    if s.csv_formats_path is not None:
        table = merge_format_tables(table, load_format_table(s.csv_formats_path))
    return table


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def parse_pdf_statement(
    raw_text: str,
    *,
    grammar: StatementGrammar | str | None = None,
    year: int | None = None,
    settings: IngestSettings | None = None,
) -> list[CardSection]:
    """Parse extracted statement text into card sections, in order of first appearance."""

    s = _settings(settings)
    return pdf_statement.parse_pdf_statement(
        raw_text, _grammar(grammar, s), year=year, fallback_year=s.statement_year
    )


def import_pdf_statement(
    raw_text: str,
    *,
    file_name: str = "<memory>",
    mappings: MappingSnapshot | None = None,
    grammar: StatementGrammar | str | None = None,
    year: int | None = None,
    settings: IngestSettings | None = None,
) -> ImportOutcome:
    s = _settings(settings)
    try:
        g = _grammar(grammar, s)
    except _CONFIG_ERRORS as exc:
        _logger.warning("pdf_import:grammar_unavailable file=%s error=%s", file_name, exc)
        return _failed_outcome(
            file_name,
            SourceKind.PDF,
            f"statement grammar unavailable: {exc}",
            mappings=mappings,
            settings=s,
        )
    return pdf_statement.import_pdf_statement(
        raw_text,
        file_name=file_name,
        mappings=mappings,
        grammar=g,
        year=year,
        fallback_year=s.statement_year,
        learn=s.learn_mappings,
        error_digest_limit=s.error_digest_limit,
    )


def import_pdf_file(
    data: bytes,
    *,
    file_name: str = "<memory>",
    password: str | None = None,
    mappings: MappingSnapshot | None = None,
    grammar: StatementGrammar | str | None = None,
    year: int | None = None,
    settings: IngestSettings | None = None,
) -> ImportOutcome:
    """Extract text from PDF bytes and import it.

    An unreadable document ends as a FAILED run rather than an exception.
    """

    s = _settings(settings)
    try:
        g = _grammar(grammar, s)
    except _CONFIG_ERRORS as exc:
        _logger.warning("pdf_import:grammar_unavailable file=%s error=%s", file_name, exc)
        return _failed_outcome(
            file_name,
            SourceKind.PDF,
            f"statement grammar unavailable: {exc}",
            mappings=mappings,
            settings=s,
        )
    try:
        raw_text = extract_statement_text(data, password=password)
    except StructuralParseError as exc:
        _logger.warning("pdf_import:unreadable file=%s error=%s", file_name, exc)
        return _failed_outcome(
            file_name, SourceKind.PDF, str(exc), mappings=mappings, settings=s, format=g.name
        )
    return import_pdf_statement(
        raw_text, file_name=file_name, mappings=mappings, grammar=g, year=year, settings=s
    )


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def import_csv_transactions(
    data: bytes,
    declared_format: CsvImportFormat | str | None = None,
    *,
    file_name: str = "<memory>",
    mappings: MappingSnapshot | None = None,
    settings: IngestSettings | None = None,
) -> ImportOutcome:
    s = _settings(settings)
    try:
        formats = format_table(s)
    except _CONFIG_ERRORS as exc:
        _logger.warning("csv_import:formats_unavailable file=%s error=%s", file_name, exc)
        return _failed_outcome(
            file_name,
            SourceKind.CSV,
            f"csv format table unavailable: {exc}",
            mappings=mappings,
            settings=s,
        )
    return csv_import.import_csv_transactions(
        data,
        declared_format,
        file_name=file_name,
        mappings=mappings,
        formats=formats,
        learn=s.learn_mappings,
        error_digest_limit=s.error_digest_limit,
    )


def import_csv(
    data: bytes,
    declared_format: CsvImportFormat | str | None = None,
    *,
    file_name: str = "<memory>",
    mappings: MappingSnapshot | None = None,
    settings: IngestSettings | None = None,
) -> ImportRun:
    """Import a CSV file and return its finalized :class:`ImportRun`.

    Row-level problems are counted as skipped; a structural problem (unknown
    header signature) yields a FAILED run with zero rows.
    """

    return import_csv_transactions(
        data, declared_format, file_name=file_name, mappings=mappings, settings=settings
    ).run


def detect_csv_format(data: bytes | str, *, settings: IngestSettings | None = None) -> CsvFormatSpec:
    """Return the format whose header signature best matches ``data``.

    Raises :class:`StructuralParseError` when no known signature matches.
    """

    table = format_table(settings)
    if isinstance(data, bytes):
        text, _enc = decode_csv_bytes(data, table_encodings(table))
    else:
        text = data
    spec, _idx = _detect_in_text(text, table)
    return spec


__all__ = [
    "format_table",
    "parse_pdf_statement",
    "import_pdf_statement",
    "import_pdf_file",
    "import_csv",
    "import_csv_transactions",
    "detect_csv_format",
]
