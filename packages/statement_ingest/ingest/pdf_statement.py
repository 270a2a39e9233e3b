"""PDF card statement parser.

Composes the line tokenizer, the section splitter and the transaction line
parser over raw extracted text:

- :func:`iter_statement` streams ``(line_no, StatementEvent)`` pairs in line order
  (a :class:`CardSectionHeader` whenever a section starts, then one
  :class:`ParsedTransaction` or :class:`NotATransactionLine` per candidate
  line) so large statements can be consumed incrementally.
- :func:`parse_pdf_statement` collects the stream into card sections.
- :func:`import_pdf_statement` feeds the stream through the mapping resolver
  and the import aggregator and returns an :class:`ImportOutcome`.

Sections are ordered by first appearance. A header repeated later in the text
(continuation pages) resumes the existing section for that card instead of
opening a new one. Sections without transactions are kept.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Iterator

from ..aggregator import ImportRunBuilder
from ..config import DEFAULT_ERROR_DIGEST_LIMIT
from ..errors import LineParseError, NotATransactionLine, StructuralParseError
from ..grammar import DEFAULT_GRAMMAR, StatementGrammar, compile_grammar
from ..logging_setup import get_logger
from ..mappings import MappingResolver, MappingSnapshot
from ..models import (
    CardSection,
    CardSectionHeader,
    ImportOutcome,
    ParsedTransaction,
    ResolvedTransaction,
    SourceKind,
    StatementEvent,
)
from .statement_lines import LineKind, tokenize_statement
from .transaction_line import parse_transaction_line

_FULL_DATE_RE = re.compile(r"\b(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})\b")

_logger = get_logger("statement_ingest.ingest.pdf_statement")


def infer_statement_year(
    raw_text: str, *, year: int | None = None, fallback_year: int | None = None
) -> int:
    """Pick the year applied to ``dd/mm`` dates.

    Order: explicit ``year``; the first ``dd/mm/yyyy`` date in the text;
    ``fallback_year`` (configured); the current calendar year.
    """

    if year is not None:
        return year
    m = _FULL_DATE_RE.search(raw_text)
    if m is not None:
        return int(m.group("year"))
    if fallback_year is not None:
        return fallback_year
    return dt.date.today().year


def statement_reference_date(raw_text: str, year: int) -> dt.date | None:
    """Return the first ``dd/mm/yyyy`` date in the text when it falls in ``year``.

    Statements print their due or closing date in full; year-less purchase
    dates that land well after it belong to the previous year.
    """

    m = _FULL_DATE_RE.search(raw_text)
    if m is None or int(m.group("year")) != year:
        return None
    try:
        return dt.date(year, int(m.group("month")), int(m.group("day")))
    except ValueError:
        return None


def iter_statement(
    raw_text: str,
    grammar: StatementGrammar = DEFAULT_GRAMMAR,
    *,
    year: int | None = None,
    fallback_year: int | None = None,
) -> Iterator[tuple[int, StatementEvent]]:
    """Yield ``(line_no, event)`` pairs for ``raw_text`` in line order.

    Raises :class:`StructuralParseError` when the text is empty. Absence of
    any section header is detected by the callers that need sections.
    """

    if not raw_text or not raw_text.strip():
        raise StructuralParseError("statement text is empty")
    compiled = compile_grammar(grammar)
    resolved_year = infer_statement_year(raw_text, year=year, fallback_year=fallback_year)
    reference = statement_reference_date(raw_text, resolved_year)

    for line in tokenize_statement(raw_text, compiled):
        match line.kind:
            case LineKind.SECTION_HEADER:
                assert line.header is not None
                yield line.line_no, line.header
            case LineKind.CANDIDATE:
                assert line.header is not None
                yield line.line_no, parse_transaction_line(
                    line.text, line.header, compiled, year=resolved_year, reference=reference
                )
            case LineKind.NOISE | LineKind.BLANK:
                continue


def parse_pdf_statement(
    raw_text: str,
    grammar: StatementGrammar = DEFAULT_GRAMMAR,
    *,
    year: int | None = None,
    fallback_year: int | None = None,
) -> list[CardSection]:
    """Parse extracted statement text into card sections.

    Raises :class:`StructuralParseError` for empty text or when no section
    header is found.
    """

    order: list[CardSectionHeader] = []
    buckets: dict[CardSectionHeader, list[ParsedTransaction]] = {}
    for _line_no, event in iter_statement(raw_text, grammar, year=year, fallback_year=fallback_year):
        match event:
            case CardSectionHeader():
                if event not in buckets:
                    order.append(event)
                    buckets[event] = []
            case ParsedTransaction():
                key = CardSectionHeader(event.card_last_four_digits or "", event.card_holder_name or "")
                buckets[key].append(event)
            case NotATransactionLine():
                continue
    if not order:
        raise StructuralParseError(f"no card section header found (grammar {grammar.name!r})")
    sections = [
        CardSection(h.last_four_digits, h.holder_name, tuple(buckets[h])) for h in order
    ]
    for s in sections:
        _logger.debug(
            "pdf_import:section card=%s holder=%s transactions=%d",
            s.last_four_digits,
            s.holder_name,
            len(s.transactions),
        )
    return sections


def import_pdf_statement(
    raw_text: str,
    *,
    file_name: str,
    mappings: MappingSnapshot | None = None,
    grammar: StatementGrammar = DEFAULT_GRAMMAR,
    year: int | None = None,
    fallback_year: int | None = None,
    learn: bool = False,
    error_digest_limit: int = DEFAULT_ERROR_DIGEST_LIMIT,
) -> ImportOutcome:
    """Parse, resolve and aggregate one statement. Never raises for bad data.

    Date-leading lines that fail to parse are counted as skipped; every other
    unmatched line is statement text and is ignored. Structural problems
    (empty text, no section header) produce a FAILED run.
    """

    snapshot = mappings if mappings is not None else MappingSnapshot.empty()
    builder = ImportRunBuilder(
        file_name,
        SourceKind.PDF,
        format=grammar.name,
        account_id=snapshot.account_id,
        error_digest_limit=error_digest_limit,
    )
    resolver = MappingResolver(snapshot, learn=learn)
    transactions: list[ResolvedTransaction] = []
    cards: set[CardSectionHeader] = set()

    _logger.info("pdf_import:start file=%s grammar=%s", file_name, grammar.name)
    try:
        for line_no, event in iter_statement(
            raw_text, grammar, year=year, fallback_year=fallback_year
        ):
            match event:
                case CardSectionHeader():
                    cards.add(event)
                case ParsedTransaction():
                    transactions.append(ResolvedTransaction(event, resolver.resolve(event.description)))
                    builder.record_imported()
                case NotATransactionLine(looks_like_transaction=True):
                    builder.record_error(LineParseError(line_no, event.reason))
                case NotATransactionLine():
                    continue
        if not cards:
            raise StructuralParseError(f"no card section header found (grammar {grammar.name!r})")
    except StructuralParseError as exc:
        _logger.warning("pdf_import:structural_error file=%s error=%s", file_name, exc)
        builder.fail(str(exc))
        transactions.clear()

    run = builder.finalize()
    resolver.log_summary()
    _logger.info(
        "pdf_import:summary file=%s sections=%d imported=%d skipped=%d status=%s",
        file_name,
        len(cards),
        run.imported_rows,
        run.skipped_rows,
        run.status,
    )
    return ImportOutcome(
        run=run,
        transactions=tuple(transactions),
        pending_mappings=resolver.pending_mappings(),
        charges_positive=grammar.charges_positive,
    )


__all__ = [
    "infer_statement_year",
    "statement_reference_date",
    "iter_statement",
    "parse_pdf_statement",
    "import_pdf_statement",
]
