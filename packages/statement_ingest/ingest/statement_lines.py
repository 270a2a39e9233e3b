"""Line tokenizer and card-section splitter for extracted statement text.

Each physical line is classified once, in order:

1. blank lines;
2. section headers (holder name plus masked card number), which switch the
   current card for every following line;
3. noise (totals, balances, column captions) matched by the grammar;
4. candidates, i.e. everything else inside a section.

Lines seen before the first section header are dropped. Classification is a
pure function of the text and the grammar, so tokenizing the same text twice
yields identical sequences.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum

from ..grammar import CompiledGrammar
from ..models import CardSectionHeader
from .transaction_line import normalize_line


class LineKind(StrEnum):
    BLANK = "blank"
    SECTION_HEADER = "section_header"
    NOISE = "noise"
    CANDIDATE = "candidate"


@dataclass(frozen=True, slots=True)
class StatementLine:
    line_no: int
    text: str
    kind: LineKind
    # Enclosing section; for SECTION_HEADER lines, the header the line opens.
    header: CardSectionHeader | None


def match_section_header(text: str, grammar: CompiledGrammar) -> CardSectionHeader | None:
    for pattern in grammar.section_headers:
        m = pattern.match(text)
        if m is not None:
            holder = " ".join(m.group("holder").split())
            if holder:
                return CardSectionHeader(last_four_digits=m.group("digits"), holder_name=holder)
    return None


def is_noise(text: str, grammar: CompiledGrammar) -> bool:
    return any(p.search(text) for p in grammar.noise)


def tokenize_statement(raw_text: str, grammar: CompiledGrammar) -> Iterator[StatementLine]:
    """Yield classified lines of ``raw_text`` that fall inside a card section.

    Line numbers are 1-based physical line numbers of the input text.
    """

    current: CardSectionHeader | None = None
    for line_no, raw in enumerate(raw_text.splitlines(), start=1):
        text = normalize_line(raw)
        if not text:
            if current is not None:
                yield StatementLine(line_no, text, LineKind.BLANK, current)
            continue
        header = match_section_header(text, grammar)
        if header is not None:
            current = header
            yield StatementLine(line_no, text, LineKind.SECTION_HEADER, header)
            continue
        if current is None:
            continue
        kind = LineKind.NOISE if is_noise(text, grammar) else LineKind.CANDIDATE
        yield StatementLine(line_no, text, kind, current)


__all__ = [
    "LineKind",
    "StatementLine",
    "match_section_header",
    "is_noise",
    "tokenize_statement",
]
