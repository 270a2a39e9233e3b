"""Parse one statement line into a :class:`ParsedTransaction`.

Line shape (after whitespace normalization)::

    <date> <description ...> [<foreign value>] <home value>

The date token is anchored at the start of the line. Up to two trailing amount
tokens are taken from the end of the line, each with an optional sign or
currency prefix that may be spaced off (``- 45,90``, ``R$ 45,90``); whatever
remains between the date and the amounts is the description. When two amounts
are present the grammar's ``home_currency_position`` decides which one is the
home value (``last`` picks the rightmost token, the layout most statements
use). This is a heuristic over the token layout, not a guarantee.

Installment markers (``N/M`` with ``1 <= N <= M``) are extracted from the
description and removed from the stored text.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal

from ..amounts import parse_amount
from ..errors import NotATransactionLine
from ..grammar import CompiledGrammar
from ..models import CardSectionHeader, ParsedTransaction

_MAX_AMOUNT_TOKENS = 2
# A year-less date this many days past the statement's reference date belongs
# to the previous year (a December purchase on a January statement).
_ROLLOVER_DAYS = 31


def normalize_line(line: str) -> str:
    # str.split() with no argument also splits on NBSP, figure and narrow spaces.
    return " ".join(line.replace("\u2212", "-").split())


def extract_installment(
    description: str, pattern: re.Pattern[str]
) -> tuple[str, int | None, int | None]:
    """Return ``(description_without_marker, current, total)``.

    The rightmost marker satisfying ``1 <= current <= total`` wins; markers
    failing that check (e.g. ``0/3`` or ``7/5``) are left in the text.
    """

    for m in reversed(list(pattern.finditer(description))):
        current, total = int(m.group("current")), int(m.group("total"))
        if 1 <= current <= total:
            stripped = description[: m.start()] + " " + description[m.end() :]
            return " ".join(stripped.split()), current, total
    return description, None, None


def _resolve_year(raw_year: str | None, default_year: int) -> int:
    if raw_year is None:
        return default_year
    year = int(raw_year)
    return year + 2000 if len(raw_year) == 2 else year


def _roll_back(tx_date: dt.date, reference: dt.date) -> dt.date:
    if (tx_date - reference).days <= _ROLLOVER_DAYS:
        return tx_date
    try:
        return tx_date.replace(year=tx_date.year - 1)
    except ValueError:
        # 29/02 has no counterpart in the previous year
        return tx_date


def parse_transaction_line(
    line: str,
    header: CardSectionHeader,
    grammar: CompiledGrammar,
    *,
    year: int,
    reference: dt.date | None = None,
) -> ParsedTransaction | NotATransactionLine:
    """Parse ``line`` within the card section ``header``.

    ``year`` is used for date tokens that carry no year. When ``reference``
    (usually the statement's due or closing date) is given, a year-less date
    more than a month after it is moved to the previous year. Never raises for
    bad input; returns :class:`NotATransactionLine` instead.
    """

    text = normalize_line(line)
    date_match = grammar.date.match(text)
    if date_match is None:
        return NotATransactionLine(text, "no leading date token")

    groups = date_match.groupdict()
    try:
        tx_date = dt.date(
            _resolve_year(groups.get("year"), year),
            int(groups["month"]),
            int(groups["day"]),
        )
    except ValueError as exc:
        return NotATransactionLine(text, f"invalid date: {exc}", looks_like_transaction=True)
    if groups.get("year") is None and reference is not None:
        tx_date = _roll_back(tx_date, reference)

    tail = text[date_match.end() :].strip()
    amount_tokens: list[str] = []
    while tail and len(amount_tokens) < _MAX_AMOUNT_TOKENS:
        m = grammar.amount.search(tail)
        if m is None:
            break
        amount_tokens.insert(0, m.group("amount"))
        tail = tail[: m.start()].rstrip()
    if not amount_tokens:
        return NotATransactionLine(text, "no amount token", looks_like_transaction=True)
    if not tail:
        return NotATransactionLine(text, "empty description", looks_like_transaction=True)

    g = grammar.grammar
    try:
        values = [
            parse_amount(t, decimal_sep=g.decimal_sep, thousands_sep=g.thousands_sep)
            for t in amount_tokens
        ]
    except ValueError as exc:
        return NotATransactionLine(text, str(exc), looks_like_transaction=True)

    secondary: Decimal | None = None
    if len(values) == 1:
        primary = values[0]
    elif g.home_currency_position == "last":
        secondary, primary = values
    else:
        primary, secondary = values
    # A zero foreign column means the purchase had no foreign-currency value.
    if secondary is not None and secondary == 0:
        secondary = None

    description, current, total = extract_installment(tail, grammar.installment)
    if not description:
        return NotATransactionLine(text, "empty description", looks_like_transaction=True)

    return ParsedTransaction(
        date=tx_date,
        description=description,
        value_primary=primary,
        value_secondary=secondary,
        current_installment=current,
        total_installments=total,
        card_last_four_digits=header.last_four_digits,
        card_holder_name=header.holder_name,
        raw_line=text,
    )


__all__ = ["normalize_line", "extract_installment", "parse_transaction_line"]
