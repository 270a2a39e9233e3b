"""Line-pattern grammars for PDF card statements.

A grammar is data, not code: section-header, date, amount, installment, and
noise patterns plus number formatting. New bank layouts are added by writing a
grammar (in Python or as JSON loaded via :func:`load_grammar`) without
touching the parser's control flow.

Two grammars ship with the package:

- ``DEFAULT_GRAMMAR``: masked-card headers such as ``JOHN DOE •••• 1234``,
  ``dd/mm`` dates with an optional year, home currency rightmost.
- ``BANRISUL_GRAMMAR``: ``1234 - HOLDER NAME`` headers, ``dd/mm/yyyy`` dates,
  home currency (BRL) printed before the foreign (USD) value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from os import PathLike
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

# Amount tokens with Brazilian formatting: "45,90", "-12.855,13", "(1.234,56)", "45,90-"
_BR_AMOUNT = r"[-+]?\(?(?:R\$|US\$|\$)?-?(?:\d{1,3}(?:\.\d{3})+|\d+),\d{2}\)?-?"
_INSTALLMENT = r"(?<![\d/])(?P<current>\d{1,2})/(?P<total>\d{1,2})(?![\d/])"

_COMMON_NOISE: tuple[str, ...] = (
    r"(?i)^(?:sub)?total\b",
    r"(?i)^saldo\b",
    r"(?i)^pagamento m[ií]nimo",
    r"(?i)^(?:encargos|juros|iof|multa)\b",
    r"(?i)^cota[cç][aã]o\b",
    r"(?i)^data\s+(?:descri|hist)",
)


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc


def _amount_tail(amount_pattern: str) -> re.Pattern[str]:
    # The last amount on a line, with an optional spaced sign or currency
    # prefix: "- 45,90", "R$ 45,90", "- R$ 1.234,56".
    return _compile(
        r"(?:(?<=\s)|^)(?P<amount>(?:[-+] ?)?(?:(?:R\$|US\$|\$) ?)?(?:"
        + amount_pattern
        + r"))$"
    )


def _require_groups(pattern: str, groups: tuple[str, ...]) -> str:
    compiled = _compile(pattern)
    missing = [g for g in groups if g not in compiled.groupindex]
    if missing:
        raise ValueError(f"pattern {pattern!r} is missing named groups: {', '.join(missing)}")
    return pattern


class StatementGrammar(BaseModel):
    """Validated description of one statement layout."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    section_header_patterns: tuple[str, ...]
    date_pattern: str = r"^(?P<day>\d{2})/(?P<month>\d{2})(?:/(?P<year>\d{4}|\d{2}))?(?=\s)"
    amount_pattern: str = _BR_AMOUNT
    decimal_sep: str = ","
    thousands_sep: str = "."
    home_currency_position: Literal["last", "first"] = "last"
    installment_pattern: str = _INSTALLMENT
    noise_patterns: tuple[str, ...] = _COMMON_NOISE
    charges_positive: bool = True

    @field_validator("section_header_patterns")
    @classmethod
    def _headers_have_groups(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("at least one section header pattern is required")
        for p in v:
            _require_groups(p, ("holder", "digits"))
        return v

    @field_validator("date_pattern")
    @classmethod
    def _date_has_groups(cls, v: str) -> str:
        return _require_groups(v, ("day", "month"))

    @field_validator("installment_pattern")
    @classmethod
    def _installment_has_groups(cls, v: str) -> str:
        return _require_groups(v, ("current", "total"))

    @field_validator("amount_pattern")
    @classmethod
    def _amount_compiles(cls, v: str) -> str:
        _compile(v)
        _amount_tail(v)
        return v

    @field_validator("noise_patterns")
    @classmethod
    def _noise_compiles(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for p in v:
            _compile(p)
        return v

    @field_validator("decimal_sep")
    @classmethod
    def _decimal_sep_single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("decimal_sep must be a single character")
        return v


@dataclass(frozen=True, slots=True)
class CompiledGrammar:
    grammar: StatementGrammar
    section_headers: tuple[re.Pattern[str], ...]
    date: re.Pattern[str]
    amount: re.Pattern[str]
    installment: re.Pattern[str]
    noise: tuple[re.Pattern[str], ...]


@lru_cache(maxsize=32)
def compile_grammar(grammar: StatementGrammar) -> CompiledGrammar:
    return CompiledGrammar(
        grammar=grammar,
        section_headers=tuple(re.compile(p) for p in grammar.section_header_patterns),
        date=re.compile(grammar.date_pattern),
        amount=_amount_tail(grammar.amount_pattern),
        installment=re.compile(grammar.installment_pattern),
        noise=tuple(re.compile(p) for p in grammar.noise_patterns),
    )


DEFAULT_GRAMMAR = StatementGrammar(
    name="default",
    section_header_patterns=(
        r"^(?P<holder>[^\d•*]+?)\s*(?:(?:[•*]{2,}|[xX]{4})[\s-]*)+(?P<digits>\d{4})$",
    ),
)

BANRISUL_GRAMMAR = StatementGrammar(
    name="banrisul",
    section_header_patterns=(r"^(?P<digits>\d{4})\s*-\s*(?P<holder>\D.*)$",),
    date_pattern=r"^(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})(?=\s)",
    home_currency_position="first",
    noise_patterns=_COMMON_NOISE
    + (
        r"(?i)^saldo da fatura anterior",
        r"(?i)^total da fatura",
        r"(?i)^USD\b",
    ),
)

BUILTIN_GRAMMARS: dict[str, StatementGrammar] = {
    DEFAULT_GRAMMAR.name: DEFAULT_GRAMMAR,
    BANRISUL_GRAMMAR.name: BANRISUL_GRAMMAR,
}


def get_grammar(name: str) -> StatementGrammar:
    key = name.strip().lower()
    try:
        return BUILTIN_GRAMMARS[key]
    except KeyError:
        raise ValueError(
            f"unknown statement grammar: {name!r}. Known: {sorted(BUILTIN_GRAMMARS)}"
        ) from None


def load_grammar(path: str | PathLike[str]) -> StatementGrammar:
    """Read and validate a grammar from a JSON file."""

    return StatementGrammar.model_validate_json(Path(path).read_text(encoding="utf-8"))


__all__ = [
    "StatementGrammar",
    "CompiledGrammar",
    "compile_grammar",
    "DEFAULT_GRAMMAR",
    "BANRISUL_GRAMMAR",
    "BUILTIN_GRAMMARS",
    "get_grammar",
    "load_grammar",
]
