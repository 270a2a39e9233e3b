"""Amount parsing and formatting shared by the PDF and CSV pipelines."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CURRENCY_PREFIXES: tuple[str, ...] = ("US$", "R$", "$")


def parse_amount(
    raw: str | None,
    *,
    decimal_sep: str = ".",
    thousands_sep: str = ",",
) -> Decimal:
    """Parse a statement amount into a ``Decimal``.

    Leading ``+``/``-``, a trailing ``-``, currency prefixes, and surrounding
    parentheses are stripped until stable; any minus (U+2212 included) or
    parentheses make the value negative (credits and refunds). ``ValueError``
    on anything else.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip().replace("\u2212", "-")
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Markers can appear in any order, e.g. "-R$ (1.234,56)" or "45,90-".
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
            changed = True
        for prefix in _CURRENCY_PREFIXES:
            if s.upper().startswith(prefix):
                s = s[len(prefix) :].lstrip()
                changed = True
                break
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    if thousands_sep:
        s = s.replace(thousands_sep, "")
    if decimal_sep != ".":
        if "." in s:
            raise ValueError(f"invalid amount: {raw!r}")
        s = s.replace(decimal_sep, ".")
    s = s.strip()

    if not s or not any(ch.isdigit() for ch in s):
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def format_amount(d: Decimal) -> str:
    # Exactly two decimals; ASCII dot; leading minus for negatives.
    q = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


__all__ = ["parse_amount", "format_amount"]
