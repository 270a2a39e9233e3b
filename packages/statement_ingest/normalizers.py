"""Description canonicalization used as the mapping lookup key.

The canonical form folds accents and case, drops statement noise (dates,
installment markers like ``02/10``, times, punctuation, trailing numeric store
codes), and collapses whitespace. The fold is applied until the string stops
changing, so ``normalize_description`` is idempotent by construction.
"""

from __future__ import annotations

import re
import unicodedata

_DATE_RE = re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b|\b\d{4}-\d{2}-\d{2}\b")
# Installment markers and bare day/month tokens
_FRACTION_RE = re.compile(r"\b\d{1,2}/\d{1,2}\b")
_TIME_RE = re.compile(r"\b\d{1,2}h(?:\d{2})?\b|\b\d{1,2}:\d{2}(?::\d{2})?\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")
_TRAILING_STORE_CODE_RE = re.compile(r" \d{3,}$")


def _fold_once(s: str) -> str:
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch)).casefold()
    s = _DATE_RE.sub(" ", s)
    s = _FRACTION_RE.sub(" ", s)
    s = _TIME_RE.sub(" ", s)
    s = _NON_ALNUM_RE.sub(" ", s)
    s = " ".join(s.split())
    # Keep at least one token: a description that is only a number stays.
    while " " in s and _TRAILING_STORE_CODE_RE.search(s):
        s = _TRAILING_STORE_CODE_RE.sub("", s)
    return s


def normalize_description(raw: str | None) -> str:
    """Return the canonical lookup key for a raw description.

    ``None`` and blank input normalize to ``""``.
    """

    if raw is None:
        return ""
    current = raw
    while True:
        folded = _fold_once(current)
        if folded == current:
            return folded
        current = folded


def clean_description(raw: str | None) -> str:
    """Collapse whitespace without changing case; used for stored descriptions."""

    if raw is None:
        return ""
    return " ".join(raw.split())


__all__ = ["normalize_description", "clean_description"]
