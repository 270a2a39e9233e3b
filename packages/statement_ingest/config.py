"""Runtime settings read from the environment (and an optional ``.env``).

``load_settings`` loads ``.env`` from the current working directory without
overriding variables that are already set, then reads:

- ``SI_ERROR_DIGEST_LIMIT``: number of row errors kept in an import run's
  ``error_message`` (default 5, must be positive).
- ``SI_LEARN_MAPPINGS``: ``1/true/yes`` enables pending-mapping suggestions
  for unmapped descriptions; ``0/false/no`` disables them (default).
- ``SI_STATEMENT_GRAMMAR_PATH``: JSON file with a statement grammar.
- ``SI_CSV_FORMATS_PATH``: JSON file with extra or overriding CSV formats.
- ``SI_STATEMENT_YEAR``: fallback year for statements whose dates carry none.
- ``SI_REVERSAL_WINDOW_DAYS``: how many days apart a charge and its refund may
  be and still be linked as a reversal pair (default 90).

Invalid values fall back to the default with a warning; settings never abort
an import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

from dotenv import load_dotenv

from .logging_setup import get_logger

DEFAULT_ERROR_DIGEST_LIMIT = 5
DEFAULT_REVERSAL_WINDOW_DAYS = 90

_logger = get_logger("statement_ingest.config")


@dataclass(frozen=True, slots=True)
class IngestSettings:
    error_digest_limit: int = DEFAULT_ERROR_DIGEST_LIMIT
    learn_mappings: bool = False
    statement_grammar_path: Path | None = None
    csv_formats_path: Path | None = None
    statement_year: int | None = None
    reversal_window_days: int = DEFAULT_REVERSAL_WINDOW_DAYS


def _env_bool(name: str, default: bool) -> bool:
    env_val = os.getenv(name)
    if env_val is None:
        return default
    v = env_val.strip().lower()
    if v in {"0", "false", "no"}:
        return False
    if v in {"1", "true", "yes"}:
        return True
    _logger.warning("config:invalid name=%s value=%r", name, env_val)
    return default


def _env_positive_int(name: str, default: int | None) -> int | None:
    env_val = os.getenv(name)
    if not env_val:
        return default
    try:
        value = int(env_val)
        if value <= 0:
            raise ValueError
    except ValueError:
        _logger.warning("config:invalid name=%s value=%r", name, env_val)
        return default
    return value


def _env_path(name: str) -> Path | None:
    env_val = os.getenv(name)
    return Path(env_val).expanduser() if env_val and env_val.strip() else None


def load_settings(*, dotenv_path: str | PathLike[str] | None = None) -> IngestSettings:
    """Build :class:`IngestSettings` from the process environment."""

    # Existing environment wins over .env values
    load_dotenv(dotenv_path=dotenv_path or Path.cwd() / ".env", override=False)

    return IngestSettings(
        error_digest_limit=_env_positive_int("SI_ERROR_DIGEST_LIMIT", DEFAULT_ERROR_DIGEST_LIMIT)
        or DEFAULT_ERROR_DIGEST_LIMIT,
        learn_mappings=_env_bool("SI_LEARN_MAPPINGS", False),
        statement_grammar_path=_env_path("SI_STATEMENT_GRAMMAR_PATH"),
        csv_formats_path=_env_path("SI_CSV_FORMATS_PATH"),
        statement_year=_env_positive_int("SI_STATEMENT_YEAR", None),
        reversal_window_days=_env_positive_int(
            "SI_REVERSAL_WINDOW_DAYS", DEFAULT_REVERSAL_WINDOW_DAYS
        )
        or DEFAULT_REVERSAL_WINDOW_DAYS,
    )


__all__ = [
    "IngestSettings",
    "load_settings",
    "DEFAULT_ERROR_DIGEST_LIMIT",
    "DEFAULT_REVERSAL_WINDOW_DAYS",
]
