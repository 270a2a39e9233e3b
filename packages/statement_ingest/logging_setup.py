"""Logging for the ``statement_ingest`` package.

The package logs under the ``"statement_ingest"`` root, one child per module
(``statement_ingest.ingest.csv_import``, ``statement_ingest.mappings`` ...).
Messages are terse ``event:key=value`` records such as
``csv_import:summary file=jan.csv imported=8 skipped=2 status=PARTIAL``.

- ``get_logger(name)`` is what modules call. Until the host configures
  logging, the package root carries a ``NullHandler`` and stays quiet.
- ``configure_logging(...)`` is for the host application: it installs one
  ``StreamHandler`` on the package root, once per process.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_ROOT_NAME = "statement_ingest"
_LEVEL_ENV = "STATEMENT_INGEST_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _level_from_name(value: str) -> int:
    value = value.strip().upper()
    if value.isdigit():
        return int(value)
    named = logging.getLevelNamesMapping().get(value)
    return named if named is not None else logging.INFO


def _resolve_level(level: int | str | None) -> int:
    """Explicit level, then ``STATEMENT_INGEST_LOG_LEVEL``, then INFO."""

    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return _level_from_name(level)
    env_val = os.getenv(_LEVEL_ENV)
    return _level_from_name(env_val) if env_val else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single stream handler to the package root logger.

    Later calls are ignored, so library code and host code can both call it
    without duplicating output. ``fmt`` defaults to
    ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger(_ROOT_NAME)
    for h in [h for h in root.handlers if isinstance(h, logging.NullHandler)]:
        root.removeHandler(h)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    root.addHandler(handler)
    root.setLevel(resolved)
    # Output goes to our handler only; the host's root logger is left alone
    root.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(_ROOT_NAME)
    if not _CONFIGURED and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
