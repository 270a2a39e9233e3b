"""Pytest configuration for test isolation.

Settings are read from ``SI_*`` environment variables (and a ``.env`` file in
the working directory). A developer's shell or ``.env`` must not leak into the
tests, so every test starts from a clean environment and an empty working
directory via an autouse fixture.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

_ISOLATED_VARS = (
    "SI_ERROR_DIGEST_LIMIT",
    "SI_LEARN_MAPPINGS",
    "SI_STATEMENT_GRAMMAR_PATH",
    "SI_CSV_FORMATS_PATH",
    "SI_STATEMENT_YEAR",
    "SI_REVERSAL_WINDOW_DAYS",
    "STATEMENT_INGEST_LOG_LEVEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear ingestion settings and run each test from its own directory."""

    for name in _ISOLATED_VARS:
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(os.fspath(workdir))
