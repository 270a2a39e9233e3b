# ruff: noqa: E501
from __future__ import annotations

import textwrap
from decimal import Decimal

import pytest

from statement_ingest import (
    DescriptionMapping,
    ImportStatus,
    IngestSettings,
    MappingSnapshot,
    RowError,
    SourceKind,
    StructuralParseError,
    import_pdf_file,
    import_pdf_statement,
)
from statement_ingest.ingest import pdf_text

SETTINGS = IngestSettings()


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n")


STATEMENT = _dedent(
    """
    Fatura emitida em 05/02/2025
    JOHN DOE •••• 1234
    12/01 UBER TRIP 45,90
    13/01 UBER TRIP PAGAMENTO
    14/01 NETFLIX 2/12 39,90
    31/02 LOJA INVALIDA 10,00
    Total 85,80
    pagina 1 de 2
    JANE DOE •••• 9876
    20/01 MERCADO 120,00
    21/01 ESTORNO -20,00
    """
)


class _FakePage:
    def __init__(self, text: str | None) -> None:
        self._text = text

    def extract_text(self) -> str | None:
        return self._text


class _FakePdf:
    def __init__(self, pages: list[str | None]) -> None:
        self.pages = [_FakePage(t) for t in pages]

    def __enter__(self) -> _FakePdf:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def test_partial_import_counts_date_led_failures_only() -> None:
    outcome = import_pdf_statement(STATEMENT, file_name="fatura.pdf", settings=SETTINGS)
    run = outcome.run

    assert run.source_kind is SourceKind.PDF
    assert run.format == "default"
    assert (run.total_rows, run.imported_rows, run.skipped_rows) == (6, 4, 2)
    assert run.status is ImportStatus.PARTIAL
    assert [e.line_no for e in run.errors] == [4, 6]
    assert run.errors[0] == RowError(4, "no amount token")
    assert run.errors[1].reason.startswith("invalid date")
    assert outcome.charges_positive is True

    cards = [rt.transaction.card_last_four_digits for rt in outcome.transactions]
    assert cards == ["1234", "1234", "9876", "9876"]
    refund = outcome.transactions[-1]
    assert refund.transaction.is_credit
    assert refund.ledger_value(outcome.charges_positive) == Decimal("20.00")


def test_resolved_descriptions_come_from_the_snapshot() -> None:
    snapshot = MappingSnapshot.from_mappings(
        3, [DescriptionMapping("netflix", "Netflix", "Streaming", account_id=3)]
    )
    outcome = import_pdf_statement(STATEMENT, mappings=snapshot, settings=SETTINGS)
    by_desc = {rt.transaction.description: rt.resolved for rt in outcome.transactions}
    assert by_desc["NETFLIX"].category == "Streaming"
    assert by_desc["MERCADO"].category is None
    assert outcome.run.account_id == 3


def test_statement_without_sections_fails() -> None:
    outcome = import_pdf_statement("12/01 UBER TRIP 45,90\n", settings=SETTINGS)
    assert outcome.run.status is ImportStatus.FAILED
    assert outcome.transactions == ()
    assert "no card section header found" in (outcome.run.error_message or "")


def test_sections_without_transactions_fail_with_no_transactions() -> None:
    outcome = import_pdf_statement("JOHN DOE •••• 1234\nTotal 0,00\n", settings=SETTINGS)
    assert outcome.run.status is ImportStatus.FAILED
    assert outcome.run.error_message == "no transactions found"


def test_empty_text_fails() -> None:
    outcome = import_pdf_statement("   \n", settings=SETTINGS)
    assert outcome.run.status is ImportStatus.FAILED
    assert outcome.run.error_message == "statement text is empty"


def test_learn_setting_reaches_pdf_imports() -> None:
    outcome = import_pdf_statement(STATEMENT, settings=IngestSettings(learn_mappings=True))
    assert [m.original_description for m in outcome.pending_mappings] == [
        "UBER TRIP",
        "NETFLIX",
        "MERCADO",
        "ESTORNO",
    ]


def test_import_pdf_file_extracts_pages(monkeypatch: pytest.MonkeyPatch) -> None:
    pages = [STATEMENT.split("pagina 1 de 2\n")[0], None, "JANE DOE •••• 9876\n20/01 MERCADO 120,00\n"]
    calls: list[str | None] = []

    def fake_open(stream, password=None):  # noqa: ANN001
        calls.append(password)
        return _FakePdf(pages)

    monkeypatch.setattr(pdf_text.pdfplumber, "open", fake_open)
    outcome = import_pdf_file(b"%PDF-1.7", file_name="f.pdf", password="1234", settings=SETTINGS)

    assert calls == ["1234"]
    assert outcome.run.imported_rows == 3
    assert outcome.run.file_name == "f.pdf"


def test_unreadable_pdf_is_a_failed_run(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_open(stream, password=None):  # noqa: ANN001
        raise RuntimeError("password required")

    monkeypatch.setattr(pdf_text.pdfplumber, "open", broken_open)
    outcome = import_pdf_file(b"%PDF-1.7", settings=SETTINGS)

    assert outcome.run.status is ImportStatus.FAILED
    assert outcome.run.error_message == "unreadable PDF: password required"
    assert outcome.run.total_rows == 0


def test_pdf_without_text_is_structural(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pdf_text.pdfplumber, "open", lambda stream, password=None: _FakePdf([None, "  "]))
    with pytest.raises(StructuralParseError, match="no extractable text"):
        pdf_text.extract_statement_text(b"%PDF-1.7")
    with pytest.raises(StructuralParseError, match="empty"):
        pdf_text.extract_statement_text(b"")
