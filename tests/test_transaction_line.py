import datetime as dt
from decimal import Decimal

import pytest

from statement_ingest import (
    BANRISUL_GRAMMAR,
    DEFAULT_GRAMMAR,
    CardSectionHeader,
    NotATransactionLine,
    ParsedTransaction,
    parse_transaction_line,
)
from statement_ingest.grammar import compile_grammar
from statement_ingest.ingest.transaction_line import extract_installment

JOHN = CardSectionHeader(last_four_digits="1234", holder_name="JOHN DOE")
ALEX = CardSectionHeader(last_four_digits="7152", holder_name="ALEXANDRE SILVA")
DEFAULT = compile_grammar(DEFAULT_GRAMMAR)
BANRISUL = compile_grammar(BANRISUL_GRAMMAR)


def _parse(line: str, *, grammar=DEFAULT, header=JOHN, year: int = 2025):
    return parse_transaction_line(line, header, grammar, year=year)


def test_single_currency_line() -> None:
    assert _parse("12/01 UBER TRIP 45,90") == ParsedTransaction(
        date=dt.date(2025, 1, 12),
        description="UBER TRIP",
        value_primary=Decimal("45.90"),
        card_last_four_digits="1234",
        card_holder_name="JOHN DOE",
        raw_line="12/01 UBER TRIP 45,90",
    )


@pytest.mark.parametrize(
    ("line", "value"),
    [
        ("01/02 PADARIA 3,50", Decimal("3.50")),
        ("28/02 MERCADO LIVRE 1.234,56", Decimal("1234.56")),
        ("03/03 IFOOD *RESTAURANTE 0,99", Decimal("0.99")),
        ("04/04 99 TAXI 17,00", Decimal("17.00")),
    ],
)
def test_single_amount_is_primary_and_secondary_absent(line: str, value: Decimal) -> None:
    tx = _parse(line)
    assert isinstance(tx, ParsedTransaction)
    assert tx.value_primary == value
    assert tx.value_secondary is None


def test_installment_marker_is_extracted() -> None:
    tx = _parse("12/01 NETFLIX 2/12 39,90")
    assert isinstance(tx, ParsedTransaction)
    assert (tx.current_installment, tx.total_installments) == (2, 12)
    assert tx.description == "NETFLIX"
    assert "2/12" not in tx.description


@pytest.mark.parametrize("marker", ["7/5", "0/3"])
def test_invalid_installment_marker_stays_in_description(marker: str) -> None:
    tx = _parse(f"12/01 LOJA {marker} 10,00")
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == f"LOJA {marker}"
    assert tx.current_installment is None
    assert tx.total_installments is None


def test_two_amounts_default_grammar_takes_rightmost_as_home() -> None:
    tx = _parse("15/03 AMAZON WEB SERVICES 12,50 65,10")
    assert isinstance(tx, ParsedTransaction)
    assert tx.value_primary == Decimal("65.10")
    assert tx.value_secondary == Decimal("12.50")
    assert tx.description == "AMAZON WEB SERVICES"


def test_two_amounts_banrisul_grammar_takes_first_as_home() -> None:
    tx = _parse("10/10/2025 OPENAI CHATGPT 110,25 20,00", grammar=BANRISUL, header=ALEX)
    assert isinstance(tx, ParsedTransaction)
    assert tx.date == dt.date(2025, 10, 10)
    assert tx.value_primary == Decimal("110.25")
    assert tx.value_secondary == Decimal("20.00")


def test_negative_payment_and_zero_foreign_value() -> None:
    tx = _parse(
        "05/10/2025 PGTO HOME/OFFICE BANKING -12.855,13 0,00", grammar=BANRISUL, header=ALEX
    )
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == "PGTO HOME/OFFICE BANKING"
    assert tx.value_primary == Decimal("-12855.13")
    assert tx.value_secondary is None
    assert tx.is_credit


def test_banrisul_installment_with_leading_zeros() -> None:
    tx = _parse("03/09/2025 FeFloresCostura 02/02 45,00", grammar=BANRISUL, header=ALEX)
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == "FeFloresCostura"
    assert (tx.current_installment, tx.total_installments) == (2, 2)
    assert tx.card_last_four_digits == "7152"


def test_parenthesized_amount_is_a_credit() -> None:
    tx = _parse("20/01 ESTORNO LOJA (50,00)")
    assert isinstance(tx, ParsedTransaction)
    assert tx.value_primary == Decimal("-50.00")


@pytest.mark.parametrize(
    ("line", "description", "value"),
    [
        ("12/01 ESTORNO UBER - 45,90", "ESTORNO UBER", Decimal("-45.90")),
        ("12/01 ESTORNO UBER \u221245,90", "ESTORNO UBER", Decimal("-45.90")),
        ("12/01 ESTORNO UBER \u2212 45,90", "ESTORNO UBER", Decimal("-45.90")),
        ("12/01 UBER TRIP R$ 45,90", "UBER TRIP", Decimal("45.90")),
        ("12/01 ESTORNO UBER - R$ 1.045,90", "ESTORNO UBER", Decimal("-1045.90")),
    ],
)
def test_spaced_sign_unicode_minus_and_currency_prefix(
    line: str, description: str, value: Decimal
) -> None:
    tx = _parse(line)
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == description
    assert tx.value_primary == value


def test_foreign_and_home_values_with_currency_prefixes() -> None:
    tx = _parse("15/03 AMAZON WEB SERVICES US$ 12,50 R$ 65,10")
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == "AMAZON WEB SERVICES"
    assert (tx.value_primary, tx.value_secondary) == (Decimal("65.10"), Decimal("12.50"))


def test_december_purchase_on_january_statement_rolls_back_a_year() -> None:
    due = dt.date(2025, 1, 10)
    dec = parse_transaction_line("28/12 LOJA 10,00", JOHN, DEFAULT, year=2025, reference=due)
    jan = parse_transaction_line("05/01 LOJA 10,00", JOHN, DEFAULT, year=2025, reference=due)
    assert isinstance(dec, ParsedTransaction)
    assert isinstance(jan, ParsedTransaction)
    assert dec.date == dt.date(2024, 12, 28)
    assert jan.date == dt.date(2025, 1, 5)


def test_explicit_year_in_date_is_never_rolled_back() -> None:
    tx = parse_transaction_line(
        "28/12/2025 LOJA 10,00", JOHN, DEFAULT, year=2025, reference=dt.date(2025, 1, 10)
    )
    assert isinstance(tx, ParsedTransaction)
    assert tx.date == dt.date(2025, 12, 28)


def test_two_digit_year_maps_to_current_century() -> None:
    tx = _parse("12/01/24 UBER 10,00", year=1999)
    assert isinstance(tx, ParsedTransaction)
    assert tx.date == dt.date(2024, 1, 12)


def test_non_breaking_spaces_are_folded() -> None:
    tx = _parse("12/01\u00a0UBER\u2007TRIP\u202f 45,90")
    assert isinstance(tx, ParsedTransaction)
    assert tx.description == "UBER TRIP"
    assert tx.raw_line == "12/01 UBER TRIP 45,90"


def test_line_without_date_is_plain_text() -> None:
    result = _parse("TOTAL DA FATURA 100,00")
    assert isinstance(result, NotATransactionLine)
    assert result.looks_like_transaction is False


@pytest.mark.parametrize(
    ("line", "reason_prefix"),
    [
        ("12/01 SALDO ANTERIOR", "no amount token"),
        ("31/02 LOJA 10,00", "invalid date"),
        ("12/01 45,90", "empty description"),
    ],
)
def test_date_leading_rejections_look_like_transactions(line: str, reason_prefix: str) -> None:
    result = _parse(line)
    assert isinstance(result, NotATransactionLine)
    assert result.looks_like_transaction is True
    assert result.reason.startswith(reason_prefix)


def test_extract_installment_picks_rightmost_valid_marker() -> None:
    assert extract_installment("LOJA 1/2 ITEM 3/4", DEFAULT.installment) == ("LOJA 1/2 ITEM", 3, 4)
    assert extract_installment("LOJA 1/2 ITEM 9/4", DEFAULT.installment) == ("LOJA ITEM 9/4", 1, 2)
    assert extract_installment("DATA 10/01/2025", DEFAULT.installment) == (
        "DATA 10/01/2025",
        None,
        None,
    )


def test_parsing_is_deterministic() -> None:
    line = "15/03 AMAZON WEB SERVICES 3/10 12,50 65,10"
    assert _parse(line) == _parse(line)
