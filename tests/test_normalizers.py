import pytest

from statement_ingest import normalize_description
from statement_ingest.normalizers import clean_description

SAMPLES = [
    "UBER   TRIP",
    "uber trip",
    "Café São Paulo",
    "NETFLIX.COM 2/12",
    "PADARIA BOM DIA 123456",
    "POSTO 10/01/2024 10h30 SHELL",
    "  Pgto  Home/Office   Banking ",
    "FeFloresCostura 02/02",
    "12345",
    "***",
    "",
    "Ação!!! --  LOJA 12 3456 7890",
    "ÅNGSTRÖM ﬁnance",
]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("UBER   TRIP", "uber trip"),
        ("Café São Paulo", "cafe sao paulo"),
        ("NETFLIX.COM 2/12", "netflix com"),
        ("PADARIA BOM DIA 123456", "padaria bom dia"),
        ("POSTO 10/01/2024 10h30 SHELL", "posto shell"),
        ("12345", "12345"),
        ("***", ""),
        (None, ""),
    ],
)
def test_normalize_description_examples(raw, expected) -> None:
    assert normalize_description(raw) == expected


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_description_is_idempotent(raw: str) -> None:
    once = normalize_description(raw)
    assert normalize_description(once) == once


def test_case_and_spacing_variants_share_a_key() -> None:
    variants = ["UBER   TRIP", "uber trip", " Uber\tTrip ", "UBER TRIP 2/3"]
    assert {normalize_description(v) for v in variants} == {"uber trip"}


def test_clean_description_only_collapses_whitespace() -> None:
    assert clean_description("  NETFLIX \t COM  ") == "NETFLIX COM"
    assert clean_description(None) == ""
