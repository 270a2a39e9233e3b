"""CSV source formats: the closed format enum and the column-signature table.

Each :class:`CsvImportFormat` member has a :class:`CsvFormatSpec` describing
the file layout: delimiter, candidate encodings, the header signature used for
detection, which column plays which role, date formats and number formatting.
Specs are pydantic models so new bank exports can be described in a JSON file
(see :func:`load_format_table`) without touching the import pipeline.

Header comparison is accent-insensitive and case-insensitive:
``"Histórico"`` matches ``"historico"``.
"""

from __future__ import annotations

import csv
import unicodedata
from enum import StrEnum
from os import PathLike
from pathlib import Path
from typing import assert_never

from pydantic import BaseModel, ConfigDict, TypeAdapter, field_validator, model_validator

from ..errors import StructuralParseError

# How many leading lines may precede the real header (bank preambles)
HEADER_SCAN_LIMIT = 20


class CsvImportFormat(StrEnum):
    BANRISUL = "BANRISUL"
    BANRISUL_CREDIT_CARD_CSV = "BANRISUL_CREDIT_CARD_CSV"
    GENERIC = "GENERIC"
    NUBANK = "NUBANK"


class ColumnRoles(BaseModel):
    """Header names (as printed) for each role the pipeline reads."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    date: str
    description: str
    value_primary: str
    value_secondary: str | None = None
    category: str | None = None


class CsvFormatSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    delimiter: str = ","
    encodings: tuple[str, ...] = ("utf-8-sig", "iso-8859-1")
    signature: tuple[str, ...]
    columns: ColumnRoles
    date_formats: tuple[str, ...] = ("%Y-%m-%d",)
    decimal_sep: str = "."
    thousands_sep: str = ""
    charges_positive: bool = False
    section_header_patterns: tuple[str, ...] = ()
    noise_patterns: tuple[str, ...] = ()
    installment_pattern: str = r"(?<![\d/])(?P<current>\d{1,2})/(?P<total>\d{1,2})(?![\d/])"

    @field_validator("delimiter", "decimal_sep")
    @classmethod
    def _single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("must be a single character")
        return v

    @field_validator("encodings", "signature", "date_formats")
    @classmethod
    def _non_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def _columns_in_signature(self) -> CsvFormatSpec:
        folded = {fold_header(c) for c in self.signature}
        roles = self.columns.model_dump(exclude_none=True)
        missing = sorted(col for col in roles.values() if fold_header(col) not in folded)
        if missing:
            raise ValueError("columns not present in signature: " + ", ".join(missing))
        return self


def fold_header(name: str) -> str:
    s = unicodedata.normalize("NFKD", name.strip().lstrip("\ufeff"))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return " ".join(s.casefold().split())


_BANRISUL_CC_SECTION = r"^(?P<digits>\d{4})\s*-\s*(?P<holder>\D.*)$"


def builtin_format_spec(fmt: CsvImportFormat) -> CsvFormatSpec:
    match fmt:
        case CsvImportFormat.BANRISUL:
            return CsvFormatSpec(
                name=fmt.value,
                delimiter=";",
                signature=("Data", "Histórico", "Valor"),
                columns=ColumnRoles(date="Data", description="Histórico", value_primary="Valor"),
                date_formats=("%d/%m/%Y",),
                decimal_sep=",",
                thousands_sep=".",
            )
        case CsvImportFormat.BANRISUL_CREDIT_CARD_CSV:
            return CsvFormatSpec(
                name=fmt.value,
                delimiter=";",
                signature=("Data", "Descrição", "Valor R$", "Valor US$"),
                columns=ColumnRoles(
                    date="Data",
                    description="Descrição",
                    value_primary="Valor R$",
                    value_secondary="Valor US$",
                ),
                date_formats=("%d/%m/%Y",),
                decimal_sep=",",
                thousands_sep=".",
                charges_positive=True,
                section_header_patterns=(_BANRISUL_CC_SECTION,),
                noise_patterns=(
                    r"(?i)^;?\s*USD\b",
                    r"(?i)saldo da fatura anterior",
                    r"(?i)total da fatura",
                    r"(?i)pagamento m[ií]nimo",
                    r"(?i)^nome do cart",
                ),
            )
        case CsvImportFormat.GENERIC:
            return CsvFormatSpec(
                name=fmt.value,
                signature=("date", "description", "value"),
                columns=ColumnRoles(
                    date="date", description="description", value_primary="value"
                ),
                date_formats=("%Y-%m-%d", "%d/%m/%Y"),
            )
        case CsvImportFormat.NUBANK:
            return CsvFormatSpec(
                name=fmt.value,
                signature=("date", "category", "title", "amount"),
                columns=ColumnRoles(
                    date="date", description="title", value_primary="amount", category="category"
                ),
                date_formats=("%Y-%m-%d",),
                charges_positive=True,
            )
        case _:
            assert_never(fmt)


def default_format_table() -> dict[str, CsvFormatSpec]:
    """Built-in specs keyed by format name, in detection tie-break order."""

    return {fmt.value: builtin_format_spec(fmt) for fmt in CsvImportFormat}


_TABLE_ADAPTER = TypeAdapter(dict[str, CsvFormatSpec])


def load_format_table(path: str | PathLike[str]) -> dict[str, CsvFormatSpec]:
    """Read extra or overriding specs from a JSON object keyed by format name."""

    table = _TABLE_ADAPTER.validate_json(Path(path).read_text(encoding="utf-8"))
    for key, spec in table.items():
        if key != spec.name:
            raise ValueError(f"format table key {key!r} does not match spec name {spec.name!r}")
    return table


def merge_format_tables(
    base: dict[str, CsvFormatSpec], extra: dict[str, CsvFormatSpec]
) -> dict[str, CsvFormatSpec]:
    merged = dict(base)
    merged.update(extra)
    return merged


def table_encodings(table: dict[str, CsvFormatSpec]) -> tuple[str, ...]:
    """Union of the table's encodings, in first-seen order."""

    encodings: list[str] = []
    for spec in table.values():
        for enc in spec.encodings:
            if enc not in encodings:
                encodings.append(enc)
    return tuple(encodings)


def decode_csv_bytes(data: bytes, encodings: tuple[str, ...]) -> tuple[str, str]:
    """Decode with the first encoding that succeeds; returns ``(text, encoding)``."""

    for enc in encodings:
        try:
            return data.decode(enc), enc
        except UnicodeDecodeError:
            continue
    raise StructuralParseError("could not decode file with encodings: " + ", ".join(encodings))


def _split_header(line: str, delimiter: str) -> list[str]:
    try:
        row = next(csv.reader([line], delimiter=delimiter), [])
    except csv.Error:
        return []
    return [fold_header(c) for c in row if c.strip()]


def signature_score(header_cells: list[str], spec: CsvFormatSpec) -> int:
    """Number of signature columns present; 0 unless every column is present."""

    present = set(header_cells)
    wanted = [fold_header(c) for c in spec.signature]
    return len(wanted) if all(c in present for c in wanted) else 0


def locate_header(text: str, spec: CsvFormatSpec) -> int | None:
    """Return the 0-based line index of ``spec``'s header within the scan window."""

    for idx, line in enumerate(text.splitlines()[:HEADER_SCAN_LIMIT]):
        if signature_score(_split_header(line, spec.delimiter), spec):
            return idx
    return None


def detect_csv_format(
    text: str, table: dict[str, CsvFormatSpec] | None = None
) -> tuple[CsvFormatSpec, int]:
    """Pick the format whose signature matches the most header columns.

    Ties go to the format listed first in ``table``. Returns ``(spec, header_index)``
    or raises :class:`StructuralParseError` when no signature matches.
    """

    specs = table if table is not None else default_format_table()
    best: tuple[int, CsvFormatSpec, int] | None = None
    for spec in specs.values():
        idx = locate_header(text, spec)
        if idx is None:
            continue
        score = len(spec.signature)
        if best is None or score > best[0]:
            best = (score, spec, idx)
    if best is None:
        raise StructuralParseError(
            "unrecognized CSV header: no known column signature matched. Known formats: "
            + ", ".join(specs)
        )
    return best[1], best[2]


__all__ = [
    "HEADER_SCAN_LIMIT",
    "CsvImportFormat",
    "ColumnRoles",
    "CsvFormatSpec",
    "fold_header",
    "builtin_format_spec",
    "default_format_table",
    "load_format_table",
    "merge_format_tables",
    "table_encodings",
    "decode_csv_bytes",
    "signature_score",
    "locate_header",
    "detect_csv_format",
]
