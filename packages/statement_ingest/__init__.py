"""Public interface for the ``statement_ingest`` package.

This module re-exports the API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
The storage adapter (:mod:`statement_ingest.persistence`) is not re-exported
because it pulls in the ``ledger_db`` collaborator.
"""

from .aggregator import ImportRunBuilder
from .api import (
    detect_csv_format,
    format_table,
    import_csv,
    import_csv_transactions,
    import_pdf_file,
    import_pdf_statement,
    parse_pdf_statement,
)
from .config import IngestSettings, load_settings
from .errors import (
    ImportRunFinalizedError,
    IngestError,
    LineParseError,
    NotATransactionLine,
    RowParseError,
    StructuralParseError,
)
from .grammar import BANRISUL_GRAMMAR, DEFAULT_GRAMMAR, StatementGrammar, load_grammar
from .ingest.csv_formats import CsvFormatSpec, CsvImportFormat
from .ingest.pdf_statement import iter_statement
from .ingest.transaction_line import parse_transaction_line
from .mappings import MappingResolver, MappingSnapshot, resolve_description
from .models import (
    CardSection,
    CardSectionHeader,
    DescriptionMapping,
    ImportOutcome,
    ImportRun,
    ImportStatus,
    ParsedTransaction,
    ResolvedDescription,
    ResolvedTransaction,
    RowError,
    SourceKind,
    StatementEvent,
    TransactionType,
)
from .normalizers import normalize_description

__all__ = [
    # API
    "parse_pdf_statement",
    "import_pdf_statement",
    "import_pdf_file",
    "import_csv",
    "import_csv_transactions",
    "detect_csv_format",
    "format_table",
    "resolve_description",
    "normalize_description",
    "iter_statement",
    "parse_transaction_line",
    # Configuration
    "IngestSettings",
    "load_settings",
    "StatementGrammar",
    "DEFAULT_GRAMMAR",
    "BANRISUL_GRAMMAR",
    "load_grammar",
    "CsvImportFormat",
    "CsvFormatSpec",
    # Models / types
    "ParsedTransaction",
    "CardSection",
    "CardSectionHeader",
    "StatementEvent",
    "DescriptionMapping",
    "ResolvedDescription",
    "ResolvedTransaction",
    "RowError",
    "ImportRun",
    "ImportStatus",
    "TransactionType",
    "ImportOutcome",
    "SourceKind",
    "MappingSnapshot",
    "MappingResolver",
    "ImportRunBuilder",
    # Errors
    "IngestError",
    "StructuralParseError",
    "RowParseError",
    "LineParseError",
    "ImportRunFinalizedError",
    "NotATransactionLine",
]
