"""SQLAlchemy models registry for the ledger database."""

from .ledger import Base, SiDescriptionMapping, SiImportRun, SiTransaction

__all__ = [
    "Base",
    "SiImportRun",
    "SiTransaction",
    "SiDescriptionMapping",
]
