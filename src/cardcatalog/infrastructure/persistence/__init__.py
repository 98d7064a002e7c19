"""Persistence layer: SQLAlchemy models, database and repositories."""

from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.persistence.repositories import (
    CatalogEntryRepository,
    ResolutionCheckpointRepository,
)

__all__ = ["CatalogEntryRepository", "Database", "ResolutionCheckpointRepository"]
