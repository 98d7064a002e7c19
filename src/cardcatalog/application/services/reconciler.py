"""Idempotent upsert of scan results into the catalog store."""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cardcatalog.domain.entities import (
    CatalogEntry,
    ReconcileAction,
    ReconcileResult,
    ResolutionCandidate,
    TrackMetadata,
)
from cardcatalog.domain.exceptions import ReconciliationError
from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.persistence.repositories import CatalogEntryRepository

logger = logging.getLogger(__name__)


def should_replace_identifier(entry: CatalogEntry, candidate: ResolutionCandidate) -> bool:
    """No-downgrade rule for the stored recording identifier.

    Hey future me - this is THE invariant of the catalog: once an identifier is set, only a
    strictly MORE confident match may replace it. Identifiers stored before confidences
    were recorded (confidence None) are never replaced - we have no idea how good they were,
    and they may well be hand-curated.
    """
    if entry.external_id is None:
        return True
    if entry.external_id_confidence is None:
        return False
    return candidate.confidence > entry.external_id_confidence


class Reconciler:
    """Merges extracted metadata and an accepted match into the store, keyed by path."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def reconcile(
        self,
        path: str,
        metadata: TrackMetadata,
        candidate: ResolutionCandidate | None = None,
    ) -> ReconcileResult:
        """Insert or update the entry for a path.

        Args:
            path: Unique catalog key
            metadata: Freshly extracted tags/duration
            candidate: Accepted match, None when there is none (never clears a stored id)

        Returns:
            The final entry (with id) and what happened to it

        Raises:
            ReconciliationError: Store unavailable - fatal to the run
        """
        try:
            return await self._upsert(path, metadata, candidate)
        except IntegrityError:
            # Someone inserted the same path between our SELECT and INSERT (two processes
            # scanning overlapping roots). The row exists now, so a second pass updates it.
            logger.debug(f"Concurrent insert for {path}, retrying as update")
            try:
                return await self._upsert(path, metadata, candidate)
            except (SQLAlchemyError, OSError) as e:
                raise ReconciliationError(f"Catalog store write failed for {path}: {e}", path=path) from e
        except (SQLAlchemyError, OSError) as e:
            raise ReconciliationError(f"Catalog store write failed for {path}: {e}", path=path) from e

    async def _upsert(
        self,
        path: str,
        metadata: TrackMetadata,
        candidate: ResolutionCandidate | None,
    ) -> ReconcileResult:
        async with self._database.session_scope() as session:
            repo = CatalogEntryRepository(session)
            existing = await repo.get_by_path(path)

            if existing is None:
                entry = CatalogEntry.from_metadata(path, metadata)
                if candidate is not None:
                    entry.external_id = candidate.external_id
                    entry.external_id_confidence = candidate.confidence
                entry = await repo.add(entry)
                logger.debug(f"Inserted catalog entry {entry.id} for {path}")
                return ReconcileResult(entry=entry, action=ReconcileAction.INSERTED)

            changed = existing.apply_metadata(metadata)
            if candidate is not None and should_replace_identifier(existing, candidate):
                if existing.external_id != candidate.external_id:
                    existing.external_id = candidate.external_id
                    changed.append("external_id")
                if existing.external_id_confidence != candidate.confidence:
                    existing.external_id_confidence = candidate.confidence
                    changed.append("external_id_confidence")

            if not changed:
                return ReconcileResult(entry=existing, action=ReconcileAction.UNCHANGED)

            entry = await repo.update(existing)
            logger.debug(f"Updated catalog entry {entry.id} ({', '.join(changed)})")
            return ReconcileResult(
                entry=entry, action=ReconcileAction.UPDATED, changed_fields=changed
            )
