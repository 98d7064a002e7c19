"""Read-only report of catalog titles that disagree with the reference database."""

import logging

from sqlalchemy.exc import SQLAlchemyError

from cardcatalog.domain.entities import AuditFinding, CatalogEntry, ReferenceRecording
from cardcatalog.domain.exceptions import ReconciliationError
from cardcatalog.domain.ports import IReferenceDatabase
from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.persistence.repositories import CatalogEntryRepository

logger = logging.getLogger(__name__)


def _reference_for(
    entry: CatalogEntry, recordings: dict[str, ReferenceRecording]
) -> ReferenceRecording | None:
    if entry.external_id is None:
        return None
    # The SQL mirror keys by the canonical lowercase UUID text
    return recordings.get(entry.external_id) or recordings.get(entry.external_id.lower())


def title_disagrees(track: str | None, reference_title: str) -> bool:
    """Case-insensitive comparison. An entry without a track title is never reported."""
    if track is None:
        return False
    return track.casefold() != reference_title.casefold()


class AuditService:
    """Walks identified entries page by page and compares titles. Never writes."""

    def __init__(
        self,
        database: Database,
        reference: IReferenceDatabase,
        page_size: int = 100,
    ) -> None:
        self._database = database
        self._reference = reference
        self.page_size = page_size

    async def audit(self, limit: int | None = None) -> list[AuditFinding]:
        """Collect up to `limit` findings (default: page_size).

        Raises:
            ReconciliationError: Catalog store unavailable
            ReferenceLookupError: Reference database unavailable
        """
        limit = limit or self.page_size
        findings: list[AuditFinding] = []
        after_id = 0
        examined = 0
        missing_reference = 0

        while len(findings) < limit:
            try:
                async with self._database.session_scope() as session:
                    entries = await CatalogEntryRepository(session).list_resolved(
                        after_id=after_id, limit=self.page_size
                    )
            except (SQLAlchemyError, OSError) as e:
                raise ReconciliationError(f"Catalog store unavailable: {e}") from e

            if not entries:
                break
            after_id = entries[-1].id or after_id
            examined += len(entries)

            recordings = await self._reference.get_recordings(
                [entry.external_id for entry in entries if entry.external_id]
            )

            for entry in entries:
                reference = _reference_for(entry, recordings)
                if reference is None:
                    missing_reference += 1
                    continue
                if not title_disagrees(entry.track, reference.title):
                    continue
                findings.append(
                    AuditFinding(
                        entry_id=entry.id or 0,
                        path=entry.path,
                        external_id=entry.external_id or "",
                        track=entry.track,
                        reference_title=reference.title,
                    )
                )
                if len(findings) >= limit:
                    break

        if missing_reference:
            logger.info(
                f"{missing_reference} of {examined} identified entries have no reference recording"
            )
        return findings
