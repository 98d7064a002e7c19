"""Repository implementations for the catalog store."""

from collections.abc import AsyncIterator, Sequence
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardcatalog.domain.entities import CatalogEntry, ResolutionState
from cardcatalog.domain.exceptions import EntityNotFoundException
from cardcatalog.infrastructure.persistence.models import (
    CatalogEntryModel,
    ResolutionCheckpointModel,
    ensure_utc_aware,
    utc_now,
)

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER is 999 on old builds
DELETE_CHUNK_SIZE = 500


def _to_entity(model: CatalogEntryModel) -> CatalogEntry:
    return CatalogEntry(
        id=model.id,
        path=model.path,
        title=model.title,
        artist=model.artist,
        album=model.album,
        track=model.track,
        track_number=model.track_number,
        duration_seconds=model.duration,
        external_id=model.mbid,
        external_id_confidence=model.mbid_confidence,
        created_at=ensure_utc_aware(model.created_at),
        updated_at=ensure_utc_aware(model.updated_at),
    )


def _copy_to_model(entry: CatalogEntry, model: CatalogEntryModel) -> None:
    model.path = entry.path
    model.title = entry.title
    model.artist = entry.artist
    model.album = entry.album
    model.track = entry.track
    model.track_number = entry.track_number
    model.duration = entry.duration_seconds
    model.mbid = entry.external_id
    model.mbid_confidence = entry.external_id_confidence


class CatalogEntryRepository:
    """SQLAlchemy repository for CatalogEntry rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, entry: CatalogEntry) -> CatalogEntry:
        """Insert a new entry. Returns it with the assigned id.

        Raises:
            IntegrityError: If the path already exists (on flush)
        """
        model = CatalogEntryModel(created_at=entry.created_at, updated_at=entry.updated_at)
        _copy_to_model(entry, model)
        self.session.add(model)
        await self.session.flush()
        return _to_entity(model)

    async def update(self, entry: CatalogEntry) -> CatalogEntry:
        """Write all fields of an existing entry."""
        if entry.id is None:
            raise EntityNotFoundException("CatalogEntry", entry.path)

        model = await self.session.get(CatalogEntryModel, entry.id)
        if model is None:
            raise EntityNotFoundException("CatalogEntry", entry.id)

        _copy_to_model(entry, model)
        model.updated_at = utc_now()
        await self.session.flush()
        return _to_entity(model)

    async def get_by_path(self, path: str) -> CatalogEntry | None:
        """Get an entry by its filesystem path."""
        stmt = select(CatalogEntryModel).where(CatalogEntryModel.path == path)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def count(self) -> int:
        stmt = select(func.count()).select_from(CatalogEntryModel)
        return int((await self.session.execute(stmt)).scalar_one())

    async def get_resolution_state(self, path: str) -> ResolutionState | None:
        """Entry id, current identifier and last lookup time for a path, in one query."""
        stmt = (
            select(
                CatalogEntryModel.id,
                CatalogEntryModel.mbid,
                ResolutionCheckpointModel.last_check,
            )
            .outerjoin(
                ResolutionCheckpointModel,
                ResolutionCheckpointModel.library_id == CatalogEntryModel.id,
            )
            .where(CatalogEntryModel.path == path)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        entry_id, mbid, last_check = row
        return ResolutionState(
            entry_id=entry_id,
            external_id=mbid,
            last_checked_at=ensure_utc_aware(last_check) if last_check else None,
        )

    # Hey future me - keyset pagination (WHERE id > last) instead of OFFSET! OFFSET gets slower
    # with every page and skips rows when prune deletes between pages. We only pull (id, path)
    # so a 100k-file library doesn't end up as ORM objects in memory.
    async def iter_paths(self, chunk_size: int = 1000) -> AsyncIterator[list[tuple[int, str]]]:
        """Yield chunks of (id, path) ordered by id."""
        last_id = 0
        while True:
            stmt = (
                select(CatalogEntryModel.id, CatalogEntryModel.path)
                .where(CatalogEntryModel.id > last_id)
                .order_by(CatalogEntryModel.id)
                .limit(chunk_size)
            )
            rows = [(row[0], row[1]) for row in (await self.session.execute(stmt)).all()]
            if not rows:
                return
            yield rows
            last_id = rows[-1][0]

    async def list_resolved(self, after_id: int = 0, limit: int = 100) -> list[CatalogEntry]:
        """Entries with an identifier, ordered by id, starting after after_id."""
        stmt = (
            select(CatalogEntryModel)
            .where(CatalogEntryModel.mbid.is_not(None))
            .where(CatalogEntryModel.id > after_id)
            .order_by(CatalogEntryModel.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_entity(model) for model in result.scalars().all()]

    async def delete_by_ids(self, entry_ids: Sequence[int]) -> int:
        """Delete entries (their checkpoints go with them). Returns rows deleted."""
        deleted = 0
        for i in range(0, len(entry_ids), DELETE_CHUNK_SIZE):
            chunk = list(entry_ids[i : i + DELETE_CHUNK_SIZE])
            result = await self.session.execute(
                delete(CatalogEntryModel).where(CatalogEntryModel.id.in_(chunk))
            )
            deleted += result.rowcount or 0  # type: ignore[attr-defined]
        return deleted


class ResolutionCheckpointRepository:
    """SQLAlchemy repository for per-entry lookup checkpoints."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_last_checked(self, entry_id: int) -> datetime | None:
        stmt = select(ResolutionCheckpointModel.last_check).where(
            ResolutionCheckpointModel.library_id == entry_id
        )
        value = (await self.session.execute(stmt)).scalar_one_or_none()
        return ensure_utc_aware(value) if value else None

    async def touch(self, entry_id: int, checked_at: datetime) -> None:
        """Create or refresh the checkpoint of an entry.

        Select-then-write is fine here: each path (and so each entry) is handled
        by exactly one worker per run.
        """
        stmt = select(ResolutionCheckpointModel).where(
            ResolutionCheckpointModel.library_id == entry_id
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        if model is None:
            self.session.add(ResolutionCheckpointModel(library_id=entry_id, last_check=checked_at))
        else:
            model.last_check = checked_at
        await self.session.flush()

    async def delete_for_entries(self, entry_ids: Sequence[int]) -> int:
        deleted = 0
        for i in range(0, len(entry_ids), DELETE_CHUNK_SIZE):
            chunk = list(entry_ids[i : i + DELETE_CHUNK_SIZE])
            result = await self.session.execute(
                delete(ResolutionCheckpointModel).where(
                    ResolutionCheckpointModel.library_id.in_(chunk)
                )
            )
            deleted += result.rowcount or 0  # type: ignore[attr-defined]
        return deleted

    async def delete_orphans(self) -> int:
        """Remove checkpoints whose entry no longer exists.

        Can't happen with the FK in place, but databases created before the FK was
        tightened (or with foreign keys switched off in SQLite) may still have some.
        """
        existing = select(CatalogEntryModel.id)
        result = await self.session.execute(
            delete(ResolutionCheckpointModel).where(
                ResolutionCheckpointModel.library_id.not_in(existing)
            )
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def delete_fulfilled(self) -> int:
        """Remove checkpoints of entries that already have an identifier."""
        resolved = select(CatalogEntryModel.id).where(CatalogEntryModel.mbid.is_not(None))
        result = await self.session.execute(
            delete(ResolutionCheckpointModel).where(
                ResolutionCheckpointModel.library_id.in_(resolved)
            )
        )
        return result.rowcount or 0  # type: ignore[attr-defined]
