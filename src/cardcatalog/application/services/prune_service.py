"""Remove catalog entries whose files are gone."""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from cardcatalog.application.services.index_publisher import IndexPublisher
from cardcatalog.config.settings import PruneSettings
from cardcatalog.domain.entities import PruneReport
from cardcatalog.domain.exceptions import (
    IndexPublishError,
    ReconciliationError,
    UnsafePruneError,
)
from cardcatalog.infrastructure.observability.error_formatting import (
    format_oserror_message,
)
from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.persistence.repositories import (
    CatalogEntryRepository,
    ResolutionCheckpointRepository,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000


def _missing_in_chunk(
    rows: list[tuple[int, str]], path_exists: Callable[[str], bool]
) -> list[tuple[int, str]]:
    return [(entry_id, path) for entry_id, path in rows if not path_exists(path)]


class PruneService:
    """Deletes entries for paths that no longer exist on disk.

    Hey future me - "file not found" is only the truth if the disk is actually THERE. An
    unmounted NAS share looks exactly like "every file was deleted", and pruning then wipes
    the catalog (and every identifier we paid rate-limited lookups for). So BEFORE looking
    at a single entry:
    1. every configured root must exist and be non-empty (require_reachable_roots)
    2. after counting, more than max_delete_fraction missing = refuse unless force=True
    force never bypasses check 1.
    """

    def __init__(
        self,
        database: Database,
        settings: PruneSettings,
        publisher: IndexPublisher | None = None,
        path_exists: Callable[[str], bool] = os.path.exists,
    ) -> None:
        self._database = database
        self.settings = settings
        self._publisher = publisher
        self._path_exists = path_exists

    def check_roots(self, roots: Sequence[Path]) -> None:
        """Raise UnsafePruneError unless every root is a reachable, non-empty directory."""
        if not roots:
            raise UnsafePruneError(
                "No library roots configured - can't tell a missing file from a missing mount"
            )

        unreachable: list[str] = []
        for root in roots:
            try:
                with os.scandir(root) as it:
                    if next(it, None) is None:
                        logger.warning(f"Library root {root} is empty - treating it as unmounted")
                        unreachable.append(str(root))
            except OSError as e:
                logger.warning(format_oserror_message(e, "open library root", root))
                unreachable.append(str(root))

        if unreachable:
            raise UnsafePruneError(
                f"Refusing to prune: library roots unreachable or empty: {', '.join(unreachable)}",
                unreachable_roots=unreachable,
            )

    async def prune(
        self,
        roots: Sequence[Path],
        force: bool = False,
        clear_fulfilled: bool | None = None,
        dry_run: bool = False,
    ) -> PruneReport:
        """Delete entries whose path is gone.

        Args:
            roots: Configured library roots (for the reachability check)
            force: Ignore max_delete_fraction
            clear_fulfilled: Also drop checkpoints of identified entries
                (None = use settings)
            dry_run: Count only, delete nothing

        Returns:
            PruneReport with counts

        Raises:
            UnsafePruneError: Safeguard refused the prune
            ReconciliationError: Store unavailable
        """
        if self.settings.require_reachable_roots:
            await asyncio.to_thread(self.check_roots, roots)

        if clear_fulfilled is None:
            clear_fulfilled = self.settings.clear_fulfilled_checkpoints

        report = PruneReport(dry_run=dry_run)
        missing: list[tuple[int, str]] = []

        try:
            async with self._database.session_scope() as session:
                async for rows in CatalogEntryRepository(session).iter_paths(CHUNK_SIZE):
                    report.examined += len(rows)
                    missing.extend(
                        await asyncio.to_thread(_missing_in_chunk, rows, self._path_exists)
                    )
        except (SQLAlchemyError, OSError) as e:
            raise ReconciliationError(f"Catalog store unavailable: {e}") from e

        report.missing = len(missing)
        for _, path in missing[:20]:
            logger.info(f"Missing: {path}")
        if len(missing) > 20:
            logger.info(f"... and {len(missing) - 20} more")

        if report.examined and not force:
            fraction = report.missing / report.examined
            if fraction > self.settings.max_delete_fraction:
                raise UnsafePruneError(
                    f"Refusing to prune {report.missing} of {report.examined} entries "
                    f"({fraction:.0%} > {self.settings.max_delete_fraction:.0%}). "
                    "Check your mounts, then re-run with --force if this is really intended."
                )

        if dry_run:
            return report

        ids = [entry_id for entry_id, _ in missing]
        try:
            async with self._database.session_scope() as session:
                checkpoints = ResolutionCheckpointRepository(session)
                # Explicit even though the FK cascades - SQLite databases opened without
                # PRAGMA foreign_keys would otherwise keep the checkpoints around
                report.checkpoints_removed += await checkpoints.delete_for_entries(ids)
                report.deleted = await CatalogEntryRepository(session).delete_by_ids(ids)
                report.checkpoints_removed += await checkpoints.delete_orphans()
                if clear_fulfilled:
                    report.fulfilled_checkpoints_cleared = await checkpoints.delete_fulfilled()
        except (SQLAlchemyError, OSError) as e:
            raise ReconciliationError(f"Catalog store unavailable: {e}") from e

        if self._publisher is not None:
            for entry_id in ids:
                try:
                    await self._publisher.remove(entry_id)
                except IndexPublishError as e:
                    report.index_delete_failures += 1
                    logger.warning(f"Could not remove document {entry_id} from index: {e.message}")

        return report
