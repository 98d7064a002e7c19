"""Mirror reconciled catalog entries into the search index."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from cardcatalog.config.settings import SearchIndexSettings
from cardcatalog.domain.entities import CatalogEntry
from cardcatalog.domain.exceptions import IndexPublishError
from cardcatalog.domain.ports import ISearchIndex

logger = logging.getLogger(__name__)


class IndexPublisher:
    """Upserts one document per catalog entry, same id as the store row.

    Hey future me - the catalog write already committed when we get here. Index failures
    NEVER roll it back and never fail the run: store and index are eventually consistent.
    Every scan re-publishes every processed entry (PUT is idempotent), so a document lost
    while Elasticsearch was down shows up again on the next scan.
    """

    def __init__(
        self,
        index: ISearchIndex,
        settings: SearchIndexSettings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._index = index
        self.max_attempts = settings.max_attempts
        self.retry_backoff_seconds = settings.retry_backoff_seconds
        self._sleep = sleep

    async def prepare(self) -> bool:
        """Make sure the index exists. Returns False (and logs) if it can't be reached."""
        try:
            await self._index.ensure_index()
            return True
        except IndexPublishError as e:
            logger.warning(f"Search index not ready, documents may fail to publish: {e.message}")
            return False

    async def publish(self, entry: CatalogEntry) -> None:
        """Upsert the entry's document with bounded retries.

        Raises:
            IndexPublishError: After max_attempts failures (caller logs it as a warning)
        """
        if entry.id is None:
            raise IndexPublishError(f"Entry for {entry.path} has no id yet")

        doc_id = str(entry.id)
        document = entry.to_document()
        last_error: IndexPublishError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._index.upsert_document(doc_id, document)
                return
            except IndexPublishError as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"Index publish attempt {attempt}/{self.max_attempts} for {doc_id} "
                        f"failed, retrying in {delay:.1f}s: {e.message}"
                    )
                    await self._sleep(delay)

        raise IndexPublishError(
            f"Publishing entry {doc_id} failed after {self.max_attempts} attempts: "
            f"{last_error.message if last_error else 'unknown error'}",
            entry_id=entry.id,
        ) from last_error

    async def remove(self, entry_id: int) -> None:
        """Delete the document of a pruned entry (single attempt)."""
        await self._index.delete_document(str(entry_id))
