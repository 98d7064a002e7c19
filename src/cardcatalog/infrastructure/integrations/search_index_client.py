"""Elasticsearch client for the catalog search index (REST over httpx)."""

import logging
from typing import Any

import httpx

from cardcatalog.config.settings import SearchIndexSettings
from cardcatalog.domain.exceptions import IndexPublishError
from cardcatalog.domain.ports import ISearchIndex

logger = logging.getLogger(__name__)

# Hey future me - explicit mapping so paths/ids aren't analyzed as full text. "title",
# "artist", "album" get a keyword sub-field for exact filters and sorting.
INDEX_MAPPING: dict[str, Any] = {
    "mappings": {
        "properties": {
            "id": {"type": "long"},
            "path": {"type": "keyword"},
            "title": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "artist": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "album": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            "track": {"type": "text"},
            "track_number": {"type": "integer"},
            "duration": {"type": "integer"},
            "mbid": {"type": "keyword"},
        }
    }
}


class SearchIndexClient(ISearchIndex):
    """HTTP client for one Elasticsearch index."""

    def __init__(self, settings: SearchIndexSettings) -> None:
        """
        Initialize search index client.

        Args:
            settings: Search index configuration settings
        """
        self.settings = settings
        self.index_name = settings.index_name
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url,
                headers={"Accept": "application/json"},
                timeout=self.settings.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise IndexPublishError(f"Search index unreachable ({method} {url}): {e}") from e

    # Listen, HEAD tells us whether the index exists: 200 = yes, 404 = create it. Two scans
    # starting at once can both see 404, so "resource_already_exists_exception" on create
    # is fine too.
    async def ensure_index(self) -> None:
        """Create the index with its mapping if it doesn't exist yet."""
        response = await self._request("HEAD", f"/{self.index_name}")
        if response.status_code == 200:
            return
        if response.status_code != 404:
            raise IndexPublishError(
                f"Unexpected status checking index {self.index_name}: HTTP {response.status_code}"
            )

        logger.info(f"Search index {self.index_name} does not exist, creating it")
        response = await self._request("PUT", f"/{self.index_name}", json=INDEX_MAPPING)
        if response.status_code == 400 and "resource_already_exists" in response.text:
            return
        if response.is_error:
            raise IndexPublishError(
                f"Creating index {self.index_name} failed: HTTP {response.status_code} {response.text}"
            )

    async def upsert_document(self, doc_id: str, document: dict[str, Any]) -> None:
        """Create or replace one document (PUT is idempotent)."""
        response = await self._request(
            "PUT", f"/{self.index_name}/_doc/{doc_id}", json=document
        )
        if response.is_error:
            raise IndexPublishError(
                f"Indexing document {doc_id} failed: HTTP {response.status_code}"
            )

    async def delete_document(self, doc_id: str) -> None:
        """Delete one document. 404 means it's already gone."""
        response = await self._request("DELETE", f"/{self.index_name}/_doc/{doc_id}")
        if response.status_code == 404:
            return
        if response.is_error:
            raise IndexPublishError(
                f"Deleting document {doc_id} failed: HTTP {response.status_code}"
            )

    async def __aenter__(self) -> "SearchIndexClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
