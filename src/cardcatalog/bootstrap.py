"""Wiring of concrete collaborators, shared by the CLI and the HTTP API."""

import logging
from pathlib import Path
from typing import Any

from cardcatalog.application.services.audit_service import AuditService
from cardcatalog.application.services.fingerprint_service import FingerprintService
from cardcatalog.application.services.index_publisher import IndexPublisher
from cardcatalog.application.services.metadata_extractor import MetadataExtractor
from cardcatalog.application.services.path_enumerator import PathEnumerator
from cardcatalog.application.services.prune_service import PruneService
from cardcatalog.application.services.reconciler import Reconciler
from cardcatalog.application.services.resolver import Resolver
from cardcatalog.application.services.scan_pipeline import ScanPipeline
from cardcatalog.config import Settings
from cardcatalog.domain.exceptions import ConfigurationError
from cardcatalog.domain.ports import IReferenceDatabase
from cardcatalog.infrastructure.integrations.acoustid_client import AcoustIdClient
from cardcatalog.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from cardcatalog.infrastructure.integrations.reference_database import SqlReferenceDatabase
from cardcatalog.infrastructure.integrations.search_index_client import SearchIndexClient
from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class CatalogContainer:
    """Owns the database and every network client for one process.

    Hey future me - the AcoustID RateLimiter is created HERE, once, and handed to the
    Resolver. Two pipelines built from the same container share it, so a scan started
    from the API while another one runs still stays under requests_per_second.
    Clients are created lazily: `cardcatalog prune` never needs an AcoustID key.
    """

    def __init__(self, settings: Settings, database: Database | None = None) -> None:
        self.settings = settings
        self.database = database or Database(settings.database)
        self.acoustid_limiter = RateLimiter.for_acoustid(
            settings.acoustid.requests_per_second
        )
        self._acoustid: AcoustIdClient | None = None
        self._search_index: SearchIndexClient | None = None
        self._reference: MusicBrainzClient | SqlReferenceDatabase | None = None

    def roots(self, override: list[Path] | None = None) -> list[Path]:
        return list(override) if override else list(self.settings.scan.paths)

    def _index_publisher(self) -> IndexPublisher | None:
        if not self.settings.search_index.enabled:
            return None
        if self._search_index is None:
            self._search_index = SearchIndexClient(self.settings.search_index)
        return IndexPublisher(self._search_index, self.settings.search_index)

    def build_scan_pipeline(self, fingerprint: bool | None = None) -> ScanPipeline:
        """Assemble a scan pipeline.

        Raises:
            ConfigurationError: No AcoustID key, or fpcalc missing while fingerprinting
        """
        if self._acoustid is None:
            self._acoustid = AcoustIdClient(self.settings.acoustid)

        use_fingerprint = self.settings.scan.fingerprint if fingerprint is None else fingerprint
        fingerprinter = None
        if use_fingerprint:
            fingerprinter = FingerprintService(self.settings.fingerprint)
            fingerprinter.check_available()

        resolver = Resolver(
            self._acoustid,
            self.acoustid_limiter,
            self.database,
            self.settings.resolver,
        )
        return ScanPipeline(
            enumerator=PathEnumerator(
                self.settings.scan.extensions, self.settings.scan.follow_symlinks
            ),
            extractor=MetadataExtractor(),
            fingerprinter=fingerprinter,
            resolver=resolver,
            reconciler=Reconciler(self.database),
            publisher=self._index_publisher(),
            settings=self.settings.scan,
            resolver_concurrency=self.settings.resolver.concurrency,
        )

    def build_prune_service(self) -> PruneService:
        return PruneService(self.database, self.settings.prune, self._index_publisher())

    def reference_database(self) -> IReferenceDatabase:
        if self._reference is None:
            reference = self.settings.reference
            if reference.backend == "database":
                if not reference.database_url:
                    raise ConfigurationError(
                        "reference.backend is 'database' but reference.database_url is not set"
                    )
                self._reference = SqlReferenceDatabase(
                    reference.database_url, reference.schema_name
                )
            else:
                self._reference = MusicBrainzClient(self.settings.musicbrainz)
        return self._reference

    def build_audit_service(self) -> AuditService:
        return AuditService(
            self.database, self.reference_database(), self.settings.audit.page_size
        )

    async def close(self) -> None:
        for client in (self._acoustid, self._search_index, self._reference):
            if client is not None:
                await client.close()
        await self.database.close()

    async def __aenter__(self) -> "CatalogContainer":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
