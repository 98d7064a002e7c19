"""End-to-end tests for the scan pipeline (real SQLite store, fake externals)."""

from pathlib import Path

import pytest

from cardcatalog.application.services.index_publisher import IndexPublisher
from cardcatalog.application.services.reconciler import Reconciler
from cardcatalog.application.services.resolver import Resolver
from cardcatalog.application.services.scan_pipeline import ScanPipeline
from cardcatalog.config.settings import ResolverSettings, ScanSettings, SearchIndexSettings
from cardcatalog.domain.entities import (
    AudioFingerprint,
    ResolutionCandidate,
    ScanStatus,
    TrackMetadata,
)
from cardcatalog.domain.exceptions import ResolutionFatalError, ResolutionTransientError
from cardcatalog.infrastructure.persistence.repositories import (
    CatalogEntryRepository,
    ResolutionCheckpointRepository,
)
from cardcatalog.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig
from fakes import (
    FakeClock,
    FakeEnumerator,
    FakeExtractor,
    FakeFingerprinter,
    FakeIdentificationService,
    FakeSearchIndex,
    no_sleep,
)

SONG = Path("/music/song.flac")
FOO = TrackMetadata(title="Foo", artist="Bar", track="Foo", duration_seconds=180)
MATCH = ResolutionCandidate(external_id="abc-123", confidence=0.9, reference_duration_seconds=180)


class Harness:
    """Builds pipelines that share one store, one index and one identification service."""

    def __init__(self, database, service: FakeIdentificationService) -> None:
        self.database = database
        self.service = service
        self.index = FakeSearchIndex()
        self.clock = FakeClock()
        self.limiter = RateLimiter(config=RateLimiterConfig(max_calls=1000))
        self.fingerprinter = FakeFingerprinter()

    def pipeline(self, paths: list[Path], records: dict[str, TrackMetadata]) -> ScanPipeline:
        resolver = Resolver(
            self.service, self.limiter, self.database, ResolverSettings(), clock=self.clock
        )
        return ScanPipeline(
            enumerator=FakeEnumerator(paths),
            extractor=FakeExtractor(records),
            fingerprinter=self.fingerprinter,
            resolver=resolver,
            reconciler=Reconciler(self.database),
            publisher=IndexPublisher(self.index, SearchIndexSettings(), sleep=no_sleep),
            settings=ScanSettings(cpu_workers=2, queue_size=4),
            resolver_concurrency=2,
        )

    async def entry(self, path: Path):
        async with self.database.session_scope() as session:
            return await CatalogEntryRepository(session).get_by_path(str(path))

    async def checkpoint(self, entry_id: int):
        async with self.database.session_scope() as session:
            return await ResolutionCheckpointRepository(session).get_last_checked(entry_id)


@pytest.fixture
def harness(database):
    return Harness(database, FakeIdentificationService([MATCH]))


class TestScanPipeline:
    """Full scan runs."""

    async def test_new_file_is_cataloged_identified_and_published(self, harness):
        report = await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])

        assert report.status == ScanStatus.COMPLETED
        assert report.discovered == 1
        assert report.processed == 1
        assert report.inserted == 1
        assert report.matched == 1
        assert report.lookups == 1

        entry = await harness.entry(SONG)
        assert entry.title == "Foo"
        assert entry.artist == "Bar"
        assert entry.duration_seconds == 180
        assert entry.external_id == "abc-123"
        assert await harness.checkpoint(entry.id) == harness.clock.now
        assert harness.index.documents[str(entry.id)]["id"] == entry.id
        assert harness.index.documents[str(entry.id)]["mbid"] == "abc-123"
        assert harness.index.ensure_calls == 1

    async def test_rerun_is_idempotent_and_skips_lookups(self, harness):
        await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])
        first = await harness.entry(SONG)

        report = await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])

        assert report.unchanged == 1
        assert report.inserted == 0
        assert report.lookups == 0
        assert len(harness.service.calls) == 1
        # identified files are not even decoded again
        assert harness.fingerprinter.calls == [SONG]
        second = await harness.entry(SONG)
        assert second.id == first.id
        assert second.external_id == "abc-123"
        assert list(harness.index.documents) == [str(first.id)]

    async def test_every_path_ends_in_exactly_one_bucket(self, harness):
        paths = [
            SONG,
            Path("/music/notes.mp3"),
            Path("/music/empty.flac"),
            Path("/music/broken.flac"),
        ]
        records = {
            "song.flac": FOO,
            "empty.flac": TrackMetadata(),
            "broken.flac": TrackMetadata(title="Broken", track="Broken", duration_seconds=90),
        }
        harness.fingerprinter.broken = {"broken.flac"}

        report = await harness.pipeline(paths, records).run([Path("/music")])

        assert report.discovered == 4
        assert report.processed == 2
        assert report.skip_reasons == {"no_metadata": 1}
        assert report.failure_reasons == {"extraction_failed": 1}
        assert report.fingerprint_failures == 1
        assert report.processed + report.skipped + report.failed == report.discovered

        # cataloged by its tags, but no lookup happened so no checkpoint
        broken = await harness.entry(Path("/music/broken.flac"))
        assert broken.title == "Broken"
        assert broken.external_id is None
        assert await harness.checkpoint(broken.id) is None
        assert await harness.entry(Path("/music/empty.flac")) is None

    async def test_transient_error_leaves_no_checkpoint(self, database):
        harness = Harness(database, FakeIdentificationService(error=ResolutionTransientError("503")))

        report = await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])

        assert report.status == ScanStatus.COMPLETED
        assert report.processed == 1
        assert report.lookups == 0
        entry = await harness.entry(SONG)
        assert entry.external_id is None
        assert await harness.checkpoint(entry.id) is None

    async def test_no_match_writes_checkpoint(self, database):
        harness = Harness(database, FakeIdentificationService([]))

        report = await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])

        entry = await harness.entry(SONG)
        assert report.matched == 0
        assert report.lookups == 1
        assert await harness.checkpoint(entry.id) == harness.clock.now

    async def test_index_outage_does_not_fail_the_scan(self, harness):
        harness.index.fail_times = 100

        report = await harness.pipeline([SONG], {"song.flac": FOO}).run([Path("/music")])

        assert report.status == ScanStatus.COMPLETED
        assert report.index_failures == 1
        assert (await harness.entry(SONG)).external_id == "abc-123"

    async def test_fatal_identification_error_aborts_run(self, database):
        harness = Harness(
            database, FakeIdentificationService(error=ResolutionFatalError("invalid API key", 4))
        )
        paths = [Path(f"/music/{i}.flac") for i in range(10)]
        records = {p.name: FOO for p in paths}
        pipeline = harness.pipeline(paths, records)

        with pytest.raises(ResolutionFatalError):
            await pipeline.run([Path("/music")])

        assert pipeline.report.status == ScanStatus.FAILED
        assert pipeline.report.error_message == "invalid API key"
        assert pipeline.report.completed_at is not None
        assert pipeline.report.failure_reasons["fatal_error"] >= 1

    async def test_request_stop_finishes_in_flight_items(self, database):
        paths = [Path(f"/music/{i}.flac") for i in range(20)]
        records = {p.name: FOO for p in paths}
        holder: dict[str, ScanPipeline] = {}

        class StoppingService(FakeIdentificationService):
            async def lookup(self, fingerprint: AudioFingerprint) -> list[ResolutionCandidate]:
                holder["pipeline"].request_stop()
                return await super().lookup(fingerprint)

        harness = Harness(database, StoppingService([MATCH]))
        pipeline = harness.pipeline(paths, records)
        holder["pipeline"] = pipeline

        report = await pipeline.run([Path("/music")])

        assert report.status == ScanStatus.CANCELLED
        assert report.processed >= 1
        assert report.processed < 20
        assert report.processed + report.skipped + report.failed == report.discovered
        # the item that triggered the stop was still reconciled
        async with database.session_scope() as session:
            assert await CatalogEntryRepository(session).count() == report.processed

    async def test_request_stop_reconciles_everything_already_fingerprinted(self, database):
        paths = [Path(f"/music/{i}.flac") for i in range(20)]
        records = {p.name: FOO for p in paths}
        holder: dict[str, ScanPipeline] = {}

        class StoppingService(FakeIdentificationService):
            async def lookup(self, fingerprint: AudioFingerprint) -> list[ResolutionCandidate]:
                holder["pipeline"].request_stop()
                return await super().lookup(fingerprint)

        harness = Harness(database, StoppingService([MATCH]))
        pipeline = harness.pipeline(paths, records)
        holder["pipeline"] = pipeline

        report = await pipeline.run([Path("/music")])

        # only paths that never reached extraction are cancelled
        assert report.processed == len(harness.fingerprinter.calls)
        assert report.skip_reasons.get("cancelled", 0) == report.discovered - report.processed
