"""Scan pipeline: enumerate -> extract + fingerprint -> resolve -> reconcile -> publish.

Stages:
    PathEnumerator (thread)
        └─► path queue (bounded)
            └─► CPU workers: MetadataExtractor + FingerprintService in a ThreadPoolExecutor
                └─► work queue (bounded)
                    └─► resolver workers: Resolver -> Reconciler -> checkpoint -> IndexPublisher
"""

import asyncio
import logging
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cardcatalog.application.services.index_publisher import IndexPublisher
from cardcatalog.application.services.metadata_extractor import MetadataExtractor
from cardcatalog.application.services.path_enumerator import PathEnumerator
from cardcatalog.application.services.reconciler import Reconciler
from cardcatalog.application.services.resolver import Resolver
from cardcatalog.config.settings import ScanSettings
from cardcatalog.domain.entities import (
    AudioFingerprint,
    ReconcileAction,
    ResolutionOutcome,
    ScanReport,
    ScanStatus,
    TrackMetadata,
)
from cardcatalog.domain.exceptions import (
    ExtractionFailed,
    FingerprintFailed,
    IndexPublishError,
)
from cardcatalog.domain.ports import IFingerprintComputer
from cardcatalog.infrastructure.observability import (
    log_operation,
    log_summary,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

# Paths pulled from the enumerator thread per hop
ENUMERATION_BATCH_SIZE = 64
PROGRESS_LOG_INTERVAL = 500


@dataclass
class ScannedFile:
    """Output of the CPU stage for one path."""

    path: Path
    metadata: TrackMetadata
    fingerprint: AudioFingerprint | None = None
    # Set when the lookup is already known to be skipped (cooldown / identified)
    precheck: ResolutionOutcome | None = None


def _next_batch(paths: Iterator[Path], size: int) -> list[Path]:
    batch: list[Path] = []
    for path in paths:
        batch.append(path)
        if len(batch) >= size:
            break
    return batch


class ScanPipeline:
    """Runs one scan pass over a set of roots.

    Hey future me - two pools, on purpose separate:
    - cpu_workers tasks push mutagen + fpcalc into a ThreadPoolExecutor sized to the cores
      (fpcalc is a subprocess, so the decode really runs in parallel)
    - resolver_concurrency tasks do the network part; they all share ONE RateLimiter
      (inside the Resolver), so adding workers never adds requests per second.
    Both queues are bounded, so a slow AcoustID backs up into fingerprinting and then
    into enumeration instead of piling 100k paths into memory.

    Shutdown:
    - request_stop() (SIGINT/SIGTERM): no new paths are dispatched, paths still waiting
      for extraction are counted as skipped "cancelled", everything already extracted
      finishes reconciliation.
    - A fatal error (ResolutionFatalError, ReconciliationError, anything unexpected) also
      drops the extracted items still queued, and is re-raised once everything drained.
    Every queue is always drained down to its sentinels, so no stage can block on a put.
    """

    def __init__(
        self,
        enumerator: PathEnumerator,
        extractor: MetadataExtractor,
        fingerprinter: IFingerprintComputer | None,
        resolver: Resolver,
        reconciler: Reconciler,
        publisher: IndexPublisher | None,
        settings: ScanSettings,
        resolver_concurrency: int = 3,
    ) -> None:
        self._enumerator = enumerator
        self._extractor = extractor
        self._fingerprinter = fingerprinter
        self._resolver = resolver
        self._reconciler = reconciler
        self._publisher = publisher
        self.cpu_workers = settings.cpu_workers
        self.queue_size = settings.queue_size
        self.resolver_concurrency = resolver_concurrency

        self.report = ScanReport()
        self._stop = asyncio.Event()
        self._fatal_error: BaseException | None = None

    @property
    def is_running(self) -> bool:
        return self.report.status == ScanStatus.RUNNING

    def request_stop(self) -> None:
        """Graceful shutdown: finish in-flight items, dispatch nothing new."""
        if not self._stop.is_set():
            logger.info("Stop requested, finishing in-flight items")
        self._stop.set()

    def _abort(self, error: BaseException) -> None:
        if self._fatal_error is None:
            self._fatal_error = error
            logger.error(f"Aborting scan: {error}")
        self._stop.set()

    async def run(self, roots: Sequence[Path]) -> ScanReport:
        """Scan the roots once.

        Returns:
            The report (also kept on self.report)

        Raises:
            ResolutionFatalError: Identification service refused us
            ReconciliationError: Catalog store unavailable
        """
        set_correlation_id()
        self.report = ScanReport(status=ScanStatus.RUNNING, started_at=datetime.now(UTC))
        self._stop = asyncio.Event()
        self._fatal_error = None

        try:
            async with log_operation(logger, "catalog_scan", roots=len(roots)):
                await self._run(roots)
                if self._fatal_error is not None:
                    raise self._fatal_error
            self.report.status = (
                ScanStatus.CANCELLED if self._stop.is_set() else ScanStatus.COMPLETED
            )
        except asyncio.CancelledError:
            self.report.status = ScanStatus.CANCELLED
            raise
        except Exception as e:
            self.report.status = ScanStatus.FAILED
            self.report.error_message = str(e) or type(e).__name__
            raise
        finally:
            self.report.completed_at = datetime.now(UTC)
            log_summary(logger, "Scan finished", self.report.to_dict())
        return self.report

    async def _run(self, roots: Sequence[Path]) -> None:
        if self._publisher is not None:
            await self._publisher.prepare()

        path_queue: asyncio.Queue[Path | None] = asyncio.Queue(maxsize=self.queue_size)
        work_queue: asyncio.Queue[ScannedFile | None] = asyncio.Queue(
            maxsize=self.queue_size
        )
        executor = ThreadPoolExecutor(
            max_workers=self.cpu_workers, thread_name_prefix="cardcatalog-cpu"
        )

        producer = asyncio.create_task(self._produce(roots, path_queue))
        cpu_tasks = [
            asyncio.create_task(self._cpu_worker(path_queue, work_queue, executor))
            for _ in range(self.cpu_workers)
        ]
        resolver_tasks = [
            asyncio.create_task(self._resolver_worker(work_queue))
            for _ in range(self.resolver_concurrency)
        ]
        tasks = [producer, *cpu_tasks, *resolver_tasks]

        try:
            await producer
            await asyncio.gather(*cpu_tasks)
            for _ in resolver_tasks:
                await work_queue.put(None)
            await asyncio.gather(*resolver_tasks)
        except BaseException:
            # Hard cancellation of run() itself - no draining, just tear down
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _produce(self, roots: Sequence[Path], path_queue: asyncio.Queue[Path | None]) -> None:
        paths = self._enumerator.iter_paths(roots)
        try:
            while not self._stop.is_set():
                # os.walk blocks, so the generator advances in a worker thread
                batch = await asyncio.to_thread(_next_batch, paths, ENUMERATION_BATCH_SIZE)
                if not batch:
                    break
                for path in batch:
                    if self._stop.is_set():
                        break
                    self.report.discovered += 1
                    await path_queue.put(path)
        except Exception as e:
            self._abort(e)
        finally:
            self.report.enumeration_errors = len(self._enumerator.errors)
            for _ in range(self.cpu_workers):
                await path_queue.put(None)

    async def _cpu_worker(
        self,
        path_queue: asyncio.Queue[Path | None],
        work_queue: asyncio.Queue[ScannedFile | None],
        executor: ThreadPoolExecutor,
    ) -> None:
        loop = asyncio.get_running_loop()
        while True:
            path = await path_queue.get()
            if path is None:
                return
            if self._stop.is_set():
                self.report.skip("cancelled")
                continue
            try:
                scanned = await self._prepare(path, loop, executor)
            except Exception as e:
                self._abort(e)
                self.report.fail("fatal_error")
                continue
            if scanned is not None:
                await work_queue.put(scanned)

    async def _prepare(
        self,
        path: Path,
        loop: asyncio.AbstractEventLoop,
        executor: ThreadPoolExecutor,
    ) -> ScannedFile | None:
        """Extract + precheck + fingerprint. None = item is finished (skipped or failed)."""
        try:
            metadata = await loop.run_in_executor(executor, self._extractor.extract, path)
        except ExtractionFailed as e:
            logger.warning(e.message)
            self.report.fail("extraction_failed")
            return None

        if metadata.is_default():
            logger.info(f"Skipping {path}: no tags and no duration")
            self.report.skip("no_metadata")
            return None

        scanned = ScannedFile(path=path, metadata=metadata)
        scanned.precheck = await self._resolver.precheck(str(path))

        # No point decoding audio for a lookup that won't happen
        if scanned.precheck is None and self._fingerprinter is not None:
            try:
                scanned.fingerprint = await loop.run_in_executor(
                    executor, self._fingerprinter.compute, path
                )
            except FingerprintFailed as e:
                logger.warning(e.message)
                self.report.fingerprint_failures += 1
        return scanned

    async def _resolver_worker(self, work_queue: asyncio.Queue[ScannedFile | None]) -> None:
        while True:
            scanned = await work_queue.get()
            if scanned is None:
                return
            # Extracted and fingerprinted already: a graceful stop still reconciles it,
            # only a fatal abort drops it
            if self._fatal_error is not None:
                self.report.skip("cancelled")
                continue
            try:
                await self._resolve_and_store(scanned)
            except Exception as e:
                self._abort(e)
                self.report.fail("fatal_error")

    async def _resolve_and_store(self, scanned: ScannedFile) -> None:
        path = str(scanned.path)
        outcome = scanned.precheck or await self._resolver.resolve(
            path, scanned.fingerprint, scanned.metadata.duration_seconds
        )
        if outcome.attempted:
            self.report.lookups += 1

        # Every path gets reconciled, with or without a match - a skipped lookup still
        # refreshes the tags
        result = await self._reconciler.reconcile(path, scanned.metadata, outcome.accepted)
        entry = result.entry

        if outcome.attempted and outcome.checked_at is not None and entry.id is not None:
            await self._resolver.record_checkpoint(entry.id, outcome.checked_at)

        if outcome.accepted is not None:
            self.report.matched += 1
        if result.action == ReconcileAction.INSERTED:
            self.report.inserted += 1
        elif result.action == ReconcileAction.UPDATED:
            self.report.updated += 1
        else:
            self.report.unchanged += 1
        self.report.processed += 1

        if self._publisher is not None:
            try:
                await self._publisher.publish(entry)
            except IndexPublishError as e:
                self.report.index_failures += 1
                logger.warning(e.message)

        if self.report.processed % PROGRESS_LOG_INTERVAL == 0:
            logger.info(
                f"Progress: {self.report.processed}/{self.report.discovered} processed, "
                f"{self.report.lookups} lookups, {self.report.matched} matched"
            )
