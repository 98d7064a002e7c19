"""Runs at most one scan at a time in the background of the API process."""

import asyncio
import logging
from pathlib import Path

from cardcatalog.application.services.scan_pipeline import ScanPipeline
from cardcatalog.bootstrap import CatalogContainer
from cardcatalog.domain.exceptions import ConfigurationError, DomainException

logger = logging.getLogger(__name__)


class ScanAlreadyRunningError(Exception):
    """POST /scan while a scan is in progress."""


class ScanRunner:
    """Owns the background scan task.

    Hey future me - the request that starts a scan returns immediately (202); progress is
    polled through GET /scan which reads the live ScanReport of the pipeline. On shutdown
    the lifespan calls stop(): graceful, in-flight items still get reconciled.
    """

    def __init__(self, container: CatalogContainer) -> None:
        self._container = container
        self._task: asyncio.Task[None] | None = None
        self.pipeline: ScanPipeline | None = None
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, paths: list[Path], fingerprint: bool | None = None) -> ScanPipeline:
        """Start a scan in the background.

        Raises:
            ScanAlreadyRunningError: A scan is in progress
            ConfigurationError: No roots, no AcoustID key, fpcalc missing
        """
        if self.is_running:
            raise ScanAlreadyRunningError("A scan is already running")

        roots = self._container.roots(paths)
        if not roots:
            raise ConfigurationError("No library paths configured (scan.paths)")

        pipeline = self._container.build_scan_pipeline(fingerprint=fingerprint)
        self.pipeline = pipeline
        self.last_error = None
        self._task = asyncio.create_task(self._run(pipeline, roots), name="catalog-scan")
        return pipeline

    async def _run(self, pipeline: ScanPipeline, roots: list[Path]) -> None:
        try:
            await pipeline.run(roots)
        except DomainException as e:
            # Already logged by the pipeline; keep it for GET /scan
            self.last_error = e.message
        except Exception as e:
            # A bug, not a run-level error. log_operation logged the traceback already
            self.last_error = str(e) or type(e).__name__

    async def stop(self) -> None:
        if self.pipeline is not None and self.is_running:
            self.pipeline.request_stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
