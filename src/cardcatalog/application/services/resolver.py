"""Rate-limited resolution of fingerprints to recording identifiers."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from cardcatalog.config.settings import ResolverSettings
from cardcatalog.domain.entities import (
    AudioFingerprint,
    ResolutionCandidate,
    ResolutionOutcome,
    ResolutionState,
    ResolutionStatus,
)
from cardcatalog.domain.exceptions import ReconciliationError, ResolutionTransientError
from cardcatalog.domain.ports import IIdentificationService
from cardcatalog.infrastructure.persistence.database import Database
from cardcatalog.infrastructure.persistence.repositories import (
    CatalogEntryRepository,
    ResolutionCheckpointRepository,
)
from cardcatalog.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def select_candidate(
    candidates: list[ResolutionCandidate],
    duration_seconds: int,
    accept_threshold: float,
    duration_tolerance_seconds: int,
    allow_missing_reference_duration: bool = False,
) -> tuple[ResolutionCandidate | None, str | None]:
    """Pick the best candidate and decide whether to accept it.

    Hey future me - ONLY the top-scoring candidate is considered. If it fails the duration
    guard we do NOT fall back to the runner-up: a high-score fingerprint hit with the wrong
    length is exactly the collision the guard exists for, and a lower-scored recording
    isn't more trustworthy because of it.

    Returns:
        (accepted candidate or None, rejection reason or None)
    """
    if not candidates:
        return None, "no_candidates"

    best = max(candidates, key=lambda c: c.confidence)
    if best.confidence < accept_threshold:
        return None, f"low_confidence ({best.confidence:.2f} < {accept_threshold:.2f})"

    if best.reference_duration_seconds is None:
        if allow_missing_reference_duration:
            return best, None
        return None, "no_reference_duration"

    difference = abs(best.reference_duration_seconds - duration_seconds)
    if difference > duration_tolerance_seconds:
        return None, f"duration_mismatch ({difference}s > {duration_tolerance_seconds}s)"

    return best, None


class Resolver:
    """Turns fingerprints into accepted candidates under the shared rate limit.

    Hey future me - the limiter is passed IN and shared by every resolver worker. The
    resolver never writes a checkpoint by itself during resolve(): for a brand-new path
    there is no catalog row yet to hang it on. The pipeline reconciles first, then calls
    record_checkpoint() for every outcome with attempted=True.
    """

    def __init__(
        self,
        identification: IIdentificationService,
        rate_limiter: RateLimiter,
        database: Database,
        settings: ResolverSettings,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._identification = identification
        self._rate_limiter = rate_limiter
        self._database = database
        self.settings = settings
        self._clock = clock
        self.cooldown = timedelta(seconds=settings.cooldown_seconds)

    async def get_state(self, path: str) -> ResolutionState | None:
        try:
            async with self._database.session_scope() as session:
                return await CatalogEntryRepository(session).get_resolution_state(path)
        except (SQLAlchemyError, OSError) as e:
            raise ReconciliationError(f"Catalog store unavailable: {e}", path=path) from e

    def _skip_outcome(self, state: ResolutionState | None) -> ResolutionOutcome | None:
        """Outcome for paths that must not be looked up, None if a lookup is due."""
        if state is None:
            return None

        if self.settings.skip_resolved_entries and state.external_id is not None:
            return ResolutionOutcome(
                status=ResolutionStatus.SKIPPED_RESOLVED,
                reason="already identified",
            )

        if state.last_checked_at is not None:
            elapsed = self._clock() - state.last_checked_at
            if elapsed < self.cooldown:
                return ResolutionOutcome(
                    status=ResolutionStatus.SKIPPED_COOLDOWN,
                    reason=f"checked {int(elapsed.total_seconds())}s ago",
                )
        return None

    async def precheck(self, path: str) -> ResolutionOutcome | None:
        """Skip outcome for a path before any fingerprinting, None if a lookup is due.

        The pipeline calls this before fpcalc so files in cooldown cost one SELECT
        instead of a full audio decode.
        """
        return self._skip_outcome(await self.get_state(path))

    async def resolve(
        self,
        path: str,
        fingerprint: AudioFingerprint | None,
        duration_seconds: int,
    ) -> ResolutionOutcome:
        """Resolve one file.

        Args:
            path: Catalog key of the file
            fingerprint: Fingerprint, None if fingerprinting failed
            duration_seconds: Duration from the tags (what the catalog stores)

        Returns:
            Outcome - MATCHED/NO_MATCH carry attempted=True and checked_at

        Raises:
            ResolutionFatalError: Service rejects us for good (propagates, aborts the run)
        """
        skipped = self._skip_outcome(await self.get_state(path))
        if skipped is not None:
            logger.debug(f"Lookup skipped for {path}: {skipped.reason}")
            return skipped

        if fingerprint is None:
            # No external call attempted, so no checkpoint either
            return ResolutionOutcome(
                status=ResolutionStatus.SKIPPED_NO_FINGERPRINT,
                reason="fingerprint unavailable",
            )

        # Tags may lack a duration, fpcalc always knows it
        duration = duration_seconds or fingerprint.duration_seconds

        # The slot stays taken until the lookup returned
        async with self._rate_limiter:
            checked_at = self._clock()
            try:
                candidates = await self._identification.lookup(fingerprint)
            except ResolutionTransientError as e:
                if e.rate_limited:
                    await self._rate_limiter.handle_rate_limit_response(e.retry_after)
                logger.warning(f"Lookup for {path} failed, will retry next run: {e.message}")
                return ResolutionOutcome(
                    status=ResolutionStatus.TRANSIENT_ERROR,
                    reason=e.message,
                )
        self._rate_limiter.reset_backoff()

        accepted, reason = select_candidate(
            candidates,
            duration,
            self.settings.accept_threshold,
            self.settings.duration_tolerance_seconds,
            self.settings.allow_missing_reference_duration,
        )
        if accepted is None:
            logger.debug(f"No match for {path}: {reason}")
            return ResolutionOutcome(
                status=ResolutionStatus.NO_MATCH,
                attempted=True,
                checked_at=checked_at,
                reason=reason,
            )

        logger.debug(
            f"Matched {path} -> {accepted.external_id} (score {accepted.confidence:.3f})"
        )
        return ResolutionOutcome(
            status=ResolutionStatus.MATCHED,
            candidate=accepted,
            attempted=True,
            checked_at=checked_at,
        )

    async def record_checkpoint(self, entry_id: int, checked_at: datetime) -> None:
        """Write/refresh the last-checked time of an entry."""
        try:
            async with self._database.session_scope() as session:
                await ResolutionCheckpointRepository(session).touch(entry_id, checked_at)
        except (SQLAlchemyError, OSError) as e:
            raise ReconciliationError(f"Catalog store unavailable: {e}") from e
