"""AcoustID HTTP client implementation."""

import logging
from typing import Any

import httpx

from cardcatalog.config.settings import AcoustIdSettings
from cardcatalog.domain.entities import AudioFingerprint, ResolutionCandidate
from cardcatalog.domain.exceptions import (
    ConfigurationError,
    ResolutionFatalError,
    ResolutionTransientError,
)
from cardcatalog.domain.ports import IIdentificationService

logger = logging.getLogger(__name__)

# Hey future me - AcoustID error codes (https://acoustid.org/webservice). Splitting them
# matters a LOT: a fatal code aborts the whole scan (no point hammering the API with a dead
# key), a transient code leaves no checkpoint so the file is retried next run, and a
# per-file code means "this fingerprint is garbage" - treated as no match.
FATAL_ERROR_CODES = frozenset(
    {
        1,  # unknown format
        2,  # missing parameter
        4,  # invalid API key
        6,  # invalid user API key
        12,  # not allowed
        16,  # insecure request
        17,  # unknown application
    }
)
TRANSIENT_ERROR_CODES = frozenset(
    {
        5,  # internal error
        13,  # service temporarily unavailable
        14,  # too many requests
    }
)
ITEM_ERROR_CODES = frozenset(
    {
        3,  # invalid fingerprint
        8,  # invalid duration
        18,  # fingerprint not found
    }
)


class AcoustIdClient(IIdentificationService):
    """HTTP client for the AcoustID lookup API.

    Rate limiting is NOT done here - the resolver owns the single shared limiter
    and acquires a slot before every lookup() call.
    """

    def __init__(self, settings: AcoustIdSettings) -> None:
        """
        Initialize AcoustID client.

        Args:
            settings: AcoustID configuration settings

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not settings.api_key:
            raise ConfigurationError(
                "AcoustID API key is required (acoustid.api_key / CARDCATALOG_ACOUSTID__API_KEY)"
            )
        self.settings = settings
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={"Accept": "application/json"},
                timeout=self.settings.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def lookup(self, fingerprint: AudioFingerprint) -> list[ResolutionCandidate]:
        """
        Look up a fingerprint.

        Args:
            fingerprint: Fingerprint plus duration of the file

        Returns:
            One candidate per returned recording, highest score first

        Raises:
            ResolutionTransientError: Network failure, timeout, 429/5xx, transient codes
            ResolutionFatalError: Bad credentials or a request the service always rejects
        """
        params = {
            "client": self.settings.api_key,
            "format": "json",
            "meta": "recordings",
            # AcoustID wants whole seconds
            "duration": int(fingerprint.duration_seconds),
            "fingerprint": fingerprint.fingerprint,
        }

        client = await self._get_client()
        try:
            response = await client.get("/lookup", params=params)
        except httpx.TimeoutException as e:
            raise ResolutionTransientError(f"AcoustID request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ResolutionTransientError(f"AcoustID request failed: {e}") from e

        if response.status_code == 429:
            raise ResolutionTransientError(
                "AcoustID rate limit hit (HTTP 429)",
                retry_after=_parse_retry_after(response),
                rate_limited=True,
            )
        if response.status_code in (401, 403):
            raise ResolutionFatalError(
                f"AcoustID rejected the client (HTTP {response.status_code})"
            )
        if response.status_code >= 500:
            raise ResolutionTransientError(
                f"AcoustID service error (HTTP {response.status_code})"
            )

        try:
            data = response.json()
        except ValueError as e:
            # AcoustID answers 400 WITH a JSON error body, so only garbage ends up here
            raise ResolutionTransientError(
                f"AcoustID returned invalid JSON (HTTP {response.status_code})"
            ) from e

        return self._parse_response(data)

    def _parse_response(self, data: dict[str, Any]) -> list[ResolutionCandidate]:
        """Turn a lookup response into candidates."""
        status = data.get("status")

        if status == "error":
            error = data.get("error") or {}
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)

            if code in ITEM_ERROR_CODES:
                logger.debug(f"AcoustID rejected fingerprint (code {code}): {message}")
                return []
            if code in TRANSIENT_ERROR_CODES:
                raise ResolutionTransientError(
                    f"AcoustID error {code}: {message}", rate_limited=code == 14
                )
            if code in FATAL_ERROR_CODES:
                raise ResolutionFatalError(f"AcoustID error {code}: {message}", error_code=code)
            # Unknown codes: don't kill the run, don't write a checkpoint either
            raise ResolutionTransientError(f"AcoustID error {code}: {message}")

        if status != "ok":
            raise ResolutionTransientError(f"Unexpected AcoustID response status: {status!r}")

        candidates: list[ResolutionCandidate] = []
        for result in data.get("results", []):
            score = result.get("score")
            if score is None:
                continue
            # Results without "recordings" are fingerprints nobody linked to a recording yet
            for recording in result.get("recordings") or []:
                recording_id = recording.get("id")
                if not recording_id:
                    continue
                duration = recording.get("duration")
                candidates.append(
                    ResolutionCandidate(
                        external_id=recording_id,
                        confidence=float(score),
                        reference_duration_seconds=round(duration) if duration is not None else None,
                        title=recording.get("title"),
                    )
                )

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates

    async def __aenter__(self) -> "AcoustIdClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
