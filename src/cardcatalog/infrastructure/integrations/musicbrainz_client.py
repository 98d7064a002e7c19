"""MusicBrainz HTTP client implementation with rate limiting."""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from cardcatalog.config.settings import MusicBrainzSettings
from cardcatalog.domain.entities import ReferenceRecording
from cardcatalog.domain.exceptions import ReferenceLookupError
from cardcatalog.domain.ports import IReferenceDatabase
from cardcatalog.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class MusicBrainzClient(IReferenceDatabase):
    """Reference database backed by the MusicBrainz web service."""

    # Hey future me, MusicBrainz is STRICT about rate limiting - 1 req/sec, NO EXCEPTIONS!
    # Violate it and they IP-ban you for hours. The limiter is our own instance (not the
    # AcoustID one - different service, different budget). Tests pass one in with a fake
    # clock so they don't sleep.
    def __init__(
        self,
        settings: MusicBrainzSettings,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """
        Initialize MusicBrainz client.

        Args:
            settings: MusicBrainz configuration settings
            rate_limiter: Limiter for this client (defaults to 1 req/sec)
        """
        self.settings = settings
        self._rate_limiter = rate_limiter or RateLimiter.for_musicbrainz(
            settings.requests_per_second
        )
        self._client: httpx.AsyncClient | None = None

    # Listen future me, MusicBrainz REQUIRES a User-Agent with app name, version AND contact.
    # Without it requests get rejected with 403. Format: "AppName/Version ( contact )".
    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            user_agent = (
                f"{self.settings.app_name}/{self.settings.app_version} "
                f"( {self.settings.contact} )"
            )
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "User-Agent": user_agent,
                    "Accept": "application/json",
                },
                timeout=self.settings.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """
        Make a rate-limited request to MusicBrainz API.

        Raises:
            httpx.HTTPError: If the request fails
        """
        client = await self._get_client()
        async with self._rate_limiter:
            response = await client.request(method, url, **kwargs)

        if response.status_code == 503:
            # MB signals "slow down" with 503, not 429
            await self._rate_limiter.handle_rate_limit_response(
                _retry_after(response)
            )
        else:
            self._rate_limiter.reset_backoff()
        return response

    async def lookup_recording(self, recording_id: str) -> ReferenceRecording | None:
        """
        Lookup one recording by MBID.

        Returns:
            The recording, or None if MusicBrainz doesn't know the id

        Raises:
            ReferenceLookupError: If the request fails
        """
        try:
            response = await self._rate_limited_request(
                "GET",
                f"/recording/{recording_id}",
                params={"fmt": "json", "inc": "artist-credits+releases"},
            )
            # 404 = unknown MBID, 400 = not even a valid UUID. Both mean "not in the reference".
            if response.status_code in (400, 404):
                return None
            response.raise_for_status()
            return _parse_recording(response.json())
        except httpx.HTTPError as e:
            raise ReferenceLookupError(
                f"MusicBrainz lookup of recording {recording_id} failed: {e}"
            ) from e

    async def get_recordings(
        self, external_ids: Sequence[str]
    ) -> dict[str, ReferenceRecording]:
        """Batch lookup (one request per id - the web service has no batch endpoint)."""
        recordings: dict[str, ReferenceRecording] = {}
        for recording_id in dict.fromkeys(external_ids):
            recording = await self.lookup_recording(recording_id)
            if recording is not None:
                recordings[recording_id] = recording
        return recordings

    async def __aenter__(self) -> "MusicBrainzClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _parse_recording(data: dict[str, Any]) -> ReferenceRecording:
    credits = data.get("artist-credit") or []
    artist = "".join(
        f"{credit.get('name', '')}{credit.get('joinphrase', '')}" for credit in credits
    ) or None

    releases = data.get("releases") or []
    album = releases[0].get("title") if releases else None

    # MusicBrainz lengths are milliseconds
    length = data.get("length")
    duration_seconds = round(length / 1000) if length else None

    return ReferenceRecording(
        external_id=data["id"],
        title=data.get("title", ""),
        artist=artist,
        album=album,
        duration_seconds=duration_seconds,
    )


def _retry_after(response: httpx.Response) -> float | None:
    try:
        return float(response.headers["Retry-After"])
    except (KeyError, ValueError):
        return None
