"""Tests for the AcoustID lookup client."""

import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from cardcatalog.config.settings import AcoustIdSettings
from cardcatalog.domain.entities import AudioFingerprint
from cardcatalog.domain.exceptions import (
    ConfigurationError,
    ResolutionFatalError,
    ResolutionTransientError,
)
from cardcatalog.infrastructure.integrations.acoustid_client import AcoustIdClient

LOOKUP_URL = re.compile(r"https://api\.acoustid\.org/v2/lookup.*")

FINGERPRINT = AudioFingerprint(fingerprint="AQADtEmUaEkSRZEG", duration_seconds=181)


@pytest.fixture
async def client():
    client = AcoustIdClient(AcoustIdSettings(api_key="test-key"))
    yield client
    await client.close()


def _error(code: int, message: str = "boom") -> dict:
    return {"status": "error", "error": {"code": code, "message": message}}


class TestAcoustIdClientSetup:
    """Construction."""

    def test_missing_api_key_is_configuration_error(self):
        """No key means the scan cannot start."""
        with pytest.raises(ConfigurationError):
            AcoustIdClient(AcoustIdSettings(api_key=None))


class TestAcoustIdLookup:
    """Successful lookups."""

    async def test_sends_client_key_duration_and_fingerprint(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        """Test request parameters."""
        httpx_mock.add_response(url=LOOKUP_URL, json={"status": "ok", "results": []})

        await client.lookup(FINGERPRINT)

        request = httpx_mock.get_request()
        assert request.url.path == "/v2/lookup"
        assert request.url.params["client"] == "test-key"
        assert request.url.params["duration"] == "181"
        assert request.url.params["fingerprint"] == "AQADtEmUaEkSRZEG"
        assert request.url.params["meta"] == "recordings"

    async def test_parses_recordings_sorted_by_score(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        """Every recording of every result becomes a candidate, best score first."""
        httpx_mock.add_response(
            url=LOOKUP_URL,
            json={
                "status": "ok",
                "results": [
                    {
                        "id": "result-low",
                        "score": 0.4,
                        "recordings": [{"id": "rec-low", "duration": 200.4}],
                    },
                    {
                        "id": "result-high",
                        "score": 0.95,
                        "recordings": [
                            {"id": "rec-a", "duration": 180.6, "title": "Foo"},
                            {"id": "rec-b"},
                        ],
                    },
                    # fingerprint known but never linked to a recording
                    {"id": "result-bare", "score": 0.99},
                ],
            },
        )

        candidates = await client.lookup(FINGERPRINT)

        assert [c.external_id for c in candidates] == ["rec-a", "rec-b", "rec-low"]
        assert candidates[0].confidence == 0.95
        assert candidates[0].reference_duration_seconds == 181
        assert candidates[0].title == "Foo"
        assert candidates[1].reference_duration_seconds is None
        assert candidates[2].reference_duration_seconds == 200

    async def test_empty_results_is_no_candidates(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LOOKUP_URL, json={"status": "ok", "results": []})
        assert await client.lookup(FINGERPRINT) == []


class TestAcoustIdErrors:
    """Error classification."""

    @pytest.mark.parametrize("code", [4, 6, 17])
    async def test_credential_codes_are_fatal(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock, code: int
    ):
        httpx_mock.add_response(url=LOOKUP_URL, status_code=400, json=_error(code))

        with pytest.raises(ResolutionFatalError) as exc_info:
            await client.lookup(FINGERPRINT)

        assert exc_info.value.error_code == code

    @pytest.mark.parametrize("code", [5, 13, 14])
    async def test_service_codes_are_transient(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock, code: int
    ):
        httpx_mock.add_response(url=LOOKUP_URL, json=_error(code))

        with pytest.raises(ResolutionTransientError) as exc_info:
            await client.lookup(FINGERPRINT)

        assert exc_info.value.rate_limited is (code == 14)

    @pytest.mark.parametrize("code", [3, 8, 18])
    async def test_fingerprint_codes_mean_no_match(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock, code: int
    ):
        httpx_mock.add_response(url=LOOKUP_URL, status_code=400, json=_error(code))
        assert await client.lookup(FINGERPRINT) == []

    async def test_unknown_code_is_transient(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LOOKUP_URL, json=_error(999))
        with pytest.raises(ResolutionTransientError):
            await client.lookup(FINGERPRINT)

    async def test_http_401_is_fatal(self, client: AcoustIdClient, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=LOOKUP_URL, status_code=401, text="unauthorized")
        with pytest.raises(ResolutionFatalError):
            await client.lookup(FINGERPRINT)

    async def test_http_429_carries_retry_after(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(
            url=LOOKUP_URL, status_code=429, headers={"Retry-After": "7"}, text=""
        )

        with pytest.raises(ResolutionTransientError) as exc_info:
            await client.lookup(FINGERPRINT)

        assert exc_info.value.rate_limited is True
        assert exc_info.value.retry_after == 7.0

    async def test_http_503_is_transient(self, client: AcoustIdClient, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=LOOKUP_URL, status_code=503, text="down")
        with pytest.raises(ResolutionTransientError):
            await client.lookup(FINGERPRINT)

    async def test_timeout_is_transient(self, client: AcoustIdClient, httpx_mock: HTTPXMock):
        httpx_mock.add_exception(httpx.ReadTimeout("too slow"), url=LOOKUP_URL)
        with pytest.raises(ResolutionTransientError):
            await client.lookup(FINGERPRINT)

    async def test_garbage_body_is_transient(
        self, client: AcoustIdClient, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LOOKUP_URL, text="<html>proxy error</html>")
        with pytest.raises(ResolutionTransientError):
            await client.lookup(FINGERPRINT)
