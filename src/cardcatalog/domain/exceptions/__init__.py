"""Domain exceptions."""

from pathlib import Path
from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - use a specific subclass so callers can
    # catch precisely (per-item errors vs run-level errors!).
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConfigurationError(DomainException):
    """Configuration is missing or invalid. Fatal at startup."""

    pass


# =============================================================================
# PER-ITEM ERRORS
# Hey future me - everything in this block is about ONE file. The pipeline logs it,
# counts it and moves on. These must never abort a scan!
# =============================================================================


class EnumerationError(DomainException):
    """A directory or file could not be read while walking a root."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Cannot enumerate {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class ExtractionFailed(DomainException):
    """Tags/duration could not be read (unreadable or not audio)."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Metadata extraction failed for {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class FingerprintFailed(DomainException):
    """Audio could not be decoded into a fingerprint."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"Fingerprint failed for {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class ResolutionTransientError(DomainException):
    """Identification service is temporarily unavailable.

    No checkpoint is written, so the item is retried on the next run.
    retry_after is set when the service told us how long to back off (HTTP 429).
    """

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        rate_limited: bool = False,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.rate_limited = rate_limited


class IndexPublishError(DomainException):
    """Search index write failed (after retries, if raised by the publisher)."""

    def __init__(self, message: str, entry_id: int | None = None) -> None:
        super().__init__(message)
        self.entry_id = entry_id


# =============================================================================
# RUN-LEVEL ERRORS
# These abort the whole run (after in-flight items drain).
# =============================================================================


class ResolutionFatalError(DomainException):
    """Identification service rejected us for good (bad API key, unknown client)."""

    def __init__(self, message: str, error_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class ReconciliationError(DomainException):
    """Catalog store is unavailable. Losing writes silently is not an option."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class UnsafePruneError(DomainException):
    """Prune refused because file absence can't be trusted right now."""

    def __init__(self, message: str, unreachable_roots: list[str] | None = None) -> None:
        super().__init__(message)
        self.unreachable_roots = unreachable_roots or []


class ReferenceLookupError(DomainException):
    """Reference database could not be queried."""

    pass
