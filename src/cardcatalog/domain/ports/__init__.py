"""Domain ports (interfaces) for dependency inversion.

Hey future me - every external collaborator of the catalog is behind one of these.
Tests inject fakes, production wires the httpx/SQL/fpcalc implementations from
infrastructure. Nothing in application/ should import a concrete client directly.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from cardcatalog.domain.entities import (
    AudioFingerprint,
    ReferenceRecording,
    ResolutionCandidate,
)


class IFingerprintComputer(ABC):
    """Port for the acoustic fingerprint algorithm (a black box to us)."""

    @abstractmethod
    def compute(self, path: Path) -> AudioFingerprint:
        """
        Decode a file and compute its fingerprint. Blocking, CPU-bound.

        Raises:
            FingerprintFailed: If the audio can't be decoded
        """
        pass


class IIdentificationService(ABC):
    """Port for the external recording-identification service (AcoustID)."""

    @abstractmethod
    async def lookup(self, fingerprint: AudioFingerprint) -> list[ResolutionCandidate]:
        """
        Submit a fingerprint, return candidates (possibly empty).

        Raises:
            ResolutionTransientError: Service temporarily unavailable
            ResolutionFatalError: Service refuses us (bad credentials)
        """
        pass


class ISearchIndex(ABC):
    """Port for the search index mirror."""

    @abstractmethod
    async def ensure_index(self) -> None:
        """Create the index with its mapping if it doesn't exist yet."""
        pass

    @abstractmethod
    async def upsert_document(self, doc_id: str, document: dict[str, Any]) -> None:
        """
        Create or replace one document.

        Raises:
            IndexPublishError: If the index rejected the write
        """
        pass

    @abstractmethod
    async def delete_document(self, doc_id: str) -> None:
        """Delete one document. A missing document is not an error."""
        pass


class IReferenceDatabase(ABC):
    """Port for the read-only reference database of canonical recordings."""

    @abstractmethod
    async def get_recordings(
        self, external_ids: Sequence[str]
    ) -> dict[str, ReferenceRecording]:
        """
        Batch lookup. Unknown identifiers are simply absent from the result.

        Raises:
            ReferenceLookupError: If the reference database can't be queried
        """
        pass
