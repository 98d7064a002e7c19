"""Domain entities."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


# Hey future me, this is what the Metadata Extractor produces for ONE file. Text fields are
# optional (plenty of files have no tags at all), numbers default to 0 when absent. "title"
# and "track" both come from the title tag - "track" is the column the audit compares
# against the reference recording name, "title" is what the search index shows.
@dataclass
class TrackMetadata:
    """Tag fields and duration read from an audio file."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    track: str | None = None
    track_number: int = 0
    duration_seconds: int = 0

    def __post_init__(self) -> None:
        if self.track_number < 0:
            raise ValueError(f"track_number must be >= 0, got {self.track_number}")
        if self.duration_seconds < 0:
            raise ValueError(
                f"duration_seconds must be >= 0, got {self.duration_seconds}"
            )

    def is_default(self) -> bool:
        """True when nothing useful was read (no tags AND no duration)."""
        return self == TrackMetadata()


@dataclass(frozen=True)
class AudioFingerprint:
    """Chromaprint fingerprint (compressed, base64 as fpcalc prints it) plus duration."""

    fingerprint: str
    duration_seconds: int


@dataclass
class CatalogEntry:
    """One row per distinct filesystem path."""

    path: str
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    track: str | None = None
    track_number: int = 0
    duration_seconds: int = 0
    external_id: str | None = None
    # None for identifiers set before confidences were stored
    external_id_confidence: float | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_metadata(cls, path: str, metadata: TrackMetadata) -> "CatalogEntry":
        entry = cls(path=path)
        entry.apply_metadata(metadata)
        return entry

    def metadata(self) -> TrackMetadata:
        return TrackMetadata(
            title=self.title,
            artist=self.artist,
            album=self.album,
            track=self.track,
            track_number=self.track_number,
            duration_seconds=self.duration_seconds,
        )

    def apply_metadata(self, metadata: TrackMetadata) -> list[str]:
        """Copy differing tag fields over, return the names of changed fields."""
        changed = []
        for name in ("title", "artist", "album", "track", "track_number"):
            value = getattr(metadata, name)
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed.append(name)
        if self.duration_seconds != metadata.duration_seconds:
            self.duration_seconds = metadata.duration_seconds
            changed.append("duration_seconds")
        return changed

    def to_document(self) -> dict[str, object]:
        """Search index document. Keys follow the store's column names."""
        return {
            "id": self.id,
            "path": self.path,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "track": self.track,
            "track_number": self.track_number,
            "duration": self.duration_seconds,
            "mbid": self.external_id,
        }


@dataclass(frozen=True)
class ResolutionCandidate:
    """One candidate recording returned by the identification service."""

    external_id: str
    confidence: float
    reference_duration_seconds: int | None = None
    title: str | None = None


class ResolutionStatus(str, Enum):
    """What happened when the resolver looked at one file."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    SKIPPED_COOLDOWN = "skipped_cooldown"
    SKIPPED_RESOLVED = "skipped_resolved"
    SKIPPED_NO_FINGERPRINT = "skipped_no_fingerprint"
    TRANSIENT_ERROR = "transient_error"


@dataclass
class ResolutionOutcome:
    """Result of the resolver stage for one path.

    attempted is True only if the identification service was actually called -
    that's the one thing deciding whether a checkpoint gets written.
    """

    status: ResolutionStatus
    candidate: ResolutionCandidate | None = None
    attempted: bool = False
    checked_at: datetime | None = None
    reason: str | None = None

    @property
    def accepted(self) -> ResolutionCandidate | None:
        return self.candidate if self.status == ResolutionStatus.MATCHED else None


@dataclass(frozen=True)
class ResolutionState:
    """What the store knows about a path before resolving it."""

    entry_id: int
    external_id: str | None
    last_checked_at: datetime | None


@dataclass(frozen=True)
class ReferenceRecording:
    """Canonical recording from the reference database (read-only)."""

    external_id: str
    title: str
    artist: str | None = None
    album: str | None = None
    duration_seconds: int | None = None


@dataclass(frozen=True)
class AuditFinding:
    """Catalog entry whose track title disagrees with its reference recording."""

    entry_id: int
    path: str
    external_id: str
    track: str | None
    reference_title: str


class ReconcileAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ReconcileResult:
    entry: CatalogEntry
    action: ReconcileAction
    changed_fields: list[str] = field(default_factory=list)


class ScanStatus(str, Enum):
    """Status of a scan run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Hey future me, this is the user-visible summary of a run! Every path ends up in exactly one
# of processed (reconciled, with or without match), skipped (logged reason) or failed. The
# reason counters tell you WHY things were skipped/failed without grepping logs.
@dataclass
class ScanReport:
    """Counts for one scan run."""

    status: ScanStatus = ScanStatus.PENDING
    discovered: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    matched: int = 0
    lookups: int = 0
    index_failures: int = 0
    fingerprint_failures: int = 0
    enumeration_errors: int = 0
    skip_reasons: Counter[str] = field(default_factory=Counter)
    failure_reasons: Counter[str] = field(default_factory=Counter)
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skip_reasons[reason] += 1

    def fail(self, reason: str) -> None:
        self.failed += 1
        self.failure_reasons[reason] += 1

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "discovered": self.discovered,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "matched": self.matched,
            "lookups": self.lookups,
            "index_failures": self.index_failures,
            "fingerprint_failures": self.fingerprint_failures,
            "enumeration_errors": self.enumeration_errors,
            "skip_reasons": dict(self.skip_reasons),
            "failure_reasons": dict(self.failure_reasons),
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class PruneReport:
    """Counts for one prune run."""

    examined: int = 0
    missing: int = 0
    deleted: int = 0
    checkpoints_removed: int = 0
    fulfilled_checkpoints_cleared: int = 0
    index_delete_failures: int = 0
    dry_run: bool = False
