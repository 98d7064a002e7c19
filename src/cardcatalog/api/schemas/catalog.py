"""API schemas for the catalog endpoints."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from cardcatalog.domain.entities import AuditFinding, PruneReport


class HealthResponse(BaseModel):
    """Liveness plus store reachability."""

    status: str = Field(..., description="'healthy' or 'degraded'")
    app_name: str
    database: bool = Field(..., description="Catalog store answered a ping")


class ScanRequest(BaseModel):
    """Request schema for starting a scan."""

    paths: list[Path] = Field(
        default_factory=list, description="Roots to scan (empty = scan.paths from config)"
    )
    fingerprint: bool | None = Field(
        default=None, description="Fingerprint + look up files (None = scan.fingerprint)"
    )


class ScanStatusResponse(BaseModel):
    """Current/last scan."""

    running: bool
    report: dict[str, Any] | None = None
    error: str | None = None


class PruneReportResponse(BaseModel):
    examined: int
    missing: int
    deleted: int
    checkpoints_removed: int
    fulfilled_checkpoints_cleared: int
    index_delete_failures: int
    dry_run: bool

    @classmethod
    def from_report(cls, report: PruneReport) -> "PruneReportResponse":
        return cls(**vars(report))


class AuditFindingResponse(BaseModel):
    entry_id: int
    path: str
    external_id: str
    track: str | None
    reference_title: str

    @classmethod
    def from_finding(cls, finding: AuditFinding) -> "AuditFindingResponse":
        return cls(
            entry_id=finding.entry_id,
            path=finding.path,
            external_id=finding.external_id,
            track=finding.track,
            reference_title=finding.reference_title,
        )
