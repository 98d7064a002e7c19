"""Catalog endpoints: health, scan, prune, audit."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from cardcatalog.api.dependencies import get_container, get_scan_runner
from cardcatalog.api.scan_runner import ScanAlreadyRunningError, ScanRunner
from cardcatalog.api.schemas.catalog import (
    AuditFindingResponse,
    HealthResponse,
    PruneReportResponse,
    ScanRequest,
    ScanStatusResponse,
)
from cardcatalog.bootstrap import CatalogContainer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(container: CatalogContainer = Depends(get_container)) -> HealthResponse:
    """Liveness plus a ping of the catalog store."""
    database_ok = await container.database.ping()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        app_name=container.settings.app_name,
        database=database_ok,
    )


def _scan_status(runner: ScanRunner) -> ScanStatusResponse:
    pipeline = runner.pipeline
    return ScanStatusResponse(
        running=runner.is_running,
        report=pipeline.report.to_dict() if pipeline is not None else None,
        error=runner.last_error,
    )


# Hey future me - 202 and return right away, the scan of a big library takes hours.
# Poll GET /scan for the live counts. A second POST while one runs = 409.
@router.post(
    "/scan", response_model=ScanStatusResponse, status_code=status.HTTP_202_ACCEPTED
)
async def start_scan(
    request: ScanRequest | None = None,
    runner: ScanRunner = Depends(get_scan_runner),
) -> ScanStatusResponse:
    """Start a scan in the background."""
    request = request or ScanRequest()
    try:
        runner.start(request.paths, fingerprint=request.fingerprint)
    except ScanAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return _scan_status(runner)


@router.get("/scan", response_model=ScanStatusResponse)
async def scan_status(runner: ScanRunner = Depends(get_scan_runner)) -> ScanStatusResponse:
    """Status and counts of the current or last scan."""
    return _scan_status(runner)


@router.post("/prune", response_model=PruneReportResponse)
async def prune(
    force: bool = Query(False, description="Ignore prune.max_delete_fraction"),
    clear_fulfilled: bool | None = Query(
        None, description="Also drop checkpoints of identified entries"
    ),
    dry_run: bool = Query(False, description="Count only"),
    container: CatalogContainer = Depends(get_container),
    runner: ScanRunner = Depends(get_scan_runner),
) -> PruneReportResponse:
    """Delete entries whose files are gone. 409 when the safeguard refuses."""
    if runner.is_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A scan is running, prune afterwards",
        )
    report = await container.build_prune_service().prune(
        container.roots(), force=force, clear_fulfilled=clear_fulfilled, dry_run=dry_run
    )
    return PruneReportResponse.from_report(report)


@router.get("/audit", response_model=list[AuditFindingResponse])
async def audit(
    limit: int | None = Query(None, ge=1, description="Maximum findings"),
    container: CatalogContainer = Depends(get_container),
) -> list[AuditFindingResponse]:
    """Identified entries whose title disagrees with the reference database."""
    findings = await container.build_audit_service().audit(limit)
    return [AuditFindingResponse.from_finding(finding) for finding in findings]
