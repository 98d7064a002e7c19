"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import HTTPException, Request

from cardcatalog.api.scan_runner import ScanRunner
from cardcatalog.bootstrap import CatalogContainer


# Hey future me - everything lives on app.state, created in the lifespan (see app.py).
# If it's missing the app didn't start properly - 503, not a 500 with an AttributeError.
def get_container(request: Request) -> CatalogContainer:
    if not hasattr(request.app.state, "container"):
        raise HTTPException(status_code=503, detail="Catalog not initialized")
    return cast(CatalogContainer, request.app.state.container)


def get_scan_runner(request: Request) -> ScanRunner:
    if not hasattr(request.app.state, "scan_runner"):
        raise HTTPException(status_code=503, detail="Scan runner not initialized")
    return cast(ScanRunner, request.app.state.scan_runner)
