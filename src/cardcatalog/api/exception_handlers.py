"""Map domain exceptions to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cardcatalog.domain.exceptions import (
    ConfigurationError,
    ReconciliationError,
    ReferenceLookupError,
    UnsafePruneError,
)

logger = logging.getLogger(__name__)


# Hey future me - handlers MUST be registered during app setup, before the first request.
# The CLI maps the same exceptions to exit code 1; here they become status codes.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for the catalog's run-level exceptions."""

    @app.exception_handler(UnsafePruneError)
    async def unsafe_prune_handler(request: Request, exc: UnsafePruneError) -> JSONResponse:
        logger.warning(f"Prune refused: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "error": "UnsafePrune",
                "message": exc.message,
                "unreachable_roots": exc.unreachable_roots,
            },
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "ConfigurationError", "message": exc.message},
        )

    @app.exception_handler(ReconciliationError)
    async def store_unavailable_handler(
        request: Request, exc: ReconciliationError
    ) -> JSONResponse:
        logger.error(f"Catalog store error on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "StoreUnavailable", "message": exc.message},
        )

    @app.exception_handler(ReferenceLookupError)
    async def reference_unavailable_handler(
        request: Request, exc: ReferenceLookupError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": "ReferenceUnavailable", "message": exc.message},
        )
