"""API router initialization."""

from fastapi import APIRouter

from cardcatalog.api.routers import catalog

api_router = APIRouter()
api_router.include_router(catalog.router, tags=["Catalog"])

__all__ = ["api_router"]
