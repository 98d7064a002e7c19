"""HTTP API for the music card catalog.

Structure:
- app.py: create_app() with the lifespan that owns the CatalogContainer
- routers/: the catalog endpoints (health, scan, prune, audit)
- schemas/: pydantic request/response models
- dependencies.py: dependency injection from app.state
- exception_handlers.py: domain exceptions -> HTTP status codes
"""

from cardcatalog.api.app import create_app

__all__ = ["create_app"]
