"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from catalog_sync_service.api.v1 import (
    catalog,
    categories,
    dictionaries,
    health,
    products,
    rings,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    catalog.router,
    prefix="/catalog",
    tags=["Catalog"],
)

api_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"],
)

api_router.include_router(
    dictionaries.router,
    prefix="/dictionaries",
    tags=["Dictionaries"],
)

api_router.include_router(
    categories.router,
    prefix="/categories",
    tags=["Categories"],
)

api_router.include_router(
    rings.router,
    prefix="/rings",
    tags=["Rings"],
)
