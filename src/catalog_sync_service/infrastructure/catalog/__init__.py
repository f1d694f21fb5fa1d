"""Remote catalog infrastructure."""

from catalog_sync_service.infrastructure.catalog.client import (
    CatalogResponse,
    RemoteCatalogClient,
)
from catalog_sync_service.infrastructure.catalog.files import CatalogFileStore, ImageUpload
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.redis import CacheService, get_redis_client

_catalog_client: RemoteCatalogClient | None = None


def get_catalog_client() -> RemoteCatalogClient:
    """Get or create the global remote catalog client."""
    global _catalog_client
    if _catalog_client is None:
        _catalog_client = RemoteCatalogClient()
    return _catalog_client


async def close_catalog_client() -> None:
    """Close the remote catalog client on shutdown."""
    global _catalog_client
    if _catalog_client:
        await _catalog_client.aclose()
        _catalog_client = None


async def get_catalog_gateway() -> CatalogGateway:
    """Build a gateway over the shared client and the Redis lookup cache."""
    return CatalogGateway(get_catalog_client(), CacheService(await get_redis_client()))


__all__ = [
    "CatalogFileStore",
    "CatalogGateway",
    "CatalogResponse",
    "ImageUpload",
    "RemoteCatalogClient",
    "close_catalog_client",
    "get_catalog_client",
    "get_catalog_gateway",
]
