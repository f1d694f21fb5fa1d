"""Run one async job per task invocation with fresh connections."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from catalog_sync_service.infrastructure.catalog import CatalogGateway, RemoteCatalogClient
from catalog_sync_service.infrastructure.database.connection import close_db
from catalog_sync_service.infrastructure.redis import CacheService, close_redis, get_redis_client

T = TypeVar("T")


async def _with_gateway(job: Callable[[CatalogGateway], Awaitable[T]]) -> T:
    client = RemoteCatalogClient()
    try:
        gateway = CatalogGateway(client, CacheService(await get_redis_client()))
        return await job(gateway)
    finally:
        await client.aclose()
        await close_redis()
        await close_db()


def run_job(job: Callable[[CatalogGateway], Awaitable[T]]) -> T:
    """Each call gets its own event loop, so pooled clients are closed before it ends."""
    return asyncio.run(_with_gateway(job))
