"""Daily maintenance task."""

import asyncio

import structlog
from celery import shared_task

from catalog_sync_service.infrastructure.database.connection import close_db
from catalog_sync_service.services import maintenance

logger = structlog.get_logger()


async def _cleanup() -> dict:
    try:
        return await maintenance.cleanup_orphans()
    finally:
        await close_db()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def cleanup_orphans(self) -> dict:
    """Remove rings without variations and expired status events."""
    logger.info("Starting cleanup")
    try:
        return asyncio.run(_cleanup())
    except Exception as exc:
        logger.error("Cleanup failed", error=str(exc))
        raise self.retry(exc=exc)
