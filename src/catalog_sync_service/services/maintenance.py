"""Orphan cleanup shared by reconciliation, deletes and the daily sweep."""

from typing import Any

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.connection import get_db_session
from catalog_sync_service.services.status_log import StatusLogService, set_job_status

logger = structlog.get_logger()

CLEANUP_JOB = "cleanup"


class MaintenanceService:
    """Removes rows left behind by deletes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def remove_empty_rings(self, ring_ids: set[int] | None = None) -> int:
        """Delete rings without variations, memberships first.

        Args:
            ring_ids: Rings to check. ``None`` checks every ring.

        Returns:
            Number of rings removed.
        """
        if ring_ids is not None and not ring_ids:
            return 0

        query = """
            SELECT r.ring_id FROM rings r
            WHERE NOT EXISTS (
                SELECT 1 FROM ring_variations v WHERE v.ring_id = r.ring_id
            )
        """
        if ring_ids is None:
            result = await self.session.execute(text(query))
        else:
            result = await self.session.execute(
                text(query + " AND r.ring_id IN :ids").bindparams(
                    bindparam("ids", expanding=True)
                ),
                {"ids": sorted(ring_ids)},
            )
        empty = [row.ring_id for row in result]
        if not empty:
            return 0

        await self.session.execute(
            text("DELETE FROM ring_web_categories WHERE ring_id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"ids": empty},
        )
        await self.session.execute(
            text("DELETE FROM rings WHERE ring_id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"ids": empty},
        )
        logger.info("Removed rings without variations", count=len(empty))
        return len(empty)


async def cleanup_orphans() -> dict[str, Any]:
    """Daily sweep: drop empty rings and expired failure events."""
    settings = get_settings()
    await set_job_status(CLEANUP_JOB, "running")
    try:
        async with get_db_session() as session:
            rings_removed = await MaintenanceService(session).remove_empty_rings()
            events_purged = await StatusLogService(session).purge_events(
                settings.status_event_retention_days
            )
    except Exception as exc:
        await set_job_status(CLEANUP_JOB, "error", error_message=str(exc))
        raise

    await set_job_status(CLEANUP_JOB, "idle", records_synced=rings_removed)
    summary = {"rings_removed": rings_removed, "events_purged": events_purged}
    logger.info("Cleanup completed", **summary)
    return summary
