"""Job run status and application failure log."""

from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.infrastructure.database.connection import get_db_session

logger = structlog.get_logger()


class StatusLogService:
    """Reads and writes ``sync_status`` and ``app_status_events``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def update_sync_status(
        self,
        job: str,
        status: str,
        records_synced: int = 0,
        error_message: str | None = None,
    ) -> None:
        """Upsert the status row of a job."""
        now = datetime.now()  # Use naive datetime for DB

        query = text("""
            INSERT INTO sync_status (id, status, records_synced, last_sync_at, updated_at, error_message)
            VALUES (:id, :status, :records_synced, :last_sync_at, :updated_at, :error_message)
            ON CONFLICT (id) DO UPDATE SET
                status = excluded.status,
                records_synced = CASE
                    WHEN excluded.records_synced > 0 THEN excluded.records_synced
                    ELSE sync_status.records_synced
                END,
                last_sync_at = COALESCE(excluded.last_sync_at, sync_status.last_sync_at),
                updated_at = excluded.updated_at,
                error_message = excluded.error_message
        """)
        await self.session.execute(
            query,
            {
                "id": job,
                "status": status,
                "records_synced": records_synced,
                "last_sync_at": now if status == "idle" else None,
                "updated_at": now,
                "error_message": error_message,
            },
        )

    async def get_sync_status(self, job: str) -> dict[str, Any] | None:
        result = await self.session.execute(
            text("""
                SELECT id, status, records_synced, last_sync_at, updated_at, error_message
                FROM sync_status WHERE id = :id
            """),
            {"id": job},
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def record_event(self, status: int, success: bool, message: str) -> None:
        await self.session.execute(
            text("""
                INSERT INTO app_status_events (status, success, message, created_at)
                VALUES (:status, :success, :message, :created_at)
            """),
            {
                "status": status,
                "success": success,
                "message": message,
                "created_at": datetime.now(),
            },
        )

    async def purge_events(self, older_than_days: int) -> int:
        """Delete failure events older than the retention window."""
        cutoff = datetime.now() - timedelta(days=older_than_days)
        result = await self.session.execute(
            text("DELETE FROM app_status_events WHERE created_at < :cutoff"),
            {"cutoff": cutoff},
        )
        return result.rowcount or 0


async def record_status_event(status: int, success: bool, message: str) -> None:
    """Write a failure event in its own transaction. Database errors are logged only."""
    try:
        async with get_db_session() as session:
            await StatusLogService(session).record_event(status, success, message)
    except Exception as e:
        logger.warning("Failed to record status event", status=status, error=str(e))


async def set_job_status(
    job: str,
    status: str,
    records_synced: int = 0,
    error_message: str | None = None,
) -> None:
    """Update a job status row in its own transaction."""
    try:
        async with get_db_session() as session:
            await StatusLogService(session).update_sync_status(
                job, status, records_synced=records_synced, error_message=error_message
            )
    except Exception as e:
        logger.warning("Failed to update job status", job=job, status=status, error=str(e))
