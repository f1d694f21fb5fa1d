"""Mirror remote custom collections into the local categories table."""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import PersistenceError
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.database.batching import chunked, keyed_case_update
from catalog_sync_service.infrastructure.database.models import Category
from catalog_sync_service.services.reconciliation import slugify

logger = structlog.get_logger()


@dataclass
class CategorySyncSummary:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"inserted": self.inserted, "updated": self.updated, "deleted": self.deleted}


class CategorySyncService:
    """Diff remote collections against local categories by remote id."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: CatalogGateway,
        settings: Settings | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def sync_categories(self) -> CategorySyncSummary:
        collections = await self.gateway.custom_collections()
        remote = {node["id"]: node.get("title") or "" for node in collections}

        result = await self.session.execute(
            text("SELECT category_id, name, remote_id FROM categories")
        )
        local = {row.remote_id: (row.category_id, row.name) for row in result}

        inserts = [
            {"name": name, "slug": slugify(name), "remote_id": remote_id}
            for remote_id, name in remote.items()
            if remote_id not in local
        ]
        renames = {
            category_id: {"name": remote[remote_id], "slug": slugify(remote[remote_id])}
            for remote_id, (category_id, name) in local.items()
            if remote_id in remote and remote[remote_id] != name
        }
        removed_remote_ids = [remote_id for remote_id in local if remote_id not in remote]
        removed = [local[remote_id][0] for remote_id in removed_remote_ids]

        summary = CategorySyncSummary(len(inserts), len(renames), len(removed))
        try:
            if inserts:
                await self.session.execute(
                    text("""
                        INSERT INTO categories (name, slug, remote_id)
                        VALUES (:name, :slug, :remote_id)
                        ON CONFLICT (remote_id) DO NOTHING
                    """),
                    inserts,
                )
            items = list(renames.items())
            for chunk in chunked(items, self.settings.sync_update_chunk_size):
                await self.session.execute(
                    keyed_case_update(Category.__table__, "category_id", dict(chunk))
                )
            if removed:
                await self.session.execute(
                    text("UPDATE rings SET category_id = NULL WHERE category_id IN :ids").bindparams(
                        bindparam("ids", expanding=True)
                    ),
                    {"ids": removed},
                )
                await self.session.execute(
                    text("DELETE FROM categories WHERE category_id IN :ids").bindparams(
                        bindparam("ids", expanding=True)
                    ),
                    {"ids": removed},
                )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Category sync failed", error=str(exc))
            raise PersistenceError("Failed to save categories") from exc

        for remote_id in removed_remote_ids:
            await self.gateway.forget_collection(remote_id)

        logger.info("Categories synced", **summary.to_dict())
        return summary

    async def list_categories(self) -> list[dict[str, Any]]:
        result = await self.session.execute(
            text("SELECT category_id, name, slug, remote_id FROM categories ORDER BY name ASC")
        )
        return [dict(row._mapping) for row in result]
