"""Supplier feed reconciliation.

Diffs a transformed supplier feed against the relational store and applies
the result in one transaction:

1. insert-if-absent every family as a ring, then read back ring ids
2. insert-if-absent web categories and ring memberships
3. insert-if-absent metals and stones, then read back their ids
4. diff variations by SKU (insert / price update / delete)
5. apply the batched insert, conditional update and delete
6. drop rings left without variations (memberships first)
7. push price updates and product deletions to the remote catalog

The local transaction is committed only after every remote call in step 7
succeeded. Remote price updates are reverted when a later remote call fails.
Remote deletions cannot be reverted; rows whose remote product is already
gone are removed in a follow-up transaction so none of them points at a
deleted product.
"""

import re
from dataclasses import dataclass, field
from typing import Any

import orjson
import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import CatalogSyncError, PersistenceError
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.database.batching import (
    chunked,
    keyed_case_update,
    multi_row_insert,
)
from catalog_sync_service.infrastructure.database.connection import get_db_session
from catalog_sync_service.infrastructure.database.models import RingVariation
from catalog_sync_service.infrastructure.supplier.feed import SupplierFeedFetcher
from catalog_sync_service.services.feed_transformer import FeedTransformer, TransformedFeed
from catalog_sync_service.services.maintenance import MaintenanceService
from catalog_sync_service.services.saga import Saga
from catalog_sync_service.services.status_log import set_job_status
from shared.constants import METAL_KEYS

logger = structlog.get_logger()

RECONCILIATION_JOB = "reconciliation"
LOOKUP_CHUNK_SIZE = 500


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug."""
    slug = re.sub(r"[^\w\s-]", "", name.strip().lower())
    return re.sub(r"[\s_]+", "-", slug)


# =============================================================================
# Plan types
# =============================================================================


@dataclass
class ExistingVariation:
    """Snapshot of a persisted variation used for diffing."""

    variation_id: int
    sku: str
    supplier_price: int
    supplier_showcase_price: int
    ring_id: int
    sync: bool = False
    sync_id: str = ""
    variant_sync_id: str = ""

    @property
    def on_remote(self) -> bool:
        return bool(self.sync_id)


@dataclass
class PriceChange:
    """A persisted variation whose supplier prices moved."""

    variation: ExistingVariation
    supplier_price: int
    supplier_showcase_price: int


@dataclass
class ReconciliationPlan:
    """Everything step 4 decided."""

    inserts: list[dict[str, Any]] = field(default_factory=list)
    updates: list[PriceChange] = field(default_factory=list)
    deletes: list[ExistingVariation] = field(default_factory=list)

    @property
    def remote_price_updates(self) -> list[PriceChange]:
        return [
            change
            for change in self.updates
            if change.variation.on_remote and change.variation.variant_sync_id
        ]

    @property
    def remote_deletes(self) -> list[ExistingVariation]:
        return [variation for variation in self.deletes if variation.on_remote]

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


@dataclass
class ReconciliationSummary:
    """Counts reported by a reconciliation run."""

    families: int = 0
    variations: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    rings_removed: int = 0
    remote_price_updates: int = 0
    remote_deletes: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


class RemoteReconciliationError(CatalogSyncError):
    """A remote call of step 7 failed; the local transaction was rolled back."""

    status_code = 502

    def __init__(self, message: str, deleted_remote_ids: list[str]):
        super().__init__(message)
        self.deleted_remote_ids = deleted_remote_ids


# =============================================================================
# Engine
# =============================================================================


class ReconciliationEngine:
    """Applies a transformed feed to the relational store and remote catalog."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: CatalogGateway,
        settings: Settings | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def reconcile(self, feed: TransformedFeed) -> ReconciliationSummary:
        """Run all steps and commit.

        Raises:
            RemoteReconciliationError: a remote price update or deletion failed.
            PersistenceError: a local statement or the commit failed.
        """
        summary = ReconciliationSummary(
            families=len(feed.families), variations=len(feed.valid_skus)
        )

        try:
            ring_ids = await self._ensure_rings(list(feed.families))
            await self._ensure_web_categories(feed, ring_ids)
            metal_ids, stone_ids = await self._ensure_metals_and_stones(feed)

            existing = await self.load_existing_variations()
            plan = self.plan_variations(feed, existing, ring_ids, metal_ids, stone_ids)

            await self._apply_inserts(plan.inserts)
            await self._apply_updates(plan.updates)
            await self._apply_deletes(plan.deletes)
            summary.rings_removed = await MaintenanceService(self.session).remove_empty_rings(
                {variation.ring_id for variation in plan.deletes}
            )
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Reconciliation failed locally", error=str(exc))
            raise PersistenceError("Failed to apply supplier feed") from exc

        summary.inserted = len(plan.inserts)
        summary.updated = len(plan.updates)
        summary.deleted = len(plan.deletes)

        remote_changes, deleted_remote_ids = await self._push_remote_changes(plan)
        summary.remote_price_updates = len(plan.remote_price_updates)
        summary.remote_deletes = len(deleted_remote_ids)

        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Reconciliation commit failed", error=str(exc))
            await remote_changes.compensate()
            await self._forget_deleted_products(deleted_remote_ids)
            raise PersistenceError("Failed to commit supplier feed") from exc

        logger.info("Reconciliation completed", **summary.to_dict())
        return summary

    # -------------------------------------------------------------------------
    # Steps 1-3: insert-if-absent lookups
    # -------------------------------------------------------------------------

    async def _ensure_rings(self, family_ids: list[str]) -> dict[str, int]:
        if not family_ids:
            return {}
        await self.session.execute(
            text("""
                INSERT INTO rings (supplier_group_id)
                VALUES (:supplier_group_id)
                ON CONFLICT DO NOTHING
            """),
            [{"supplier_group_id": family_id} for family_id in family_ids],
        )

        query = text(
            "SELECT ring_id, supplier_group_id FROM rings WHERE supplier_group_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        ring_ids: dict[str, int] = {}
        for chunk in chunked(family_ids, LOOKUP_CHUNK_SIZE):
            result = await self.session.execute(query, {"ids": list(chunk)})
            ring_ids.update({row.supplier_group_id: row.ring_id for row in result})
        return ring_ids

    async def _ensure_web_categories(self, feed: TransformedFeed, ring_ids: dict[str, int]) -> None:
        categories: dict[int, dict[str, Any]] = {}
        memberships: list[dict[str, int]] = []
        for family_id, family in feed.families.items():
            for tag in family.web_categories:
                categories.setdefault(
                    tag.id,
                    {
                        "web_cat_id": tag.id,
                        "name": tag.name,
                        "path": tag.path,
                        "image_url": tag.image_url,
                    },
                )
                memberships.append({"ring_id": ring_ids[family_id], "web_cat_id": tag.id})

        if categories:
            await self.session.execute(
                text("""
                    INSERT INTO web_categories (web_cat_id, name, path, image_url)
                    VALUES (:web_cat_id, :name, :path, :image_url)
                    ON CONFLICT DO NOTHING
                """),
                list(categories.values()),
            )
        if memberships:
            await self.session.execute(
                text("""
                    INSERT INTO ring_web_categories (ring_id, web_cat_id)
                    VALUES (:ring_id, :web_cat_id)
                    ON CONFLICT DO NOTHING
                """),
                memberships,
            )

    async def _ensure_metals_and_stones(
        self, feed: TransformedFeed
    ) -> tuple[dict[str, int], dict[str, int]]:
        metal_names: list[str] = []
        stone_names: list[str] = []
        for family in feed.families.values():
            for code in family.metal_codes:
                name = METAL_KEYS[code]
                if name not in metal_names:
                    metal_names.append(name)
            for stone in family.stone_types:
                if stone not in stone_names:
                    stone_names.append(stone)

        if metal_names:
            await self.session.execute(
                text("INSERT INTO metals (name, slug) VALUES (:name, :slug) ON CONFLICT DO NOTHING"),
                [{"name": name, "slug": slugify(name)} for name in metal_names],
            )
        if stone_names:
            await self.session.execute(
                text("INSERT INTO stones (name, slug) VALUES (:name, :slug) ON CONFLICT DO NOTHING"),
                [{"name": name, "slug": slugify(name)} for name in stone_names],
            )

        metals = await self.session.execute(text("SELECT metal_id, name FROM metals"))
        stones = await self.session.execute(text("SELECT stone_id, name FROM stones"))
        return (
            {row.name: row.metal_id for row in metals},
            {row.name: row.stone_id for row in stones},
        )

    # -------------------------------------------------------------------------
    # Step 4: diff
    # -------------------------------------------------------------------------

    async def load_existing_variations(self) -> dict[str, ExistingVariation]:
        result = await self.session.execute(
            text("""
                SELECT variation_id, sku, supplier_price, supplier_showcase_price,
                       ring_id, sync, sync_id, variant_sync_id
                FROM ring_variations
            """)
        )
        return {
            row.sku: ExistingVariation(
                variation_id=row.variation_id,
                sku=row.sku,
                supplier_price=row.supplier_price,
                supplier_showcase_price=row.supplier_showcase_price,
                ring_id=row.ring_id,
                sync=bool(row.sync),
                sync_id=row.sync_id or "",
                variant_sync_id=row.variant_sync_id or "",
            )
            for row in result
        }

    @staticmethod
    def plan_variations(
        feed: TransformedFeed,
        existing: dict[str, ExistingVariation],
        ring_ids: dict[str, int],
        metal_ids: dict[str, int],
        stone_ids: dict[str, int],
    ) -> ReconciliationPlan:
        """Compute inserts, price updates and deletes keyed by SKU."""
        plan = ReconciliationPlan()

        for family, variation in feed.iter_variations():
            current = existing.get(variation.sku)
            if current is None:
                plan.inserts.append(
                    {
                        "ring_id": ring_ids[family.supplier_group_id],
                        "metal_id": metal_ids[METAL_KEYS[variation.metal_code]],
                        "stone_id": stone_ids[variation.stone_type],
                        "title": variation.title,
                        "sku": variation.sku,
                        "supplier_product_id": variation.supplier_product_id,
                        "description": variation.description,
                        "group_description": variation.group_description,
                        "status": variation.status,
                        "supplier_price": variation.supplier_price,
                        "supplier_showcase_price": variation.supplier_showcase_price,
                        "weight": variation.weight,
                        "ring_size": variation.ring_size,
                        "lead_time": variation.lead_time,
                        "on_hand": variation.on_hand,
                        "orderable": variation.orderable,
                        "currency_code": variation.currency_code,
                        "band_width": variation.band_width,
                        "stone_type": variation.stone_type,
                        "quality": variation.quality,
                        "set_with": orjson.dumps(variation.set_with).decode(),
                        "sync": False,
                        "sync_id": "",
                        "variant_sync_id": "",
                    }
                )
            elif (
                current.supplier_price != variation.supplier_price
                or current.supplier_showcase_price != variation.supplier_showcase_price
            ):
                plan.updates.append(
                    PriceChange(
                        variation=current,
                        supplier_price=variation.supplier_price,
                        supplier_showcase_price=variation.supplier_showcase_price,
                    )
                )

        plan.deletes = [
            variation for sku, variation in existing.items() if sku not in feed.valid_skus
        ]
        return plan

    # -------------------------------------------------------------------------
    # Steps 5-6: apply
    # -------------------------------------------------------------------------

    async def _apply_inserts(self, rows: list[dict[str, Any]]) -> None:
        table = RingVariation.__table__
        for chunk in chunked(rows, self.settings.sync_insert_chunk_size):
            await self.session.execute(multi_row_insert(table, chunk))

    async def _apply_updates(self, changes: list[PriceChange]) -> None:
        table = RingVariation.__table__
        for chunk in chunked(changes, self.settings.sync_update_chunk_size):
            await self.session.execute(
                keyed_case_update(
                    table,
                    "variation_id",
                    {
                        change.variation.variation_id: {
                            "supplier_price": change.supplier_price,
                            "supplier_showcase_price": change.supplier_showcase_price,
                        }
                        for change in chunk
                    },
                )
            )

    async def _apply_deletes(self, variations: list[ExistingVariation]) -> None:
        await self.delete_variation_rows([variation.variation_id for variation in variations])

    async def delete_variation_rows(self, variation_ids: list[int]) -> None:
        query = text(
            "DELETE FROM ring_variations WHERE variation_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        for chunk in chunked(variation_ids, LOOKUP_CHUNK_SIZE):
            await self.session.execute(query, {"ids": list(chunk)})

    # -------------------------------------------------------------------------
    # Step 7: remote changes
    # -------------------------------------------------------------------------

    async def _push_remote_changes(self, plan: ReconciliationPlan) -> tuple[Saga, list[str]]:
        """Push price updates, then deletes.

        Returns the saga holding the price reverts and the deleted product ids.
        """
        saga = Saga("reconciliation")
        deleted: list[str] = []
        try:
            for change in plan.remote_price_updates:
                variation = change.variation
                await saga.step(
                    f"price:{variation.sku}",
                    lambda v=variation, c=change: self.gateway.update_variant_price(
                        v.sync_id, v.variant_sync_id, c.supplier_showcase_price
                    ),
                    compensate=lambda _, v=variation: self.gateway.update_variant_price(
                        v.sync_id, v.variant_sync_id, v.supplier_showcase_price
                    ),
                )
            for variation in plan.remote_deletes:
                await saga.step(
                    f"delete:{variation.sku}",
                    lambda v=variation: self.gateway.delete_product(v.sync_id),
                )
                deleted.append(variation.sync_id)
        except CatalogSyncError as exc:
            await self.session.rollback()
            logger.error(
                "Reconciliation aborted by remote failure",
                error=exc.message,
                remote_deleted=len(deleted),
            )
            await self._forget_deleted_products(deleted)
            raise RemoteReconciliationError(
                f"Remote catalog update failed, local changes rolled back: {exc.message}",
                deleted_remote_ids=deleted,
            ) from exc
        return saga, deleted

    async def _forget_deleted_products(self, remote_ids: list[str]) -> None:
        """Remove local rows whose remote product no longer exists."""
        if not remote_ids:
            return
        try:
            result = await self.session.execute(
                text(
                    "SELECT variation_id, ring_id FROM ring_variations WHERE sync_id IN :ids"
                ).bindparams(bindparam("ids", expanding=True)),
                {"ids": remote_ids},
            )
            rows = result.all()
            await self.delete_variation_rows([row.variation_id for row in rows])
            await MaintenanceService(self.session).remove_empty_rings({row.ring_id for row in rows})
            await self.session.commit()
            logger.info("Removed rows of remotely deleted products", count=len(rows))
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "Failed to remove rows of remotely deleted products",
                remote_ids=remote_ids,
                error=str(exc),
            )


async def run_reconciliation(
    gateway: CatalogGateway,
    fetcher: SupplierFeedFetcher | None = None,
) -> ReconciliationSummary:
    """Fetch, transform and reconcile the supplier feed, tracking job status."""
    fetcher = fetcher or SupplierFeedFetcher()
    await set_job_status(RECONCILIATION_JOB, "running")
    try:
        records = await fetcher.fetch_all()
        feed = FeedTransformer().transform(records)
        async with get_db_session() as session:
            summary = await ReconciliationEngine(session, gateway).reconcile(feed)
    except Exception as exc:
        await set_job_status(RECONCILIATION_JOB, "error", error_message=str(exc))
        raise
    await set_job_status(RECONCILIATION_JOB, "idle", records_synced=summary.variations)
    return summary
