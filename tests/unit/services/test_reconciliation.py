"""Unit tests for supplier feed reconciliation."""

from typing import Any

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings
from catalog_sync_service.errors import PersistenceError
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.services.feed_transformer import FeedTransformer, TransformedFeed
from catalog_sync_service.services.reconciliation import (
    ExistingVariation,
    ReconciliationEngine,
    RemoteReconciliationError,
    run_reconciliation,
    slugify,
)
from catalog_sync_service.services.status_log import StatusLogService
from tests.fakes import FakeCatalogClient, broken_write, supplier_record


def feed_of(*records: dict[str, Any]) -> TransformedFeed:
    return FeedTransformer().transform(list(records))


def base_records(**showcase: float) -> list[dict[str, Any]]:
    return [
        supplier_record("A1", showcase=showcase.get("A1", 399.49)),
        supplier_record(
            "A2", quality="Plat", quality_display="Platinum", stone="N/A",
            showcase=showcase.get("A2", 399.49),
        ),
        supplier_record(
            "B1",
            series="456",
            showcase=showcase.get("B1", 399.49),
            web_categories=[{"Id": 21345, "Name": "Men's Bands", "Path": "Jewelry/Men"}],
        ),
    ]


async def count(session: AsyncSession, table: str) -> int:
    return (await session.execute(text(f"SELECT COUNT(*) FROM {table}"))).scalar()


async def variation_rows(session: AsyncSession) -> dict[str, Any]:
    result = await session.execute(
        text("SELECT sku, supplier_price, supplier_showcase_price, sync, sync_id FROM ring_variations")
    )
    return {row.sku: row for row in result}


async def mark_synced(session: AsyncSession, catalog: FakeCatalogClient, sku: str) -> str:
    """Pretend ``sku`` was pushed earlier; returns its remote product id."""
    product_id = catalog.add_product(sku)
    product = catalog.products[product_id]
    row = (
        await session.execute(
            text("SELECT supplier_showcase_price FROM ring_variations WHERE sku = :sku"),
            {"sku": sku},
        )
    ).one()
    product["price"] = row.supplier_showcase_price
    await session.execute(
        text("""
            UPDATE ring_variations
            SET sync = :sync, sync_id = :sync_id, variant_sync_id = :variant_sync_id
            WHERE sku = :sku
        """),
        {"sync": True, "sync_id": product_id, "variant_sync_id": product["variant_id"], "sku": sku},
    )
    await session.commit()
    return product_id


@pytest.fixture
def engine(session: AsyncSession, gateway: CatalogGateway, test_settings: Settings) -> ReconciliationEngine:
    return ReconciliationEngine(session, gateway, test_settings)


class TestSlugify:
    def test_slugify(self) -> None:
        assert slugify(" 14K Yellow Gold ") == "14k-yellow-gold"
        assert slugify("Men's_Bands") == "mens-bands"


class TestPlanVariations:
    def test_diff_by_sku(self) -> None:
        feed = feed_of(*base_records(A1=450))
        existing = {
            "A1": ExistingVariation(1, "A1", 200, 399, ring_id=1),
            "A2": ExistingVariation(2, "A2", 200, 399, ring_id=1),
            "GONE": ExistingVariation(3, "GONE", 10, 20, ring_id=2, sync=True, sync_id="p3", variant_sync_id="v3"),
        }
        plan = ReconciliationEngine.plan_variations(
            feed,
            existing,
            ring_ids={"123": 1, "456": 2},
            metal_ids={"14K Yellow Gold": 1, "Platinum": 2},
            stone_ids={"Natural Diamond": 1, "NS": 2},
        )

        assert [row["sku"] for row in plan.inserts] == ["B1"]
        assert plan.inserts[0]["ring_id"] == 2
        assert plan.inserts[0]["sync"] is False
        assert [change.variation.sku for change in plan.updates] == ["A1"]
        assert plan.updates[0].supplier_showcase_price == 450
        assert [variation.sku for variation in plan.deletes] == ["GONE"]
        assert [variation.sku for variation in plan.remote_deletes] == ["GONE"]
        assert plan.remote_price_updates == []

    def test_unchanged_feed_is_empty_plan(self) -> None:
        feed = feed_of(supplier_record("A1"))
        plan = ReconciliationEngine.plan_variations(
            feed,
            {"A1": ExistingVariation(1, "A1", 200, 399, ring_id=1)},
            {"123": 1},
            {"14K Yellow Gold": 1},
            {"Natural Diamond": 1},
        )
        assert plan.is_empty


class TestReconcile:
    @pytest.mark.asyncio
    async def test_fresh_feed_populates_store(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        summary = await engine.reconcile(feed_of(*base_records()))

        assert summary.families == 2
        assert summary.inserted == 3
        assert await count(session, "rings") == 2
        assert await count(session, "web_categories") == 2
        assert await count(session, "ring_web_categories") == 2
        metals = {row.name for row in await session.execute(text("SELECT name FROM metals"))}
        stones = {row.name for row in await session.execute(text("SELECT name FROM stones"))}
        assert metals == {"14K Yellow Gold", "Platinum"}
        assert stones == {"Natural Diamond", "NS"}

        rows = await variation_rows(session)
        assert rows["A1"].supplier_price == 200
        assert rows["A1"].supplier_showcase_price == 399
        assert not rows["A1"].sync
        assert rows["A1"].sync_id == ""
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        before = await variation_rows(session)

        summary = await engine.reconcile(feed_of(*base_records()))

        assert (summary.inserted, summary.updated, summary.deleted) == (0, 0, 0)
        assert await count(session, "rings") == 2
        assert await count(session, "ring_web_categories") == 2
        assert await variation_rows(session) == before
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_price_change_pushes_synced_variations_only(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        product_id = await mark_synced(session, catalog, "A1")

        summary = await engine.reconcile(feed_of(*base_records(A1=450, A2=500)))

        assert summary.updated == 2
        assert summary.remote_price_updates == 1
        assert catalog.products[product_id]["price"] == 450
        rows = await variation_rows(session)
        assert rows["A1"].supplier_showcase_price == 450
        assert rows["A2"].supplier_showcase_price == 500

    @pytest.mark.asyncio
    async def test_missing_skus_are_deleted_with_their_empty_rings(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        product_id = await mark_synced(session, catalog, "B1")

        summary = await engine.reconcile(feed_of(*base_records()[:2]))

        assert summary.deleted == 1
        assert summary.remote_deletes == 1
        assert summary.rings_removed == 1
        assert product_id not in catalog.products
        assert set(await variation_rows(session)) == {"A1", "A2"}
        rings = [row.supplier_group_id for row in await session.execute(text("SELECT supplier_group_id FROM rings"))]
        assert rings == ["123"]
        assert await count(session, "ring_web_categories") == 1

    @pytest.mark.asyncio
    async def test_remote_price_failure_rolls_back_everything(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        first = await mark_synced(session, catalog, "A1")
        second = await mark_synced(session, catalog, "B1")
        catalog.fail("ProductVariantsBulkUpdate", when=lambda v: v["productId"] == second)

        with pytest.raises(RemoteReconciliationError) as exc_info:
            await engine.reconcile(
                feed_of(*base_records(A1=450, B1=460), supplier_record("C1", series="789"))
            )

        assert exc_info.value.deleted_remote_ids == []
        assert catalog.products[first]["price"] == 399
        prices = [v["variants"][0]["price"] for v in catalog.calls_to("ProductVariantsBulkUpdate")]
        assert prices == [450, 460, 399]
        rows = await variation_rows(session)
        assert set(rows) == {"A1", "A2", "B1"}
        assert rows["A1"].supplier_showcase_price == 399
        assert rows["B1"].supplier_showcase_price == 399

    @pytest.mark.asyncio
    async def test_remote_delete_failure_forgets_already_deleted_products(
        self, engine: ReconciliationEngine, session: AsyncSession, catalog: FakeCatalogClient
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        ids = {sku: await mark_synced(session, catalog, sku) for sku in ("A1", "A2", "B1")}
        catalog.fail("ProductDelete", when=lambda v: v["input"]["id"] == ids["A2"])

        with pytest.raises(RemoteReconciliationError) as exc_info:
            await engine.reconcile(feed_of(supplier_record("C1", series="789")))

        deleted = exc_info.value.deleted_remote_ids
        assert ids["A2"] not in deleted
        assert ids["A2"] in catalog.products
        assert all(product_id not in catalog.products for product_id in deleted)

        rows = await variation_rows(session)
        assert "C1" not in rows
        assert {row.sync_id for row in rows.values()} == set(ids.values()) - set(deleted)

    @pytest.mark.asyncio
    async def test_failed_commit_reverts_pushed_prices(
        self,
        engine: ReconciliationEngine,
        session: AsyncSession,
        catalog: FakeCatalogClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await engine.reconcile(feed_of(*base_records()))
        product_id = await mark_synced(session, catalog, "A1")
        monkeypatch.setattr(session, "commit", broken_write("COMMIT"))

        with pytest.raises(PersistenceError):
            await engine.reconcile(feed_of(*base_records(A1=450)))

        prices = [v["variants"][0]["price"] for v in catalog.calls_to("ProductVariantsBulkUpdate")]
        assert prices == [450, 399]
        assert catalog.products[product_id]["price"] == 399
        assert (await variation_rows(session))["A1"].supplier_showcase_price == 399


class StubFetcher:
    def __init__(self, records: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self.records = records or []
        self.error = error

    async def fetch_all(self) -> list[dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.records


class TestRunReconciliation:
    @pytest.mark.asyncio
    async def test_records_idle_status(
        self, session: AsyncSession, gateway: CatalogGateway
    ) -> None:
        summary = await run_reconciliation(gateway, StubFetcher(base_records()))

        assert summary.inserted == 3
        status = await StatusLogService(session).get_sync_status("reconciliation")
        assert status["status"] == "idle"
        assert status["records_synced"] == 3
        assert status["last_sync_at"] is not None

    @pytest.mark.asyncio
    async def test_records_error_status(
        self, session: AsyncSession, gateway: CatalogGateway
    ) -> None:
        with pytest.raises(RuntimeError):
            await run_reconciliation(gateway, StubFetcher(error=RuntimeError("supplier down")))

        status = await StatusLogService(session).get_sync_status("reconciliation")
        assert status["status"] == "error"
        assert status["error_message"] == "supplier down"
