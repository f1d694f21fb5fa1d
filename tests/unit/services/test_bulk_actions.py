"""Unit tests for batch sync, unsync and delete."""

import orjson
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings
from catalog_sync_service.errors import ConflictError, ValidationError
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.database.models import Ring
from catalog_sync_service.services.bulk_actions import (
    BulkActionCoordinator,
    BulkActionError,
    BulkDeleteResult,
)
from catalog_sync_service.services.variations import VariationRepository
from tests.fakes import CatalogSeeder, FakeCatalogClient, broken_write


@pytest.fixture
def coordinator(
    session: AsyncSession, gateway: CatalogGateway, test_settings: Settings
) -> BulkActionCoordinator:
    return BulkActionCoordinator(session, gateway, test_settings)


async def assigned_ring(seed: CatalogSeeder) -> Ring:
    return await seed.ring(category=await seed.category(), group=await seed.group())


async def synced_variations(
    seed: CatalogSeeder, catalog: FakeCatalogClient, count: int
) -> tuple[list[int], list[str]]:
    ring = await seed.ring()
    variation_ids, product_ids = [], []
    for index in range(count):
        product_id = catalog.add_product(f"Band {index}")
        variation = await seed.variation(
            ring,
            f"A{index}",
            sync=True,
            sync_id=product_id,
            variant_sync_id=catalog.products[product_id]["variant_id"],
        )
        variation_ids.append(variation.variation_id)
        product_ids.append(product_id)
    await seed.commit()
    return variation_ids, product_ids


class TestBulkValidation:
    @pytest.mark.asyncio
    async def test_empty_selection(self, coordinator: BulkActionCoordinator) -> None:
        with pytest.raises(ValidationError, match="No products selected"):
            await coordinator.apply([], "sync")

    @pytest.mark.asyncio
    async def test_unknown_ids_are_reported(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await assigned_ring(seed), "A1")
        await seed.commit()

        with pytest.raises(ValidationError, match="Products not found: 998, 999"):
            await coordinator.apply([variation.variation_id, 998, 999], "sync")
        assert catalog.calls == []


class TestBulkSync:
    @pytest.mark.asyncio
    async def test_sync_pushes_siblings_with_shared_product_group(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        ring = await assigned_ring(seed)
        gold = await seed.variation(ring, "A1", title="Gold")
        platinum = await seed.variation(ring, "A2", title="Platinum", metal="Platinum")
        await seed.commit()

        result = await coordinator.apply([platinum.variation_id, gold.variation_id], "sync")

        assert result.succeeded == [platinum.variation_id, gold.variation_id]
        repo = VariationRepository(session)
        gold_view = await repo.get(gold.variation_id)
        platinum_view = await repo.get(platinum.variation_id)
        assert gold_view.is_synced and platinum_view.is_synced

        expected = orjson.dumps([gold_view.sync_id, platinum_view.sync_id]).decode()
        assert catalog.metafield(gold_view.sync_id, "product_group") == expected
        assert catalog.metafield(platinum_view.sync_id, "product_group") == expected

    @pytest.mark.asyncio
    async def test_one_failure_reverts_the_whole_batch(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        ring = await assigned_ring(seed)
        first = await seed.variation(ring, "A1", title="First")
        second = await seed.variation(ring, "A2", title="Second", metal="Platinum")
        await seed.commit()
        catalog.fail("ProductCreate", when=lambda v: v["input"]["title"] == "Second")

        with pytest.raises(BulkActionError) as exc_info:
            await coordinator.apply([first.variation_id, second.variation_id], "sync")

        assert [failure.variation_id for failure in exc_info.value.failures] == [second.variation_id]
        assert exc_info.value.to_dict()["failures"][0]["supplier_product_id"] == "A2"
        assert catalog.products == {}
        repo = VariationRepository(session)
        assert not (await repo.get(first.variation_id)).sync
        assert not (await repo.get(second.variation_id)).sync

    @pytest.mark.asyncio
    async def test_database_error_mid_batch_reverts_pushed_items(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        ring = await assigned_ring(seed)
        first = await seed.variation(ring, "A1", title="First")
        second = await seed.variation(ring, "A2", title="Second", metal="Platinum")
        await seed.commit()
        lookup = coordinator.variations.product_group_members
        fail = broken_write("SELECT ring_variations")

        async def members(ring_id: int, variation_id: int):
            if variation_id == second.variation_id:
                await fail()
            return await lookup(ring_id, variation_id)

        monkeypatch.setattr(coordinator.variations, "product_group_members", members)

        with pytest.raises(BulkActionError) as exc_info:
            await coordinator.apply([first.variation_id, second.variation_id], "sync")

        assert [failure.variation_id for failure in exc_info.value.failures] == [second.variation_id]
        assert catalog.products == {}

    @pytest.mark.asyncio
    async def test_preconditions_block_the_batch_before_remote_calls(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        ring = await assigned_ring(seed)
        ready = await seed.variation(ring, "A1")
        synced = await seed.variation(ring, "A2", sync=True, sync_id="p2", variant_sync_id="v2")
        incomplete = await seed.variation(ring, "A3", band_width="")
        await seed.commit()

        with pytest.raises(ConflictError, match="A2") as exc_info:
            await coordinator.apply([ready.variation_id, synced.variation_id], "sync")
        assert exc_info.value.status_code == 400
        with pytest.raises(ValidationError, match="A3"):
            await coordinator.apply([ready.variation_id, incomplete.variation_id], "sync")
        assert catalog.calls == []


class TestBulkUnsync:
    @pytest.mark.asyncio
    async def test_unsync_archives_every_item(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        variation_ids, product_ids = await synced_variations(seed, catalog, 2)

        result = await coordinator.apply(variation_ids, "unsync")

        assert result.succeeded == variation_ids
        assert [catalog.products[pid]["status"] for pid in product_ids] == ["ARCHIVED", "ARCHIVED"]
        views = await VariationRepository(session).get_many(variation_ids)
        assert all(view.is_archived for view in views)

    @pytest.mark.asyncio
    async def test_unsync_failure_reactivates_archived_items(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        variation_ids, product_ids = await synced_variations(seed, catalog, 2)
        catalog.fail("ProductUpdate", when=lambda v: v["input"]["id"] == product_ids[1], times=1)

        with pytest.raises(BulkActionError):
            await coordinator.apply(variation_ids, "unsync")

        assert catalog.products[product_ids[0]]["status"] == "ACTIVE"
        views = await VariationRepository(session).get_many(variation_ids)
        assert all(view.is_synced for view in views)

    @pytest.mark.asyncio
    async def test_unsync_requires_synced_items(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await seed.ring(), "A1")
        await seed.commit()

        with pytest.raises(ConflictError, match="not synced"):
            await coordinator.apply([variation.variation_id], "unsync")
        assert catalog.calls == []


class TestBulkDelete:
    @pytest.mark.asyncio
    async def test_delete_is_partial(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        variation_ids, product_ids = await synced_variations(seed, catalog, 3)
        catalog.fail("ProductDelete", when=lambda v: v["input"]["id"] == product_ids[1])

        result = await coordinator.apply(variation_ids, "delete")

        assert isinstance(result, BulkDeleteResult)
        assert result.partial
        assert result.deleted_remote == [variation_ids[0], variation_ids[2]]
        assert result.deleted_local == [variation_ids[0], variation_ids[2]]
        assert [failure.variation_id for failure in result.failed_remote] == [variation_ids[1]]
        assert list(catalog.products) == [product_ids[1]]

        remaining = await VariationRepository(session).get_many(variation_ids)
        assert [view.variation_id for view in remaining] == [variation_ids[1]]

    @pytest.mark.asyncio
    async def test_delete_without_failures_is_complete(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation_ids, _ = await synced_variations(seed, catalog, 2)

        result = await coordinator.apply(variation_ids, "delete")

        assert not result.partial
        assert result.succeeded == variation_ids
        assert catalog.products == {}
        assert result.to_dict()["failed_remote"] == []

    @pytest.mark.asyncio
    async def test_delete_rejects_never_synced_items(
        self,
        coordinator: BulkActionCoordinator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await seed.ring(), "A1")
        await seed.commit()

        with pytest.raises(ConflictError, match="never synced"):
            await coordinator.apply([variation.variation_id], "delete")
        assert catalog.calls == []
