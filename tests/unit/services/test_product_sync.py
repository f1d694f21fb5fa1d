"""Unit tests for the single-variation sync state machine."""

import orjson
import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings
from catalog_sync_service.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    RemoteMutationError,
    TransportError,
    ValidationError,
)
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.database.models import Ring
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator, VariationEdit
from catalog_sync_service.services.variations import VariationRepository
from tests.fakes import COLLECTION_ID, DIAMONDS, CatalogSeeder, FakeCatalogClient, broken_write


@pytest.fixture
def orchestrator(
    session: AsyncSession, gateway: CatalogGateway, test_settings: Settings
) -> CatalogSyncOrchestrator:
    return CatalogSyncOrchestrator(session, gateway, test_settings)


async def assigned_ring(seed: CatalogSeeder, remote_id: str = COLLECTION_ID) -> Ring:
    return await seed.ring(
        category=await seed.category(remote_id=remote_id),
        group=await seed.group(),
        style=await seed.style(),
        gender=await seed.gender(),
    )


class TestSyncVariation:
    @pytest.mark.asyncio
    async def test_push_creates_remote_product_and_records_ids(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        ring = await assigned_ring(seed)
        variation = await seed.variation(ring, "A1")
        await seed.commit()

        outcome = await orchestrator.sync_variation(variation.variation_id)

        product = catalog.products[outcome.product_id]
        assert product["title"] == "Classic Band"
        assert product["collections"] == [COLLECTION_ID]
        assert product["price"] == 500
        assert product["published"] == catalog.publications
        assert catalog.metafield(outcome.product_id, "group_name") == "Classic"
        assert catalog.metafield(outcome.product_id, "stone_type") == "NS"
        assert catalog.metafield(outcome.product_id, "style") == "Comfort Fit"
        assert catalog.metafield(outcome.product_id, "stuller_p_id") == "A1"
        description = catalog.metafield(outcome.product_id, "product_description", "productdata")
        assert orjson.loads(description) == {
            "Ring Information": {"Metal": "14K Yellow Gold", "Width": "4 mm"}
        }
        assert catalog.inventory_adjustments[0]["delta"] == 100
        assert catalog.metafield(outcome.product_id, "product_group") == orjson.dumps(
            [outcome.product_id]
        ).decode()

        assert catalog.operations[:8] == [
            "CollectionById",
            "ProductCreate",
            "MetafieldsSet",
            "Locations",
            "InventoryAdjustQuantities",
            "ProductVariantsBulkUpdate",
            "Publications",
            "PublishablePublish",
        ]

        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.sync is True
        assert stored.sync_id == outcome.product_id
        assert stored.variant_sync_id == product["variant_id"]

    @pytest.mark.asyncio
    async def test_product_group_is_written_on_every_family_member(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        ring = await assigned_ring(seed)
        sibling_id = catalog.add_product("Platinum band")
        await seed.variation(
            ring, "A0", metal="Platinum", sync=True, sync_id=sibling_id, variant_sync_id="v0"
        )
        variation = await seed.variation(ring, "A1")
        await seed.commit()

        outcome = await orchestrator.sync_variation(variation.variation_id)

        expected = orjson.dumps([outcome.product_id, sibling_id]).decode()
        assert catalog.metafield(outcome.product_id, "product_group") == expected
        assert catalog.metafield(sibling_id, "product_group") == expected

    @pytest.mark.asyncio
    async def test_incomplete_variation_makes_no_remote_calls(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        ring = await assigned_ring(seed)
        no_description = await seed.variation(ring, "A1", description="")
        no_diamonds = await seed.variation(ring, "A2", stone_type="Natural Diamond")
        await seed.commit()

        with pytest.raises(ValidationError, match="description"):
            await orchestrator.sync_variation(no_description.variation_id)
        with pytest.raises(ValidationError, match="diamonds"):
            await orchestrator.sync_variation(no_diamonds.variation_id)

        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_ring_without_category_is_rejected(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await seed.ring(), "A1")
        await seed.commit()

        with pytest.raises(ValidationError, match="no category"):
            await orchestrator.sync_variation(variation.variation_id)
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_missing_collection_stops_before_create(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        ring = await assigned_ring(seed, remote_id="gid://shopify/Collection/404")
        variation = await seed.variation(ring, "A1")
        await seed.commit()

        with pytest.raises(NotFoundError):
            await orchestrator.sync_variation(variation.variation_id)
        assert catalog.operations == ["CollectionById"]

    @pytest.mark.asyncio
    async def test_unknown_and_already_synced_variations(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
    ) -> None:
        ring = await assigned_ring(seed)
        synced = await seed.variation(ring, "A1", sync=True, sync_id="p1", variant_sync_id="v1")
        await seed.commit()

        with pytest.raises(NotFoundError):
            await orchestrator.sync_variation(999)
        with pytest.raises(ConflictError) as exc_info:
            await orchestrator.sync_variation(synced.variation_id)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_publish_failure_deletes_created_product(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        ring = await assigned_ring(seed)
        variation = await seed.variation(ring, "A1")
        await seed.commit()
        catalog.fail("PublishablePublish")

        with pytest.raises(TransportError):
            await orchestrator.sync_variation(variation.variation_id)

        assert catalog.products == {}
        assert catalog.operations[-1] == "ProductDelete"
        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.sync is False
        assert stored.sync_id == ""

    @pytest.mark.asyncio
    async def test_product_group_failure_restores_siblings(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        ring = await assigned_ring(seed)
        original = orjson.dumps(["gid://shopify/Product/old"]).decode()
        sibling_id = catalog.add_product("Yellow band", metafields={"product_group": original})
        await seed.variation(ring, "A0", sync=True, sync_id=sibling_id, variant_sync_id="v0")
        variation = await seed.variation(ring, "A1", metal="Platinum")
        await seed.commit()

        def new_product_group(variables: dict) -> bool:
            metafield = variables["metafields"][0]
            return metafield["key"] == "product_group" and metafield["ownerId"] != sibling_id

        catalog.fail("MetafieldsSet", when=new_product_group, user_errors=True)

        with pytest.raises(RemoteMutationError):
            await orchestrator.sync_variation(variation.variation_id)

        assert list(catalog.products) == [sibling_id]
        assert catalog.metafield(sibling_id, "product_group") == original

    @pytest.mark.asyncio
    async def test_local_write_failure_reverts_remote_product(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        ring = await assigned_ring(seed)
        variation = await seed.variation(ring, "A1")
        await seed.commit()
        monkeypatch.setattr(
            orchestrator.variations, "apply_sync_states", broken_write("UPDATE ring_variations")
        )

        with pytest.raises(PersistenceError):
            await orchestrator.sync_variation(variation.variation_id)

        assert catalog.products == {}

    @pytest.mark.asyncio
    async def test_failed_sibling_lookup_deletes_created_product(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        ring = await assigned_ring(seed)
        variation = await seed.variation(ring, "A1")
        await seed.commit()
        monkeypatch.setattr(
            orchestrator.variations, "product_group_members", broken_write("SELECT ring_variations")
        )

        with pytest.raises(PersistenceError, match="sibling"):
            await orchestrator.sync_variation(variation.variation_id)

        assert catalog.products == {}
        assert catalog.operations[-1] == "ProductDelete"
        assert not (await VariationRepository(session).get(variation.variation_id)).sync

    @pytest.mark.asyncio
    async def test_archived_variation_is_reactivated(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        ring = await assigned_ring(seed)
        product_id = catalog.add_product("Classic Band", status="ARCHIVED")
        variation = await seed.variation(
            ring,
            "A1",
            sync=False,
            sync_id=product_id,
            variant_sync_id=catalog.products[product_id]["variant_id"],
        )
        await seed.commit()

        outcome = await orchestrator.sync_variation(variation.variation_id)

        assert outcome.reactivated is True
        assert outcome.product_id == product_id
        assert catalog.products[product_id]["status"] == "ACTIVE"
        assert "ProductCreate" not in catalog.operations
        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.sync is True


class TestUnsyncAndDelete:
    @pytest.mark.asyncio
    async def test_unsync_archives_and_keeps_remote_ids(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        product_id = catalog.add_product("Classic Band")
        variation = await seed.variation(
            await seed.ring(), "A1", sync=True, sync_id=product_id, variant_sync_id="v1"
        )
        await seed.commit()

        await orchestrator.unsync_variation(variation.variation_id, product_id)

        assert catalog.products[product_id]["status"] == "ARCHIVED"
        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.sync is False
        assert stored.sync_id == product_id
        assert stored.is_archived

    @pytest.mark.asyncio
    async def test_unsync_rejects_mismatched_remote_id(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(
            await seed.ring(), "A1", sync=True, sync_id="p1", variant_sync_id="v1"
        )
        unsynced = await seed.variation(await seed.ring("SER-2"), "B1")
        await seed.commit()

        with pytest.raises(NotFoundError):
            await orchestrator.unsync_variation(variation.variation_id, "p2")
        with pytest.raises(NotFoundError):
            await orchestrator.unsync_variation(unsynced.variation_id, "")
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_unsync_failure_leaves_row_synced(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        product_id = catalog.add_product("Classic Band")
        variation = await seed.variation(
            await seed.ring(), "A1", sync=True, sync_id=product_id, variant_sync_id="v1"
        )
        await seed.commit()
        catalog.fail("ProductUpdate")

        with pytest.raises(TransportError):
            await orchestrator.unsync_variation(variation.variation_id, product_id)

        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.sync is True

    @pytest.mark.asyncio
    async def test_delete_removes_remote_product_row_and_empty_ring(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        product_id = catalog.add_product("Classic Band")
        ring = await seed.ring()
        variation = await seed.variation(
            ring, "A1", sync=True, sync_id=product_id, variant_sync_id="v1"
        )
        await seed.commit()

        await orchestrator.delete_variation(variation.variation_id, product_id)

        assert product_id not in catalog.products
        assert await VariationRepository(session).get(variation.variation_id) is None
        remaining = await session.execute(
            text("SELECT COUNT(*) FROM rings WHERE ring_id = :id"), {"id": ring.ring_id}
        )
        assert remaining.scalar() == 0

    @pytest.mark.asyncio
    async def test_delete_requires_a_pushed_variation(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await seed.ring(), "A1")
        await seed.commit()

        with pytest.raises(ConflictError, match="never synced"):
            await orchestrator.delete_variation(variation.variation_id, "p1")
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_delete_keeps_row_when_remote_delete_fails(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        product_id = catalog.add_product("Classic Band")
        variation = await seed.variation(
            await seed.ring(), "A1", sync=True, sync_id=product_id, variant_sync_id="v1"
        )
        await seed.commit()
        catalog.fail("ProductDelete")

        with pytest.raises(TransportError):
            await orchestrator.delete_variation(variation.variation_id, product_id)

        assert await VariationRepository(session).get(variation.variation_id) is not None


class TestEditVariation:
    @pytest.mark.asyncio
    async def test_edit_updates_local_row_and_remote_metafields(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        session: AsyncSession,
    ) -> None:
        product_id = catalog.add_product("Classic Band", metafields={"band_width": "4 mm"})
        ring = await assigned_ring(seed)
        variation = await seed.variation(
            ring,
            "A1",
            stone_type="Natural Diamond",
            diamonds=DIAMONDS,
            sync=True,
            sync_id=product_id,
            variant_sync_id="v1",
        )
        await seed.commit()

        edit = VariationEdit(
            title="Channel Band",
            description="Channel-set band",
            band_width="5 mm",
            style_label="Channel",
            diamonds=orjson.dumps(DIAMONDS).decode(),
        )
        await orchestrator.edit_variation(variation.variation_id, edit)

        assert catalog.metafield(product_id, "band_width") == "5 mm"
        assert catalog.metafield(product_id, "group_name") == "Classic"
        assert orjson.loads(catalog.metafield(product_id, "diamonds")) == DIAMONDS
        description = orjson.loads(
            catalog.metafield(product_id, "product_description", "productdata")
        )
        assert description["Ring Information"]["Style"] == "Channel"
        assert "0" in description["Accent Gemstones"]

        stored = await VariationRepository(session).get(variation.variation_id)
        assert stored.title == "Channel Band"
        assert stored.band_width == "5 mm"
        assert stored.style_label == "Channel"

    @pytest.mark.asyncio
    async def test_edit_of_unpushed_variation_stays_local(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
    ) -> None:
        variation = await seed.variation(await assigned_ring(seed), "A1")
        await seed.commit()

        edited = await orchestrator.edit_variation(
            variation.variation_id, VariationEdit("New title", "New description", "3 mm")
        )

        assert edited.title == "New title"
        assert catalog.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "edit, stone_type, message",
        [
            (VariationEdit("", "Description", "4 mm"), "NS", "title"),
            (VariationEdit("Title", "Description", " "), "NS", "band width"),
            (VariationEdit("Title", "Description", "4 mm"), "Natural Diamond", "Diamonds are required"),
            (
                VariationEdit("Title", "Description", "4 mm", diamonds=[{"shape": "Round"}]),
                "Natural Diamond",
                "Diamond 1 is missing",
            ),
        ],
    )
    async def test_edit_validation(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        edit: VariationEdit,
        stone_type: str,
        message: str,
    ) -> None:
        variation = await seed.variation(await assigned_ring(seed), "A1", stone_type=stone_type)
        await seed.commit()

        with pytest.raises(ValidationError, match=message):
            await orchestrator.edit_variation(variation.variation_id, edit)
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_edit_requires_group(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
    ) -> None:
        variation = await seed.variation(await seed.ring(), "A1")
        await seed.commit()

        with pytest.raises(ValidationError, match="group"):
            await orchestrator.edit_variation(
                variation.variation_id, VariationEdit("Title", "Description", "4 mm")
            )

    @pytest.mark.asyncio
    async def test_failed_local_write_restores_remote_metafields(
        self,
        orchestrator: CatalogSyncOrchestrator,
        seed: CatalogSeeder,
        catalog: FakeCatalogClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        product_id = catalog.add_product("Classic Band", metafields={"band_width": "4 mm"})
        variation = await seed.variation(
            await assigned_ring(seed), "A1", sync=True, sync_id=product_id, variant_sync_id="v1"
        )
        await seed.commit()
        monkeypatch.setattr(
            orchestrator.variations, "update_content", broken_write("UPDATE ring_variations")
        )

        with pytest.raises(PersistenceError):
            await orchestrator.edit_variation(
                variation.variation_id, VariationEdit("Title", "Description", "6 mm")
            )

        assert catalog.metafield(product_id, "band_width") == "4 mm"


class TestRemoteProductCount:
    @pytest.mark.asyncio
    async def test_counts_active_products_matching_every_filter(
        self, orchestrator: CatalogSyncOrchestrator, catalog: FakeCatalogClient
    ) -> None:
        band = {"metal": "Platinum", "style": "Comfort Fit", "gender": "Men"}
        catalog.add_product("A", metafields=band, collections=[COLLECTION_ID])
        catalog.add_product("B", metafields=band, collections=[COLLECTION_ID])
        catalog.add_product("C", status="ARCHIVED", metafields=band, collections=[COLLECTION_ID])
        catalog.add_product(
            "D", metafields={**band, "gender": "Women"}, collections=[COLLECTION_ID]
        )
        catalog.add_product("E", metafields=band)

        assert await orchestrator.count_remote_products(COLLECTION_ID) == 3
        assert (
            await orchestrator.count_remote_products(
                COLLECTION_ID, metal=" Platinum ", gender="Men", shape=""
            )
            == 2
        )
        assert await orchestrator.count_remote_products(COLLECTION_ID, style="Knife Edge") == 0

    @pytest.mark.asyncio
    async def test_collection_id_must_be_a_collection_gid(
        self, orchestrator: CatalogSyncOrchestrator, catalog: FakeCatalogClient
    ) -> None:
        with pytest.raises(ValidationError, match="collection id"):
            await orchestrator.count_remote_products("gid://shopify/Product/1")
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_unknown_collection(self, orchestrator: CatalogSyncOrchestrator) -> None:
        with pytest.raises(NotFoundError, match="Collection not found"):
            await orchestrator.count_remote_products("gid://shopify/Collection/404")
