"""Endpoint tests: response envelopes, status codes and failure logging."""

import pytest
from httpx import AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tests.fakes import COLLECTION_ID, CatalogSeeder, FakeCatalogClient


async def synced_variation_ids(
    seed: CatalogSeeder, catalog: FakeCatalogClient, count: int
) -> tuple[list[int], list[str]]:
    ring = await seed.ring()
    variation_ids, product_ids = [], []
    for index in range(count):
        product_id = catalog.add_product(f"Band {index}")
        variation = await seed.variation(
            ring, f"A{index}", sync=True, sync_id=product_id, variant_sync_id=f"v{index}"
        )
        variation_ids.append(variation.variation_id)
        product_ids.append(product_id)
    await seed.commit()
    return variation_ids, product_ids


class TestErrorEnvelope:
    @pytest.mark.asyncio
    async def test_expected_errors_are_enveloped_and_recorded(
        self, async_client: AsyncClient, session: AsyncSession
    ) -> None:
        response = await async_client.get("/api/v1/products/999")

        assert response.status_code == 404
        assert response.json() == {"status": 404, "success": False, "message": "Product not found"}
        row = (await session.execute(text("SELECT status, message FROM app_status_events"))).one()
        assert (row.status, row.message) == (404, "Product not found")

    @pytest.mark.asyncio
    async def test_request_validation_uses_framework_errors(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/v1/products/bulk", json={"ids": [], "action": "sync"})
        assert response.status_code == 422


class TestProductEndpoints:
    @pytest.mark.asyncio
    async def test_list_with_counts(
        self, async_client: AsyncClient, seed: CatalogSeeder, catalog: FakeCatalogClient
    ) -> None:
        await synced_variation_ids(seed, catalog, 2)
        ring = await seed.ring("SER-2")
        await seed.variation(ring, "B1", stone_type="Natural Diamond")
        await seed.commit()

        response = await async_client.get(
            "/api/v1/products", params={"display": "yetToBeSynced", "productStatus": "incomplete"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [item["sku"] for item in body["result"]["items"]] == ["B1"]
        assert body["result"]["counts"] == {"all": 3, "synced": 2, "archived": 0, "yetToBeSynced": 1}

    @pytest.mark.asyncio
    async def test_sync_endpoint(
        self, async_client: AsyncClient, seed: CatalogSeeder, catalog: FakeCatalogClient
    ) -> None:
        ring = await seed.ring(category=await seed.category(), group=await seed.group())
        variation = await seed.variation(ring, "A1")
        await seed.commit()

        response = await async_client.post(f"/api/v1/products/{variation.variation_id}/sync")

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["sync_id"] in catalog.products
        assert response.json()["message"] == "Product synced"

    @pytest.mark.asyncio
    async def test_bulk_delete_partial_answers_206(
        self, async_client: AsyncClient, seed: CatalogSeeder, catalog: FakeCatalogClient
    ) -> None:
        variation_ids, product_ids = await synced_variation_ids(seed, catalog, 2)
        catalog.fail("ProductDelete", when=lambda v: v["input"]["id"] == product_ids[0])

        response = await async_client.post(
            "/api/v1/products/bulk", json={"ids": variation_ids, "action": "delete"}
        )

        assert response.status_code == 206
        body = response.json()
        assert body["status"] == 206
        assert body["result"]["deleted_local"] == [variation_ids[1]]
        assert [f["id"] for f in body["result"]["failed_remote"]] == [variation_ids[0]]

    @pytest.mark.asyncio
    async def test_bulk_sync_failure_lists_items(
        self, async_client: AsyncClient, seed: CatalogSeeder, catalog: FakeCatalogClient
    ) -> None:
        ring = await seed.ring(category=await seed.category(), group=await seed.group())
        variation = await seed.variation(ring, "A1")
        await seed.commit()
        catalog.fail("ProductCreate")

        response = await async_client.post(
            "/api/v1/products/bulk", json={"ids": [variation.variation_id], "action": "sync"}
        )

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["failures"][0]["id"] == variation.variation_id


class TestDictionaryEndpoints:
    @pytest.mark.asyncio
    async def test_create_group(
        self, async_client: AsyncClient, catalog: FakeCatalogClient
    ) -> None:
        catalog.add_metafield_definition("Group Name", "group_name", [])

        response = await async_client.post("/api/v1/dictionaries/group", data={"name": "Vintage"})

        assert response.status_code == 201
        assert response.json()["result"]["name"] == "Vintage"
        assert catalog.metafield_choices("Group Name") == ["Vintage"]

        listed = await async_client.get("/api/v1/dictionaries/group", params={"search": "vin"})
        assert listed.json()["result"]["total"] == 1

    @pytest.mark.asyncio
    async def test_non_image_upload_is_rejected(
        self, async_client: AsyncClient, catalog: FakeCatalogClient
    ) -> None:
        response = await async_client.post(
            "/api/v1/dictionaries/metal",
            data={"name": "Palladium"},
            files={"image": ("notes.txt", b"plain", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only image files are accepted"
        assert catalog.calls == []


class TestRingAndCatalogEndpoints:
    @pytest.mark.asyncio
    async def test_unchanged_ring_attributes(
        self, async_client: AsyncClient, seed: CatalogSeeder
    ) -> None:
        ring = await seed.ring()
        await seed.commit()

        response = await async_client.put(f"/api/v1/rings/{ring.ring_id}/attributes", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "No changes to save"

    @pytest.mark.asyncio
    async def test_category_sync_and_listing(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/v1/categories/sync")
        assert response.json()["result"] == {"inserted": 1, "updated": 0, "deleted": 0}

        listed = await async_client.get("/api/v1/categories")
        assert [c["name"] for c in listed.json()["result"]] == ["Wedding Bands"]

    @pytest.mark.asyncio
    async def test_job_status_before_any_run(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/v1/catalog/status")
        assert response.json()["result"] == {"reconciliation": None, "cleanup": None}

    @pytest.mark.asyncio
    async def test_assigned_ring_listings(
        self, async_client: AsyncClient, seed: CatalogSeeder
    ) -> None:
        await seed.ring(
            "SER-1",
            category=await seed.category(),
            group=await seed.group(),
            style=await seed.style(),
            gender=await seed.gender(),
        )
        await seed.ring("SER-2")
        await seed.commit()

        listed = await async_client.get(
            "/api/v1/rings/assigned", params={"sortField": "group_name", "sortOrder": "asc"}
        )
        unassigned = await async_client.get("/api/v1/rings/unassigned")
        everything = await async_client.get("/api/v1/rings/assigned/all")
        one = await async_client.get("/api/v1/rings/assigned/SER-1")
        partial = await async_client.get("/api/v1/rings/assigned/SER-2")

        assert listed.json()["result"]["total_records"] == 1
        assert listed.json()["result"]["rings"][0]["group_name"] == "Classic"
        assert [r["supplier_group_id"] for r in unassigned.json()["result"]["rings"]] == ["SER-2"]
        assert [r["supplier_group_id"] for r in everything.json()["result"]] == ["SER-1"]
        assert one.json()["result"]["ring"]["editable"] is True
        assert partial.status_code == 200
        assert partial.json()["result"]["ring"]["group_id"] is None

    @pytest.mark.asyncio
    async def test_remote_product_count(
        self, async_client: AsyncClient, catalog: FakeCatalogClient
    ) -> None:
        collection_id = COLLECTION_ID
        catalog.add_product("A", metafields={"metal": "Platinum"}, collections=[collection_id])
        catalog.add_product("B", metafields={"metal": "Silver"}, collections=[collection_id])

        counted = await async_client.get(
            "/api/v1/catalog/product-count",
            params={"collection_id": collection_id, "metal": "Platinum"},
        )
        invalid = await async_client.get(
            "/api/v1/catalog/product-count", params={"collection_id": "1234"}
        )

        assert counted.json()["result"] == {"collection_id": collection_id, "count": 1}
        assert invalid.status_code == 400
