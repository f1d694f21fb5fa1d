"""Typed operations over the remote catalog client.

The client only reports success or failure. This layer turns a failed
envelope into ``TransportError`` and a non-empty ``userErrors`` list into
``RemoteMutationError`` so services can run remote steps inside a saga and
let exceptions drive compensation.
"""

from dataclasses import dataclass, field
from typing import Any

import orjson
import structlog

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import NotFoundError, RemoteMutationError, TransportError
from catalog_sync_service.infrastructure.catalog import operations as ops
from catalog_sync_service.infrastructure.catalog.client import (
    RemoteCatalogClient,
    operation_name,
)
from catalog_sync_service.infrastructure.redis import CacheService
from shared.constants import METAFIELD_NAMESPACE, PUBLICATION_PAGE_SIZE, REMOTE_PAGE_SIZE

logger = structlog.get_logger()


@dataclass
class CreatedProduct:
    """Identifiers returned by product creation."""

    product_id: str
    variant_id: str
    inventory_item_id: str


@dataclass
class ChoiceList:
    """A predefined-choices validation attached to a remote field definition.

    For metafield definitions ``definition_id`` is the metafield definition and
    ``key`` its metafield key. For metaobject definitions ``definition_id`` is
    the metaobject definition and ``key`` the field key inside it.
    """

    definition_id: str
    name: str
    key: str
    namespace: str | None = None
    choices: list[str] = field(default_factory=list)
    other_validations: list[dict[str, Any]] = field(default_factory=list)

    def validations_with(self, choices: list[str]) -> list[dict[str, Any]]:
        return [
            *self.other_validations,
            {"name": "choices", "value": orjson.dumps(choices).decode()},
        ]


@dataclass
class DisplayMetaobject:
    """A remote display tile (name, type tag and optional image)."""

    id: str
    fields: dict[str, str]

    @property
    def name(self) -> str:
        return self.fields.get("name", "")

    @property
    def type_tag(self) -> str:
        return self.fields.get("type", "")


def _split_choices(validations: list[dict[str, Any]]) -> tuple[list[str], list[dict[str, Any]]]:
    choices: list[str] = []
    others: list[dict[str, Any]] = []
    for validation in validations or []:
        if validation.get("name") == "choices":
            try:
                parsed = orjson.loads(validation.get("value") or "[]")
            except orjson.JSONDecodeError:
                logger.warning("Invalid choices JSON on remote definition, treating as empty")
                parsed = []
            choices = [str(choice) for choice in parsed] if isinstance(parsed, list) else []
        else:
            others.append({"name": validation["name"], "value": validation.get("value")})
    return choices, others


def _describe(error: Any) -> str:
    if isinstance(error, list):
        messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in error]
        return "; ".join(messages)
    return str(error)


class CatalogGateway:
    """One method per remote operation the sync services rely on."""

    def __init__(
        self,
        client: RemoteCatalogClient,
        cache: CacheService | None = None,
        settings: Settings | None = None,
    ):
        self.client = client
        self.cache = cache or CacheService(None)
        self.settings = settings or get_settings()

    async def run(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
        root: str | None = None,
    ) -> dict[str, Any]:
        """Execute a document and raise on transport or user errors.

        Args:
            document: GraphQL document from ``operations``.
            variables: Operation variables.
            root: Mutation payload field whose ``userErrors`` must be empty.

        Returns:
            The ``data`` member of the response.
        """
        name = operation_name(document)
        response = await self.client.execute(document, variables)
        if not response.success:
            raise TransportError(f"{name} failed: {_describe(response.error)}")

        data = response.data or {}
        if root:
            user_errors = (data.get(root) or {}).get("userErrors") or []
            if user_errors:
                logger.warning("Remote catalog user errors", operation=name, user_errors=user_errors)
                raise RemoteMutationError(
                    f"{name} rejected: {_describe(user_errors)}", user_errors=user_errors
                )
        return data

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def create_product(self, product_input: dict[str, Any]) -> CreatedProduct:
        data = await self.run(ops.PRODUCT_CREATE, {"input": product_input}, root="productCreate")
        product = (data["productCreate"] or {}).get("product") or {}
        variants = (product.get("variants") or {}).get("nodes") or []
        if not product.get("id") or not variants:
            raise RemoteMutationError("ProductCreate returned no product")
        variant = variants[0]
        return CreatedProduct(
            product_id=product["id"],
            variant_id=variant["id"],
            inventory_item_id=(variant.get("inventoryItem") or {}).get("id", ""),
        )

    async def set_product_status(self, product_id: str, status: str) -> None:
        await self.run(
            ops.PRODUCT_UPDATE,
            {"input": {"id": product_id, "status": status}},
            root="productUpdate",
        )

    async def delete_product(self, product_id: str) -> None:
        await self.run(ops.PRODUCT_DELETE, {"input": {"id": product_id}}, root="productDelete")

    async def product_metafields(self, product_id: str) -> list[dict[str, Any]]:
        data = await self.run(ops.PRODUCT_METAFIELDS, {"id": product_id})
        product = data.get("product")
        if not product:
            raise NotFoundError(f"Product {product_id} not found in the remote catalog")
        return (product.get("metafields") or {}).get("nodes") or []

    async def set_metafields(self, metafields: list[dict[str, Any]]) -> None:
        await self.run(ops.METAFIELDS_SET, {"metafields": metafields}, root="metafieldsSet")

    async def update_variants(self, product_id: str, variants: list[dict[str, Any]]) -> None:
        await self.run(
            ops.VARIANTS_BULK_UPDATE,
            {"productId": product_id, "variants": variants},
            root="productVariantsBulkUpdate",
        )

    async def update_variant_price(self, product_id: str, variant_id: str, price: int | float) -> None:
        await self.update_variants(product_id, [{"id": variant_id, "price": price}])

    async def products_with_metafield_value(self, key: str, value: str) -> list[dict[str, str]]:
        """Page through every product and keep those whose custom ``key`` equals ``value``."""
        matches: list[dict[str, str]] = []
        after: str | None = None
        while True:
            data = await self.run(
                ops.PRODUCTS_WITH_METAFIELD,
                {
                    "first": REMOTE_PAGE_SIZE,
                    "after": after,
                    "namespace": METAFIELD_NAMESPACE,
                    "key": key,
                },
            )
            page = data.get("products") or {}
            for node in page.get("nodes") or []:
                metafield = node.get("metafield") or {}
                if (metafield.get("value") or "").strip() == value.strip():
                    matches.append({"id": node["id"], "title": node.get("title", "")})
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return matches
            after = page_info.get("endCursor")

    # -------------------------------------------------------------------------
    # Inventory and Publishing
    # -------------------------------------------------------------------------

    async def first_location_id(self) -> str:
        async def load() -> str | None:
            data = await self.run(ops.LOCATIONS)
            nodes = (data.get("locations") or {}).get("nodes") or []
            return nodes[0]["id"] if nodes else None

        location_id = await self.cache.get_or_load(
            "locations:first", load, self.settings.sync_lookup_cache_ttl_seconds
        )
        if not location_id:
            raise NotFoundError("No inventory location found in the remote catalog")
        return location_id

    async def adjust_inventory(self, inventory_item_id: str, location_id: str, delta: int) -> None:
        await self.run(
            ops.INVENTORY_ADJUST,
            {
                "input": {
                    "reason": "correction",
                    "name": "available",
                    "changes": [
                        {
                            "delta": delta,
                            "inventoryItemId": inventory_item_id,
                            "locationId": location_id,
                        }
                    ],
                }
            },
            root="inventoryAdjustQuantities",
        )

    async def publication_ids(self) -> list[str]:
        async def load() -> list[str]:
            data = await self.run(ops.PUBLICATIONS, {"first": PUBLICATION_PAGE_SIZE})
            return [node["id"] for node in (data.get("publications") or {}).get("nodes") or []]

        return await self.cache.get_or_load(
            "publications", load, self.settings.sync_lookup_cache_ttl_seconds
        )

    async def publish(self, product_id: str, publication_ids: list[str]) -> None:
        await self.run(
            ops.PUBLISHABLE_PUBLISH,
            {"id": product_id, "input": [{"publicationId": pid} for pid in publication_ids]},
            root="publishablePublish",
        )

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    async def collection_exists(self, collection_id: str) -> bool:
        cache_key = f"collection:{collection_id}"
        if await self.cache.get(cache_key):
            return True
        data = await self.run(ops.COLLECTION_BY_ID, {"id": collection_id})
        exists = bool(data.get("collection"))
        if exists:
            await self.cache.set(cache_key, True, self.settings.sync_lookup_cache_ttl_seconds)
        return exists

    async def forget_collection(self, collection_id: str) -> None:
        await self.cache.delete(f"collection:{collection_id}")

    async def count_collection_products(self, collection_id: str, filters: dict[str, str]) -> int:
        """Count active products of a collection whose custom metafields equal ``filters``."""
        count = 0
        after: str | None = None
        while True:
            data = await self.run(
                ops.COLLECTION_PRODUCTS,
                {
                    "id": collection_id,
                    "first": REMOTE_PAGE_SIZE,
                    "after": after,
                    "namespace": METAFIELD_NAMESPACE,
                },
            )
            collection = data.get("collection")
            if not collection:
                raise NotFoundError("Collection not found in the remote catalog")
            page = collection.get("products") or {}
            for node in page.get("nodes") or []:
                if node.get("status") != "ACTIVE":
                    continue
                values = {
                    mf.get("key"): mf.get("value")
                    for mf in (node.get("metafields") or {}).get("nodes") or []
                }
                if all(values.get(key) == value for key, value in filters.items()):
                    count += 1
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return count
            after = page_info.get("endCursor")

    async def custom_collections(self) -> list[dict[str, str]]:
        collections: list[dict[str, str]] = []
        after: str | None = None
        while True:
            data = await self.run(ops.CUSTOM_COLLECTIONS, {"first": REMOTE_PAGE_SIZE, "after": after})
            page = data.get("collections") or {}
            collections.extend(page.get("nodes") or [])
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return collections
            after = page_info.get("endCursor")

    # -------------------------------------------------------------------------
    # Predefined choice lists
    # -------------------------------------------------------------------------

    async def metafield_choice_list(self, definition_name: str) -> ChoiceList:
        data = await self.run(ops.METAFIELD_DEFINITIONS)
        for node in (data.get("metafieldDefinitions") or {}).get("nodes") or []:
            if node.get("name") == definition_name:
                choices, others = _split_choices(node.get("validations") or [])
                return ChoiceList(
                    definition_id=node["id"],
                    name=node["name"],
                    key=node["key"],
                    namespace=node.get("namespace"),
                    choices=choices,
                    other_validations=others,
                )
        raise NotFoundError(f'"{definition_name}" metafield definition not found')

    async def save_metafield_choices(self, choice_list: ChoiceList, choices: list[str]) -> None:
        await self.run(
            ops.METAFIELD_DEFINITION_UPDATE,
            {
                "definition": {
                    "namespace": choice_list.namespace,
                    "key": choice_list.key,
                    "ownerType": "PRODUCT",
                    "validations": choice_list.validations_with(choices),
                }
            },
            root="metafieldDefinitionUpdate",
        )

    async def metaobject_field_choice_list(self, definition_name: str, field_key: str) -> ChoiceList:
        data = await self.run(ops.METAOBJECT_DEFINITIONS)
        for node in (data.get("metaobjectDefinitions") or {}).get("nodes") or []:
            if node.get("name") != definition_name:
                continue
            for field_def in node.get("fieldDefinitions") or []:
                if field_def.get("key") == field_key:
                    choices, others = _split_choices(field_def.get("validations") or [])
                    return ChoiceList(
                        definition_id=node["id"],
                        name=node["name"],
                        key=field_key,
                        choices=choices,
                        other_validations=others,
                    )
            raise NotFoundError(f'Field "{field_key}" not found in "{definition_name}" metaobject')
        raise NotFoundError(f'"{definition_name}" metaobject definition not found')

    async def save_metaobject_field_choices(self, choice_list: ChoiceList, choices: list[str]) -> None:
        await self.run(
            ops.METAOBJECT_DEFINITION_UPDATE,
            {
                "id": choice_list.definition_id,
                "definition": {
                    "fieldDefinitions": [
                        {
                            "update": {
                                "key": choice_list.key,
                                "validations": choice_list.validations_with(choices),
                            }
                        }
                    ]
                },
            },
            root="metaobjectDefinitionUpdate",
        )

    # -------------------------------------------------------------------------
    # Metaobjects
    # -------------------------------------------------------------------------

    async def metaobjects_by_type(self, metaobject_type: str) -> list[DisplayMetaobject]:
        found: list[DisplayMetaobject] = []
        after: str | None = None
        while True:
            data = await self.run(
                ops.METAOBJECTS_BY_TYPE,
                {"type": metaobject_type, "first": REMOTE_PAGE_SIZE, "after": after},
            )
            page = data.get("metaobjects") or {}
            for node in page.get("nodes") or []:
                fields = {f["key"]: f.get("value") or "" for f in node.get("fields") or []}
                found.append(DisplayMetaobject(id=node["id"], fields=fields))
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return found
            after = page_info.get("endCursor")

    async def find_display_metaobjects(
        self, metaobject_type: str, name: str, type_tag: str
    ) -> list[DisplayMetaobject]:
        return [
            metaobject
            for metaobject in await self.metaobjects_by_type(metaobject_type)
            if metaobject.name == name and metaobject.type_tag == type_tag
        ]

    async def create_metaobject(self, metaobject_type: str, fields: dict[str, str]) -> str:
        data = await self.run(
            ops.METAOBJECT_CREATE,
            {
                "metaobject": {
                    "type": metaobject_type,
                    "fields": [{"key": k, "value": v} for k, v in fields.items()],
                }
            },
            root="metaobjectCreate",
        )
        return data["metaobjectCreate"]["metaobject"]["id"]

    async def update_metaobject(self, metaobject_id: str, fields: dict[str, str]) -> None:
        await self.run(
            ops.METAOBJECT_UPDATE,
            {
                "id": metaobject_id,
                "metaobject": {"fields": [{"key": k, "value": v} for k, v in fields.items()]},
            },
            root="metaobjectUpdate",
        )

    async def delete_metaobject(self, metaobject_id: str) -> None:
        """Delete a metaobject. A metaobject that is already gone is not an error."""
        response = await self.client.execute(ops.METAOBJECT_DELETE, {"id": metaobject_id})
        if not response.success:
            if "Metaobject not found" in _describe(response.error):
                logger.info("Metaobject already deleted", metaobject_id=metaobject_id)
                return
            raise TransportError(f"MetaobjectDelete failed: {_describe(response.error)}")

        user_errors = ((response.data or {}).get("metaobjectDelete") or {}).get("userErrors") or []
        if user_errors and "not found" not in _describe(user_errors).lower():
            raise RemoteMutationError(
                f"MetaobjectDelete rejected: {_describe(user_errors)}", user_errors=user_errors
            )
