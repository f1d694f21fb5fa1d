"""Push, archive, reactivate and delete single variations on the remote catalog.

Lifecycle of a variation: unsynced → synced → archived → (synced | deleted).
Remote work runs as a saga; local sync state is written only after every
remote step succeeded, and a failed local write unwinds the remote steps.
"""

import re
from dataclasses import dataclass, field
from typing import Any

import orjson
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.services.maintenance import MaintenanceService
from catalog_sync_service.services.product_content import (
    VariationView,
    description_metafield,
    order_product_group,
    parse_diamonds,
    product_create_input,
    validate_diamonds,
    validate_for_sync,
    variant_update_input,
)
from catalog_sync_service.services.saga import Saga
from catalog_sync_service.services.variations import SyncStateChange, VariationRepository
from shared.constants import METAFIELD_NAMESPACE, PRODUCT_GROUP_KEY

logger = structlog.get_logger()

COLLECTION_GID = re.compile(r"^gid://shopify/Collection/\d+$")


@dataclass
class SyncOutcome:
    """Remote result of pushing one variation.

    ``saga`` still holds the compensations of the remote steps so a caller
    can undo a successful push later (bulk rollback, failed local write).
    """

    variation_id: int
    product_id: str
    variant_id: str
    reactivated: bool = False
    quality: str | None = None
    ring_id: int | None = None
    saga: Saga = field(default_factory=lambda: Saga("noop"))

    async def rollback(self) -> None:
        await self.saga.compensate()

    def state_change(self) -> SyncStateChange:
        return SyncStateChange(
            variation_id=self.variation_id,
            sync=True,
            sync_id=self.product_id,
            variant_sync_id=self.variant_id,
        )


@dataclass
class VariationEdit:
    """Editable content of a variation."""

    title: str
    description: str
    band_width: str
    style_label: str | None = None
    diamonds: Any = None


class CatalogSyncOrchestrator:
    """Single-variation sync state machine."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: CatalogGateway,
        settings: Settings | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.variations = VariationRepository(session)

    async def get_variation(self, variation_id: int) -> VariationView:
        view = await self.variations.get(variation_id)
        if view is None:
            raise NotFoundError("Product not found")
        return view

    async def count_remote_products(
        self,
        collection_id: str,
        shape: str | None = None,
        metal: str | None = None,
        style: str | None = None,
        gender: str | None = None,
    ) -> int:
        """Active products of a remote collection, optionally narrowed by attribute."""
        if not COLLECTION_GID.match(collection_id or ""):
            raise ValidationError(
                "collection_id must be a collection id such as gid://shopify/Collection/1234567890"
            )
        filters = {
            key: value.strip()
            for key, value in (
                ("shape", shape),
                ("metal", metal),
                ("style", style),
                ("gender", gender),
            )
            if value and value.strip()
        }
        return await self.gateway.count_collection_products(collection_id, filters)

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_variation(self, variation_id: int) -> SyncOutcome:
        """Push one variation and record its remote ids.

        Archived variations are reactivated; never-synced ones are created.

        Raises:
            NotFoundError: unknown variation or missing remote collection.
            ConflictError: the variation is already synced.
            ValidationError: required content is missing.
            RemoteMutationError / TransportError: a remote step failed and the
                completed steps were compensated.
            PersistenceError: the local write failed and the remote steps
                were compensated.
        """
        view = await self.get_variation(variation_id)
        if view.sync:
            raise ConflictError(
                f"Product {view.supplier_product_id} is already synced", status_code=400
            )

        outcome = await self.push(view)
        try:
            await self.variations.apply_sync_states([outcome.state_change()])
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to record sync state", variation_id=variation_id, error=str(exc))
            await outcome.rollback()
            raise PersistenceError("Failed to save sync state; remote changes were reverted") from exc

        logger.info(
            "Variation synced",
            variation_id=variation_id,
            product_id=outcome.product_id,
            reactivated=outcome.reactivated,
        )
        return outcome

    async def push(
        self,
        view: VariationView,
        pending_members: list[tuple[str, str | None]] | None = None,
    ) -> SyncOutcome:
        """Run the remote part of a sync without touching local state.

        Args:
            view: The variation to push.
            pending_members: ``(product_id, quality)`` of siblings pushed
                earlier in the same batch whose ids are not stored yet.
        """
        if view.is_archived:
            return await self.reactivate(view)

        validate_for_sync(view)
        if not view.category_remote_id:
            raise ValidationError(
                f"Product {view.supplier_product_id} has no category assigned to its ring"
            )
        if not await self.gateway.collection_exists(view.category_remote_id):
            raise NotFoundError(f"Collection for product {view.supplier_product_id} not found")

        saga = Saga("sync_variation", variation_id=view.variation_id)
        created = await saga.step(
            "create_product",
            lambda: self.gateway.create_product(product_create_input(view)),
            compensate=lambda product: self.gateway.delete_product(product.product_id),
        )
        product_id = created.product_id

        await saga.step(
            "description",
            lambda: self.gateway.set_metafields(
                [{"ownerId": product_id, **description_metafield(view)}]
            ),
        )
        await saga.step("inventory", lambda: self._stock(created.inventory_item_id))
        await saga.step(
            "variant",
            lambda: self.gateway.update_variants(
                product_id, [variant_update_input(view, created.variant_id)]
            ),
        )
        await saga.step("publish", lambda: self._publish(product_id))

        members = await saga.step(
            "product_group_members", lambda: self._product_group_members(view)
        )
        members.extend(pending_members or [])
        members.append((product_id, view.quality))
        ordered = order_product_group(members)
        for member_id in ordered:
            await saga.step(
                f"product_group:{member_id}",
                lambda member_id=member_id: self._write_product_group(member_id, ordered),
                compensate=lambda previous, member_id=member_id: self._restore_product_group(
                    member_id, previous, ordered, product_id
                ),
            )

        return SyncOutcome(
            variation_id=view.variation_id,
            product_id=product_id,
            variant_id=created.variant_id,
            quality=view.quality,
            ring_id=view.ring_id,
            saga=saga,
        )

    async def reactivate(self, view: VariationView) -> SyncOutcome:
        """Set an archived product back to active; no recreation."""
        saga = Saga("reactivate_variation", variation_id=view.variation_id)
        await saga.step(
            "activate",
            lambda: self.gateway.set_product_status(view.sync_id, "ACTIVE"),
            compensate=lambda _: self.gateway.set_product_status(view.sync_id, "ARCHIVED"),
        )
        return SyncOutcome(
            variation_id=view.variation_id,
            product_id=view.sync_id,
            variant_id=view.variant_sync_id,
            reactivated=True,
            quality=view.quality,
            ring_id=view.ring_id,
            saga=saga,
        )

    async def _product_group_members(self, view: VariationView) -> list[tuple[str, str | None]]:
        try:
            return await self.variations.product_group_members(view.ring_id, view.variation_id)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to load product group", variation_id=view.variation_id, error=str(exc)
            )
            raise PersistenceError("Failed to load sibling products") from exc

    async def _stock(self, inventory_item_id: str) -> None:
        location_id = await self.gateway.first_location_id()
        await self.gateway.adjust_inventory(
            inventory_item_id, location_id, self.settings.sync_stocking_quantity
        )

    async def _publish(self, product_id: str) -> None:
        publication_ids = await self.gateway.publication_ids()
        if publication_ids:
            await self.gateway.publish(product_id, publication_ids)

    async def _write_product_group(self, product_id: str, ordered: list[str]) -> str | None:
        """Write the family list on one product and return its previous value."""
        metafields = await self.gateway.product_metafields(product_id)
        previous = next(
            (
                mf.get("value")
                for mf in metafields
                if mf.get("key") == PRODUCT_GROUP_KEY
                and mf.get("namespace", METAFIELD_NAMESPACE) == METAFIELD_NAMESPACE
            ),
            None,
        )
        await self.gateway.set_metafields([self._product_group_metafield(product_id, ordered)])
        return previous

    async def _restore_product_group(
        self,
        product_id: str,
        previous: str | None,
        ordered: list[str],
        new_product_id: str,
    ) -> None:
        if product_id == new_product_id:
            return
        if previous is not None:
            await self.gateway.set_metafields(
                [{**self._product_group_metafield(product_id, []), "value": previous}]
            )
            return
        remaining = [pid for pid in ordered if pid != new_product_id]
        if remaining:
            await self.gateway.set_metafields([self._product_group_metafield(product_id, remaining)])

    @staticmethod
    def _product_group_metafield(product_id: str, ordered: list[str]) -> dict[str, Any]:
        return {
            "ownerId": product_id,
            "namespace": METAFIELD_NAMESPACE,
            "key": PRODUCT_GROUP_KEY,
            "type": "list.product_reference",
            "value": orjson.dumps(ordered).decode(),
        }

    # =========================================================================
    # Unsync / delete
    # =========================================================================

    async def _get_remote_variation(self, variation_id: int, remote_id: str) -> VariationView:
        view = await self.get_variation(variation_id)
        if not remote_id or view.sync_id != remote_id:
            raise NotFoundError("Product not found")
        return view

    async def archive(self, view: VariationView) -> Saga:
        """Archive the remote product; the returned saga reactivates it."""
        saga = Saga("archive_variation", variation_id=view.variation_id)
        await saga.step(
            "archive",
            lambda: self.gateway.set_product_status(view.sync_id, "ARCHIVED"),
            compensate=lambda _: self.gateway.set_product_status(view.sync_id, "ACTIVE"),
        )
        return saga

    async def unsync_variation(self, variation_id: int, remote_id: str) -> VariationView:
        """Archive a synced variation; ``sync_id`` is kept for reactivation."""
        view = await self._get_remote_variation(variation_id, remote_id)
        if not view.is_synced:
            raise ConflictError(
                f"Product {view.supplier_product_id} is not synced", status_code=400
            )

        saga = await self.archive(view)
        try:
            await self.variations.set_sync_flag([variation_id], False)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to record unsync", variation_id=variation_id, error=str(exc))
            await saga.compensate()
            raise PersistenceError("Failed to save sync state; remote changes were reverted") from exc

        logger.info("Variation archived", variation_id=variation_id, product_id=remote_id)
        view.sync = False
        return view

    async def delete_variation(self, variation_id: int, remote_id: str) -> None:
        """Delete the remote product, then the local row."""
        view = await self.get_variation(variation_id)
        if not view.sync_id:
            raise ConflictError(
                f"Product {view.supplier_product_id} was never synced", status_code=400
            )
        view = await self._get_remote_variation(variation_id, remote_id)

        await self.gateway.delete_product(view.sync_id)
        try:
            await self.variations.delete([variation_id])
            await MaintenanceService(self.session).remove_empty_rings({view.ring_id})
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "Remote product deleted but local delete failed",
                variation_id=variation_id,
                product_id=view.sync_id,
                error=str(exc),
            )
            raise PersistenceError("Product deleted remotely but the local delete failed") from exc

        logger.info("Variation deleted", variation_id=variation_id, product_id=view.sync_id)

    # =========================================================================
    # Manual edit
    # =========================================================================

    async def edit_variation(self, variation_id: int, edit: VariationEdit) -> VariationView:
        """Update editable content locally and, for pushed variations, remotely."""
        view = await self.get_variation(variation_id)

        missing = [
            name
            for name, value in (
                ("title", edit.title),
                ("description", edit.description),
                ("band width", edit.band_width),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        diamonds = parse_diamonds(edit.diamonds)
        if view.needs_diamonds:
            validate_diamonds(diamonds)
        if view.group_id is None:
            raise ValidationError("Assign a group to the ring before editing its products")

        edited = VariationView(**{**view.__dict__})
        edited.title = edit.title
        edited.description = edit.description
        edited.band_width = edit.band_width
        edited.style_label = edit.style_label
        edited.diamonds = diamonds

        saga = Saga("edit_variation", variation_id=variation_id)
        if view.sync_id:
            await saga.step(
                "metafields",
                lambda: self._write_content_metafields(edited, diamonds),
                compensate=lambda previous: self.gateway.set_metafields(previous),
            )

        try:
            await self.variations.update_content(
                variation_id,
                title=edit.title,
                description=edit.description,
                band_width=edit.band_width,
                style_label=edit.style_label,
                diamonds=diamonds,
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to save variation edit", variation_id=variation_id, error=str(exc))
            await saga.compensate()
            raise PersistenceError("Failed to save product changes") from exc

        logger.info("Variation edited", variation_id=variation_id, remote=bool(view.sync_id))
        return edited

    async def _write_content_metafields(
        self, view: VariationView, diamonds: Any
    ) -> list[dict[str, Any]]:
        """Write edited metafields and return the previous values for revert."""
        updates = [
            {
                "ownerId": view.sync_id,
                "namespace": METAFIELD_NAMESPACE,
                "key": "band_width",
                "type": "single_line_text_field",
                "value": view.band_width,
            },
            {
                "ownerId": view.sync_id,
                "namespace": METAFIELD_NAMESPACE,
                "key": "diamonds",
                "type": "json",
                "value": orjson.dumps(diamonds).decode(),
            },
            {"ownerId": view.sync_id, **description_metafield(view, diamonds)},
        ]
        if view.group_name:
            updates.append(
                {
                    "ownerId": view.sync_id,
                    "namespace": METAFIELD_NAMESPACE,
                    "key": "group_name",
                    "type": "single_line_text_field",
                    "value": view.group_name,
                }
            )

        current = {
            (mf.get("namespace"), mf.get("key")): mf.get("value")
            for mf in await self.gateway.product_metafields(view.sync_id)
        }
        previous = [
            {**update, "value": current[(update["namespace"], update["key"])]}
            for update in updates
            if current.get((update["namespace"], update["key"])) not in (None, "")
        ]
        await self.gateway.set_metafields(updates)
        return previous
