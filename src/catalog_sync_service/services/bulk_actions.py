"""Sync, unsync and delete applied to a batch of variations.

Sync and unsync are all-or-nothing: one failed item unwinds every item that
already changed remotely. Delete is partial: every item is attempted and the
result reports what happened to each one.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import (
    CatalogSyncError,
    ConflictError,
    PersistenceError,
    ValidationError,
)
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.services.maintenance import MaintenanceService
from catalog_sync_service.services.product_content import VariationView, missing_sync_fields
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator, SyncOutcome
from catalog_sync_service.services.saga import Saga

logger = structlog.get_logger()

BulkAction = Literal["sync", "unsync", "delete"]


@dataclass
class ItemFailure:
    variation_id: int
    supplier_product_id: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.variation_id,
            "supplier_product_id": self.supplier_product_id,
            "message": self.message,
        }


class BulkActionError(CatalogSyncError):
    """A batch failed and every remote change it made was reverted."""

    def __init__(
        self,
        message: str,
        failures: list[ItemFailure],
        status_code: int | None = None,
    ):
        super().__init__(message, status_code)
        self.failures = failures

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "failures": [failure.to_dict() for failure in self.failures]}


@dataclass
class BulkResult:
    action: BulkAction
    succeeded: list[int] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "succeeded": self.succeeded}


@dataclass
class BulkDeleteResult(BulkResult):
    deleted_remote: list[int] = field(default_factory=list)
    deleted_local: list[int] = field(default_factory=list)
    failed_remote: list[ItemFailure] = field(default_factory=list)
    failed_local: list[ItemFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_remote or self.failed_local)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "deleted_remote": self.deleted_remote,
            "deleted_local": self.deleted_local,
            "failed_remote": [failure.to_dict() for failure in self.failed_remote],
            "failed_local": [failure.to_dict() for failure in self.failed_local],
        }


def _labels(views: list[VariationView]) -> str:
    return ", ".join(view.supplier_product_id or view.sku for view in views)


class BulkActionCoordinator:
    """Applies one action to a batch of variations, items processed in order."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: CatalogGateway,
        settings: Settings | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.orchestrator = CatalogSyncOrchestrator(session, gateway, self.settings)
        self.variations = self.orchestrator.variations

    async def apply(self, variation_ids: list[int], action: BulkAction) -> BulkResult:
        if not variation_ids:
            raise ValidationError("No products selected")
        if action not in ("sync", "unsync", "delete"):
            raise ValidationError(f"Unknown bulk action: {action}")

        ids = list(dict.fromkeys(variation_ids))
        views = await self.variations.get_many(ids)
        found = {view.variation_id for view in views}
        missing = [vid for vid in ids if vid not in found]
        if missing:
            raise ValidationError(
                f"Products not found: {', '.join(str(vid) for vid in missing)}"
            )

        logger.info("Bulk action started", action=action, count=len(views))
        if action == "sync":
            return await self._sync(views)
        if action == "unsync":
            return await self._unsync(views)
        return await self._delete(views)

    # =========================================================================
    # Sync
    # =========================================================================

    async def _sync(self, views: list[VariationView]) -> BulkResult:
        already = [view for view in views if view.sync]
        if already:
            raise ConflictError(f"Products already synced: {_labels(already)}", status_code=400)
        incomplete = [
            view for view in views if not view.is_archived and missing_sync_fields(view)
        ]
        if incomplete:
            raise ValidationError(
                f"Products missing required fields: {_labels(incomplete)}"
            )

        outcomes: list[SyncOutcome] = []
        failures: list[ItemFailure] = []
        pending: dict[int, list[tuple[str, str | None]]] = {}
        for view in views:
            try:
                outcome = await self.orchestrator.push(
                    view, pending_members=list(pending.get(view.ring_id, []))
                )
            except CatalogSyncError as exc:
                failures.append(ItemFailure(view.variation_id, view.supplier_product_id, exc.message))
                continue
            outcomes.append(outcome)
            if not outcome.reactivated:
                pending.setdefault(view.ring_id, []).append((outcome.product_id, outcome.quality))

        if failures:
            await self._rollback_outcomes(outcomes)
            raise BulkActionError(
                f"Sync failed for {len(failures)} of {len(views)} products; all changes were reverted",
                failures,
            )

        try:
            await self.variations.apply_sync_states([outcome.state_change() for outcome in outcomes])
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to record bulk sync", error=str(exc))
            await self._rollback_outcomes(outcomes)
            raise PersistenceError("Failed to save sync state; remote changes were reverted") from exc

        logger.info("Bulk sync completed", count=len(outcomes))
        return BulkResult("sync", [outcome.variation_id for outcome in outcomes])

    @staticmethod
    async def _rollback_outcomes(outcomes: list[SyncOutcome]) -> None:
        for outcome in reversed(outcomes):
            await outcome.rollback()

    # =========================================================================
    # Unsync
    # =========================================================================

    async def _unsync(self, views: list[VariationView]) -> BulkResult:
        not_synced = [view for view in views if not view.is_synced]
        if not_synced:
            raise ConflictError(f"Products not synced: {_labels(not_synced)}", status_code=400)

        archived: list[tuple[int, Saga]] = []
        failures: list[ItemFailure] = []
        for view in views:
            try:
                archived.append((view.variation_id, await self.orchestrator.archive(view)))
            except CatalogSyncError as exc:
                failures.append(ItemFailure(view.variation_id, view.supplier_product_id, exc.message))

        if failures:
            await self._compensate_sagas([saga for _, saga in archived])
            raise BulkActionError(
                f"Unsync failed for {len(failures)} of {len(views)} products; all changes were reverted",
                failures,
            )

        ids = [variation_id for variation_id, _ in archived]
        try:
            await self.variations.set_sync_flag(ids, False)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to record bulk unsync", error=str(exc))
            await self._compensate_sagas([saga for _, saga in archived])
            raise PersistenceError("Failed to save sync state; remote changes were reverted") from exc

        logger.info("Bulk unsync completed", count=len(ids))
        return BulkResult("unsync", ids)

    @staticmethod
    async def _compensate_sagas(sagas: list[Saga]) -> None:
        for saga in reversed(sagas):
            await saga.compensate()

    # =========================================================================
    # Delete
    # =========================================================================

    async def _delete(self, views: list[VariationView]) -> BulkDeleteResult:
        never_synced = [view for view in views if not view.sync_id]
        if never_synced:
            raise ConflictError(
                f"Products were never synced: {_labels(never_synced)}", status_code=400
            )

        result = BulkDeleteResult("delete")
        removed: list[VariationView] = []
        for view in views:
            try:
                await self.gateway.delete_product(view.sync_id)
            except CatalogSyncError as exc:
                result.failed_remote.append(
                    ItemFailure(view.variation_id, view.supplier_product_id, exc.message)
                )
                continue
            result.deleted_remote.append(view.variation_id)
            removed.append(view)

        maintenance = MaintenanceService(self.session)
        for view in removed:
            try:
                await self.variations.delete([view.variation_id])
                await maintenance.remove_empty_rings({view.ring_id})
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error(
                    "Remote product deleted but local delete failed",
                    variation_id=view.variation_id,
                    product_id=view.sync_id,
                    error=str(exc),
                )
                result.failed_local.append(
                    ItemFailure(view.variation_id, view.supplier_product_id, "Local delete failed")
                )
                continue
            result.deleted_local.append(view.variation_id)

        result.succeeded = list(result.deleted_local)
        logger.info(
            "Bulk delete completed",
            deleted=len(result.deleted_local),
            failed_remote=len(result.failed_remote),
            failed_local=len(result.failed_local),
        )
        return result
