"""Supplier feed reconciliation and maintenance endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.api.deps import get_orchestrator
from catalog_sync_service.api.v1.responses import ApiResponse, ok
from catalog_sync_service.infrastructure.catalog import CatalogGateway, get_catalog_gateway
from catalog_sync_service.infrastructure.database.connection import get_session
from catalog_sync_service.services.maintenance import CLEANUP_JOB, cleanup_orphans
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator
from catalog_sync_service.services.reconciliation import RECONCILIATION_JOB, run_reconciliation
from catalog_sync_service.services.status_log import StatusLogService

router = APIRouter()


@router.post("/reconcile", response_model=ApiResponse)
async def reconcile(gateway: CatalogGateway = Depends(get_catalog_gateway)) -> ApiResponse:
    """
    Fetch the supplier feed and reconcile it with the local catalog.

    Inserts new SKUs, updates changed prices, deletes vanished SKUs and
    pushes the matching price updates and deletes to the remote catalog.
    """
    summary = await run_reconciliation(gateway)
    return ok("Supplier feed reconciled", summary.to_dict())


@router.post("/cleanup", response_model=ApiResponse)
async def cleanup() -> ApiResponse:
    """Remove empty rings and expired status events."""
    return ok("Cleanup completed", await cleanup_orphans())


@router.get("/status", response_model=ApiResponse)
async def job_status(session: AsyncSession = Depends(get_session)) -> ApiResponse:
    """Last run status of the reconciliation and cleanup jobs."""
    status_log = StatusLogService(session)
    return ok(
        "Job status",
        {
            RECONCILIATION_JOB: await status_log.get_sync_status(RECONCILIATION_JOB),
            CLEANUP_JOB: await status_log.get_sync_status(CLEANUP_JOB),
        },
    )


@router.get("/product-count", response_model=ApiResponse)
async def product_count(
    collection_id: Annotated[str, Query(min_length=1)],
    shape: str | None = None,
    metal: str | None = None,
    style: str | None = None,
    gender: str | None = None,
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    """Count active remote products in a collection, filtered by product metafields."""
    count = await orchestrator.count_remote_products(
        collection_id, shape=shape, metal=metal, style=style, gender=gender
    )
    return ok("Product count fetched", {"collection_id": collection_id, "count": count})
