"""Category endpoints."""

from fastapi import APIRouter, Depends

from catalog_sync_service.api.deps import get_category_sync
from catalog_sync_service.api.v1.responses import ApiResponse, ok
from catalog_sync_service.services.category_sync import CategorySyncService

router = APIRouter()


@router.get("", response_model=ApiResponse)
async def list_categories(
    categories: CategorySyncService = Depends(get_category_sync),
) -> ApiResponse:
    return ok("Categories fetched", await categories.list_categories())


@router.post("/sync", response_model=ApiResponse)
async def sync_categories(
    categories: CategorySyncService = Depends(get_category_sync),
) -> ApiResponse:
    """Pull remote custom collections into the local categories table."""
    summary = await categories.sync_categories()
    return ok("Categories synced", summary.to_dict())
