"""Product variation endpoints: listing, editing and remote sync."""

from dataclasses import asdict
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catalog_sync_service.api.deps import (
    get_bulk_coordinator,
    get_orchestrator,
    get_variation_repository,
)
from catalog_sync_service.api.v1.responses import ApiResponse, ok
from catalog_sync_service.services.bulk_actions import BulkActionCoordinator
from catalog_sync_service.services.product_content import VariationView, parse_diamonds
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator, VariationEdit
from catalog_sync_service.services.variations import VariationRepository
from shared.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class VariationEditRequest(BaseModel):
    """Editable fields of a variation."""

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    band_width: str = Field(..., min_length=1)
    style_label: str | None = None
    diamonds: list[dict[str, Any]] | dict[str, Any] | None = None


class RemoteIdRequest(BaseModel):
    remote_id: str = Field(..., min_length=1, description="Remote product id (sync_id)")


class BulkActionRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1, description="Variation ids")
    action: Literal["sync", "unsync", "delete"]


def _view_dict(view: VariationView) -> dict[str, Any]:
    data = asdict(view)
    data["diamonds"] = parse_diamonds(view.diamonds)
    data["archived"] = view.is_archived
    return data


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=ApiResponse)
async def list_variations(
    display: Literal["all", "synced", "archived", "yetToBeSynced"] = "all",
    product_status: Annotated[
        Literal["complete", "incomplete"] | None, Query(alias="productStatus")
    ] = None,
    search: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_LIMIT)] = DEFAULT_PAGE_LIMIT,
    repository: VariationRepository = Depends(get_variation_repository),
) -> ApiResponse:
    """
    List variations with per-display counts.

    **Display filters:**
    - `synced`: active on the remote catalog
    - `archived`: pushed once, currently archived
    - `yetToBeSynced`: never pushed
    """
    result = await repository.list_page(display, product_status, search, page, limit)
    return ok(
        "Products fetched",
        {
            "items": [_view_dict(view) for view in result.items],
            "total": result.total,
            "page": page,
            "limit": limit,
            "counts": result.counts,
        },
    )


@router.get("/{variation_id}", response_model=ApiResponse)
async def get_variation(
    variation_id: int,
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    view = await orchestrator.get_variation(variation_id)
    return ok("Product fetched", _view_dict(view))


@router.put("/{variation_id}", response_model=ApiResponse)
async def edit_variation(
    variation_id: int,
    request: VariationEditRequest,
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    """Update content; pushed variations get their remote metafields rewritten first."""
    view = await orchestrator.edit_variation(
        variation_id,
        VariationEdit(
            title=request.title,
            description=request.description,
            band_width=request.band_width,
            style_label=request.style_label,
            diamonds=request.diamonds,
        ),
    )
    return ok("Product updated", _view_dict(view))


@router.post("/{variation_id}/sync", response_model=ApiResponse)
async def sync_variation(
    variation_id: int,
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    outcome = await orchestrator.sync_variation(variation_id)
    return ok(
        "Product reactivated" if outcome.reactivated else "Product synced",
        {
            "id": outcome.variation_id,
            "sync_id": outcome.product_id,
            "variant_sync_id": outcome.variant_id,
        },
    )


@router.post("/{variation_id}/unsync", response_model=ApiResponse)
async def unsync_variation(
    variation_id: int,
    request: RemoteIdRequest,
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    view = await orchestrator.unsync_variation(variation_id, request.remote_id)
    return ok("Product archived", _view_dict(view))


@router.delete("/{variation_id}", response_model=ApiResponse)
async def delete_variation(
    variation_id: int,
    remote_id: Annotated[str, Query(min_length=1)],
    orchestrator: CatalogSyncOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    await orchestrator.delete_variation(variation_id, remote_id)
    return ok("Product deleted", {"id": variation_id})


@router.post("/bulk", response_model=ApiResponse)
async def bulk_action(
    request: BulkActionRequest,
    coordinator: BulkActionCoordinator = Depends(get_bulk_coordinator),
):
    """
    Apply sync, unsync or delete to many variations.

    Sync and unsync succeed or fail as a whole. Delete answers 206 when some
    items failed, listing remote and local failures separately.
    """
    result = await coordinator.apply(request.ids, request.action)
    if result.partial:
        body = ok("Some products could not be deleted", result.to_dict(), status=206)
        return JSONResponse(status_code=206, content=body.model_dump())
    return ok(f"Bulk {request.action} completed", result.to_dict())
