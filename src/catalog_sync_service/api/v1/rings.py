"""Ring assignment endpoints and assigned ring listings."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from catalog_sync_service.api.deps import get_ring_assignment
from catalog_sync_service.api.v1.responses import ApiResponse, ok
from catalog_sync_service.services.ring_assignment import RingAssignmentService, SortField
from shared.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter()


class RingAttributesRequest(BaseModel):
    group_id: int | None = None
    category_id: int | None = None
    style_id: int | None = None
    gender_id: int | None = None


@router.get("/unassigned", response_model=ApiResponse)
async def unassigned_rings(
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    """Rings without group or category, with the categories, styles, free groups and genders."""
    return ok("Unassigned rings fetched", await rings.unassigned_rings())


@router.get("/assigned", response_model=ApiResponse)
async def assigned_rings(
    search: str | None = None,
    sort_field: Annotated[SortField, Query(alias="sortField")] = "created_at",
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_LIMIT)] = DEFAULT_PAGE_LIMIT,
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    result = await rings.assigned_rings(search, sort_field, sort_order, page, limit)
    return ok("Assigned rings fetched", result.to_dict())


@router.get("/assigned/all", response_model=ApiResponse)
async def all_assigned_rings(
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    return ok("Assigned rings fetched", await rings.all_assigned_rings())


@router.get("/assigned/{supplier_group_id}", response_model=ApiResponse)
async def assigned_ring(
    supplier_group_id: str,
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    return ok("Assigned ring fetched", await rings.assigned_ring(supplier_group_id))


@router.get("/{ring_id}", response_model=ApiResponse)
async def get_ring(
    ring_id: int,
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    ring = await rings.get_ring(ring_id)
    return ok("Ring fetched", ring.to_dict())


@router.put("/{ring_id}/attributes", response_model=ApiResponse)
async def assign_attributes(
    ring_id: int,
    request: RingAttributesRequest,
    rings: RingAssignmentService = Depends(get_ring_assignment),
) -> ApiResponse:
    ring = await rings.assign(
        ring_id,
        group_id=request.group_id,
        category_id=request.category_id,
        style_id=request.style_id,
        gender_id=request.gender_id,
    )
    return ok("Ring attributes saved", ring.to_dict())
