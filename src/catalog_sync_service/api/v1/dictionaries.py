"""Attribute dictionary endpoints (groups, metals, shapes, styles)."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from catalog_sync_service.api.deps import get_dictionary_sync
from catalog_sync_service.api.v1.responses import ApiResponse, ok
from catalog_sync_service.errors import ValidationError
from catalog_sync_service.infrastructure.catalog.files import ImageUpload
from catalog_sync_service.services.dictionaries import AttributeDictionarySync
from shared.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

router = APIRouter()

DictionaryName = Literal["group", "metal", "shape", "style"]


async def _read_image(image: UploadFile | None) -> ImageUpload | None:
    if image is None or not image.filename:
        return None
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Only image files are accepted")
    return ImageUpload(
        filename=image.filename,
        content=await image.read(),
        content_type=content_type,
    )


@router.get("/{kind}", response_model=ApiResponse)
async def list_entries(
    kind: DictionaryName,
    search: str | None = None,
    sort: Literal["asc", "desc"] = "asc",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_LIMIT)] = DEFAULT_PAGE_LIMIT,
    dictionaries: AttributeDictionarySync = Depends(get_dictionary_sync),
) -> ApiResponse:
    result = await dictionaries.list_entries(kind, search, sort, page, limit)
    return ok(f"{kind.title()} entries fetched", result.to_dict())


@router.get("/{kind}/by-ids", response_model=ApiResponse)
async def get_entries(
    kind: DictionaryName,
    ids: Annotated[list[int], Query(min_length=1)],
    dictionaries: AttributeDictionarySync = Depends(get_dictionary_sync),
) -> ApiResponse:
    entries = await dictionaries.get_by_ids(kind, ids)
    return ok(f"{kind.title()} entries fetched", [entry.to_dict() for entry in entries])


@router.post("/{kind}", response_model=ApiResponse, status_code=201)
async def create_entry(
    kind: DictionaryName,
    name: Annotated[str, Form()],
    image: Annotated[UploadFile | None, File()] = None,
    dictionaries: AttributeDictionarySync = Depends(get_dictionary_sync),
) -> ApiResponse:
    """Create an entry locally and in every remote list that mirrors it."""
    entry = await dictionaries.create_entry(kind, name, await _read_image(image))
    return ok(f"{kind.title()} created", entry.to_dict(), status=201)


@router.put("/{kind}/{entry_id}", response_model=ApiResponse)
async def rename_entry(
    kind: DictionaryName,
    entry_id: int,
    name: Annotated[str, Form()],
    existing_url: Annotated[str | None, Form()] = None,
    image: Annotated[UploadFile | None, File()] = None,
    dictionaries: AttributeDictionarySync = Depends(get_dictionary_sync),
) -> ApiResponse:
    """
    Rename an entry and every remote product carrying it.

    Send a new `image` to replace the picture, or an empty `existing_url`
    without an image to remove it.
    """
    entry = await dictionaries.rename_entry(
        kind, entry_id, name, await _read_image(image), existing_url
    )
    return ok(f"{kind.title()} updated", entry.to_dict())


@router.delete("/{kind}/{entry_id}", response_model=ApiResponse)
async def delete_entry(
    kind: DictionaryName,
    entry_id: int,
    dictionaries: AttributeDictionarySync = Depends(get_dictionary_sync),
) -> ApiResponse:
    entry = await dictionaries.delete_entry(kind, entry_id)
    return ok(f"{kind.title()} deleted", entry.to_dict())
