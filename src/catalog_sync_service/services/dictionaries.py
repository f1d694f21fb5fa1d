"""Attribute dictionaries mirrored in the remote catalog.

Groups, metals, shapes and styles share one pattern. Each name lives in a
local table, in the predefined choices of a product metafield definition
and, except for groups, in the choices of a field of the "Sub Collection
Urls" metaobject definition plus a display metaobject carrying an image.

Mutations of one kind are serialized: choice lists are rewritten whole, so two
concurrent writers would lose each other's change.
"""

import asyncio
import re
import zlib
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import (
    CatalogSyncError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    RemoteMutationError,
    ValidationError,
)
from catalog_sync_service.infrastructure.catalog.files import CatalogFileStore, ImageUpload
from catalog_sync_service.infrastructure.catalog.gateway import (
    CatalogGateway,
    ChoiceList,
    DisplayMetaobject,
)
from catalog_sync_service.services.reconciliation import slugify
from catalog_sync_service.services.saga import Saga
from shared.constants import (
    DICTIONARY_NAME_MAX_LENGTH,
    DICTIONARY_NAME_MIN_LENGTH,
    DISPLAY_METAOBJECT_TYPE,
    METAFIELD_NAMESPACE,
    SUB_COLLECTION_DEFINITION,
)

logger = structlog.get_logger()

SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class DictionaryKind:
    """Where one dictionary lives locally and remotely."""

    kind: str
    label: str
    table: str
    id_column: str
    definition_name: str
    metafield_key: str
    sub_collection_key: str | None = None
    display_tag: str | None = None
    supports_image: bool = False
    has_slug: bool = False
    # Rejects delete while rows reference the entry
    blocking_reference: str | None = None
    # Nulls out references before delete
    detach: str | None = None


KINDS: dict[str, DictionaryKind] = {
    "group": DictionaryKind(
        kind="group",
        label="Group",
        table="attribute_groups",
        id_column="group_id",
        definition_name="Group Name",
        metafield_key="group_name",
        detach="UPDATE rings SET group_id = NULL WHERE group_id = :id",
    ),
    "metal": DictionaryKind(
        kind="metal",
        label="Metal",
        table="metals",
        id_column="metal_id",
        definition_name="Metal",
        metafield_key="metal",
        sub_collection_key="metal",
        display_tag="Metal",
        supports_image=True,
        has_slug=True,
        blocking_reference="SELECT COUNT(*) FROM ring_variations WHERE metal_id = :id",
    ),
    "shape": DictionaryKind(
        kind="shape",
        label="Shape",
        table="shapes",
        id_column="shape_id",
        definition_name="Shape",
        metafield_key="shape",
        sub_collection_key="shape",
        display_tag="Shape",
        supports_image=True,
    ),
    "style": DictionaryKind(
        kind="style",
        label="Style",
        table="styles",
        id_column="style_id",
        definition_name="Style",
        metafield_key="style",
        sub_collection_key="style",
        display_tag="Style",
        supports_image=True,
        detach="UPDATE rings SET style_id = NULL WHERE style_id = :id",
    ),
}

_KIND_LOCKS: dict[str, asyncio.Lock] = {kind: asyncio.Lock() for kind in KINDS}


def get_kind(kind: str) -> DictionaryKind:
    try:
        return KINDS[kind]
    except KeyError:
        raise NotFoundError(f"Unknown dictionary: {kind}") from None


def validate_name(name: str | None, label: str) -> str:
    """Strip and check a dictionary name; returns the cleaned name."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} name is required")
    if not DICTIONARY_NAME_MIN_LENGTH <= len(cleaned) <= DICTIONARY_NAME_MAX_LENGTH:
        raise ValidationError(
            f"{label} name must be between {DICTIONARY_NAME_MIN_LENGTH} and "
            f"{DICTIONARY_NAME_MAX_LENGTH} characters"
        )
    if re.fullmatch(r"[\d\s.]+", cleaned):
        raise ValidationError(f"{label} name cannot be only numbers")
    return cleaned


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


@dataclass
class DictionaryEntry:
    id: int
    name: str
    image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "image": self.image}


@dataclass
class DictionaryPage:
    items: list[DictionaryEntry]
    total: int
    page: int
    limit: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [entry.to_dict() for entry in self.items],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
        }


class AttributeDictionarySync:
    """Create, rename and delete dictionary entries locally and remotely."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: CatalogGateway,
        settings: Settings | None = None,
        file_store: CatalogFileStore | None = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.file_store = file_store or CatalogFileStore(gateway, self.settings)

    # =========================================================================
    # Reads
    # =========================================================================

    def _columns(self, spec: DictionaryKind) -> str:
        image = "image" if spec.supports_image else "NULL AS image"
        return f"{spec.id_column} AS id, name, {image}"

    async def get_entry(self, spec: DictionaryKind, entry_id: int) -> DictionaryEntry:
        result = await self.session.execute(
            text(f"SELECT {self._columns(spec)} FROM {spec.table} WHERE {spec.id_column} = :id"),
            {"id": entry_id},
        )
        row = result.first()
        if row is None:
            raise NotFoundError(f"{spec.label} not found")
        return DictionaryEntry(row.id, row.name, row.image)

    async def list_entries(
        self,
        kind: str,
        search: str | None = None,
        sort: SortOrder = "asc",
        page: int = 1,
        limit: int = 20,
    ) -> DictionaryPage:
        spec = get_kind(kind)
        where = ""
        params: dict[str, Any] = {}
        if search:
            where = " WHERE LOWER(name) LIKE :search"
            params["search"] = f"%{search.lower()}%"
        direction = "DESC" if sort == "desc" else "ASC"

        total = await self.session.execute(text(f"SELECT COUNT(*) FROM {spec.table}{where}"), params)
        result = await self.session.execute(
            text(
                f"SELECT {self._columns(spec)} FROM {spec.table}{where} "
                f"ORDER BY name {direction} LIMIT :limit OFFSET :offset"
            ),
            {**params, "limit": limit, "offset": (page - 1) * limit},
        )
        return DictionaryPage(
            items=[DictionaryEntry(row.id, row.name, row.image) for row in result],
            total=total.scalar() or 0,
            page=page,
            limit=limit,
        )

    async def get_by_ids(self, kind: str, ids: list[int]) -> list[DictionaryEntry]:
        spec = get_kind(kind)
        if not ids:
            raise ValidationError("At least one id is required")
        result = await self.session.execute(
            text(
                f"SELECT {self._columns(spec)} FROM {spec.table} "
                f"WHERE {spec.id_column} IN :ids ORDER BY name"
            ).bindparams(bindparam("ids", expanding=True)),
            {"ids": list(ids)},
        )
        entries = [DictionaryEntry(row.id, row.name, row.image) for row in result]
        if not entries:
            raise NotFoundError(f"No {spec.label.lower()} found for the given ids")
        return entries

    async def _name_taken(self, spec: DictionaryKind, name: str, exclude_id: int | None = None) -> bool:
        result = await self.session.execute(
            text(
                f"SELECT 1 FROM {spec.table} WHERE LOWER(name) = LOWER(:name) "
                f"AND {spec.id_column} <> :exclude_id"
            ),
            {"name": name, "exclude_id": exclude_id if exclude_id is not None else -1},
        )
        return result.first() is not None

    # =========================================================================
    # Locking
    # =========================================================================

    @asynccontextmanager
    async def _locked(self, spec: DictionaryKind) -> AsyncIterator[None]:
        """Serialize mutations of one kind in this process and across workers."""
        async with _KIND_LOCKS[spec.kind]:
            if self.session.bind.dialect.name == "postgresql":
                await self.session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": zlib.crc32(f"dictionary:{spec.kind}".encode())},
                )
            yield

    # =========================================================================
    # Choice list steps
    # =========================================================================

    async def _choice_lists(self, spec: DictionaryKind) -> list[ChoiceList]:
        lists = [await self.gateway.metafield_choice_list(spec.definition_name)]
        if spec.sub_collection_key:
            lists.append(
                await self.gateway.metaobject_field_choice_list(
                    SUB_COLLECTION_DEFINITION, spec.sub_collection_key
                )
            )
        return lists

    async def _save_choices(self, choice_list: ChoiceList, choices: list[str]) -> None:
        # Metaobject field lists carry no namespace
        if choice_list.namespace is not None:
            await self.gateway.save_metafield_choices(choice_list, choices)
        else:
            await self.gateway.save_metaobject_field_choices(choice_list, choices)

    async def _rewrite_choices(
        self,
        saga: Saga,
        step: str,
        choice_lists: list[ChoiceList],
        rewrite: Callable[[list[str]], list[str]],
        restore_from: dict[str, list[str]] | None = None,
    ) -> dict[str, list[str]]:
        """Apply ``rewrite`` to every list as saga steps; returns the new lists by definition id."""
        written: dict[str, list[str]] = {}
        for choice_list in choice_lists:
            before = (restore_from or {}).get(choice_list.definition_id, choice_list.choices)
            after = rewrite(before)
            written[choice_list.definition_id] = after
            if after == before:
                continue
            await saga.step(
                f"{step}:{choice_list.name}",
                lambda cl=choice_list, after=after: self._save_choices(cl, after),
                compensate=lambda _, cl=choice_list, before=before: self._save_choices(cl, before),
            )
        return written

    # =========================================================================
    # Create
    # =========================================================================

    async def create_entry(
        self, kind: str, name: str, image: ImageUpload | None = None
    ) -> DictionaryEntry:
        """Add a name locally and to every remote list that mirrors it.

        Remote steps are compensated if a later step or the local insert fails.
        """
        spec = get_kind(kind)
        name = validate_name(name, spec.label)
        if image is not None and not spec.supports_image:
            raise ValidationError(f"{spec.label} entries do not take an image")

        async with self._locked(spec):
            if await self._name_taken(spec, name):
                raise ConflictError(f"{spec.label} name already exists")

            saga = Saga("create_dictionary_entry", kind=spec.kind, name=name)
            choice_lists = await self._choice_lists(spec)
            await self._rewrite_choices(
                saga, "add_choice", choice_lists, lambda choices: _dedupe([*choices, name])
            )

            image_url = None
            if spec.display_tag:
                fields = {"name": name, "type": spec.display_tag}
                if image is not None:
                    stored = await saga.step(
                        "upload_image", lambda: self.file_store.upload_image(image, name)
                    )
                    fields["image"] = stored.file_id
                    image_url = stored.url
                existing = await self.gateway.find_display_metaobjects(
                    DISPLAY_METAOBJECT_TYPE, name, spec.display_tag
                )
                if not existing:
                    await saga.step(
                        "create_metaobject",
                        lambda: self.gateway.create_metaobject(DISPLAY_METAOBJECT_TYPE, fields),
                        compensate=lambda metaobject_id: self.gateway.delete_metaobject(metaobject_id),
                    )

            try:
                entry_id = await self._insert(spec, name, image_url)
                await self.session.commit()
            except IntegrityError as exc:
                await self.session.rollback()
                await saga.compensate()
                raise ConflictError(f"{spec.label} name already exists") from exc
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error("Failed to insert dictionary entry", kind=spec.kind, error=str(exc))
                await saga.compensate()
                raise PersistenceError(f"Failed to save {spec.label.lower()}") from exc

        logger.info("Dictionary entry created", kind=spec.kind, entry_id=entry_id, name=name)
        return DictionaryEntry(entry_id, name, image_url)

    async def _insert(self, spec: DictionaryKind, name: str, image_url: str | None) -> int:
        columns = {"name": name}
        if spec.has_slug:
            columns["slug"] = slugify(name)
        if spec.supports_image:
            columns["image"] = image_url
        await self.session.execute(
            text(
                f"INSERT INTO {spec.table} ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + column for column in columns)})"
            ),
            columns,
        )
        result = await self.session.execute(
            text(f"SELECT {spec.id_column} FROM {spec.table} WHERE name = :name"),
            {"name": name},
        )
        return result.scalar_one()

    # =========================================================================
    # Rename
    # =========================================================================

    async def rename_entry(
        self,
        kind: str,
        entry_id: int,
        name: str,
        image: ImageUpload | None = None,
        existing_url: str | None = None,
    ) -> DictionaryEntry:
        """Rename an entry everywhere and optionally replace or clear its image.

        Every remote product carrying the old name is rewritten. If any of them
        fails, the rewritten ones are reverted and nothing else changes.

        Args:
            image: New image for the display metaobject.
            existing_url: Pass ``""`` without ``image`` to clear the image.
        """
        spec = get_kind(kind)
        name = validate_name(name, spec.label)
        if image is not None and not spec.supports_image:
            raise ValidationError(f"{spec.label} entries do not take an image")

        async with self._locked(spec):
            entry = await self.get_entry(spec, entry_id)
            old_name = entry.name
            if await self._name_taken(spec, name, exclude_id=entry_id):
                raise ConflictError(
                    f"{spec.label} name already exists. Please choose a different name."
                )

            metaobjects: list[DisplayMetaobject] = []
            if spec.display_tag:
                metaobjects = await self.gateway.find_display_metaobjects(
                    DISPLAY_METAOBJECT_TYPE, old_name, spec.display_tag
                )
                if not metaobjects:
                    raise NotFoundError(
                        f'Display entry for {spec.label.lower()} "{old_name}" not found in the '
                        "remote catalog. Data mismatch, please contact support."
                    )

            saga = Saga("rename_dictionary_entry", kind=spec.kind, entry_id=entry_id)
            if name != old_name:
                await self._rename_remote(saga, spec, old_name, name, metaobjects)

            image_url = entry.image
            if spec.supports_image:
                image_url = await self._replace_image(saga, metaobjects, name, image, existing_url, entry.image)

            try:
                await self._update_row(spec, entry_id, name, image_url)
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error("Failed to save dictionary rename", kind=spec.kind, error=str(exc))
                await saga.compensate()
                raise PersistenceError(f"Failed to save {spec.label.lower()}") from exc

        logger.info(
            "Dictionary entry renamed",
            kind=spec.kind,
            entry_id=entry_id,
            old_name=old_name,
            new_name=name,
        )
        return DictionaryEntry(entry_id, name, image_url)

    async def _rename_remote(
        self,
        saga: Saga,
        spec: DictionaryKind,
        old_name: str,
        name: str,
        metaobjects: list[DisplayMetaobject],
    ) -> None:
        # Both names stay valid while products are rewritten, so a revert to
        # the old name cannot be rejected by the choice validation.
        choice_lists = await self._choice_lists(spec)
        widened = await self._rewrite_choices(
            saga, "widen_choices", choice_lists, lambda choices: _dedupe([*choices, name])
        )

        await saga.step(
            "rewrite_products",
            lambda: self._cascade_products(spec, old_name, name),
            compensate=lambda product_ids: self._write_product_values(
                spec, product_ids, old_name
            ),
        )

        await self._rewrite_choices(
            saga,
            "narrow_choices",
            choice_lists,
            lambda choices: _dedupe([name if choice == old_name else choice for choice in choices]),
            restore_from=widened,
        )

        for metaobject in metaobjects:
            await saga.step(
                f"rename_metaobject:{metaobject.id}",
                lambda mo=metaobject: self.gateway.update_metaobject(mo.id, {"name": name}),
                compensate=lambda _, mo=metaobject: self.gateway.update_metaobject(
                    mo.id, {"name": old_name}
                ),
            )

    def _product_metafield(self, spec: DictionaryKind, product_id: str, value: str) -> dict[str, Any]:
        return {
            "ownerId": product_id,
            "namespace": METAFIELD_NAMESPACE,
            "key": spec.metafield_key,
            "type": "single_line_text_field",
            "value": value,
        }

    async def _cascade_products(self, spec: DictionaryKind, old_name: str, name: str) -> list[str]:
        """Rewrite every product carrying ``old_name``; all or none stay rewritten."""
        products = await self.gateway.products_with_metafield_value(spec.metafield_key, old_name)
        updated: list[str] = []
        failed: list[str] = []
        for product in products:
            try:
                await self.gateway.set_metafields(
                    [self._product_metafield(spec, product["id"], name)]
                )
            except CatalogSyncError as exc:
                logger.warning(
                    "Product rename failed",
                    kind=spec.kind,
                    product_id=product["id"],
                    error=str(exc),
                )
                failed.append(product.get("title") or product["id"])
                continue
            updated.append(product["id"])

        if failed:
            await self._write_product_values(spec, updated, old_name)
            raise RemoteMutationError(
                f"Failed to rename {spec.label.lower()} on {len(failed)} product(s): "
                f"{', '.join(failed)}. All product changes were reverted."
            )
        logger.info("Products renamed", kind=spec.kind, count=len(updated))
        return updated

    async def _write_product_values(
        self, spec: DictionaryKind, product_ids: list[str], value: str
    ) -> None:
        """Best-effort write of ``value`` to each product, logging failures."""
        for product_id in product_ids:
            try:
                await self.gateway.set_metafields([self._product_metafield(spec, product_id, value)])
            except CatalogSyncError as exc:
                logger.error(
                    "Product revert failed",
                    kind=spec.kind,
                    product_id=product_id,
                    error=str(exc),
                )

    async def _replace_image(
        self,
        saga: Saga,
        metaobjects: list[DisplayMetaobject],
        name: str,
        image: ImageUpload | None,
        existing_url: str | None,
        current_url: str | None,
    ) -> str | None:
        if image is not None:
            stored = await saga.step("upload_image", lambda: self.file_store.upload_image(image, name))
            value, image_url = stored.file_id, stored.url
        elif existing_url == "":
            value, image_url = "", None
        else:
            return current_url

        for metaobject in metaobjects:
            previous = metaobject.fields.get("image", "")
            await saga.step(
                f"image:{metaobject.id}",
                lambda mo=metaobject: self.gateway.update_metaobject(mo.id, {"image": value}),
                compensate=lambda _, mo=metaobject, previous=previous: self.gateway.update_metaobject(
                    mo.id, {"image": previous}
                ),
            )
        return image_url

    async def _update_row(
        self, spec: DictionaryKind, entry_id: int, name: str, image_url: str | None
    ) -> None:
        columns: dict[str, Any] = {"name": name}
        if spec.has_slug:
            columns["slug"] = slugify(name)
        if spec.supports_image:
            columns["image"] = image_url
        assignments = ", ".join(f"{column} = :{column}" for column in columns)
        await self.session.execute(
            text(f"UPDATE {spec.table} SET {assignments} WHERE {spec.id_column} = :id"),
            {**columns, "id": entry_id},
        )

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_entry(self, kind: str, entry_id: int) -> DictionaryEntry:
        """Delete an entry no product references, locally and remotely.

        Raises:
            ConflictError: a local row or a remote product still uses the name.
                Raised before any remote mutation.
        """
        spec = get_kind(kind)

        async with self._locked(spec):
            entry = await self.get_entry(spec, entry_id)

            if spec.blocking_reference:
                result = await self.session.execute(
                    text(spec.blocking_reference), {"id": entry_id}
                )
                if result.scalar():
                    raise ConflictError(
                        f'{spec.label} "{entry.name}" is used by existing products and cannot be deleted'
                    )

            products = await self.gateway.products_with_metafield_value(
                spec.metafield_key, entry.name
            )
            if products:
                titles = ", ".join(product.get("title") or product["id"] for product in products)
                raise ConflictError(
                    f'{spec.label} "{entry.name}" is still used by remote products: {titles}'
                )

            saga = Saga("delete_dictionary_entry", kind=spec.kind, entry_id=entry_id)
            choice_lists = await self._choice_lists(spec)
            await self._rewrite_choices(
                saga,
                "remove_choice",
                choice_lists,
                lambda choices: [choice for choice in choices if choice != entry.name],
            )

            if spec.display_tag:
                for metaobject in await self.gateway.find_display_metaobjects(
                    DISPLAY_METAOBJECT_TYPE, entry.name, spec.display_tag
                ):
                    await saga.step(
                        f"delete_metaobject:{metaobject.id}",
                        lambda mo=metaobject: self.gateway.delete_metaobject(mo.id),
                        compensate=lambda _, mo=metaobject: self.gateway.create_metaobject(
                            DISPLAY_METAOBJECT_TYPE, {k: v for k, v in mo.fields.items() if v}
                        ),
                    )

            try:
                if spec.detach:
                    await self.session.execute(text(spec.detach), {"id": entry_id})
                await self.session.execute(
                    text(f"DELETE FROM {spec.table} WHERE {spec.id_column} = :id"),
                    {"id": entry_id},
                )
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error("Failed to delete dictionary entry", kind=spec.kind, error=str(exc))
                await saga.compensate()
                raise PersistenceError(f"Failed to delete {spec.label.lower()}") from exc

        logger.info("Dictionary entry deleted", kind=spec.kind, entry_id=entry_id, name=entry.name)
        return entry
