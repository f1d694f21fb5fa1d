"""Queries and writes on ring variations shared by the sync services."""

from dataclasses import dataclass, field
from typing import Any, Literal

import orjson
from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.services.product_content import VariationView

DisplayFilter = Literal["all", "synced", "archived", "yetToBeSynced"]
ProductStatus = Literal["complete", "incomplete"]

VARIATION_VIEW_SELECT = """
    SELECT
        v.variation_id, v.ring_id, v.sku, v.title, v.supplier_product_id,
        v.description, v.group_description, v.band_width, v.stone_type,
        v.quality, v.weight, v.supplier_price, v.supplier_showcase_price,
        v.diamonds, v.style_label, v.sync, v.sync_id, v.variant_sync_id,
        m.name AS metal_name,
        s.name AS stone_name,
        r.group_id,
        g.name AS group_name,
        c.name AS category_name,
        c.remote_id AS category_remote_id,
        r.style_id,
        st.name AS style_name,
        ge.name AS gender_name
    FROM ring_variations v
    JOIN rings r ON r.ring_id = v.ring_id
    LEFT JOIN metals m ON m.metal_id = v.metal_id
    LEFT JOIN stones s ON s.stone_id = v.stone_id
    LEFT JOIN attribute_groups g ON g.group_id = r.group_id
    LEFT JOIN categories c ON c.category_id = r.category_id
    LEFT JOIN styles st ON st.style_id = r.style_id
    LEFT JOIN genders ge ON ge.gender_id = r.gender_id
"""

DISPLAY_CONDITIONS: dict[str, str] = {
    "all": "1 = 1",
    "synced": "v.sync = :synced",
    "archived": "v.sync = :unsynced AND v.sync_id <> ''",
    "yetToBeSynced": "v.sync = :unsynced AND v.sync_id = ''",
}

COMPLETE_CONDITION = """
    (v.title <> '' AND v.description <> '' AND v.band_width <> ''
     AND (v.stone_type = 'NS'
          OR (v.diamonds IS NOT NULL AND v.diamonds NOT IN ('', '[]', '{}', 'null'))))
"""


def _view_from_row(row: Any) -> VariationView:
    return VariationView(
        variation_id=row.variation_id,
        ring_id=row.ring_id,
        sku=row.sku,
        title=row.title or "",
        supplier_product_id=row.supplier_product_id or "",
        description=row.description or "",
        group_description=row.group_description or "",
        band_width=row.band_width or "",
        stone_type=row.stone_type or "",
        quality=row.quality or "",
        weight=row.weight or 0,
        supplier_price=row.supplier_price or 0,
        supplier_showcase_price=row.supplier_showcase_price or 0,
        diamonds=row.diamonds,
        style_label=row.style_label,
        sync=bool(row.sync),
        sync_id=row.sync_id or "",
        variant_sync_id=row.variant_sync_id or "",
        metal_name=row.metal_name or "",
        stone_name=row.stone_name or "",
        group_id=row.group_id,
        group_name=row.group_name,
        category_name=row.category_name,
        category_remote_id=row.category_remote_id,
        style_id=row.style_id,
        style_name=row.style_name,
        gender_name=row.gender_name,
    )


@dataclass
class SyncStateChange:
    """New remote sync state of one variation."""

    variation_id: int
    sync: bool
    sync_id: str
    variant_sync_id: str


@dataclass
class VariationPage:
    items: list[VariationView] = field(default_factory=list)
    total: int = 0
    counts: dict[str, int] = field(default_factory=dict)


class VariationRepository:
    """Parameterized SQL over ``ring_variations`` and its joins."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, variation_id: int) -> VariationView | None:
        result = await self.session.execute(
            text(VARIATION_VIEW_SELECT + " WHERE v.variation_id = :id"),
            {"id": variation_id},
        )
        row = result.first()
        return _view_from_row(row) if row else None

    async def get_many(self, variation_ids: list[int]) -> list[VariationView]:
        """Fetch views in the order of ``variation_ids``; missing ids are skipped."""
        if not variation_ids:
            return []
        result = await self.session.execute(
            text(VARIATION_VIEW_SELECT + " WHERE v.variation_id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"ids": list(variation_ids)},
        )
        by_id = {row.variation_id: _view_from_row(row) for row in result}
        return [by_id[vid] for vid in variation_ids if vid in by_id]

    async def product_group_members(
        self, ring_id: int, exclude_variation_id: int
    ) -> list[tuple[str, str | None]]:
        """``(sync_id, quality)`` of every remote product in a family."""
        result = await self.session.execute(
            text("""
                SELECT sync_id, quality FROM ring_variations
                WHERE ring_id = :ring_id AND sync_id <> '' AND variation_id <> :variation_id
                ORDER BY variation_id
            """),
            {"ring_id": ring_id, "variation_id": exclude_variation_id},
        )
        return [(row.sync_id, row.quality) for row in result]

    async def list_page(
        self,
        display: DisplayFilter = "all",
        product_status: ProductStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> VariationPage:
        conditions = [DISPLAY_CONDITIONS[display]]
        params: dict[str, Any] = {"synced": True, "unsynced": False}
        if product_status == "complete":
            conditions.append(COMPLETE_CONDITION)
        elif product_status == "incomplete":
            conditions.append(f"NOT {COMPLETE_CONDITION}")
        if search:
            conditions.append("(LOWER(v.sku) LIKE :search OR LOWER(v.title) LIKE :search)")
            params["search"] = f"%{search.lower()}%"
        where = " WHERE " + " AND ".join(conditions)

        total_result = await self.session.execute(
            text("SELECT COUNT(*) FROM ring_variations v JOIN rings r ON r.ring_id = v.ring_id" + where),
            params,
        )
        result = await self.session.execute(
            text(VARIATION_VIEW_SELECT + where + " ORDER BY v.variation_id LIMIT :limit OFFSET :offset"),
            {**params, "limit": limit, "offset": (page - 1) * limit},
        )
        return VariationPage(
            items=[_view_from_row(row) for row in result],
            total=total_result.scalar() or 0,
            counts=await self.counts(),
        )

    async def counts(self) -> dict[str, int]:
        result = await self.session.execute(
            text("""
                SELECT
                    COUNT(*) AS all_count,
                    SUM(CASE WHEN sync = :synced THEN 1 ELSE 0 END) AS synced,
                    SUM(CASE WHEN sync = :unsynced AND sync_id <> '' THEN 1 ELSE 0 END) AS archived,
                    SUM(CASE WHEN sync = :unsynced AND sync_id = '' THEN 1 ELSE 0 END) AS yet_to_be_synced
                FROM ring_variations
            """),
            {"synced": True, "unsynced": False},
        )
        row = result.one()
        return {
            "all": row.all_count or 0,
            "synced": row.synced or 0,
            "archived": row.archived or 0,
            "yetToBeSynced": row.yet_to_be_synced or 0,
        }

    async def apply_sync_states(self, changes: list[SyncStateChange]) -> None:
        if not changes:
            return
        await self.session.execute(
            text("""
                UPDATE ring_variations
                SET sync = :sync, sync_id = :sync_id, variant_sync_id = :variant_sync_id
                WHERE variation_id = :variation_id
            """),
            [
                {
                    "variation_id": change.variation_id,
                    "sync": change.sync,
                    "sync_id": change.sync_id,
                    "variant_sync_id": change.variant_sync_id,
                }
                for change in changes
            ],
        )

    async def set_sync_flag(self, variation_ids: list[int], sync: bool) -> None:
        if not variation_ids:
            return
        await self.session.execute(
            text("UPDATE ring_variations SET sync = :sync WHERE variation_id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"sync": sync, "ids": list(variation_ids)},
        )

    async def delete(self, variation_ids: list[int]) -> None:
        if not variation_ids:
            return
        await self.session.execute(
            text("DELETE FROM ring_variations WHERE variation_id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"ids": list(variation_ids)},
        )

    async def update_content(
        self,
        variation_id: int,
        title: str,
        description: str,
        band_width: str,
        style_label: str | None,
        diamonds: Any,
    ) -> None:
        await self.session.execute(
            text("""
                UPDATE ring_variations
                SET title = :title, description = :description, band_width = :band_width,
                    style_label = :style_label, diamonds = :diamonds
                WHERE variation_id = :variation_id
            """),
            {
                "variation_id": variation_id,
                "title": title,
                "description": description,
                "band_width": band_width,
                "style_label": style_label,
                "diamonds": orjson.dumps(diamonds).decode() if diamonds is not None else None,
            },
        )
