"""Assign group, category, style and gender to a ring, and list rings by assignment."""

import math
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from shared.constants import SUPPLIER_CATEGORY_IDS

logger = structlog.get_logger()

# attribute -> (table, id column, label)
ASSIGNABLE: dict[str, tuple[str, str, str]] = {
    "group_id": ("attribute_groups", "group_id", "Group"),
    "category_id": ("categories", "category_id", "Category"),
    "style_id": ("styles", "style_id", "Style"),
    "gender_id": ("genders", "gender_id", "Gender"),
}

SortField = Literal[
    "created_at", "supplier_group_id", "group_name", "category_name", "style_name", "gender_name"
]

ASSIGNED_RING_SELECT = """
    SELECT
        r.ring_id, r.supplier_group_id, r.group_id, r.category_id, r.style_id,
        r.gender_id, r.created_at,
        g.name AS group_name,
        c.name AS category_name,
        s.name AS style_name,
        gd.name AS gender_name,
        NOT EXISTS (
            SELECT 1 FROM ring_variations v
            WHERE v.ring_id = r.ring_id AND v.sync_id <> ''
        ) AS editable
    FROM rings r
    LEFT JOIN attribute_groups g ON g.group_id = r.group_id
    LEFT JOIN categories c ON c.category_id = r.category_id
    LEFT JOIN styles s ON s.style_id = r.style_id
    LEFT JOIN genders gd ON gd.gender_id = r.gender_id
"""

FULLY_ASSIGNED = """
    r.group_id IS NOT NULL AND r.category_id IS NOT NULL
    AND r.style_id IS NOT NULL AND r.gender_id IS NOT NULL
"""

SORT_COLUMNS: dict[str, str] = {
    "created_at": "r.created_at",
    "supplier_group_id": "r.supplier_group_id",
    "group_name": "g.name",
    "category_name": "c.name",
    "style_name": "s.name",
    "gender_name": "gd.name",
}


@dataclass
class RingAssignment:
    ring_id: int
    supplier_group_id: str
    group_id: int | None = None
    category_id: int | None = None
    style_id: int | None = None
    gender_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class RingPage:
    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    def to_dict(self) -> dict[str, Any]:
        return {
            "rings": self.items,
            "page": self.page,
            "limit": self.limit,
            "total_records": self.total,
            "total_pages": math.ceil(self.total / self.limit) if self.limit else 0,
        }


class RingAssignmentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_ring(self, ring_id: int) -> RingAssignment:
        result = await self.session.execute(
            text("""
                SELECT ring_id, supplier_group_id, group_id, category_id, style_id, gender_id
                FROM rings WHERE ring_id = :ring_id
            """),
            {"ring_id": ring_id},
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Ring not found")
        return RingAssignment(**row._mapping)

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    async def unassigned_rings(self) -> dict[str, Any]:
        """Rings with neither group nor category, plus the options to assign."""
        result = await self.session.execute(
            text("""
                SELECT ring_id, supplier_group_id FROM rings
                WHERE group_id IS NULL AND category_id IS NULL
                ORDER BY ring_id
            """)
        )
        rings = [dict(row._mapping) for row in result]
        tags = await self._web_category_names([ring["ring_id"] for ring in rings])
        for ring in rings:
            ring["web_categories"] = tags.get(ring["ring_id"], [])
        return {"rings": rings, **await self._options()}

    async def assigned_rings(
        self,
        search: str | None = None,
        sort_field: SortField = "created_at",
        sort_order: Literal["asc", "desc"] = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> RingPage:
        """Fully assigned rings, searchable by group name."""
        if sort_field not in SORT_COLUMNS:
            raise ValidationError(f"Cannot sort by {sort_field}")
        where = f" WHERE {FULLY_ASSIGNED}"
        params: dict[str, Any] = {}
        if search and search.strip():
            where += " AND LOWER(g.name) LIKE :search"
            params["search"] = f"%{search.strip().lower()}%"

        total = await self.session.execute(
            text(
                "SELECT COUNT(*) FROM rings r "
                "LEFT JOIN attribute_groups g ON g.group_id = r.group_id" + where
            ),
            params,
        )
        direction = "DESC" if sort_order == "desc" else "ASC"
        result = await self.session.execute(
            text(
                ASSIGNED_RING_SELECT
                + where
                + f" ORDER BY {SORT_COLUMNS[sort_field]} {direction}, r.ring_id DESC"
                + " LIMIT :limit OFFSET :offset"
            ),
            {**params, "limit": limit, "offset": (page - 1) * limit},
        )
        return RingPage(
            items=[_assigned_row(row) for row in result],
            total=total.scalar() or 0,
            page=page,
            limit=limit,
        )

    async def all_assigned_rings(self) -> list[dict[str, Any]]:
        result = await self.session.execute(
            text(ASSIGNED_RING_SELECT + f" WHERE {FULLY_ASSIGNED} ORDER BY g.name ASC")
        )
        return [_assigned_row(row) for row in result]

    async def assigned_ring(self, supplier_group_id: str) -> dict[str, Any]:
        """One ring by supplier family id, with the options to edit it."""
        supplier_group_id = (supplier_group_id or "").strip()
        if not supplier_group_id:
            raise ValidationError("supplier_group_id is required")
        result = await self.session.execute(
            text(ASSIGNED_RING_SELECT + " WHERE r.supplier_group_id = :supplier_group_id"),
            {"supplier_group_id": supplier_group_id},
        )
        row = result.first()
        if row is None:
            raise NotFoundError("No ring found for this supplier group id")
        ring = _assigned_row(row)
        tags = await self._web_category_names([ring["ring_id"]])
        ring["web_categories"] = tags.get(ring["ring_id"], [])
        return {"ring": ring, **await self._options(ring["ring_id"])}

    async def _web_category_names(self, ring_ids: list[int]) -> dict[int, list[str]]:
        if not ring_ids:
            return {}
        result = await self.session.execute(
            text("""
                SELECT rwc.ring_id, wc.name
                FROM ring_web_categories rwc
                JOIN web_categories wc ON wc.web_cat_id = rwc.web_cat_id
                WHERE rwc.ring_id IN :ring_ids AND wc.web_cat_id IN :allowed
                ORDER BY wc.name
            """).bindparams(
                bindparam("ring_ids", expanding=True), bindparam("allowed", expanding=True)
            ),
            {"ring_ids": ring_ids, "allowed": list(SUPPLIER_CATEGORY_IDS)},
        )
        names: dict[int, list[str]] = {}
        for row in result:
            names.setdefault(row.ring_id, []).append(row.name)
        return names

    async def _options(self, ring_id: int = 0) -> dict[str, list[dict[str, Any]]]:
        """Assignable categories, styles and genders, and the groups still free.

        A group held by ``ring_id`` itself counts as free.
        """
        queries = {
            "categories": "SELECT category_id, name, remote_id FROM categories ORDER BY name",
            "styles": "SELECT style_id, name, image FROM styles ORDER BY name",
            "genders": "SELECT gender_id, name FROM genders ORDER BY name",
        }
        options: dict[str, list[dict[str, Any]]] = {}
        for key, query in queries.items():
            result = await self.session.execute(text(query))
            options[key] = [dict(row._mapping) for row in result]

        groups = await self.session.execute(
            text("""
                SELECT g.group_id, g.name FROM attribute_groups g
                WHERE NOT EXISTS (
                    SELECT 1 FROM rings r
                    WHERE r.group_id = g.group_id AND r.ring_id <> :ring_id
                )
                ORDER BY g.name
            """),
            {"ring_id": ring_id},
        )
        options["groups"] = [dict(row._mapping) for row in groups]
        return options

    async def assign(
        self,
        ring_id: int,
        group_id: int | None = None,
        category_id: int | None = None,
        style_id: int | None = None,
        gender_id: int | None = None,
    ) -> RingAssignment:
        """Set the ring's attributes.

        Attributes are written to remote products at sync time, so a ring with
        pushed variations is locked.
        """
        ring = await self.get_ring(ring_id)
        requested = {
            "group_id": group_id,
            "category_id": category_id,
            "style_id": style_id,
            "gender_id": gender_id,
        }

        if all(getattr(ring, attribute) == value for attribute, value in requested.items()):
            raise ValidationError("No changes to save")

        synced = await self.session.execute(
            text("SELECT COUNT(*) FROM ring_variations WHERE ring_id = :ring_id AND sync_id <> ''"),
            {"ring_id": ring_id},
        )
        if synced.scalar():
            raise ConflictError(
                "Ring has products on the remote catalog; unsync or delete them first",
                status_code=400,
            )

        for attribute, value in requested.items():
            if value is None:
                continue
            table, id_column, label = ASSIGNABLE[attribute]
            exists = await self.session.execute(
                text(f"SELECT 1 FROM {table} WHERE {id_column} = :id"), {"id": value}
            )
            if exists.first() is None:
                raise NotFoundError(f"{label} not found")

        if group_id is not None:
            taken = await self.session.execute(
                text("SELECT ring_id FROM rings WHERE group_id = :group_id AND ring_id <> :ring_id"),
                {"group_id": group_id, "ring_id": ring_id},
            )
            if taken.first() is not None:
                raise ConflictError("Group is already assigned to another ring")

        try:
            await self.session.execute(
                text("""
                    UPDATE rings
                    SET group_id = :group_id, category_id = :category_id,
                        style_id = :style_id, gender_id = :gender_id
                    WHERE ring_id = :ring_id
                """),
                {**requested, "ring_id": ring_id},
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to assign ring attributes", ring_id=ring_id, error=str(exc))
            raise PersistenceError("Failed to save ring attributes") from exc

        logger.info("Ring attributes assigned", ring_id=ring_id, **requested)
        return RingAssignment(ring_id, ring.supplier_group_id, **requested)


def _assigned_row(row: Any) -> dict[str, Any]:
    data = dict(row._mapping)
    data["editable"] = bool(data["editable"])
    return data
