"""Unit tests for batched statement builders."""

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.infrastructure.database.batching import (
    chunked,
    keyed_case_update,
    multi_row_insert,
)
from catalog_sync_service.infrastructure.database.models import Category


class TestChunked:
    def test_splits_into_slices(self) -> None:
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty_input(self) -> None:
        assert list(chunked([], 3)) == []

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestStatements:
    def test_multi_row_insert_requires_rows(self) -> None:
        with pytest.raises(ValueError):
            multi_row_insert(Category.__table__, [])

    def test_keyed_case_update_requires_rows(self) -> None:
        with pytest.raises(ValueError):
            keyed_case_update(Category.__table__, "category_id", {})

    @pytest.mark.asyncio
    async def test_insert_then_partial_case_update(self, session: AsyncSession) -> None:
        table = Category.__table__
        await session.execute(
            multi_row_insert(
                table,
                [
                    {"name": "Bands", "slug": "bands", "remote_id": "c1"},
                    {"name": "Rings", "slug": "rings", "remote_id": "c2"},
                    {"name": "Misc", "slug": "misc", "remote_id": "c3"},
                ],
            )
        )
        ids = {
            row.remote_id: row.category_id
            for row in await session.execute(text("SELECT category_id, remote_id FROM categories"))
        }

        await session.execute(
            keyed_case_update(
                table,
                "category_id",
                {
                    ids["c1"]: {"name": "Wedding Bands"},
                    ids["c2"]: {"name": "Engagement", "slug": "engagement"},
                },
            )
        )
        rows = {
            row.remote_id: (row.name, row.slug)
            for row in await session.execute(text("SELECT remote_id, name, slug FROM categories"))
        }
        assert rows == {
            "c1": ("Wedding Bands", "bands"),
            "c2": ("Engagement", "engagement"),
            "c3": ("Misc", "misc"),
        }
