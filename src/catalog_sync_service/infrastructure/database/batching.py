"""Parameterized batched statements.

Multi-row inserts and keyed conditional updates are built with SQLAlchemy Core
so every value travels as a bound parameter and the same statement runs on
PostgreSQL and SQLite.
"""

from collections.abc import Iterator, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import Insert, Table, Update, case, insert, update

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def multi_row_insert(table: Table, rows: Sequence[Mapping[str, Any]]) -> Insert:
    """Build a single ``INSERT ... VALUES (...), (...)`` statement."""
    if not rows:
        raise ValueError("multi_row_insert needs at least one row")
    return insert(table).values([dict(row) for row in rows])


def keyed_case_update(
    table: Table,
    key: str,
    values_by_key: Mapping[Any, Mapping[str, Any]],
) -> Update:
    """Build one conditional update for many rows keyed by ``key``.

    ``values_by_key`` maps a key value to the columns to set for that row.
    Every column mentioned by any row becomes a ``CASE key WHEN ... THEN ...``
    expression; rows that do not mention a column keep their current value.

    Example:
        keyed_case_update(variations, "variation_id", {
            7: {"supplier_price": 120},
            9: {"supplier_price": 80, "supplier_showcase_price": 150},
        })
    """
    if not values_by_key:
        raise ValueError("keyed_case_update needs at least one row")

    key_column = table.c[key]
    columns: list[str] = []
    for row in values_by_key.values():
        for column in row:
            if column not in columns:
                columns.append(column)

    assignments = {}
    for column in columns:
        whens = {
            key_value: row[column]
            for key_value, row in values_by_key.items()
            if column in row
        }
        assignments[column] = case(whens, value=key_column, else_=table.c[column])

    return (
        update(table)
        .where(key_column.in_(list(values_by_key)))
        .values(assignments)
    )
