"""Ordered remote workflows with compensating actions.

The remote catalog has no transactions, so every multi-step workflow records
an undo action for each completed step. When a later step fails the undo
actions run in reverse order. A failing undo is logged and the remaining
ones still run; the error that triggered compensation is the one re-raised.

Usage:
    saga = Saga("sync_variation", variation_id=12)
    product = await saga.step(
        "create_product",
        lambda: gateway.create_product(payload),
        compensate=lambda created: gateway.delete_product(created.product_id),
    )
    await saga.step("publish", lambda: gateway.publish(product.product_id, ids))
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class _Completed:
    name: str
    compensate: Callable[[Any], Awaitable[Any]]
    result: Any


class Saga:
    """Runs steps in order and unwinds completed ones on failure."""

    def __init__(self, name: str, /, **context: Any):
        self.name = name
        self.context = context
        self._completed: list[_Completed] = []

    async def step(
        self,
        name: str,
        action: Callable[[], Awaitable[T]],
        compensate: Callable[[T], Awaitable[Any]] | None = None,
    ) -> T:
        """Run ``action``; remember ``compensate`` if it succeeds.

        On failure the already completed steps are compensated and the
        original exception propagates.
        """
        try:
            result = await action()
        except Exception as exc:
            logger.warning(
                "Saga step failed",
                saga=self.name,
                step=name,
                error=str(exc),
                **self.context,
            )
            await self.compensate()
            raise
        if compensate is not None:
            self._completed.append(_Completed(name, compensate, result))
        return result

    async def compensate(self) -> None:
        """Undo every completed step in reverse order, once."""
        completed, self._completed = self._completed, []
        for step in reversed(completed):
            try:
                await step.compensate(step.result)
                logger.info("Saga step compensated", saga=self.name, step=step.name, **self.context)
            except Exception as exc:
                logger.error(
                    "Saga compensation failed",
                    saga=self.name,
                    step=step.name,
                    error=str(exc),
                    **self.context,
                )
