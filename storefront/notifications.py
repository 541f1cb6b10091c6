"""
Notifications — fire-and-forget order confirmations.

The dispatcher runs each send as a background task. A failed send is logged
and never reaches the caller; the order is already committed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from storefront.orders import Order, OrderItem

log = structlog.get_logger(__name__)


class NotificationSender(Protocol):
    async def send_order_confirmation(self, order: Order, items: Sequence[OrderItem]) -> None: ...


class LogSender:
    """Default sender: writes the confirmation to the log."""

    async def send_order_confirmation(self, order: Order, items: Sequence[OrderItem]) -> None:
        log.info(
            "order_confirmation",
            order_id=order.id,
            order_number=order.order_number,
            email=order.email,
            items=len(items),
            total=str(order.total),
            currency=order.currency,
        )


class NotificationDispatcher:
    """
    Example:
        dispatcher = NotificationDispatcher(LogSender())
        dispatcher.order_confirmed(order, items)   # returns immediately
        await dispatcher.drain()                   # shutdown / tests
    """

    def __init__(self, sender: NotificationSender) -> None:
        self._sender = sender
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def order_confirmed(self, order: Order, items: Sequence[OrderItem]) -> None:
        task = asyncio.create_task(
            self._send(order, items), name=f"order-confirmation-{order.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, order: Order, items: Sequence[OrderItem]) -> None:
        try:
            await self._sender.send_order_confirmation(order, items)
        except Exception as e:
            log.error(
                "order_confirmation_failed",
                order_id=order.id,
                error=str(e),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for every in-flight send."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


__all__ = (
    "NotificationSender",
    "LogSender",
    "NotificationDispatcher",
)
