"""Cooperative cancellation for one generation call."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from discover_chat.utils.errors import StreamCancelled
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signals a generation loop to stop consuming further model output.

    One token is created per generation call. Cancelling it does not discard
    content that was already accumulated.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "client_cancelled") -> None:
        """Request cancellation. Idempotent; the first reason is kept."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        The awaited work is cancelled when the token fires, and
        ``StreamCancelled`` is raised in its place.

        Args:
            awaitable: Suspension point to make interruptible

        Returns:
            The awaitable's result

        Raises:
            StreamCancelled: If the token fired before the work completed
        """
        work = asyncio.ensure_future(awaitable)
        if self.cancelled:
            work.cancel()
            raise StreamCancelled(self.reason)

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # Cancellation wins over a failure that raced it
            logger.debug(f"Work failed while being cancelled: {e}")
        raise StreamCancelled(self.reason)
