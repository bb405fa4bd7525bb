from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, Set


class CancelScope:
    """Cancellation signal that can spawn child scopes.

    Cancelling a scope cancels all of its children. Closing a child only
    detaches it; the parent keeps running.
    """

    def __init__(self, parent: Optional["CancelScope"] = None) -> None:
        self._event = asyncio.Event()
        self._children: Set["CancelScope"] = set()
        self._parent = parent
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for child in list(self._children):
            child.cancel()

    def child(self) -> "CancelScope":
        return CancelScope(parent=self)

    def close(self) -> None:
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    def __enter__(self) -> "CancelScope":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds. Returns False if cancelled first."""
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    async def run(self, aw: Awaitable) -> bool:
        """Run ``aw`` until it finishes or the scope is cancelled.

        Returns True when ``aw`` completed and False when cancellation cut it
        short. Exceptions raised by ``aw`` propagate.
        """
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            waiter.cancel()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

        if task.done():
            waiter.cancel()
            task.result()
            return True

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return False
