"""Cooperative cancellation for a single automation run."""

import asyncio
from typing import Optional

from autoconnect.core.errors import RunCancelled


class CancellationToken:
    """
    Stop flag checked at step boundaries and inside long waits.

    The token never interrupts a browser call that is already in flight;
    it only cuts short waits that go through ``sleep()``.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Run stopped by operator"):
        """Request cancellation. Repeated calls keep the first reason."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise RunCancelled(self.reason or "Run stopped by operator")

    async def sleep(self, seconds: float):
        """
        Wait for ``seconds`` unless cancelled first.

        Raises:
            RunCancelled: if the token is (or becomes) cancelled
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
