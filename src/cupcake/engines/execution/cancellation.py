"""
cancellation.py - Cooperative cancellation and single-assignment verdicts

In-flight RPC calls are never force-killed. Loops check the token between
network calls, and the two confirmation channels write through a
VerdictGate where the first writer wins.
"""

from __future__ import annotations

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class CancellationToken:
    """Flag shared by the tracker's poll loop and the rebroadcaster."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancellation.

        Returns True if the token was cancelled.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return False
        return True


class VerdictGate(Generic[T]):
    """
    Single-assignment result cell.

    settle() returns True only for the first writer; every later call is a
    no-op so a verdict already delivered is never overwritten.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.winner: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self._future.done()

    def settle(self, value: T, source: str) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        self.winner = source
        return True

    async def wait(self, timeout: Optional[float]) -> bool:
        """Wait for a verdict. Returns False if the timeout elapsed first."""
        done, _ = await asyncio.wait({self._future}, timeout=timeout)
        return bool(done)

    def result(self) -> T:
        return self._future.result()
