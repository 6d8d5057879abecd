"""
rebroadcaster.py - Best-effort resend of pending transactions

Resends the identical signed bytes with preflight disabled until the
confirmation verdict is in. It never decides success or failure, and send
errors (duplicates, throttling) are deliberately ignored.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from ...ports.ledger import LedgerNode
from .cancellation import CancellationToken

DEFAULT_REBROADCAST_INTERVAL = 0.5


class Rebroadcaster:
    def __init__(self, node: LedgerNode, interval: float = DEFAULT_REBROADCAST_INTERVAL):
        self.node = node
        self.interval = interval

    async def run(self, raw: bytes, token: CancellationToken, deadline: float) -> int:
        """
        Resend `raw` every `interval` seconds until `token` is cancelled or
        the loop clock passes `deadline`.

        Returns the number of resends attempted.
        """
        loop = asyncio.get_running_loop()
        sends = 0
        while not token.cancelled and loop.time() < deadline:
            try:
                await self.node.submit_raw(raw, skip_preflight=True)
            except Exception as e:
                logger.debug(f"REBROADCAST | send_failed | {type(e).__name__}: {e}")
            sends += 1
            if await token.sleep(min(self.interval, max(0.0, deadline - loop.time()))):
                break
        logger.debug(f"REBROADCAST | stopped | sends={sends}")
        return sends
