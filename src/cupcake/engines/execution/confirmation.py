"""
confirmation.py - Dual-channel confirmation tracking

Races a websocket signature subscription (push) against signature status
polling (pull). Whichever reaches a terminal verdict first wins; the loser is
cancelled. If neither does before the deadline the verdict is TIMED_OUT,
which means "unknown", never "failed".

Cleanup is unconditional: the subscription is torn down on every exit path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger
from solana.rpc.commitment import Commitment, Confirmed

from ...domain.models import SubmissionOutcome
from ...ports.ledger import LedgerNode, ResultSubscription
from .cancellation import CancellationToken, VerdictGate

DEFAULT_POLL_INTERVAL = 2.0


@dataclass
class _PushChannel:
    """Holds the subscription opened by the push task so track() can release it."""
    subscription: Optional[ResultSubscription] = None


def _short(transaction_id: str) -> str:
    return f"{transaction_id[:16]}..."


class ConfirmationTracker:
    """
    Produces exactly one terminal verdict per transaction id.

    The node handle is shared; the tracker holds no state between calls.
    """

    def __init__(
        self,
        node: LedgerNode,
        commitment: Commitment = Confirmed,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.node = node
        self.commitment = commitment
        self.poll_interval = poll_interval

    async def track(
        self,
        transaction_id: str,
        timeout: float,
        token: Optional[CancellationToken] = None,
    ) -> SubmissionOutcome:
        """
        Wait for a verdict on `transaction_id`.

        Args:
            transaction_id: Signature returned by the initial send
            timeout: Seconds before the verdict becomes TIMED_OUT
            token: Cancelled on return so that anything sharing it (the
                rebroadcaster) stops too

        Returns:
            SubmissionOutcome with status CONFIRMED, REJECTED or TIMED_OUT
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        token = token or CancellationToken()
        gate: VerdictGate[SubmissionOutcome] = VerdictGate()
        push = _PushChannel()
        tasks: List[asyncio.Task] = []

        logger.debug(f"CONFIRM_START | sig={_short(transaction_id)} | timeout={timeout:.1f}s")

        try:
            # Polling never waits on the websocket setup.
            tasks.append(asyncio.create_task(self._poll(transaction_id, gate, token)))
            tasks.append(asyncio.create_task(self._watch_push(transaction_id, push, gate, deadline)))

            if not await gate.wait(max(0.0, deadline - loop.time())):
                if gate.settle(SubmissionOutcome.timed_out(transaction_id, reason="confirmation_timeout"), "timer"):
                    logger.warning(f"CONFIRM_TIMEOUT | sig={_short(transaction_id)} | timeout={timeout:.1f}s")

            outcome = gate.result()
            logger.debug(
                f"CONFIRM_DONE | sig={_short(transaction_id)} | status={outcome.status.value} | via={gate.winner}"
            )
            return outcome
        finally:
            token.cancel()
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if push.subscription is not None:
                await self._close_subscription(transaction_id, push.subscription)

    # =========================================================================
    # PUSH CHANNEL
    # =========================================================================

    async def _open_subscription(self, transaction_id: str, budget: float) -> Optional[ResultSubscription]:
        """Open the websocket subscription. Failure leaves the pull channel on its own."""
        try:
            return await asyncio.wait_for(
                self.node.subscribe_to_result(transaction_id, self.commitment),
                timeout=max(0.0, budget),
            )
        except asyncio.TimeoutError:
            logger.warning(f"WS_SETUP | timeout | sig={_short(transaction_id)}")
        except Exception as e:
            logger.error(f"WS_SETUP | error | sig={_short(transaction_id)} | {e}")
        return None

    async def _watch_push(
        self,
        transaction_id: str,
        push: _PushChannel,
        gate: VerdictGate[SubmissionOutcome],
        deadline: float,
    ) -> None:
        push.subscription = await self._open_subscription(
            transaction_id, deadline - asyncio.get_running_loop().time()
        )
        if push.subscription is None:
            return

        try:
            result = await push.subscription.wait()
        except Exception as e:
            logger.error(f"WS_RESULT | error | sig={_short(transaction_id)} | {e}")
            return

        if result.err:
            outcome = SubmissionOutcome.rejected(transaction_id, result.err, slot=result.slot)
        else:
            outcome = SubmissionOutcome.confirmed(transaction_id, result.slot)

        if gate.settle(outcome, "push"):
            if result.err:
                logger.warning(f"WS_REJECTED | sig={_short(transaction_id)} | error={result.err}")
            else:
                logger.debug(f"WS_CONFIRMED | sig={_short(transaction_id)} | slot={result.slot}")
        else:
            logger.debug(f"WS_LATE | sig={_short(transaction_id)} | ignored")

    async def _close_subscription(self, transaction_id: str, subscription: ResultSubscription) -> None:
        try:
            await subscription.unsubscribe()
        except Exception as e:
            logger.warning(f"WS_UNSUBSCRIBE | error | sig={_short(transaction_id)} | {e}")

    # =========================================================================
    # PULL CHANNEL
    # =========================================================================

    async def _poll(
        self,
        transaction_id: str,
        gate: VerdictGate[SubmissionOutcome],
        token: CancellationToken,
    ) -> None:
        while not token.cancelled and not gate.settled:
            status = None
            try:
                statuses = await self.node.query_status_batch([transaction_id])
                status = statuses[0] if statuses else None
            except Exception as e:
                if not gate.settled:
                    logger.error(f"REST_ERROR | sig={_short(transaction_id)} | {e}")

            if gate.settled:
                return

            if status is None:
                logger.debug(f"REST_PENDING | sig={_short(transaction_id)} | not yet observed")
            elif status.err:
                if gate.settle(
                    SubmissionOutcome.rejected(transaction_id, status.err, slot=status.slot), "pull"
                ):
                    logger.warning(f"REST_REJECTED | sig={_short(transaction_id)} | error={status.err}")
                return
            elif not status.reaches(self.commitment):
                logger.debug(
                    f"REST_UNCONFIRMED | sig={_short(transaction_id)} | level={status.confirmation_status}"
                )
            else:
                if gate.settle(SubmissionOutcome.confirmed(transaction_id, status.slot), "pull"):
                    logger.debug(f"REST_CONFIRMED | sig={_short(transaction_id)} | slot={status.slot}")
                return

            if await token.sleep(self.poll_interval):
                return
