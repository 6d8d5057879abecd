"""
submitter.py - Single-transaction submit, rebroadcast and confirm

Steps:
1. Send once with preflight disabled to get the signature
2. Rebroadcast in the background while the tracker races push vs pull
3. TIMED_OUT -> ConfirmationTimeout (fate unknown, do NOT treat as failed)
4. REJECTED  -> simulate once to recover a readable program error, then
   raise RejectedOnLedger. Simulation only improves the message; it never
   changes the verdict.
5. Tear everything down on every exit path
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from solana.rpc.commitment import Commitment, Confirmed, Processed

from ...domain.errors import BroadcastError, ConfirmationTimeout, Diagnostic, RejectedOnLedger
from ...domain.models import OutcomeStatus, SignedTransaction, SubmissionOutcome
from ...ports.ledger import LedgerNode
from .cancellation import CancellationToken
from .confirmation import ConfirmationTracker
from .rebroadcaster import Rebroadcaster

DEFAULT_TIMEOUT = 15.0

PROGRAM_LOG_PREFIX = "Program log: "


@dataclass
class PendingSubmission:
    """Per-submission state. Owned by one TransactionSubmitter call."""
    transaction: SignedTransaction
    transaction_id: str
    started_at: float
    token: CancellationToken = field(default_factory=CancellationToken)
    rebroadcast_task: Optional[asyncio.Task] = None

    async def close(self) -> None:
        self.token.cancel()
        if self.rebroadcast_task is not None:
            self.rebroadcast_task.cancel()
            await asyncio.gather(self.rebroadcast_task, return_exceptions=True)
            self.rebroadcast_task = None


def extract_program_error(logs: List[str]) -> Optional[str]:
    """Return the last `Program log:` line without its prefix, if any."""
    for line in reversed(logs or []):
        if line.startswith(PROGRAM_LOG_PREFIX):
            return line[len(PROGRAM_LOG_PREFIX):]
    return None


class TransactionSubmitter:
    """
    Submits one signed transaction and waits for a verdict.

    Raises:
        BroadcastError: first send failed
        RejectedOnLedger: node/program reported an error
        ConfirmationTimeout: no verdict before the deadline
    """

    def __init__(
        self,
        node: LedgerNode,
        tracker: Optional[ConfirmationTracker] = None,
        rebroadcaster: Optional[Rebroadcaster] = None,
        timeout: float = DEFAULT_TIMEOUT,
        simulate_commitment: Commitment = Processed,
        commitment: Commitment = Confirmed,
    ):
        self.node = node
        self.tracker = tracker or ConfirmationTracker(node, commitment=commitment)
        self.rebroadcaster = rebroadcaster or Rebroadcaster(node)
        self.timeout = timeout
        self.simulate_commitment = simulate_commitment

    async def submit(self, tx: SignedTransaction, timeout: Optional[float] = None) -> SubmissionOutcome:
        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        try:
            transaction_id = await self.node.submit_raw(tx.raw, skip_preflight=True)
        except Exception as e:
            logger.error(f"TX_SEND | error | {type(e).__name__}: {e}")
            raise BroadcastError(str(e), cause=e) from e

        logger.info(f"TX_SENT | sig={transaction_id}")

        pending = PendingSubmission(transaction=tx, transaction_id=transaction_id, started_at=started_at)
        pending.rebroadcast_task = asyncio.create_task(
            self.rebroadcaster.run(tx.raw, pending.token, started_at + timeout)
        )
        try:
            outcome = await self.tracker.track(transaction_id, timeout, pending.token)
        finally:
            await pending.close()

        latency_ms = (loop.time() - started_at) * 1000
        if outcome.status == OutcomeStatus.CONFIRMED:
            logger.info(f"TX_CONFIRMED | sig={transaction_id} | slot={outcome.slot} | latency={latency_ms:.0f}ms")
            return outcome

        if outcome.status == OutcomeStatus.TIMED_OUT:
            logger.warning(f"TX_TIMEOUT | sig={transaction_id} | elapsed={latency_ms / 1000:.1f}s")
            raise ConfirmationTimeout(transaction_id, timeout)

        diagnostic = await self.diagnose(tx)
        logger.error(
            f"TX_FAILED | sig={transaction_id} | error={outcome.error}"
            + (f" | detail={diagnostic.message}" if diagnostic else "")
        )
        raise RejectedOnLedger(transaction_id, outcome.error, slot=outcome.slot, diagnostic=diagnostic)

    async def diagnose(self, tx: SignedTransaction) -> Optional[Diagnostic]:
        """
        Best-effort dry run of a rejected transaction.

        Returns None when simulation fails or reports no error; the caller
        then surfaces the raw ledger error.
        """
        try:
            result = await self.node.simulate(tx.raw, self.simulate_commitment)
        except Exception as e:
            logger.error(f"TX_SIMULATE | error | {type(e).__name__}: {e}")
            return None

        if not result.err:
            return None

        message = extract_program_error(result.logs)
        if message is None:
            message = str(result.err)
        return Diagnostic(message=message, logs=list(result.logs or []))
