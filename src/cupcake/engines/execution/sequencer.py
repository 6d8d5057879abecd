"""
sequencer.py - Drive a batch of signed transactions under a SequencingPolicy

PARALLEL fans out every submission at once. SEQUENTIAL and STOP_ON_FAILURE
never start transaction N+1 before N has a verdict; STOP_ON_FAILURE also
ends the batch at the first failure.

Transactions with no instructions are placeholders from upstream builders
and are skipped without error.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from ...domain.errors import SubmissionError
from ...domain.models import BatchResult, SequencingPolicy, SignedTransaction, SubmissionOutcome
from .submitter import TransactionSubmitter

SuccessCallback = Callable[[str, int], None]
FailureCallback = Callable[[SubmissionError, int], None]


class BatchSequencer:
    def __init__(self, submitter: TransactionSubmitter):
        self.submitter = submitter

    async def submit_batch(
        self,
        transactions: Sequence[SignedTransaction],
        policy: SequencingPolicy = SequencingPolicy.PARALLEL,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        """
        Submit `transactions` and aggregate the verdicts.

        Callback indices refer to positions in `transactions`.
        """
        work: List[Tuple[int, SignedTransaction]] = [
            (index, tx) for index, tx in enumerate(transactions) if not tx.is_empty
        ]
        skipped = len(transactions) - len(work)
        logger.info(
            f"BATCH_START | policy={policy.value} | txs={len(work)}"
            + (f" | skipped_empty={skipped}" if skipped else "")
        )

        if policy == SequencingPolicy.PARALLEL:
            tasks = [
                asyncio.create_task(self._attempt(index, tx, on_success, on_failure, timeout))
                for index, tx in work
            ]
            try:
                outcomes = await asyncio.gather(*tasks)
            except BaseException:
                # Siblings are cancelled and awaited before the error propagates.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            result = BatchResult(count=len(work), total=len(work), outcomes=list(outcomes))
        else:
            result = await self._run_serial(work, policy, on_success, on_failure, timeout)

        logger.info(
            f"BATCH_DONE | policy={policy.value} | attempted={result.count}/{result.total} | "
            f"confirmed={len(result.confirmed)} | failed={len(result.failed)}"
        )
        return result

    async def _run_serial(
        self,
        work: List[Tuple[int, SignedTransaction]],
        policy: SequencingPolicy,
        on_success: Optional[SuccessCallback],
        on_failure: Optional[FailureCallback],
        timeout: Optional[float],
    ) -> BatchResult:
        outcomes: List[SubmissionOutcome] = []
        for position, (index, tx) in enumerate(work):
            outcome = await self._attempt(index, tx, on_success, on_failure, timeout)
            if not outcome.is_success and policy == SequencingPolicy.STOP_ON_FAILURE:
                logger.warning(f"BATCH_STOP | failed_at={index} | remaining={len(work) - position - 1}")
                return BatchResult(count=position, total=len(work), outcomes=outcomes)
            outcomes.append(outcome)
        return BatchResult(count=len(work), total=len(work), outcomes=outcomes)

    async def _attempt(
        self,
        index: int,
        tx: SignedTransaction,
        on_success: Optional[SuccessCallback],
        on_failure: Optional[FailureCallback],
        timeout: Optional[float],
    ) -> SubmissionOutcome:
        try:
            outcome = await self.submitter.submit(tx, timeout=timeout)
        except SubmissionError as e:
            logger.error(f"BATCH_TX_FAILED | index={index} | {type(e).__name__}: {e}")
            if on_failure is not None:
                on_failure(e, index)
            return e.to_outcome()

        if on_success is not None:
            on_success(outcome.transaction_id, index)
        return outcome
