"""
submission_engine.py - One entry point over the execution components

Wires tracker, rebroadcaster, submitter, sequencer, signing coordinator and
builder around a single injected LedgerNode. Tests pass fakes; the CLI
passes a SolanaLedgerNode.

Usage:
    async with SubmissionEngine(node, settings) as engine:
        outcome = await engine.submit_one(tx)
        result = await engine.sign_and_submit(prepared, signer, SequencingPolicy.STOP_ON_FAILURE)
        if result.truncated:
            ...
"""

from __future__ import annotations

from typing import Optional, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..config.settings import EngineSettings
from ..domain.models import BatchResult, SequencingPolicy, SignedTransaction, SubmissionOutcome
from ..ports.ledger import LedgerNode
from .execution.builder import TransactionBuilder
from .execution.confirmation import ConfirmationTracker
from .execution.rebroadcaster import Rebroadcaster
from .execution.sequencer import BatchSequencer, FailureCallback, SuccessCallback
from .execution.signing import SigningCoordinator, TransactionSigner
from .execution.submitter import TransactionSubmitter


class SubmissionEngine:
    def __init__(self, node: LedgerNode, settings: EngineSettings):
        self.node = node
        self.settings = settings

        self.tracker = ConfirmationTracker(
            node,
            commitment=settings.commitment_level,
            poll_interval=settings.poll_interval_seconds,
        )
        self.rebroadcaster = Rebroadcaster(node, interval=settings.rebroadcast_interval_seconds)
        self.submitter = TransactionSubmitter(
            node,
            tracker=self.tracker,
            rebroadcaster=self.rebroadcaster,
            timeout=settings.timeout_seconds,
            simulate_commitment=settings.simulate_commitment_level,
        )
        self.sequencer = BatchSequencer(self.submitter)
        self.coordinator = SigningCoordinator(self.sequencer)
        self.builder = TransactionBuilder(node, commitment=settings.commitment_level)

    async def __aenter__(self) -> "SubmissionEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.node.close()

    async def submit_one(self, tx: SignedTransaction, timeout: Optional[float] = None) -> SubmissionOutcome:
        return await self.submitter.submit(tx, timeout=timeout)

    async def submit_batch(
        self,
        transactions: Sequence[SignedTransaction],
        policy: Optional[SequencingPolicy] = None,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        return await self.sequencer.submit_batch(
            transactions,
            policy or self.settings.sequencing_policy,
            on_success=on_success,
            on_failure=on_failure,
            timeout=timeout,
        )

    async def sign_and_submit(
        self,
        prepared: Sequence[Transaction],
        signer: TransactionSigner,
        policy: Optional[SequencingPolicy] = None,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        return await self.coordinator.sign_and_submit(
            prepared,
            signer,
            policy or self.settings.sequencing_policy,
            on_success=on_success,
            on_failure=on_failure,
            timeout=timeout,
        )

    async def send_instructions(
        self,
        instruction_sets: Sequence[Sequence[Instruction]],
        signer_sets: Sequence[Sequence[Keypair]],
        signer: TransactionSigner,
        policy: Optional[SequencingPolicy] = None,
        fee_payer: Optional[Pubkey] = None,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        before: Sequence[Transaction] = (),
        after: Sequence[Transaction] = (),
    ) -> BatchResult:
        """Build, sign and submit instruction sets in one call."""
        prepared = await self.builder.prepare(
            instruction_sets,
            signer_sets,
            wallet=signer.pubkey,
            fee_payer=fee_payer,
            before=before,
            after=after,
        )
        return await self.sign_and_submit(
            prepared,
            signer,
            policy,
            on_success=on_success,
            on_failure=on_failure,
        )
