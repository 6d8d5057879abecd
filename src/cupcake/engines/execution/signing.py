"""
signing.py - Bulk signing and order-preserving hand-off to the sequencer

Prepared transactions come in two kinds: ones that still need the caller's
signature, and ones already signed by every other required party. The first
kind is signed in one round-trip; both kinds are then put back in their
original order, since later transactions may depend on state written by
earlier ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from ...domain.errors import SigningError
from ...domain.models import BatchResult, SequencingPolicy, SignedTransaction
from .sequencer import BatchSequencer, FailureCallback, SuccessCallback


def required_signers(tx: Transaction) -> List[Pubkey]:
    message = tx.message
    return list(message.account_keys)[: message.header.num_required_signatures]


def missing_signers(tx: Transaction) -> List[Pubkey]:
    """Required signers whose signature slot is still empty."""
    empty = Signature.default()
    signatures = list(tx.signatures)
    missing = []
    for position, key in enumerate(required_signers(tx)):
        if position >= len(signatures) or signatures[position] == empty:
            missing.append(key)
    return missing


def needs_signature_from(tx: Transaction, pubkey: Pubkey) -> bool:
    return pubkey in missing_signers(tx)


class TransactionSigner(ABC):
    """Caller's signing facility (keypair, hardware wallet, remote signer...)."""

    @property
    @abstractmethod
    def pubkey(self) -> Pubkey:
        ...

    @abstractmethod
    async def sign_all(self, transactions: List[Transaction]) -> List[Transaction]:
        """Sign every transaction in one round-trip and return them in the same order."""
        ...


class KeypairSigner(TransactionSigner):
    """Signs locally with a solders Keypair. Inputs are copied, never mutated."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign_all(self, transactions: List[Transaction]) -> List[Transaction]:
        signed = []
        for tx in transactions:
            copy = Transaction.from_bytes(bytes(tx))
            copy.partial_sign([self.keypair], copy.message.recent_blockhash)
            signed.append(copy)
        return signed


class SigningCoordinator:
    def __init__(self, sequencer: BatchSequencer):
        self.sequencer = sequencer

    @staticmethod
    def partition(
        prepared: Sequence[Transaction],
        pubkey: Pubkey,
    ) -> Tuple[List[Tuple[int, Transaction]], List[Tuple[int, Transaction]]]:
        """Split into (needs caller signature, already signed by others), keeping indices."""
        needs_signature: List[Tuple[int, Transaction]] = []
        presigned: List[Tuple[int, Transaction]] = []
        for index, tx in enumerate(prepared):
            if needs_signature_from(tx, pubkey):
                needs_signature.append((index, tx))
            else:
                presigned.append((index, tx))
        return needs_signature, presigned

    async def sign(self, prepared: Sequence[Transaction], signer: TransactionSigner) -> List[SignedTransaction]:
        """Sign what needs signing and return everything in the original order."""
        needs_signature, presigned = self.partition(prepared, signer.pubkey)
        logger.info(
            f"SIGN_REQUEST | signer={str(signer.pubkey)[:8]}... | "
            f"to_sign={len(needs_signature)} | presigned={len(presigned)}"
        )

        signed: List[Transaction] = []
        if needs_signature:
            try:
                signed = await signer.sign_all([tx for _, tx in needs_signature])
            except Exception as e:
                logger.error(f"SIGN_FAILED | {type(e).__name__}: {e}")
                raise SigningError(f"Signer failed: {e}") from e
            if len(signed) != len(needs_signature):
                raise SigningError(
                    f"Signer returned {len(signed)} transactions for {len(needs_signature)} requested"
                )

        ordered: List[Optional[Transaction]] = [None] * len(prepared)
        for (index, _), tx in zip(needs_signature, signed):
            ordered[index] = tx
        for index, tx in presigned:
            ordered[index] = tx

        unsigned = [index for index, tx in enumerate(ordered) if tx is None or missing_signers(tx)]
        if unsigned:
            raise SigningError(f"Transactions still missing signatures at indices {unsigned}")

        return [SignedTransaction.from_solders(tx) for tx in ordered]

    async def sign_and_submit(
        self,
        prepared: Sequence[Transaction],
        signer: TransactionSigner,
        policy: SequencingPolicy = SequencingPolicy.PARALLEL,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        signed = await self.sign(prepared, signer)
        return await self.sequencer.submit_batch(
            signed,
            policy,
            on_success=on_success,
            on_failure=on_failure,
            timeout=timeout,
        )
