"""
models.py - Value types shared by the submission engine

The engine never builds or signs transactions itself. It receives
SignedTransaction values, pushes them through the ledger node, and reports a
SubmissionOutcome per transaction, aggregated into a BatchResult.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from solders.transaction import Transaction


# =============================================================================
# SIGNED TRANSACTION
# =============================================================================

@dataclass(frozen=True)
class SignedTransaction:
    """
    Immutable, already-serialized transaction handed to the engine.

    raw is the exact wire format that gets broadcast and rebroadcast.
    signature is the first signature slot (the transaction id once signed).
    """
    raw: bytes
    signature: str
    instruction_count: int
    fee_payer: Optional[str] = None
    recent_blockhash: Optional[str] = None
    signers: Tuple[str, ...] = ()

    @classmethod
    def from_solders(cls, tx: Transaction) -> "SignedTransaction":
        message = tx.message
        num_signers = message.header.num_required_signatures
        account_keys = list(message.account_keys)
        return cls(
            raw=bytes(tx),
            signature=str(tx.signatures[0]) if tx.signatures else "",
            instruction_count=len(message.instructions),
            fee_payer=str(account_keys[0]) if account_keys else None,
            recent_blockhash=str(message.recent_blockhash),
            signers=tuple(str(k) for k in account_keys[:num_signers]),
        )

    @classmethod
    def from_base64(cls, encoded: str) -> "SignedTransaction":
        return cls.from_solders(Transaction.from_bytes(base64.b64decode(encoded.strip())))

    @property
    def is_empty(self) -> bool:
        return self.instruction_count == 0

    def short_id(self) -> str:
        return f"{self.signature[:16]}..." if self.signature else "<unsigned>"


# =============================================================================
# SEQUENCING POLICY
# =============================================================================

class SequencingPolicy(Enum):
    """
    How a batch is driven.

    PARALLEL: everything in flight at once, no failure coupling.
    SEQUENTIAL: one at a time, failures do not stop the batch.
    STOP_ON_FAILURE: one at a time, first failure ends the batch.
    """
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    STOP_ON_FAILURE = "stop_on_failure"

    @classmethod
    def parse(cls, value: str) -> "SequencingPolicy":
        normalized = value.strip().lower().replace("-", "_")
        for policy in cls:
            if policy.value == normalized or policy.name.lower() == normalized:
                return policy
        raise ValueError(
            f"Unknown sequencing policy '{value}'. "
            f"Use one of: {', '.join(p.value for p in cls)}"
        )

    @property
    def is_serial(self) -> bool:
        return self is not SequencingPolicy.PARALLEL


# =============================================================================
# OUTCOMES
# =============================================================================

class OutcomeStatus(Enum):
    """
    Terminal verdict for one transaction.

    TIMED_OUT is not a failure on ledger: the transaction may still land.
    """
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Verdict for a single transaction."""
    status: OutcomeStatus
    transaction_id: Optional[str] = None
    slot: Optional[int] = None
    reason: Optional[str] = None
    error: Any = None

    @classmethod
    def confirmed(cls, transaction_id: str, slot: Optional[int]) -> "SubmissionOutcome":
        return cls(status=OutcomeStatus.CONFIRMED, transaction_id=transaction_id, slot=slot)

    @classmethod
    def rejected(
        cls,
        transaction_id: Optional[str],
        error: Any,
        reason: Optional[str] = None,
        slot: Optional[int] = None,
    ) -> "SubmissionOutcome":
        return cls(
            status=OutcomeStatus.REJECTED,
            transaction_id=transaction_id,
            slot=slot,
            reason=reason if reason is not None else str(error),
            error=error,
        )

    @classmethod
    def timed_out(cls, transaction_id: Optional[str], reason: Optional[str] = None) -> "SubmissionOutcome":
        return cls(status=OutcomeStatus.TIMED_OUT, transaction_id=transaction_id, reason=reason)

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.CONFIRMED

    @property
    def is_unknown(self) -> bool:
        """True if the transaction may still land."""
        return self.status == OutcomeStatus.TIMED_OUT


@dataclass
class BatchResult:
    """
    Aggregate of one batch submission.

    count is the number of transactions actually attempted; total is the
    number of non-empty transactions the caller handed in. Under
    STOP_ON_FAILURE count < total means the batch was cut short.
    """
    count: int
    total: int
    outcomes: List[SubmissionOutcome] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return self.count < self.total

    @property
    def confirmed(self) -> List[SubmissionOutcome]:
        return [o for o in self.outcomes if o.is_success]

    @property
    def failed(self) -> List[SubmissionOutcome]:
        return [o for o in self.outcomes if not o.is_success]

    @property
    def all_confirmed(self) -> bool:
        return not self.truncated and len(self.confirmed) == self.total

    def raise_for_truncation(self) -> None:
        if self.truncated:
            from .errors import BatchPartialFailure

            raise BatchPartialFailure(attempted=self.count, total=self.total, result=self)
