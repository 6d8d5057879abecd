"""
ledger.py - Port for the remote ledger node

The engine talks to the network only through LedgerNode and
ResultSubscription. Status values are plain dataclasses so fakes and the
Solana adapter produce the same shapes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed


# Ordering used to decide whether an observed level satisfies a requested one.
_COMMITMENT_RANK = {
    str(Processed): 0,
    "recent": 0,
    "single": 0,
    "singleGossip": 1,
    str(Confirmed): 1,
    str(Finalized): 2,
    "max": 2,
    "root": 2,
}


def commitment_rank(commitment: Optional[str]) -> int:
    if commitment is None:
        return -1
    return _COMMITMENT_RANK.get(str(commitment), -1)


@dataclass(frozen=True)
class SignatureResult:
    """Push notification for a watched signature."""

    err: Any = None
    slot: Optional[int] = None


@dataclass(frozen=True)
class SignatureStatus:
    """Polled status for a signature. None from the node means not yet observed."""

    slot: Optional[int] = None
    confirmations: Optional[int] = None
    err: Any = None
    confirmation_status: Optional[str] = None

    def reaches(self, commitment: Commitment) -> bool:
        """True if this status satisfies the requested commitment level."""
        requested = commitment_rank(commitment)
        if self.confirmation_status is not None:
            observed = commitment_rank(self.confirmation_status)
            return observed >= 0 and observed >= requested
        # Older nodes report only a confirmation count, which never proves finality.
        return bool(self.confirmations) and requested <= commitment_rank(Confirmed)


@dataclass(frozen=True)
class SimulationResult:
    err: Any = None
    logs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidityAnchor:
    """Recent blockhash used to stamp transactions before they are signed."""

    blockhash: Any
    last_valid_block_height: Optional[int] = None


class ResultSubscription(ABC):
    """A live push subscription on one signature."""

    @abstractmethod
    async def wait(self) -> SignatureResult:
        ...

    @abstractmethod
    async def unsubscribe(self) -> None:
        ...


class LedgerNode(ABC):
    """Remote ledger node. Shared read-only by every pending submission."""

    @abstractmethod
    async def submit_raw(self, raw: bytes, skip_preflight: bool = True) -> str:
        ...

    @abstractmethod
    async def simulate(self, raw: bytes, commitment: Commitment) -> SimulationResult:
        ...

    @abstractmethod
    async def subscribe_to_result(self, transaction_id: str, commitment: Commitment) -> ResultSubscription:
        ...

    @abstractmethod
    async def query_status_batch(self, transaction_ids: Sequence[str]) -> List[Optional[SignatureStatus]]:
        ...

    @abstractmethod
    async def latest_validity_anchor(self, commitment: Commitment) -> ValidityAnchor:
        ...

    async def close(self) -> None:
        return None
