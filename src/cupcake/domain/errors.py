"""
errors.py - Submission failure taxonomy

Callers must distinguish "definitely failed" (BroadcastError,
RejectedOnLedger) from "we don't know" (ConfirmationTimeout). Only retry
after a definite failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional

from .models import SubmissionOutcome

if TYPE_CHECKING:
    from .models import BatchResult


@dataclass(frozen=True)
class Diagnostic:
    """Human-readable detail recovered by simulating a rejected transaction."""
    message: str
    logs: List[str] = field(default_factory=list)


class SubmissionError(Exception):
    """Base class for everything the submitter can raise."""

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id

    def to_outcome(self) -> SubmissionOutcome:
        return SubmissionOutcome.rejected(self.transaction_id, self, reason=str(self))


class BroadcastError(SubmissionError):
    """The initial send itself failed; nothing reached the node."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Broadcast failed: {message}")
        self.cause = cause


class RejectedOnLedger(SubmissionError):
    """The node or program returned an error for the transaction."""

    def __init__(
        self,
        transaction_id: Optional[str],
        error: Any,
        slot: Optional[int] = None,
        diagnostic: Optional[Diagnostic] = None,
    ):
        self.error = error
        self.slot = slot
        self.diagnostic = diagnostic
        if diagnostic is not None:
            message = f"Transaction failed: {diagnostic.message}"
        else:
            message = f"Transaction failed: {error}"
        super().__init__(message, transaction_id)

    def to_outcome(self) -> SubmissionOutcome:
        return SubmissionOutcome.rejected(self.transaction_id, self.error, reason=str(self), slot=self.slot)


class ConfirmationTimeout(SubmissionError):
    """Neither channel produced a verdict in time. The transaction may still land."""

    def __init__(self, transaction_id: Optional[str], timeout: float):
        super().__init__(
            f"Timed out awaiting confirmation on transaction after {timeout:.1f}s",
            transaction_id,
        )
        self.timeout = timeout

    def to_outcome(self) -> SubmissionOutcome:
        return SubmissionOutcome.timed_out(self.transaction_id, reason=str(self))


class BatchPartialFailure(SubmissionError):
    """A STOP_ON_FAILURE batch ended before every transaction was attempted."""

    def __init__(self, attempted: int, total: int, result: Optional["BatchResult"] = None):
        super().__init__(f"Batch stopped after {attempted} of {total} transactions")
        self.attempted = attempted
        self.total = total
        self.result = result


class SigningError(SubmissionError):
    """The signer could not produce fully signed transactions."""
