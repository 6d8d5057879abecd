from .errors import (
    BatchPartialFailure,
    BroadcastError,
    ConfirmationTimeout,
    Diagnostic,
    RejectedOnLedger,
    SigningError,
    SubmissionError,
)
from .models import (
    BatchResult,
    OutcomeStatus,
    SequencingPolicy,
    SignedTransaction,
    SubmissionOutcome,
)

__all__ = [
    "BatchPartialFailure",
    "BatchResult",
    "BroadcastError",
    "ConfirmationTimeout",
    "Diagnostic",
    "OutcomeStatus",
    "RejectedOnLedger",
    "SequencingPolicy",
    "SignedTransaction",
    "SigningError",
    "SubmissionError",
    "SubmissionOutcome",
]
