from .builder import TransactionBuilder
from .cancellation import CancellationToken, VerdictGate
from .confirmation import ConfirmationTracker
from .rebroadcaster import Rebroadcaster
from .sequencer import BatchSequencer
from .signing import KeypairSigner, SigningCoordinator, TransactionSigner
from .submitter import DEFAULT_TIMEOUT, PendingSubmission, TransactionSubmitter

__all__ = [
    "BatchSequencer",
    "CancellationToken",
    "ConfirmationTracker",
    "DEFAULT_TIMEOUT",
    "KeypairSigner",
    "PendingSubmission",
    "Rebroadcaster",
    "SigningCoordinator",
    "TransactionBuilder",
    "TransactionSigner",
    "TransactionSubmitter",
    "VerdictGate",
]
