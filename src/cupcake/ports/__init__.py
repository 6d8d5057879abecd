from .ledger import (
    LedgerNode,
    ResultSubscription,
    SignatureResult,
    SignatureStatus,
    SimulationResult,
    ValidityAnchor,
)

__all__ = [
    "LedgerNode",
    "ResultSubscription",
    "SignatureResult",
    "SignatureStatus",
    "SimulationResult",
    "ValidityAnchor",
]
