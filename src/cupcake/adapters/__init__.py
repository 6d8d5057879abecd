from .solana_rpc import SolanaLedgerNode, SolanaResultSubscription

__all__ = ["SolanaLedgerNode", "SolanaResultSubscription"]
