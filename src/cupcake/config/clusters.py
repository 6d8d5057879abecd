"""
Known Solana clusters.

Unknown names fall back to devnet, so a typo never points a run at mainnet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Cluster:
    name: str
    url: str


MAINNET_BETA = Cluster(name="mainnet-beta", url="https://api.metaplex.solana.com/")
TESTNET = Cluster(name="testnet", url="https://api.testnet.solana.com")
DEVNET = Cluster(name="devnet", url="https://api.devnet.solana.com")

CLUSTERS: Dict[str, Cluster] = {c.name: c for c in [MAINNET_BETA, TESTNET, DEVNET]}

DEFAULT_CLUSTER = DEVNET


def get_cluster_url(name: Optional[str]) -> str:
    if not name:
        return DEFAULT_CLUSTER.url
    cluster = CLUSTERS.get(name.strip().lower())
    return cluster.url if cluster else DEFAULT_CLUSTER.url


def websocket_url(rpc_url: str) -> str:
    """Derive the pubsub endpoint from an RPC endpoint (http -> ws, https -> wss)."""
    if rpc_url.startswith("https://"):
        return "wss://" + rpc_url[len("https://"):]
    if rpc_url.startswith("http://"):
        return "ws://" + rpc_url[len("http://"):]
    return rpc_url
