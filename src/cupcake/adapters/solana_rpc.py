"""
solana_rpc.py - LedgerNode backed by a Solana JSON-RPC + pubsub endpoint

HTTP calls share one lazily created AsyncClient. Every result subscription
opens its own websocket so that tearing one down cannot disturb another.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Union

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solana.rpc.websocket_api import SolanaWsClientProtocol, connect
from solders.rpc.responses import SignatureNotification
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction
from websockets.exceptions import ConnectionClosed

from ..config.clusters import websocket_url
from ..ports.ledger import (
    LedgerNode,
    ResultSubscription,
    SignatureResult,
    SignatureStatus,
    SimulationResult,
    ValidityAnchor,
)


def _confirmation_level(raw: Any) -> Optional[str]:
    """TransactionConfirmationStatus.Confirmed -> "confirmed"."""
    if raw is None:
        return None
    return str(raw).split(".")[-1].lower()


def _decode_transaction(raw: bytes) -> Union[Transaction, VersionedTransaction]:
    try:
        return Transaction.from_bytes(raw)
    except Exception:
        return VersionedTransaction.from_bytes(raw)


class SolanaResultSubscription(ResultSubscription):
    def __init__(self, websocket: SolanaWsClientProtocol, subscription_id: int, transaction_id: str):
        self._ws = websocket
        self.subscription_id = subscription_id
        self.transaction_id = transaction_id
        self._closed = False

    async def wait(self) -> SignatureResult:
        while True:
            messages = await self._ws.recv()
            for msg in messages:
                if not isinstance(msg, SignatureNotification):
                    continue
                result = msg.result
                return SignatureResult(
                    err=getattr(result.value, "err", None),
                    slot=result.context.slot,
                )

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.signature_unsubscribe(self.subscription_id)
        except ConnectionClosed as e:
            logger.debug(f"WS_UNSUBSCRIBE | already_closed | sub={self.subscription_id} | {e}")
        finally:
            await self._ws.close()


class SolanaLedgerNode(LedgerNode):
    """
    Solana RPC node.

    Usage:
        node = SolanaLedgerNode("https://api.devnet.solana.com")
        sig = await node.submit_raw(bytes(tx))
        await node.close()
    """

    def __init__(
        self,
        rpc_url: str,
        ws_url: Optional[str] = None,
        commitment: Commitment = Confirmed,
    ):
        self.rpc_url = rpc_url
        self.ws_url = ws_url or websocket_url(rpc_url)
        self.commitment = commitment
        self._client: Optional[AsyncClient] = None

        logger.info(f"SOLANA_NODE | init | rpc={self.rpc_url} | ws={self.ws_url}")

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=self.commitment)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def submit_raw(self, raw: bytes, skip_preflight: bool = True) -> str:
        client = await self._get_client()
        resp = await client.send_raw_transaction(
            raw,
            opts=TxOpts(skip_preflight=skip_preflight, skip_confirmation=True),
        )
        return str(resp.value)

    async def simulate(self, raw: bytes, commitment: Commitment) -> SimulationResult:
        client = await self._get_client()
        resp = await client.simulate_transaction(_decode_transaction(raw), commitment=commitment)
        value = resp.value
        return SimulationResult(err=value.err, logs=list(value.logs or []))

    async def subscribe_to_result(self, transaction_id: str, commitment: Commitment) -> ResultSubscription:
        websocket = await connect(self.ws_url)
        try:
            await websocket.signature_subscribe(Signature.from_string(transaction_id), commitment)
            first = await websocket.recv()
            subscription_id = first[0].result
        except BaseException:
            await websocket.close()
            raise
        logger.debug(f"WS_SUBSCRIBED | sig={transaction_id[:16]}... | sub={subscription_id}")
        return SolanaResultSubscription(websocket, subscription_id, transaction_id)

    async def query_status_batch(self, transaction_ids: Sequence[str]) -> List[Optional[SignatureStatus]]:
        client = await self._get_client()
        resp = await client.get_signature_statuses([Signature.from_string(s) for s in transaction_ids])
        statuses: List[Optional[SignatureStatus]] = []
        for raw in resp.value or []:
            if raw is None:
                statuses.append(None)
                continue
            statuses.append(
                SignatureStatus(
                    slot=raw.slot,
                    confirmations=raw.confirmations,
                    err=raw.err,
                    confirmation_status=_confirmation_level(raw.confirmation_status),
                )
            )
        return statuses

    async def latest_validity_anchor(self, commitment: Commitment) -> ValidityAnchor:
        client = await self._get_client()
        resp = await client.get_latest_blockhash(commitment)
        return ValidityAnchor(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )
