"""
builder.py - Turn instruction sets into prepared, partially signed transactions

One recent blockhash is fetched for the whole batch. Empty instruction sets
are dropped. Auxiliary signers sign here; the caller's own signature is left
for the SigningCoordinator.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger
from solana.rpc.commitment import Commitment, Confirmed
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ...ports.ledger import LedgerNode, ValidityAnchor


class TransactionBuilder:
    def __init__(self, node: LedgerNode, commitment: Commitment = Confirmed):
        self.node = node
        self.commitment = commitment

    async def prepare(
        self,
        instruction_sets: Sequence[Sequence[Instruction]],
        signer_sets: Sequence[Sequence[Keypair]],
        wallet: Pubkey,
        fee_payer: Optional[Pubkey] = None,
        anchor: Optional[ValidityAnchor] = None,
        before: Sequence[Transaction] = (),
        after: Sequence[Transaction] = (),
    ) -> List[Transaction]:
        """
        Build one transaction per non-empty instruction set.

        Args:
            instruction_sets: Instructions per logical transaction slot
            signer_sets: Extra keypairs per slot (same length as instruction_sets)
            wallet: Caller's public key; default fee payer
            fee_payer: Overrides the fee payer for every built transaction
            anchor: Reuse a blockhash instead of fetching one
            before/after: Already prepared transactions placed around the built ones

        Returns:
            before + built + after, in that order
        """
        if len(signer_sets) != len(instruction_sets):
            raise ValueError(
                f"signer_sets has {len(signer_sets)} entries for {len(instruction_sets)} instruction sets"
            )

        if anchor is None:
            anchor = await self.node.latest_validity_anchor(self.commitment)

        payer = fee_payer or wallet
        prepared: List[Transaction] = list(before)
        skipped = 0

        for instructions, signers in zip(instruction_sets, signer_sets):
            if not instructions:
                skipped += 1
                continue
            message = Message.new_with_blockhash(list(instructions), payer, anchor.blockhash)
            tx = Transaction.new_unsigned(message)
            if signers:
                tx.partial_sign(list(signers), anchor.blockhash)
            prepared.append(tx)

        prepared.extend(after)
        logger.debug(
            f"TX_PREPARE | built={len(prepared) - len(before) - len(after)} | skipped_empty={skipped} | "
            f"payer={str(payer)[:8]}... | blockhash={str(anchor.blockhash)[:8]}..."
        )
        return prepared
