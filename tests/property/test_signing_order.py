import asyncio

from hypothesis import given, settings, strategies as st
from solders.keypair import Keypair

from cupcake.engines.execution.signing import KeypairSigner, SigningCoordinator

from signing_helpers import RecordingSequencer, lamports_of, presigned_tx, transfer_tx


@settings(max_examples=30, deadline=None)
@given(needs_wallet=st.lists(st.booleans(), min_size=1, max_size=8))
def test_signing_preserves_input_order(needs_wallet):
    wallet = Keypair()
    prepared = [
        transfer_tx(wallet.pubkey(), position + 1) if mine else presigned_tx(position + 1)
        for position, mine in enumerate(needs_wallet)
    ]
    sequencer = RecordingSequencer()

    asyncio.run(SigningCoordinator(sequencer).sign_and_submit(prepared, KeypairSigner(wallet)))

    assert [lamports_of(tx) for tx in sequencer.batches[0]] == list(range(1, len(needs_wallet) + 1))
