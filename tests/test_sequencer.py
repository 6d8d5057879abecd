from __future__ import annotations

import asyncio
from typing import Dict, List, Tuple

import pytest

from cupcake.domain.errors import BatchPartialFailure, RejectedOnLedger, SubmissionError
from cupcake.domain.models import OutcomeStatus, SequencingPolicy
from cupcake.engines.execution.confirmation import ConfirmationTracker
from cupcake.engines.execution.rebroadcaster import Rebroadcaster
from cupcake.engines.execution.sequencer import BatchSequencer
from cupcake.engines.execution.submitter import TransactionSubmitter
from cupcake.ports.ledger import SignatureResult

from fakes import make_tx


class Recorder:
    def __init__(self) -> None:
        self.successes: List[Tuple[str, int]] = []
        self.failures: List[Tuple[SubmissionError, int]] = []
        self.times: Dict[int, float] = {}

    def on_success(self, transaction_id: str, index: int) -> None:
        self.successes.append((transaction_id, index))
        self.times[index] = asyncio.get_running_loop().time()

    def on_failure(self, error: SubmissionError, index: int) -> None:
        self.failures.append((error, index))


def _sequencer(node, timeout: float = 1.0) -> BatchSequencer:
    return BatchSequencer(
        TransactionSubmitter(
            node,
            tracker=ConfirmationTracker(node, poll_interval=0.02),
            rebroadcaster=Rebroadcaster(node, interval=0.05),
            timeout=timeout,
        )
    )


def _five_with_index_two_rejected(node):
    txs = [make_tx(f"t{i}") for i in range(5)]
    node.script("sig-t2", push=SignatureResult(err={"Custom": 1}, slot=1))
    return txs


@pytest.mark.anyio
async def test_stop_on_failure_truncates_at_first_failure(node):
    txs = _five_with_index_two_rejected(node)
    rec = Recorder()

    result = await _sequencer(node).submit_batch(
        txs, SequencingPolicy.STOP_ON_FAILURE, on_success=rec.on_success, on_failure=rec.on_failure
    )

    assert result.count == 2
    assert result.total == 5
    assert result.truncated
    assert [o.transaction_id for o in result.outcomes] == ["sig-t0", "sig-t1"]
    assert [index for _, index in rec.failures] == [2]
    assert isinstance(rec.failures[0][0], RejectedOnLedger)
    assert node.sends_for(b"t3") == 0
    assert node.sends_for(b"t4") == 0
    with pytest.raises(BatchPartialFailure) as exc_info:
        result.raise_for_truncation()
    assert exc_info.value.attempted == 2
    assert exc_info.value.total == 5


@pytest.mark.anyio
async def test_sequential_continues_through_failures(node):
    txs = _five_with_index_two_rejected(node)
    rec = Recorder()

    result = await _sequencer(node).submit_batch(
        txs, SequencingPolicy.SEQUENTIAL, on_success=rec.on_success, on_failure=rec.on_failure
    )

    assert result.count == 5
    assert not result.truncated
    assert [index for _, index in rec.failures] == [2]
    assert [index for _, index in rec.successes] == [0, 1, 3, 4]
    assert [o.status for o in result.outcomes] == [
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.REJECTED,
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.CONFIRMED,
    ]
    result.raise_for_truncation()


@pytest.mark.anyio
async def test_sequential_never_overlaps_submissions(node):
    txs = [make_tx(f"t{i}") for i in range(3)]
    for i in range(3):
        node.script(f"sig-t{i}", push=SignatureResult(err=None, slot=i), push_delay=0.05)
    first_sends: List[bytes] = []
    overlaps: List[bytes] = []
    original = node.submit_raw

    async def tracking_submit(raw: bytes, skip_preflight: bool = True) -> str:
        if node.sends_for(raw) == 0:
            first_sends.append(raw)
            if node.open_subscriptions:
                overlaps.append(raw)
        return await original(raw, skip_preflight)

    node.submit_raw = tracking_submit

    result = await _sequencer(node).submit_batch(txs, SequencingPolicy.SEQUENTIAL)

    assert first_sends == [b"t0", b"t1", b"t2"]
    assert overlaps == []
    assert result.count == 3


@pytest.mark.anyio
async def test_parallel_slow_confirmation_does_not_block_others(node):
    txs = [make_tx(f"t{i}") for i in range(5)]
    node.script("sig-t0", push=SignatureResult(err=None, slot=1), push_delay=1.0)
    rec = Recorder()
    loop = asyncio.get_running_loop()

    start = loop.time()
    result = await _sequencer(node, timeout=3.0).submit_batch(
        txs, SequencingPolicy.PARALLEL, on_success=rec.on_success
    )

    assert rec.times[4] - start < 0.5
    assert rec.times[4] < rec.times[0]
    assert result.count == 5
    assert [o.transaction_id for o in result.outcomes] == [f"sig-t{i}" for i in range(5)]


@pytest.mark.anyio
async def test_parallel_reports_every_outcome_in_input_order(node):
    txs = _five_with_index_two_rejected(node)
    node.script("sig-t4", push=None, statuses=[None])
    rec = Recorder()

    result = await _sequencer(node, timeout=0.2).submit_batch(
        txs, SequencingPolicy.PARALLEL, on_success=rec.on_success, on_failure=rec.on_failure
    )

    assert result.count == 5
    assert [o.status for o in result.outcomes] == [
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.REJECTED,
        OutcomeStatus.CONFIRMED,
        OutcomeStatus.TIMED_OUT,
    ]
    assert sorted(index for _, index in rec.failures) == [2, 4]
    assert not result.all_confirmed


@pytest.mark.anyio
@pytest.mark.parametrize("policy", list(SequencingPolicy))
async def test_empty_entries_are_skipped(node, policy):
    txs = [make_tx("t0"), make_tx("empty", instruction_count=0), make_tx("t2")]
    rec = Recorder()

    result = await _sequencer(node).submit_batch(txs, policy, on_success=rec.on_success, on_failure=rec.on_failure)

    assert result.count == 2
    assert result.total == 2
    assert rec.failures == []
    assert sorted(index for _, index in rec.successes) == [0, 2]
    assert node.sends_for(b"empty") == 0


@pytest.mark.anyio
async def test_broadcast_failure_stops_stop_on_failure_batch(node):
    txs = [make_tx("t0"), make_tx("t1"), make_tx("t2")]
    node.submit_errors[b"t0"] = ConnectionError("refused")
    rec = Recorder()

    result = await _sequencer(node).submit_batch(
        txs, SequencingPolicy.STOP_ON_FAILURE, on_failure=rec.on_failure
    )

    assert result.count == 0
    assert result.outcomes == []
    assert [index for _, index in rec.failures] == [0]
    assert node.sends_for(b"t1") == 0


@pytest.mark.anyio
async def test_parallel_callback_error_cancels_in_flight_siblings(node):
    txs = [make_tx("t0"), make_tx("t1")]
    node.script("sig-t1", push=SignatureResult(err=None, slot=2), push_delay=5.0)

    def exploding_success(transaction_id: str, index: int) -> None:
        raise RuntimeError(f"callback failed for {index}")

    with pytest.raises(RuntimeError, match="callback failed for 0"):
        await _sequencer(node, timeout=10.0).submit_batch(
            txs, SequencingPolicy.PARALLEL, on_success=exploding_success
        )

    assert not node.open_subscriptions
    sends = node.sends_for(b"t1")
    await asyncio.sleep(0.15)
    assert node.sends_for(b"t1") == sends
