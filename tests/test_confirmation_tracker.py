from __future__ import annotations

import asyncio

import pytest
from solana.rpc.commitment import Confirmed, Finalized, Processed

from cupcake.domain.models import OutcomeStatus
from cupcake.engines.execution.cancellation import CancellationToken, VerdictGate
from cupcake.engines.execution.confirmation import ConfirmationTracker
from cupcake.ports.ledger import SignatureResult, SignatureStatus

INSTRUCTION_ERROR = {"InstructionError": [0, {"Custom": 6001}]}


def _tracker(node, poll_interval: float = 0.05) -> ConfirmationTracker:
    return ConfirmationTracker(node, poll_interval=poll_interval)


@pytest.mark.anyio
async def test_push_verdict_wins_and_polling_stops(node):
    # Pull would report a rejection on its sixth tick; push confirms well before that.
    node.script(
        "sig-a",
        push=SignatureResult(err=None, slot=42),
        push_delay=0.12,
        statuses=[None] * 5 + [SignatureStatus(slot=1, err=INSTRUCTION_ERROR)],
    )

    outcome = await _tracker(node).track("sig-a", timeout=2.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert outcome.slot == 42

    polls = len(node.queries)
    await asyncio.sleep(0.2)
    assert len(node.queries) == polls


@pytest.mark.anyio
async def test_push_rejection(node):
    node.script("sig-a", push=SignatureResult(err=INSTRUCTION_ERROR, slot=5))

    outcome = await _tracker(node).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.error == INSTRUCTION_ERROR
    assert outcome.slot == 5


@pytest.mark.anyio
async def test_pull_confirms_when_push_is_silent(node):
    node.script(
        "sig-a",
        push=None,
        statuses=[None, SignatureStatus(slot=7, confirmation_status="confirmed")],
    )

    outcome = await _tracker(node, poll_interval=0.01).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert outcome.slot == 7


@pytest.mark.anyio
async def test_pull_waits_past_processed_level(node):
    node.script(
        "sig-a",
        push=None,
        statuses=[
            SignatureStatus(slot=1, confirmation_status="processed"),
            SignatureStatus(slot=2, confirmation_status="confirmed"),
        ],
    )

    outcome = await _tracker(node, poll_interval=0.01).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert outcome.slot == 2


@pytest.mark.anyio
async def test_pull_rejection(node):
    node.script("sig-a", push=None, statuses=[SignatureStatus(slot=3, err=INSTRUCTION_ERROR)])

    outcome = await _tracker(node, poll_interval=0.01).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.error == INSTRUCTION_ERROR


@pytest.mark.anyio
async def test_pull_survives_transient_query_errors(node):
    node.script(
        "sig-a",
        push=None,
        status_errors=2,
        statuses=[SignatureStatus(slot=9, confirmation_status="finalized")],
    )

    outcome = await _tracker(node, poll_interval=0.01).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert len(node.queries) == 3


@pytest.mark.anyio
async def test_timeout_is_distinct_from_rejection(node):
    node.script("sig-a", push=None, statuses=[None])

    outcome = await _tracker(node).track("sig-a", timeout=0.2)

    assert outcome.status == OutcomeStatus.TIMED_OUT
    assert outcome.is_unknown
    assert not outcome.is_success


@pytest.mark.anyio
async def test_late_push_after_timeout_is_ignored(node):
    node.script("sig-a", push=SignatureResult(err=None, slot=1), push_delay=0.3, statuses=[None])

    outcome = await _tracker(node).track("sig-a", timeout=0.1)
    await asyncio.sleep(0.3)

    assert outcome.status == OutcomeStatus.TIMED_OUT


@pytest.mark.anyio
@pytest.mark.parametrize(
    "push, statuses, timeout",
    [
        (SignatureResult(err=None, slot=1), [None], 1.0),
        (SignatureResult(err="boom", slot=1), [None], 1.0),
        (None, [SignatureStatus(slot=1, confirmation_status="confirmed")], 1.0),
        (None, [None], 0.1),
    ],
    ids=["confirmed", "rejected", "pull-confirmed", "timed-out"],
)
async def test_subscription_released_exactly_once(node, push, statuses, timeout):
    node.script("sig-a", push=push, statuses=statuses)

    await _tracker(node, poll_interval=0.01).track("sig-a", timeout=timeout)

    assert len(node.subscriptions) == 1
    assert node.subscriptions[0].unsubscribe_calls == 1
    assert not node.open_subscriptions


@pytest.mark.anyio
async def test_subscription_released_when_caller_cancels(node):
    node.script("sig-a", push=None, statuses=[None])

    task = asyncio.create_task(_tracker(node).track("sig-a", timeout=5.0))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert node.subscriptions[0].unsubscribe_calls == 1
    assert not node.open_subscriptions


@pytest.mark.anyio
async def test_subscribe_failure_falls_back_to_polling(node):
    node.script(
        "sig-a",
        subscribe_error=RuntimeError("ws down"),
        statuses=[SignatureStatus(slot=4, confirmation_status="confirmed")],
    )

    outcome = await _tracker(node).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert node.subscriptions == []


@pytest.mark.anyio
async def test_token_is_cancelled_on_verdict(node):
    token = CancellationToken()

    await _tracker(node).track("sig-a", timeout=1.0, token=token)

    assert token.cancelled


@pytest.mark.anyio
async def test_verdict_gate_first_writer_wins():
    gate = VerdictGate()

    assert gate.settle("confirmed", "push") is True
    assert gate.settle("timed_out", "timer") is False
    assert gate.result() == "confirmed"
    assert gate.winner == "push"


@pytest.mark.anyio
async def test_token_sleep_wakes_on_cancel():
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    asyncio.get_running_loop().call_later(0.05, token.cancel)

    start = loop.time()
    cancelled = await token.sleep(5.0)

    assert cancelled is True
    assert loop.time() - start < 1.0


@pytest.mark.anyio
async def test_hung_subscription_does_not_delay_polling(node):
    node.script(
        "sig-a",
        subscribe_hangs=True,
        statuses=[None, SignatureStatus(slot=6, confirmation_status="confirmed")],
    )
    loop = asyncio.get_running_loop()

    start = loop.time()
    outcome = await _tracker(node).track("sig-a", timeout=1.0)

    assert outcome.status == OutcomeStatus.CONFIRMED
    assert outcome.slot == 6
    assert len(node.queries) == 2
    assert loop.time() - start < 0.5
    assert node.subscriptions == []


@pytest.mark.anyio
async def test_finalized_request_ignores_confirmed_status(node):
    node.script(
        "sig-a",
        push=None,
        statuses=[SignatureStatus(slot=4, confirmations=3, confirmation_status="confirmed")],
    )

    outcome = await ConfirmationTracker(node, commitment=Finalized, poll_interval=0.02).track("sig-a", timeout=0.2)

    assert outcome.status == OutcomeStatus.TIMED_OUT


@pytest.mark.parametrize(
    "status, commitment, expected",
    [
        (SignatureStatus(confirmations=3, confirmation_status="confirmed"), Finalized, False),
        (SignatureStatus(confirmation_status="finalized"), Finalized, True),
        (SignatureStatus(confirmation_status="processed"), Confirmed, False),
        (SignatureStatus(confirmations=2), Confirmed, True),
        (SignatureStatus(confirmations=2), Finalized, False),
        (SignatureStatus(), Processed, False),
    ],
)
def test_status_reaches_requested_level(status, commitment, expected):
    assert status.reaches(commitment) is expected
