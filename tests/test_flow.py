"""Tests for the authorization flow state machine."""

import pytest

from authproxy.flow import FlowState, FlowTracker


def test_happy_path_reaches_completed():
    flow = FlowTracker(client_id="c")
    for state in [
        FlowState.CONSENT_PENDING,
        FlowState.CONSENT_SKIPPED,
        FlowState.REDIRECTED_UPSTREAM,
        FlowState.UPSTREAM_CALLBACK_RECEIVED,
        FlowState.TOKEN_EXCHANGED,
        FlowState.IDENTITY_RESOLVED,
        FlowState.COMPLETED,
    ]:
        flow.advance(state)

    assert flow.state is FlowState.COMPLETED
    assert flow.state.is_terminal
    assert flow.history[0] is FlowState.RECEIVED
    assert len(flow.history) == 8


@pytest.mark.parametrize(
    "start, rejection",
    [
        (FlowState.RECEIVED, FlowState.REJECTED_BAD_REQUEST),
        (FlowState.UPSTREAM_CALLBACK_RECEIVED, FlowState.REJECTED_UPSTREAM_ERROR),
        (FlowState.TOKEN_EXCHANGED, FlowState.REJECTED_IDENTITY_ERROR),
    ],
)
def test_any_open_state_can_be_rejected(start, rejection):
    flow = FlowTracker(state=start)
    flow.advance(rejection)
    assert flow.state.is_terminal


def test_no_backwards_transition():
    flow = FlowTracker(state=FlowState.TOKEN_EXCHANGED)
    with pytest.raises(ValueError):
        flow.advance(FlowState.UPSTREAM_CALLBACK_RECEIVED)


def test_no_skipping_token_exchange():
    flow = FlowTracker(state=FlowState.UPSTREAM_CALLBACK_RECEIVED)
    with pytest.raises(ValueError):
        flow.advance(FlowState.IDENTITY_RESOLVED)


def test_no_retry_after_rejection():
    flow = FlowTracker(state=FlowState.UPSTREAM_CALLBACK_RECEIVED)
    flow.advance(FlowState.REJECTED_UPSTREAM_ERROR)
    with pytest.raises(ValueError):
        flow.advance(FlowState.TOKEN_EXCHANGED)
