"""States of one authorization flow.

A flow only moves forward. Any failure ends it in a Rejected state and the
client has to start over at /authorize.
"""

from enum import Enum

from loguru import logger


class FlowState(str, Enum):
    RECEIVED = "received"
    CONSENT_PENDING = "consent_pending"
    CONSENT_SKIPPED = "consent_skipped"
    REDIRECTED_UPSTREAM = "redirected_upstream"
    UPSTREAM_CALLBACK_RECEIVED = "upstream_callback_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    COMPLETED = "completed"
    REJECTED_BAD_REQUEST = "rejected_bad_request"
    REJECTED_UPSTREAM_ERROR = "rejected_upstream_error"
    REJECTED_IDENTITY_ERROR = "rejected_identity_error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        FlowState.COMPLETED,
        FlowState.REJECTED_BAD_REQUEST,
        FlowState.REJECTED_UPSTREAM_ERROR,
        FlowState.REJECTED_IDENTITY_ERROR,
    }
)

# Allowed forward transitions; every non-terminal state may also be rejected.
TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.RECEIVED: frozenset({FlowState.CONSENT_PENDING, FlowState.CONSENT_SKIPPED}),
    FlowState.CONSENT_PENDING: frozenset({FlowState.CONSENT_SKIPPED}),
    FlowState.CONSENT_SKIPPED: frozenset({FlowState.REDIRECTED_UPSTREAM}),
    FlowState.REDIRECTED_UPSTREAM: frozenset({FlowState.UPSTREAM_CALLBACK_RECEIVED}),
    FlowState.UPSTREAM_CALLBACK_RECEIVED: frozenset({FlowState.TOKEN_EXCHANGED}),
    FlowState.TOKEN_EXCHANGED: frozenset({FlowState.IDENTITY_RESOLVED}),
    FlowState.IDENTITY_RESOLVED: frozenset({FlowState.COMPLETED}),
}

REJECTIONS = frozenset(
    {FlowState.REJECTED_BAD_REQUEST, FlowState.REJECTED_UPSTREAM_ERROR, FlowState.REJECTED_IDENTITY_ERROR}
)


class FlowTracker:
    """Follows one request's part of a flow and logs each transition."""

    def __init__(self, client_id: str | None = None, state: FlowState = FlowState.RECEIVED):
        self.client_id = client_id
        self.state = state
        self.history: list[FlowState] = [state]

    def advance(self, new_state: FlowState) -> FlowState:
        """Move to `new_state`.

        Raises:
            ValueError: If the transition goes backwards or leaves a terminal state
        """
        if self.state.is_terminal:
            raise ValueError(f"Flow already ended in {self.state.value}")
        allowed = TRANSITIONS.get(self.state, frozenset()) | REJECTIONS
        if new_state not in allowed:
            raise ValueError(f"Invalid flow transition {self.state.value} -> {new_state.value}")

        logger.debug(f"Flow [{self.client_id or '?'}]: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        return new_state
