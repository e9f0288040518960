"""
Session State Models
====================

Lifecycle states of a WebRTC negotiation session.

Happy path:
    CREATED -> OFFER_RECEIVED -> LOCAL_DESCRIPTION_SET -> ICE_GATHERING
            -> READY -> STREAMING -> CLOSED

FAILED is reachable from every non-terminal state and so is CLOSED
(peer disconnect or explicit teardown). FAILED and CLOSED are terminal.
"""

from enum import Enum
from typing import Dict, FrozenSet


class SessionState(str, Enum):
    """
    Discrete states of a NegotiationSession.

    Attributes:
        CREATED: Session exists, no offer yet
        OFFER_RECEIVED: A well-formed offer was accepted
        LOCAL_DESCRIPTION_SET: Track attached, remote offer and local answer set
        ICE_GATHERING: Waiting for candidate gathering to complete
        READY: Final answer available for the caller
        STREAMING: Frames are being written into the media track
        CLOSED: Resources released after normal teardown
        FAILED: Negotiation aborted by an error
    """

    CREATED = "CREATED"
    OFFER_RECEIVED = "OFFER_RECEIVED"
    LOCAL_DESCRIPTION_SET = "LOCAL_DESCRIPTION_SET"
    ICE_GATHERING = "ICE_GATHERING"
    READY = "READY"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[SessionState] = frozenset(
    {SessionState.CLOSED, SessionState.FAILED}
)

_FORWARD: Dict[SessionState, SessionState] = {
    SessionState.CREATED: SessionState.OFFER_RECEIVED,
    SessionState.OFFER_RECEIVED: SessionState.LOCAL_DESCRIPTION_SET,
    SessionState.LOCAL_DESCRIPTION_SET: SessionState.ICE_GATHERING,
    SessionState.ICE_GATHERING: SessionState.READY,
    SessionState.READY: SessionState.STREAMING,
}

ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    state: frozenset(
        {SessionState.CLOSED, SessionState.FAILED}
        | ({_FORWARD[state]} if state in _FORWARD else set())
    )
    for state in SessionState
    if state not in TERMINAL_STATES
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Whether `current -> target` is a legal transition."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
