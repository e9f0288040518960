"""
Data Models
===========

Models:
    State:
        - SessionState: Negotiation session lifecycle states
        - can_transition: Transition table lookup

    Signaling:
        - SessionDescription: SDP offer/answer body of POST /offer
"""

from gameview.models.state import ALLOWED_TRANSITIONS, SessionState, can_transition
from gameview.models.signaling import SessionDescription

__all__ = [
    # State
    "SessionState",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    # Signaling
    "SessionDescription",
]
