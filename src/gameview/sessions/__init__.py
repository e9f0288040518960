"""
Sessions Module
===============

Per-viewer transports bound to the FrameHub.

Components:
    - StreamingSession: Paced binary frames over a WebSocket
    - NegotiationSession: WebRTC offer/answer state machine + media track
    - HubVideoTrack: aiortc track carrying encoded frames
    - SessionRegistry: Live sessions by id
"""

from gameview.sessions.track import HubVideoTrack, TrackClosedError
from gameview.sessions.streaming import StreamingSession
from gameview.sessions.negotiation import (
    InvalidOfferError,
    InvalidTransitionError,
    NegotiationError,
    NegotiationFailedError,
    NegotiationSession,
    NegotiationTimeoutError,
    RenegotiationError,
    create_peer_factory,
    parse_offer,
)
from gameview.sessions.registry import SessionRegistry


__all__ = [
    "HubVideoTrack",
    "TrackClosedError",
    "StreamingSession",
    "NegotiationSession",
    "NegotiationError",
    "InvalidOfferError",
    "InvalidTransitionError",
    "NegotiationFailedError",
    "NegotiationTimeoutError",
    "RenegotiationError",
    "create_peer_factory",
    "parse_offer",
    "SessionRegistry",
]
