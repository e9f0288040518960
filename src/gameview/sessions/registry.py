"""
Session Registry
================

Tracks live viewer sessions so they can be looked up by id and torn
down together at shutdown.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Union

from gameview.sessions.negotiation import NegotiationSession
from gameview.sessions.streaming import StreamingSession


logger = logging.getLogger(__name__)


Session = Union[NegotiationSession, StreamingSession]


class SessionRegistry:
    """Live sessions keyed by id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session

    def remove(self, session: Session) -> None:
        """Forget a session. Idempotent."""
        self._sessions.pop(session.id, None)

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def close_all(self) -> None:
        """Close every negotiation session (WebSocket sessions end with the hub)."""
        sessions = [s for s in self._sessions.values() if isinstance(s, NegotiationSession)]
        if sessions:
            logger.info(f"Closing {len(sessions)} WebRTC session(s)")
        results = await asyncio.gather(
            *(session.close() for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(f"Session {session.id}: close failed: {result}")

    def metrics(self) -> dict:
        sessions = self.sessions()
        return {
            "websocket": sum(isinstance(s, StreamingSession) for s in sessions),
            "webrtc": sum(isinstance(s, NegotiationSession) for s in sessions),
            "sessions": [s.metrics() for s in sessions],
        }
