"""
Negotiation Session
===================

WebRTC signaling state machine for one viewer.

One POST /offer creates one NegotiationSession. negotiate() turns the
remote offer into a finalized answer; start_streaming() runs after the
answer has been sent and feeds hub frames into the session's own track.

Lifecycle:
    CREATED -> OFFER_RECEIVED -> LOCAL_DESCRIPTION_SET -> ICE_GATHERING
            -> READY -> STREAMING -> CLOSED
    Any error during negotiate() ends in FAILED.

Design Rules:
    - Exactly one offer per session; a second one is rejected (409)
    - The track carries camera output as is; the negotiated codec must
      match the capture codec
    - The hub subscription only exists while STREAMING
    - Failures after the answer was sent only close the session
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, List, Optional, Union

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCRtpSender,
    RTCSessionDescription,
    sdp,
)
from aiortc.exceptions import OperationError
from pydantic import ValidationError

from gameview.models.signaling import SessionDescription
from gameview.models.state import SessionState, can_transition
from gameview.sessions.track import HubVideoTrack, TrackClosedError
from gameview.stream.hub import FrameHub, SourceClosedError
from gameview.stream.subscription import Subscription


logger = logging.getLogger(__name__)


# capture.codec -> RTP mime type; codecs missing here cannot be negotiated
CODEC_MIME_TYPES = {
    "h264": "video/H264",
}

# Raised by aiortc's SDP parser on malformed input
SDP_PARSE_ERRORS = (
    ValueError,
    AssertionError,
    IndexError,
    KeyError,
    AttributeError,
    StopIteration,
)


# =============================================================================
# Errors
# =============================================================================

class NegotiationError(Exception):
    """Negotiation failure reported to the HTTP caller."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidOfferError(NegotiationError):
    """The request did not carry a usable session offer."""

    status_code = 400


class RenegotiationError(NegotiationError):
    """A session accepts exactly one offer."""

    status_code = 409


class NegotiationFailedError(NegotiationError):
    """The server could not build an answer."""

    status_code = 500


class NegotiationTimeoutError(NegotiationError):
    """Candidate gathering did not finish in time."""

    status_code = 504


class InvalidTransitionError(Exception):
    """Illegal state machine transition."""


# =============================================================================
# Peer Connections
# =============================================================================

PeerFactory = Callable[[], RTCPeerConnection]


def create_peer_factory(ice_servers: List[str]) -> PeerFactory:
    """
    Build a peer connection factory.

    Args:
        ice_servers: STUN/TURN URLs. Empty means host candidates only.
    """
    def factory() -> RTCPeerConnection:
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in ice_servers]
        )
        return RTCPeerConnection(configuration=configuration)

    return factory


# =============================================================================
# Offer Validation
# =============================================================================

def parse_offer(body: Union[bytes, str, dict, SessionDescription]) -> SessionDescription:
    """
    Validate an offer before any peer connection exists.

    The SDP must parse and carry a video media section, since the answer
    can only attach the camera track to one.

    Args:
        body: JSON request body, a decoded dict, or a SessionDescription

    Returns:
        The validated offer.

    Raises:
        InvalidOfferError: Malformed body, wrong type, unparsable SDP or no video.
    """
    try:
        if isinstance(body, SessionDescription):
            offer = body
        elif isinstance(body, dict):
            offer = SessionDescription.model_validate(body)
        else:
            offer = SessionDescription.model_validate_json(body)
    except ValidationError as e:
        raise InvalidOfferError(f"invalid offer: {_first_error(e)}") from e

    if offer.type != "offer":
        raise InvalidOfferError(f"expected type 'offer', got '{offer.type}'")

    try:
        description = sdp.SessionDescription.parse(offer.sdp)
    except SDP_PARSE_ERRORS as e:
        raise InvalidOfferError(f"invalid offer: unparsable sdp ({e!r})") from e

    if not any(media.kind == "video" for media in description.media):
        raise InvalidOfferError("invalid offer: no video media section")

    return offer


# =============================================================================
# Session
# =============================================================================

class NegotiationSession:
    """
    Per-viewer WebRTC session.

    Attributes:
        id: Session identifier (returned as X-Session-Id)
        state: Current SessionState
        history: Every state entered, in order
        offer: Accepted remote offer
        answer: Final local answer
        track: This session's HubVideoTrack
        subscription: Hub subscription while streaming

    Example:
        session = NegotiationSession(hub, codec="h264", peer_factory=factory)
        answer = await session.negotiate(request_body)
        # ... send answer to the caller ...
        await session.start_streaming()
    """

    def __init__(
        self,
        hub: FrameHub,
        codec: str,
        peer_factory: PeerFactory,
        gathering_timeout: float = 10.0,
        track_queue_size: int = 4,
        on_close: Optional[Callable[["NegotiationSession"], None]] = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.hub = hub
        self.codec = codec
        self.gathering_timeout = gathering_timeout
        self.track_queue_size = track_queue_size

        self._peer_factory = peer_factory
        self._on_close = on_close

        self.state = SessionState.CREATED
        self.history: List[SessionState] = [SessionState.CREATED]
        self.created_at = time.time()

        self.offer: Optional[SessionDescription] = None
        self.answer: Optional[SessionDescription] = None
        self.pc: Optional[RTCPeerConnection] = None
        self.track: Optional[HubVideoTrack] = None
        self.subscription: Optional[Subscription] = None

        self._gathering_complete = asyncio.Event()
        self._forward_task: Optional[asyncio.Task] = None
        self._released = False

    @property
    def ice_gathering_state(self) -> str:
        return self.pc.iceGatheringState if self.pc is not None else "new"

    def _transition(self, target: SessionState) -> None:
        if not can_transition(self.state, target):
            raise InvalidTransitionError(
                f"session {self.id}: {self.state.value} -> {target.value} not allowed"
            )
        logger.info(f"Session {self.id}: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    # -------------------------------------------------------------------------
    # Negotiation
    # -------------------------------------------------------------------------

    async def negotiate(self, body: Union[bytes, str, dict, SessionDescription]) -> SessionDescription:
        """
        Accept an offer and produce the final answer.

        Args:
            body: JSON request body, a decoded dict, or an offer from parse_offer()

        Returns:
            The local answer, complete with gathered candidates.

        Raises:
            RenegotiationError: An offer was already processed.
            InvalidOfferError: Malformed or unacceptable offer.
            NegotiationFailedError: Answer generation failed.
            NegotiationTimeoutError: Candidate gathering timed out.
        """
        if self.state != SessionState.CREATED:
            raise RenegotiationError(
                f"session {self.id} already negotiated (state {self.state.value}); "
                "renegotiation is not supported"
            )

        try:
            offer = parse_offer(body)
        except InvalidOfferError:
            await self._fail()
            raise

        self.offer = offer
        logger.info(f"Session {self.id}: received offer (sdp_len={len(offer.sdp)})")
        self._transition(SessionState.OFFER_RECEIVED)

        try:
            await self._build_answer(offer)
            await self._wait_for_gathering()
            local = self.pc.localDescription
            self.answer = SessionDescription(type=local.type, sdp=local.sdp)
            self._transition(SessionState.READY)
        except NegotiationError as e:
            logger.warning(f"Session {self.id}: negotiation failed: {e.message}")
            await self._fail()
            raise
        except Exception as e:
            logger.error(f"Session {self.id}: negotiation error: {e}", exc_info=True)
            await self._fail()
            raise NegotiationFailedError(f"negotiation failed: {e}") from e

        return self.answer

    async def _build_answer(self, offer: SessionDescription) -> None:
        mime_type = CODEC_MIME_TYPES.get(self.codec)
        if mime_type is None:
            raise NegotiationFailedError(
                f"capture codec '{self.codec}' cannot be sent over WebRTC without transcoding"
            )

        capabilities = [
            codec for codec in RTCRtpSender.getCapabilities("video").codecs
            if codec.mimeType.lower() == mime_type.lower()
        ]
        if not capabilities:
            raise NegotiationFailedError(f"{mime_type} is not available in the WebRTC stack")

        pc = self._peer_factory()
        self.pc = pc

        @pc.on("icegatheringstatechange")
        def _on_gathering_state() -> None:
            if pc.iceGatheringState == "complete":
                self._gathering_complete.set()

        @pc.on("connectionstatechange")
        async def _on_connection_state() -> None:
            logger.info(f"Session {self.id}: connection {pc.connectionState}")
            if pc.connectionState in ("failed", "closed"):
                await self.close()

        self.track = HubVideoTrack(maxsize=self.track_queue_size)
        sender = pc.addTrack(self.track)
        transceiver = next(t for t in pc.getTransceivers() if t.sender == sender)
        try:
            transceiver.setCodecPreferences(capabilities)
        except ValueError as e:
            # Non-fatal: the default codec set still contains the codec
            logger.warning(f"Session {self.id}: codec preference rejected, using defaults: {e}")

        try:
            await pc.setRemoteDescription(
                RTCSessionDescription(sdp=offer.sdp, type=offer.type)
            )
        except SDP_PARSE_ERRORS + (OperationError,) as e:
            raise InvalidOfferError(f"offer rejected: {e!r}") from e

        answer = await pc.createAnswer()
        try:
            # aiortc gathers candidates while setting the local description
            await asyncio.wait_for(
                pc.setLocalDescription(answer),
                timeout=self.gathering_timeout,
            )
        except asyncio.TimeoutError as e:
            raise NegotiationTimeoutError(
                f"candidate gathering exceeded {self.gathering_timeout:.1f}s"
            ) from e

        self._transition(SessionState.LOCAL_DESCRIPTION_SET)

    async def _wait_for_gathering(self) -> None:
        self._transition(SessionState.ICE_GATHERING)
        if self.pc.iceGatheringState == "complete":
            return
        try:
            await asyncio.wait_for(
                self._gathering_complete.wait(),
                timeout=self.gathering_timeout,
            )
        except asyncio.TimeoutError as e:
            raise NegotiationTimeoutError(
                f"candidate gathering exceeded {self.gathering_timeout:.1f}s"
            ) from e

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    async def start_streaming(self) -> None:
        """
        Subscribe to the hub and start feeding the track.

        Runs once the answer has been delivered. Does nothing unless READY.
        """
        if self.state != SessionState.READY:
            logger.info(
                f"Session {self.id}: not starting stream from state {self.state.value}"
            )
            return

        try:
            self.subscription = self.hub.subscribe()
        except SourceClosedError:
            logger.warning(f"Session {self.id}: capture source ended before streaming")
            await self.close()
            return

        self._transition(SessionState.STREAMING)
        self._forward_task = asyncio.create_task(
            self._forward(),
            name=f"webrtc_forward_{self.id}",
        )

    async def _forward(self) -> None:
        try:
            async for frame in self.subscription:
                self.track.write(frame)
            logger.info(f"Session {self.id}: capture stream ended")
        except TrackClosedError as e:
            logger.warning(f"Session {self.id}: track write failed: {e}")
        await self.close()

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the session and release all resources. Idempotent."""
        if not self.state.is_terminal:
            self._transition(SessionState.CLOSED)
        await self._release()

    async def _fail(self) -> None:
        if not self.state.is_terminal:
            self._transition(SessionState.FAILED)
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True

        if self.subscription is not None:
            self.hub.unsubscribe(self.subscription)

        task = self._forward_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.track is not None:
            self.track.stop()
        if self.pc is not None:
            await self.pc.close()

        logger.info(f"Session {self.id}: released ({self.state.value})")
        if self._on_close is not None:
            self._on_close(self)

    def metrics(self) -> dict:
        """Session summary for /metrics."""
        result = {
            "id": self.id,
            "kind": "webrtc",
            "state": self.state.value,
            "ice_gathering_state": self.ice_gathering_state,
            "age_seconds": round(time.time() - self.created_at, 1),
        }
        if self.track is not None:
            result["frames_sent"] = self.track.frames_sent
            result["track_dropped"] = self.track.dropped
        if self.subscription is not None:
            result["subscription"] = self.subscription.metrics()
        return result


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{location}: {first.get('msg', 'invalid value')}"
