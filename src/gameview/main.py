"""
gameview-server Main Application
================================

FastAPI entry point for the camera streaming server.

Startup opens and starts the capture source (fatal on failure), then
starts the FrameHub pump. Every viewer gets its own session bound to
the hub.

Endpoints:
    GET    /                      - Service information
    GET    /health                - Liveness check
    GET    /metrics               - Hub and session metrics
    WS     /stream                - Paced binary frame stream
    POST   /offer                 - WebRTC offer -> answer
    POST   /sessions/{id}/offer   - Renegotiation attempt (always rejected)
    DELETE /sessions/{id}         - Close a WebRTC session
    WS     /gamepad               - HID report passthrough
"""

import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import BackgroundTasks, FastAPI, Request, Response, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse

from gameview import __version__
from gameview.capture import (
    CaptureSource,
    CaptureStartupError,
    DeviceError,
    create_capture_source,
)
from gameview.config import Settings, settings as default_settings
from gameview.control import GamepadForwarder
from gameview.sessions import (
    NegotiationError,
    NegotiationSession,
    SessionRegistry,
    StreamingSession,
    create_peer_factory,
    parse_offer,
)
from gameview.sessions.negotiation import PeerFactory
from gameview.stream import FrameHub


logger = logging.getLogger(__name__)


# =============================================================================
# Fatal Error Handling
# =============================================================================

def _terminate_process(error: BaseException) -> None:
    """Stop serving once the camera is gone; __main__ turns this into exit 1."""
    logger.critical(f"Capture failed, shutting down: {error}")
    os.kill(os.getpid(), signal.SIGTERM)


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    source: Optional[CaptureSource] = None,
    peer_factory: Optional[PeerFactory] = None,
    on_fatal: Callable[[BaseException], None] = _terminate_process,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration, the global settings if omitted
        source: Capture source, built from settings.capture if omitted
        peer_factory: WebRTC peer connection factory
        on_fatal: Called when the capture pump dies

    Returns:
        FastAPI app; hub, registry and settings live on app.state.
    """
    settings = settings or default_settings
    source = source or create_capture_source(settings.capture)
    peer_factory = peer_factory or create_peer_factory(settings.webrtc.ice_servers)

    hub = FrameHub(
        source,
        default_queue_size=settings.hub.subscriber_queue_size,
        on_fatal=on_fatal,
    )
    registry = SessionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: capture up before serving, down after."""
        app.state.startup_time = time.time()
        logger.info(f"Starting gameview-server {__version__}")

        try:
            await source.open()
            await source.start()
        except DeviceError as e:
            logger.critical(f"Camera unavailable, refusing to serve: {e}")
            raise CaptureStartupError(str(e)) from e

        hub.start()
        logger.info(f"Serving camera {source.describe()}")

        yield

        logger.info("Shutting down gracefully...")
        await registry.close_all()
        await hub.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="gameview-server",
        description="Live camera feed over WebSocket and WebRTC",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.hub = hub
    app.state.registry = registry
    app.state.startup_time = time.time()

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(NegotiationError)
    async def negotiation_error(request: Request, exc: NegotiationError) -> PlainTextResponse:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "gameview-server",
            "version": __version__,
            "status": "running" if not hub.closed else "source_closed",
            "camera": source.describe(),
            "capture_backend": settings.capture.backend,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness check; 503 once the capture source is gone."""
        body = {
            "status": "healthy" if not hub.closed else "source_closed",
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
        }
        return JSONResponse(body, status_code=200 if not hub.closed else 503)

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Detailed metrics for observability."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
            "capture": {
                "device": source.describe(),
                "frames_read": source.frames_read,
                "closed": source.is_closed,
            },
            "hub": hub.metrics(),
            "sessions": registry.metrics(),
        })

    @app.post("/offer")
    async def offer(request: Request, background_tasks: BackgroundTasks) -> Response:
        """
        Negotiate a WebRTC session.

        Answers only after candidate gathering finished. Frames start
        flowing once the response has been sent.
        """
        if hub.closed:
            return PlainTextResponse("capture source has ended", status_code=503)

        # Rejected offers never reach the registry
        offer = parse_offer(await request.body())

        session = NegotiationSession(
            hub,
            codec=settings.capture.codec,
            peer_factory=peer_factory,
            gathering_timeout=settings.webrtc.gathering_timeout_seconds,
            track_queue_size=settings.webrtc.track_queue_size,
            on_close=registry.remove,
        )
        registry.add(session)

        answer = await session.negotiate(offer)

        background_tasks.add_task(session.start_streaming)
        return JSONResponse(
            answer.model_dump(),
            headers={"X-Session-Id": session.id},
        )

    @app.post("/sessions/{session_id}/offer")
    async def renegotiate(session_id: str, request: Request) -> Response:
        """Second offer on an existing session; rejected by the state machine."""
        session = registry.get(session_id)
        if not isinstance(session, NegotiationSession):
            return PlainTextResponse(f"unknown session {session_id}", status_code=404)

        answer = await session.negotiate(await request.body())
        return JSONResponse(answer.model_dump())

    @app.delete("/sessions/{session_id}")
    async def close_session(session_id: str) -> Response:
        """Tear down a WebRTC session."""
        session = registry.get(session_id)
        if not isinstance(session, NegotiationSession):
            return PlainTextResponse(f"unknown session {session_id}", status_code=404)

        await session.close()
        return Response(status_code=204)

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/stream")
    async def stream(websocket: WebSocket) -> None:
        """Push every frame as one binary message, paced per viewer."""
        await websocket.accept()
        session = StreamingSession(hub, websocket, target_fps=settings.stream.target_fps)
        registry.add(session)
        try:
            await session.run()
        finally:
            registry.remove(session)

    if settings.gamepad.enabled:
        @app.websocket("/gamepad")
        async def gamepad(websocket: WebSocket) -> None:
            """Forward HID reports to the gadget device."""
            await websocket.accept()
            await GamepadForwarder(settings.gamepad.device).run(websocket)

    return app


# =============================================================================
# ASGI Entry Point
# =============================================================================

# uvicorn gameview.main:app
app = create_app()
