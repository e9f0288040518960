"""
gameview-server Configuration
=============================

This module handles configuration loading for the camera streaming server.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GAMEVIEW_CAPTURE_BACKEND  -> capture.backend
    GAMEVIEW_DEVICE           -> capture.device
    GAMEVIEW_CODEC            -> capture.codec
    GAMEVIEW_TARGET_FPS       -> stream.target_fps
    GAMEVIEW_GATHERING_TIMEOUT -> webrtc.gathering_timeout_seconds
    GAMEVIEW_HID_DEVICE       -> gamepad.device
    GAMEVIEW_PORT             -> server.port
    GAMEVIEW_LOG_LEVEL        -> logging.level
    PORT                      -> server.port (container platforms)

Example:
    from gameview.config import settings

    print(settings.capture.device)
    print(settings.server.port)
"""

import os
import logging
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class CaptureConfig(BaseModel):
    """Camera device configuration."""

    backend: Literal["v4l2", "mock"] = Field(
        default="v4l2",
        description="Capture backend: 'v4l2' (real device) or 'mock'",
    )
    device: str = Field(default="/dev/video0", description="Video device path")
    codec: Literal["h264", "mjpeg"] = Field(
        default="h264",
        description="Encoded output format requested from the device",
    )
    width: int = Field(default=1280, ge=16, description="Frame width in pixels")
    height: int = Field(default=720, ge=16, description="Frame height in pixels")
    fps: int = Field(default=30, ge=1, le=240, description="Device frame rate")


class HubConfig(BaseModel):
    """Frame broadcast hub configuration."""

    subscriber_queue_size: int = Field(
        default=8,
        ge=1,
        description="Frames buffered per subscriber before dropping the oldest",
    )


class StreamConfig(BaseModel):
    """WebSocket push stream configuration."""

    target_fps: float = Field(
        default=30.0,
        gt=0,
        description="Maximum send rate per WebSocket viewer",
    )


class WebRTCConfig(BaseModel):
    """Peer connection negotiation configuration."""

    ice_servers: List[str] = Field(
        default_factory=list,
        description="STUN/TURN URLs; empty means host candidates only",
    )
    gathering_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on candidate gathering before failing the offer",
    )
    track_queue_size: int = Field(
        default=4,
        ge=1,
        description="Encoded frames buffered inside each media track",
    )


class GamepadConfig(BaseModel):
    """HID passthrough configuration."""

    enabled: bool = Field(default=True, description="Expose the /gamepad socket")
    device: str = Field(default="/dev/hidg0", description="HID gadget device file")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=9090, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for gameview-server.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    hub: HubConfig = Field(default_factory=HubConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    webrtc: WebRTCConfig = Field(default_factory=WebRTCConfig)
    gamepad: GamepadConfig = Field(default_factory=GamepadConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_backend := os.environ.get("GAMEVIEW_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_backend
    if env_device := os.environ.get("GAMEVIEW_DEVICE"):
        config_data.setdefault("capture", {})["device"] = env_device
    if env_codec := os.environ.get("GAMEVIEW_CODEC"):
        config_data.setdefault("capture", {})["codec"] = env_codec.lower()

    # Transport settings
    if env_fps := os.environ.get("GAMEVIEW_TARGET_FPS"):
        config_data.setdefault("stream", {})["target_fps"] = float(env_fps)
    if env_timeout := os.environ.get("GAMEVIEW_GATHERING_TIMEOUT"):
        config_data.setdefault("webrtc", {})["gathering_timeout_seconds"] = float(env_timeout)

    if env_hid := os.environ.get("GAMEVIEW_HID_DEVICE"):
        config_data.setdefault("gamepad", {})["device"] = env_hid

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("GAMEVIEW_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_log := os.environ.get("GAMEVIEW_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Loaded on import; main.create_app() accepts an explicit Settings instead
settings = load_config()
setup_logging(settings)
