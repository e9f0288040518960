"""
Configuration Tests
===================

YAML loading, defaults and environment overrides.
"""

import pytest
from pydantic import ValidationError

from gameview.config import Settings, load_config


ENV_VARS = [
    "GAMEVIEW_CAPTURE_BACKEND",
    "GAMEVIEW_DEVICE",
    "GAMEVIEW_CODEC",
    "GAMEVIEW_TARGET_FPS",
    "GAMEVIEW_GATHERING_TIMEOUT",
    "GAMEVIEW_HID_DEVICE",
    "GAMEVIEW_PORT",
    "GAMEVIEW_LOG_LEVEL",
    "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for built-in defaults."""

    def test_defaults(self):
        """Verify the documented defaults."""
        settings = Settings()
        assert settings.capture.device == "/dev/video0"
        assert settings.capture.codec == "h264"
        assert settings.stream.target_fps == 30.0
        assert settings.hub.subscriber_queue_size == 8
        assert settings.webrtc.ice_servers == []
        assert settings.gamepad.device == "/dev/hidg0"
        assert settings.server.port == 9090

    def test_missing_file_uses_defaults(self, tmp_path):
        """Verify a nonexistent path falls back to defaults."""
        settings = load_config(str(tmp_path / "missing.yaml"))
        assert settings.server.port == 9090


class TestYamlLoading:
    """Tests for config.yaml handling."""

    def test_yaml_values(self, tmp_path):
        """Verify values are read from the file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "capture:\n"
            "  backend: mock\n"
            "  device: /dev/video2\n"
            "  codec: mjpeg\n"
            "webrtc:\n"
            "  ice_servers: ['stun:stun.l.google.com:19302']\n"
            "server:\n"
            "  port: 8080\n"
        )
        settings = load_config(str(path))
        assert settings.capture.backend == "mock"
        assert settings.capture.device == "/dev/video2"
        assert settings.capture.codec == "mjpeg"
        assert settings.webrtc.ice_servers == ["stun:stun.l.google.com:19302"]
        assert settings.server.port == 8080

    def test_empty_yaml(self, tmp_path):
        """Verify an empty file is accepted."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)).capture.fps == 30

    def test_invalid_codec_rejected(self, tmp_path):
        """Verify unknown codecs fail validation."""
        path = tmp_path / "config.yaml"
        path.write_text("capture:\n  codec: vp9\n")
        with pytest.raises(ValidationError):
            load_config(str(path))


class TestEnvOverrides:
    """Tests for environment variable precedence."""

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        """Verify environment variables override file values."""
        path = tmp_path / "config.yaml"
        path.write_text("capture:\n  device: /dev/video2\nserver:\n  port: 8080\n")
        monkeypatch.setenv("GAMEVIEW_DEVICE", "/dev/video5")
        monkeypatch.setenv("GAMEVIEW_PORT", "7000")
        monkeypatch.setenv("GAMEVIEW_CODEC", "MJPEG")
        monkeypatch.setenv("GAMEVIEW_TARGET_FPS", "15")
        monkeypatch.setenv("GAMEVIEW_GATHERING_TIMEOUT", "2.5")

        settings = load_config(str(path))
        assert settings.capture.device == "/dev/video5"
        assert settings.capture.codec == "mjpeg"
        assert settings.server.port == 7000
        assert settings.stream.target_fps == 15.0
        assert settings.webrtc.gathering_timeout_seconds == 2.5

    def test_platform_port_wins(self, tmp_path, monkeypatch):
        """Verify PORT takes precedence over GAMEVIEW_PORT."""
        monkeypatch.setenv("PORT", "8443")
        monkeypatch.setenv("GAMEVIEW_PORT", "7000")
        settings = load_config(str(tmp_path / "missing.yaml"))
        assert settings.server.port == 8443
