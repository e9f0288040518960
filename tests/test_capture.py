"""
Capture Source Tests
====================

Lifecycle of the capture backends: idempotent open, permanent open
failure, sequence numbering and end-of-stream.
"""

import asyncio

import pytest

from gameview.capture import (
    DeviceError,
    EndOfStream,
    MockCaptureSource,
    V4L2CaptureSource,
    create_capture_source,
)

from conftest import make_capture_config, make_source


class CountingSource(MockCaptureSource):
    """Mock source that counts device opens."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.open_calls = 0

    def _open_device(self):
        self.open_calls += 1
        super()._open_device()


class TestOpen:
    """Tests for the one-time initialization barrier."""

    def test_concurrent_open_initializes_once(self):
        """Verify racing open() calls share one device handle."""
        async def scenario():
            source = CountingSource(make_capture_config(), payloads=[b"F1"], interval=0)
            results = await asyncio.gather(*(source.open() for _ in range(10)))
            return source, results

        source, results = asyncio.run(scenario())
        assert source.open_calls == 1
        assert all(result is source for result in results)
        assert source.is_open

    def test_open_failure_is_permanent(self):
        """Verify a failed open is reported again without retrying the device."""
        async def scenario():
            source = make_source(fail_open=True)
            with pytest.raises(DeviceError):
                await source.open()
            with pytest.raises(DeviceError, match="failed to open"):
                await source.open()
            return source

        assert not asyncio.run(scenario()).is_open

    def test_start_requires_open(self):
        """Verify start() before open() is refused."""
        async def scenario():
            source = make_source([b"F1"])
            with pytest.raises(DeviceError):
                await source.start()

        asyncio.run(scenario())

    def test_next_frame_requires_start(self):
        """Verify reading an opened but idle source is refused."""
        async def scenario():
            source = make_source([b"F1"])
            await source.open()
            with pytest.raises(DeviceError):
                await source.next_frame()

        asyncio.run(scenario())


class TestFrames:
    """Tests for frame production."""

    def test_frames_are_numbered_then_end(self):
        """Verify scripted payloads come out in order, then end-of-stream."""
        async def scenario():
            source = make_source([b"F1", b"F2", b"F3"])
            await source.open()
            await source.start()
            frames = [await source.next_frame() for _ in range(3)]
            with pytest.raises(EndOfStream):
                await source.next_frame()
            return source, frames

        source, frames = asyncio.run(scenario())
        assert [f.seq for f in frames] == [0, 1, 2]
        assert [f.data for f in frames] == [b"F1", b"F2", b"F3"]
        assert frames[0].timestamp <= frames[1].timestamp <= frames[2].timestamp
        assert source.frames_read == 3

    def test_close_ends_stream(self):
        """Verify next_frame() after close() signals end-of-stream."""
        async def scenario():
            source = make_source([b"F1", b"F2"])
            await source.open()
            await source.start()
            await source.close()
            await source.close()
            with pytest.raises(EndOfStream):
                await source.next_frame()
            with pytest.raises(DeviceError):
                await source.open()
            return source

        source = asyncio.run(scenario())
        assert source.is_closed
        assert not source.is_open

    def test_mock_paces_to_interval(self):
        """Verify the mock source does not outrun its interval."""
        async def scenario():
            loop = asyncio.get_running_loop()
            source = make_source([b"a", b"b", b"c"], interval=0.02)
            await source.open()
            await source.start()
            await source.next_frame()
            started = loop.time()
            await source.next_frame()
            await source.next_frame()
            return loop.time() - started

        assert asyncio.run(scenario()) >= 0.035


class TestFactory:
    """Tests for backend selection."""

    def test_mock_backend(self):
        """Verify backend 'mock' builds a MockCaptureSource."""
        source = create_capture_source(make_capture_config(backend="mock"))
        assert isinstance(source, MockCaptureSource)

    def test_v4l2_backend(self):
        """Verify backend 'v4l2' builds a V4L2 source without touching the device."""
        source = create_capture_source(make_capture_config(backend="v4l2", device="/dev/video9"))
        assert isinstance(source, V4L2CaptureSource)
        assert not source.is_open
        assert "/dev/video9" in source.describe()

    def test_missing_v4l2_device_fails_open(self):
        """Verify a device path that does not exist raises DeviceError."""
        async def scenario():
            source = V4L2CaptureSource(
                make_capture_config(backend="v4l2", device="/nonexistent/video0")
            )
            with pytest.raises(DeviceError):
                await source.open()

        asyncio.run(scenario())
