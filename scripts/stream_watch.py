#!/usr/bin/env python3
"""
Stream Watcher Script
=====================

Standalone script to check a running server's /stream endpoint.

This script:
    1. Connects to /stream as a viewer
    2. Runs for a configurable duration
    3. Logs frame rate and pacing every few seconds
    4. Reports final summary

Usage:
    python scripts/stream_watch.py --duration 30
    python scripts/stream_watch.py --url ws://raspberrypi.local:9090/stream
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from gameview.client import StreamWatcher


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_watcher(url: str, duration: int, report_interval: int) -> dict:
    """
    Watch the stream for `duration` seconds.

    Returns:
        Final metrics dict
    """
    logger.info(f"Stream URL: {url}")
    logger.info(f"Duration: {duration} seconds")

    watcher = StreamWatcher(url=url, reconnect_backoff_ms=500)
    watcher_task = asyncio.create_task(watcher.run())

    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0

    try:
        while time.time() - start_time < duration:
            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                metrics = watcher.metrics
                frames_since_last = metrics.frames_received - last_frame_count
                fps = frames_since_last / time_since_report

                logger.info(
                    f"connected={watcher.connected} frames={metrics.frames_received} "
                    f"fps={fps:.1f} reconnects={metrics.reconnect_count}"
                )
                last_report_time = time.time()
                last_frame_count = metrics.frames_received

            await asyncio.sleep(0.5)
    finally:
        await watcher.stop()
        try:
            await asyncio.wait_for(watcher_task, timeout=5.0)
        except asyncio.TimeoutError:
            watcher_task.cancel()
            try:
                await watcher_task
            except asyncio.CancelledError:
                pass

    total_time = time.time() - start_time
    summary = watcher.metrics.to_dict()
    summary["duration"] = round(total_time, 1)
    summary["avg_fps"] = round(summary["frames_received"] / total_time, 1) if total_time > 0 else 0.0

    logger.info(f"Summary: {summary}")
    if summary["frames_received"] > 0:
        logger.info("Stream OK")
    else:
        logger.error("No frames received")
    return summary


def main():
    parser = argparse.ArgumentParser(description="Watcher a gameview-server /stream endpoint")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("GAMEVIEW_STREAM_URL", "ws://localhost:9090/stream"),
        help="WebSocket URL of /stream",
    )
    parser.add_argument("--duration", type=int, default=30, help="Seconds to watch (default: 30)")
    parser.add_argument("--report-interval", type=int, default=5, help="Seconds between reports")
    args = parser.parse_args()

    summary = asyncio.run(run_watcher(args.url, args.duration, args.report_interval))
    sys.exit(0 if summary["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
