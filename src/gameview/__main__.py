"""
Command line entry point.

Usage:
    python -m gameview
    python -m gameview -d /dev/video2 -p 8080
    python -m gameview -c /etc/gameview/config.yaml
"""

import argparse
import sys


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Serve a camera over WebSocket and WebRTC"
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: search common locations)",
    )
    parser.add_argument(
        "-d", "--device",
        type=str,
        default=None,
        help="Video device path (overrides capture.device)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Listen port (overrides server.port)",
    )
    args = parser.parse_args()

    import uvicorn

    from gameview.config import load_config, setup_logging
    from gameview.main import create_app

    settings = load_config(args.config)
    if args.device:
        settings.capture.device = args.device
    if args.port:
        settings.server.port = args.port
    setup_logging(settings)

    app = create_app(settings)

    # uvicorn exits non-zero by itself when the camera fails at startup
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )

    # Capture pump died while serving
    if app.state.hub.error is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
