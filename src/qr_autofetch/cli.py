"""qr-autofetch command line entry point.

Fetches the identity/secret pair over the WebSocket session, then keeps
printing (and optionally rendering) the rotating code until interrupted.

Example
-------
    qr-autofetch --url wss://example.com/websocket --token "$TOKEN" --png code.png
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

import uvicorn

from qr_autofetch.codegen import CodeGenerator, GeneratedCode
from qr_autofetch.config import FetcherConfig, load_env_file
from qr_autofetch.display import DisplayLog, DisplayLogHandler, format_countdown
from qr_autofetch.errors import ConfigError
from qr_autofetch.render import QrRenderer
from qr_autofetch.scheduler import RefreshScheduler
from qr_autofetch.servers import StatusSources, create_status_app
from qr_autofetch.session.client import ProtocolSession
from qr_autofetch.session.state import SessionState
from qr_autofetch.session.transport import Transport, WebSocketTransport
from qr_autofetch.utils.logging import setup_logging

logger = logging.getLogger("qr-autofetch.cli")

DEFAULT_ENV_FILE = Path(".env")


async def run_fetcher(
    config: FetcherConfig,
    *,
    transport: Transport | None = None,
    display: DisplayLog | None = None,
    png_path: Path | None = None,
    serve_port: int | None = None,
    once: bool = False,
    show_countdown: bool = False,
) -> int:
    """Run one session and keep the code refreshing.

    Returns ``0`` on a clean stop, ``1`` when the session failed.
    """
    loop = asyncio.get_running_loop()
    display = display or DisplayLog(config.log_history)
    sources = StatusSources(display=display)
    renderer = QrRenderer() if png_path else None
    done = asyncio.Event()

    def _on_code(result: GeneratedCode) -> None:
        print(f"[{result.window.boundary_seconds}] {result.code}", flush=True)
        if renderer is not None and png_path is not None:
            renderer.render_to_file(result.code, png_path)
        if once:
            done.set()

    def _on_countdown(remaining_ms: int) -> None:
        print(f"  {format_countdown(remaining_ms)} left ", end="\r", flush=True)

    def _on_active(generator: CodeGenerator) -> None:
        refresh = RefreshScheduler(generator, loop)
        refresh.add_code_listener(_on_code)
        if show_countdown:
            refresh.add_countdown_listener(_on_countdown)
        sources.refresh = refresh
        refresh.start()

    def _on_state(previous: SessionState, current: SessionState) -> None:
        if current is SessionState.FAILED:
            done.set()

    transport = transport or WebSocketTransport()
    session = ProtocolSession(
        transport,
        loop,
        static_key=config.static_key,
        interval_ms=config.interval_ms,
        auto_close_s=config.auto_close_seconds,
        display=display,
        active_callback=_on_active,
        state_callback=_on_state,
    )
    sources.session = session

    server = server_task = None
    if serve_port is not None:
        server = uvicorn.Server(
            uvicorn.Config(
                create_status_app(sources), host="127.0.0.1", port=serve_port, log_level="warning"
            )
        )
        server_task = loop.create_task(server.serve())
        logger.info("Status endpoints on http://127.0.0.1:%d", serve_port)

    session.start(config.ws_url, config.auth_token)
    try:
        await done.wait()
    finally:
        if sources.refresh is not None:
            sources.refresh.stop()
        session.close()
        if isinstance(transport, WebSocketTransport):
            await transport.wait_closed()
        if server is not None and server_task is not None:
            server.should_exit = True
            await server_task
    return 1 if session.state is SessionState.FAILED else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qr-autofetch",
        description="Fetch the QR seed over WebSocket and print the rotating code.",
    )
    parser.add_argument("--url", help="WebSocket endpoint (QR_AUTOFETCH_WS_URL)")
    parser.add_argument("--token", help="auth/resume token (QR_AUTOFETCH_AUTH_TOKEN)")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=DEFAULT_ENV_FILE,
        help="KEY=VALUE file loaded before reading the environment (default: .env)",
    )
    parser.add_argument("--interval", type=int, dest="interval_seconds", help="window length in seconds")
    parser.add_argument("--static-key", help="override the digest namespace key")
    parser.add_argument("--png", type=Path, help="re-render the code to this PNG on every rollover")
    parser.add_argument("--serve-port", type=int, help="serve /status and /code on this local port")
    parser.add_argument("--once", action="store_true", help="exit after the first code")
    parser.add_argument("--countdown", action="store_true", help="show a live countdown")
    parser.add_argument("--log-level", help="logging level (QR_AUTOFETCH_LOG_LEVEL)")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_env_file(args.env_file)
    try:
        config = FetcherConfig.from_env(
            ws_url=args.url,
            auth_token=args.token,
            interval_seconds=args.interval_seconds,
            static_key=args.static_key,
            log_level=args.log_level,
        )
        setup_logging(config.log_level)
    except (ConfigError, ValueError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    display = DisplayLog(config.log_history)
    logging.getLogger("qr-autofetch").addHandler(DisplayLogHandler(display, logging.DEBUG))
    try:
        return asyncio.run(
            run_fetcher(
                config,
                display=display,
                png_path=args.png,
                serve_port=args.serve_port,
                once=args.once,
                show_countdown=args.countdown and sys.stdout.isatty(),
            )
        )
    except KeyboardInterrupt:
        print("\nBye.")
        return 130


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
