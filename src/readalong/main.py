"""
Main readalong application.
Runs the web server that connects a speech recognizer front end to the
alignment session.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from . import debug_log
from .config import (
    Config,
    get_aligner_settings,
    get_backtrack_settings,
    get_config_path,
    load_config,
    save_config,
)
from .server import ReadAlongServer
from .session import ReadingSession

logger = logging.getLogger(__name__)


class ReadAlongApp:
    """
    Main readalong application that owns the session and the web server.
    """

    def __init__(
        self,
        session: ReadingSession,
        host: str = "127.0.0.1",
        port: int = 8000
    ) -> None:
        self.session: ReadingSession = session
        self.host: str = host
        self.port: int = port
        self.server: ReadAlongServer | None = None
        self.running: bool = False
        self._stopped: asyncio.Event | None = None

    async def start(self) -> None:
        """Start the server and wait until stop() is requested."""
        print("Starting readalong...")
        self._stopped = asyncio.Event()
        self.server = ReadAlongServer(host=self.host, port=self.port, session=self.session)
        await self.server.start()
        self.running = True

        print("\n✓ readalong ready!")
        print(f"  Connect a client to ws://{self.host}:{self.port}/ws")
        print("  Press Ctrl+C to stop\n")

        await self._stopped.wait()

    def request_stop(self) -> None:
        """Ask start() to return."""
        self.running = False
        if self._stopped is not None:
            self._stopped.set()

    async def stop(self) -> None:
        """Stop the readalong application."""
        print("\nStopping readalong...")
        self.running = False
        if self.server:
            await self.server.stop()
        print("readalong stopped.")


def main() -> None:
    """Main entry point."""
    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="readalong - Read-along tracking with beam-search alignment"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--text", "-t",
        type=Path,
        default=None,
        help="Reference text file to load at startup"
    )

    parser.add_argument(
        "--markdown",
        action="store_true",
        help="Treat the --text file as Markdown"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable decision logging to ./logs/"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log alignment commits and rollbacks to the console"
    )

    args: argparse.Namespace = parser.parse_args()

    if args.verbose:
        logging.getLogger("readalong").setLevel(logging.INFO)

    if args.save_config:
        config["host"] = args.host
        config["port"] = args.port
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    backtrack_settings = get_backtrack_settings(config)
    session: ReadingSession = ReadingSession(
        aligner_settings=get_aligner_settings(config),
        backtrack_window=backtrack_settings.get("window", 8),
        backtrack_threshold=backtrack_settings.get("threshold", 2.0),
        history_size=config.get("history_size", 20)
    )

    if args.text:
        try:
            text: str = args.text.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error loading text: {e}", file=sys.stderr)
            sys.exit(1)
        words: int = session.load_text(text, markdown=args.markdown)
        print(f"Text loaded: {words} words")

    app: ReadAlongApp = ReadAlongApp(session, host=args.host, port=args.port)

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
