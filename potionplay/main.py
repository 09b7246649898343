"""
PotionPlay Application Entry Point

Runs the hands-free cauldron: listens for the wake phrase, interprets the
webcam frame, speaks the result and carries on a conversation.

Usage:
    potionplay                          # Run with default config
    potionplay --config cauldron.yaml
    potionplay --log-level DEBUG
    potionplay --dry-run                # Validate config without starting
    potionplay --no-camera --phrase "hocus pocus"

Console commands (console recognition backend):
    /capture   interpret the current frame now
    /talk      start a conversation about the last interpretation
    /end       end the conversation and return to wake listening
    /quit      exit
"""

from __future__ import annotations

import argparse
import asyncio
import re
import signal
import sys
from typing import TYPE_CHECKING, Optional

from potionplay import __version__
from potionplay.config import PotionPlayConfig, load_config
from potionplay.exceptions import ConfigurationError, PotionPlayError
from potionplay.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from types import FrameType

    from potionplay.controller import InteractionController

__all__ = ["main", "async_main", "create_parser", "ConsoleCommands", "GracefulShutdown"]

logger = get_logger(__name__)


# =============================================================================
# Argument Parser
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="potionplay",
        description="PotionPlay magic cauldron",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file (default: auto-discover)",
    )

    parser.add_argument(
        "-l",
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (overrides config file)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        metavar="PATH",
        help="Path to log file (default: stderr only)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without starting",
    )
    parser.add_argument(
        "--no-camera",
        action="store_true",
        help="Run without opening the webcam",
    )
    parser.add_argument(
        "--phrase",
        type=str,
        metavar="TEXT",
        help="Wake phrase (overrides config file)",
    )

    return parser


# =============================================================================
# Signal Handlers
# =============================================================================


class GracefulShutdown:
    """Manages graceful shutdown on SIGINT (Ctrl+C) and SIGTERM."""

    def __init__(self) -> None:
        self._shutdown_requested = False
        self._shutdown_event: asyncio.Event | None = None
        self._original_handlers: dict[int, signal.Handlers] = {}

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def install_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, self._handle_signal)
        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, self._handle_signal)
        logger.debug("Signal handlers installed for graceful shutdown")

    def restore_handlers(self) -> None:
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
        logger.debug("Original signal handlers restored")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        signal_name = signal.Signals(signum).name
        if self._shutdown_requested:
            logger.warning(f"Received {signal_name} again - forcing immediate exit")
            sys.exit(1)

        logger.info(f"Received {signal_name} - shutting down...")
        self.request_shutdown()

    def request_shutdown(self) -> None:
        self._shutdown_requested = True
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def get_shutdown_event(self) -> asyncio.Event:
        """Get or create the async shutdown event."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event


# =============================================================================
# Console Commands
# =============================================================================


class ConsoleCommands:
    """Maps /commands typed at the console to controller operations."""

    def __init__(self, shutdown: GracefulShutdown):
        self.shutdown = shutdown
        self.controller: Optional[InteractionController] = None

    def handle(self, command: str) -> None:
        name = command.strip().split()[0].lower()
        controller = self.controller

        if name == "/quit":
            self.shutdown.request_shutdown()
            return
        if controller is None:
            logger.warning(f"Controller not ready for {name}")
            return

        if name == "/capture":
            controller.spawn(self._capture(controller), name="manual-capture")
        elif name == "/talk":
            controller.spawn(controller.start_conversation(), name="start-conversation")
        elif name == "/end":
            controller.spawn(controller.end_conversation(resume_listening=True), name="end-conversation")
        else:
            print(f"Unknown command: {name} (try /capture, /talk, /end, /quit)")

    async def _capture(self, controller: InteractionController) -> None:
        interpretation = await controller.capture_now()
        if interpretation is not None and not interpretation.success:
            print(f"Capture failed: {interpretation.error}")


# =============================================================================
# Startup Banner
# =============================================================================


def print_banner(config: PotionPlayConfig, use_camera: bool) -> None:
    """Print a startup summary."""
    speech = f"{config.speech.backend}/{config.speech.strategy}"
    camera = f"#{config.camera.device_index}" if use_camera and config.camera.enabled else "off"
    print(f"PotionPlay v{__version__}")
    print(f"  Wake phrase: {config.wake.phrase!r} (cooldown {config.wake.cooldown_sec:.0f}s)")
    print(f"  Relay:       {config.relay.base_url}")
    print(f"  Speech:      {speech}, format {config.speech.format}")
    print(f"  Recognition: {config.recognition.backend}")
    print(f"  Camera:      {camera}")


# =============================================================================
# Main Entry Points
# =============================================================================


async def async_main(args: argparse.Namespace, config: PotionPlayConfig, shutdown: GracefulShutdown) -> int:
    """Run the cauldron until shutdown is requested.

    Returns:
        Exit code (0 for success)
    """
    from potionplay.controller import create_controller
    from voice.stt import ConsoleRecognitionBackend

    shutdown_event = shutdown.get_shutdown_event()
    commands = ConsoleCommands(shutdown)

    backend = None
    if config.recognition.backend == "console":
        backend = ConsoleRecognitionBackend(command_handler=commands.handle)

    controller = create_controller(
        config,
        recognition_backend=backend,
        use_camera=not args.no_camera,
    )
    commands.controller = controller

    try:
        if not controller.start():
            logger.error("Speech recognition is not available")
            return 1

        logger.info(f"Say '{config.wake.phrase}' to consult the cauldron. Press Ctrl+C to stop.")
        await shutdown_event.wait()
        return 0

    except Exception as e:
        logger.exception(f"Fatal error in main loop: {e}")
        return 1
    finally:
        await controller.shutdown()


def main() -> int:
    """Main entry point for the potionplay command."""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(log_level=args.log_level or "INFO", log_file=args.log_file)

    try:
        logger.debug(f"Loading configuration from: {args.config or 'auto-discover'}")
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.log_level is None and (config.log_level != "INFO" or config.log_file):
        setup_logging(log_level=config.log_level, log_file=args.log_file or config.log_file)

    if args.phrase:
        if not re.search(r"\w", args.phrase):
            logger.error("Wake phrase must contain at least one word")
            return 1
        config.wake.phrase = args.phrase.strip()

    print_banner(config, use_camera=not args.no_camera)

    if args.dry_run:
        logger.info("Dry run mode - configuration valid, exiting")
        print("\nConfiguration is valid")
        return 0

    shutdown = GracefulShutdown()
    shutdown.install_handlers()

    try:
        return asyncio.run(async_main(args, config, shutdown))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except PotionPlayError as e:
        logger.error(f"PotionPlay error: {e}")
        return 1
    finally:
        shutdown.restore_handlers()


if __name__ == "__main__":
    sys.exit(main())
