#!/usr/bin/env python3
"""Pixel wall daemon - paints chat commands onto the canvas file.

PixelWallDaemon wires a chat transport to the canvas updater:
- the transport task pushes ChatMessages onto an asyncio.Queue
- the daemon drains the queue one message at a time, running each
  parse -> load -> blend -> persist cycle to completion before the next

Nothing else touches the canvas inside the process, so sequential
processing is the whole concurrency story. PidLock keeps a second daemon
from writing the same canvas.
"""

from __future__ import annotations

import argparse
import asyncio
import fcntl
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .chat.console import ConsoleTransport
from .chat.irc import TwitchIRCTransport
from .chat.messages import ChatMessage
from .chat.tokens import TokenStore
from .config import DEFAULT_CONFIG_PATH, BotConfig
from .core.canvas import apply_command, create_canvas
from .core.command import try_parse_command
from .core.errors import AuthenticationError, ConfigError, UpdateError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class PidLock:
    """Per-canvas lock so two daemons never write the same canvas.

    The lock is an flock() on ``.<canvas name>.pid`` beside the canvas. The
    kernel drops it when the process dies, so a file left behind by a crashed
    daemon is simply reused. The file holds the owner's PID for operators.
    """

    def __init__(self, pid_file: Path):
        self.pid_file = Path(pid_file)
        self._lock_fd: Optional[int] = None

    @classmethod
    def for_canvas(cls, canvas_path) -> "PidLock":
        canvas_path = Path(canvas_path)
        return cls(canvas_path.parent / f".{canvas_path.name}.pid")

    def acquire(self) -> bool:
        """Take the lock. Returns False if another daemon holds it."""
        try:
            fd = os.open(str(self.pid_file), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            logger.error("Cannot create lock file %s: %s", self.pid_file, e)
            return False

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            owner = os.read(fd, 32).decode(errors="replace").strip() or "unknown"
            os.close(fd)
            logger.error("Another daemon (PID %s) is already painting this canvas", owner)
            return False

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._lock_fd = fd
        return True

    def release(self) -> None:
        if self._lock_fd is None:
            return
        try:
            self.pid_file.unlink()
        except OSError as e:
            logger.debug("Could not remove lock file %s: %s", self.pid_file, e)
        os.close(self._lock_fd)
        self._lock_fd = None

    def __enter__(self) -> "PidLock":
        if not self.acquire():
            raise RuntimeError(f"Canvas lock {self.pid_file} is held by another daemon")
        return self

    def __exit__(self, *args) -> None:
        self.release()


def build_transport(config: BotConfig):
    """Create the chat transport named by ``config.chat.transport``."""
    if config.chat.transport == "console":
        return ConsoleTransport()

    twitch = config.twitch
    token_store = TokenStore(Path(twitch.token_filepath), twitch.client_id, twitch.secret)
    return TwitchIRCTransport(
        login_name=twitch.login_name,
        channel_name=twitch.channel_name,
        token_store=token_store,
        reconnect_delay=config.chat.reconnect_delay,
        max_reconnect_delay=config.chat.max_reconnect_delay,
    )


class PixelWallDaemon:
    """Applies pixel commands from a chat transport to the canvas file."""

    def __init__(self, config: BotConfig, transport=None):
        self.config = config
        self.transport = transport if transport is not None else build_transport(config)
        self.painted = 0

    def handle_line(self, text: str) -> bool:
        """Run one chat line through parse -> update.

        Returns True if the canvas was rewritten. Never raises for bad input
        or a failed cycle; those are logged and dropped.
        """
        command = try_parse_command(text)
        if command is None:
            return False

        canvas = self.config.canvas
        try:
            written = apply_command(
                command, canvas.img_filepath, canvas.width, canvas.height, canvas.scratch_dir
            )
        except UpdateError as e:
            logger.warning("Pixel update failed: %s", e)
            return False

        if written:
            self.painted += 1
            logger.info("Painted (%d, %d) rgba%s", command.x, command.y, command.color.as_tuple())
        return written

    def handle_message(self, message: ChatMessage) -> bool:
        logger.debug("%s@%s: %s", message.user, message.channel, message.text)
        return self.handle_line(message.text)

    async def run(self) -> None:
        """Process chat until the transport ends.

        A transport failure is re-raised after any messages it already
        queued have been applied.
        """
        queue: asyncio.Queue = asyncio.Queue()
        transport_task = asyncio.create_task(self.transport.run(queue))
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {getter, transport_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter in done:
                    self.handle_message(getter.result())
                    continue

                getter.cancel()
                while not queue.empty():
                    self.handle_message(queue.get_nowait())
                transport_task.result()
                return
        finally:
            if not transport_task.done():
                transport_task.cancel()
                try:
                    await transport_task
                except asyncio.CancelledError:
                    pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="twixelwall",
        description="Paint a shared pixel canvas from Twitch chat commands (x y r g b [a]).",
    )
    parser.add_argument(
        "-l", "--log-level", default="INFO", type=str.upper, choices=LOG_LEVELS,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "-c", "--config-file", default=str(DEFAULT_CONFIG_PATH),
        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--console", action="store_true",
        help="Read commands from stdin instead of Twitch chat",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Listen to chat and paint (default)")
    init = subparsers.add_parser("init", help="Create a blank canvas of the configured size")
    init.add_argument("--force", action="store_true", help="Overwrite an existing canvas")
    return parser


def _init_canvas(config: BotConfig, force: bool) -> int:
    canvas = config.canvas
    try:
        created = create_canvas(
            canvas.img_filepath, canvas.width, canvas.height, canvas.background_color, overwrite=force
        )
    except UpdateError as e:
        logger.error("Cannot create canvas: %s", e)
        return 1
    if created:
        logger.info("Created %dx%d canvas at %s", canvas.width, canvas.height, canvas.img_filepath)
    else:
        logger.info("Canvas %s already exists (use --force to overwrite)", canvas.img_filepath)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the twixelwall command."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, stream=sys.stderr, format="%(name)s %(levelname)s: %(message)s")

    try:
        config = BotConfig.load(Path(args.config_file), transport="console" if args.console else None)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "init":
        return _init_canvas(config, args.force)

    if not Path(config.canvas.img_filepath).exists():
        logger.warning("Canvas %s does not exist yet; run `twixelwall init` to create it",
                       config.canvas.img_filepath)

    lock = PidLock.for_canvas(config.canvas.img_filepath)
    if not lock.acquire():
        return 1

    try:
        daemon = PixelWallDaemon(config)
        if isinstance(daemon.transport, TwitchIRCTransport):
            daemon.transport.token_store.ensure_token()
        asyncio.run(daemon.run())
        logger.info("Stopped after painting %d pixels", daemon.painted)
    except AuthenticationError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        lock.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
