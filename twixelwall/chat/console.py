"""Console transport - every stdin line is treated as a chat message."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import IO, Optional

from .messages import ChatMessage

logger = logging.getLogger(__name__)


class ConsoleTransport:
    """Feeds lines typed on stdin (or read from any text stream) to the wall."""

    def __init__(self, stream: Optional[IO[str]] = None, user: str = "console"):
        self.stream = stream
        self.user = user

    async def run(self, queue: asyncio.Queue) -> None:
        """Read until EOF, queueing one ChatMessage per line."""
        stream = self.stream or sys.stdin
        loop = asyncio.get_running_loop()
        logger.info("Reading pixel commands from console")
        while True:
            line = await loop.run_in_executor(None, stream.readline)
            if not line:
                logger.info("Console input closed")
                return
            await queue.put(ChatMessage(channel="console", user=self.user, text=line.rstrip("\r\n")))
