"""Twitch chat over IRC.

Line protocol over TLS. Only what the pixel wall needs is implemented:
login, join one channel, answer PINGs, turn PRIVMSGs into ChatMessages.

    > PASS oauth:<token>
    > NICK <login>
    > JOIN #<channel>
    < :tmi.twitch.tv 001 <login> :Welcome, GLHF!
    < :alice!alice@alice.tmi.twitch.tv PRIVMSG #<channel> :3 4 255 0 0
    < PING :tmi.twitch.tv
    > PONG :tmi.twitch.tv
"""

from __future__ import annotations

import asyncio
import logging
import ssl as ssl_module
from dataclasses import dataclass, field
from typing import Optional, Union

from ..core.errors import AuthenticationError
from .messages import ChatMessage
from .tokens import TokenStore

logger = logging.getLogger(__name__)

TWITCH_IRC_HOST = "irc.chat.twitch.tv"
TWITCH_IRC_PORT = 6697

AUTH_FAILURE_NOTICES = (
    "Login authentication failed",
    "Improperly formatted auth",
)


@dataclass
class IrcMessage:
    """A parsed IRC line."""
    command: str
    params: list[str] = field(default_factory=list)
    prefix: str = ""
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def nick(self) -> str:
        return self.prefix.split("!", 1)[0]


def parse_irc_line(line: str) -> IrcMessage:
    """Parse one IRC line (without the trailing CRLF), IRCv3 tags included."""
    tags: dict[str, str] = {}
    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        for item in raw_tags.split(";"):
            key, _, value = item.partition("=")
            tags[key] = value

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    trailing = None
    if line.startswith(":"):
        trailing, line = line[1:], ""
    elif " :" in line:
        line, _, trailing = line.partition(" :")

    parts = line.split()
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IrcMessage(command=parts[0].upper() if parts else "", params=params, prefix=prefix, tags=tags)


def to_chat_message(message: IrcMessage) -> Optional[ChatMessage]:
    """Convert a PRIVMSG into a ChatMessage; other commands give None."""
    if message.command != "PRIVMSG" or len(message.params) < 2:
        return None
    return ChatMessage(
        channel=message.params[0].lstrip("#"),
        user=message.nick,
        text=message.params[1],
    )


class TwitchIRCTransport:
    """Reads one Twitch channel and queues its chat messages.

    Reconnects with exponential backoff when the connection drops. A login
    rejection triggers one token refresh; a second consecutive rejection is
    raised to the caller.
    """

    def __init__(
        self,
        login_name: str,
        channel_name: str,
        token_store: TokenStore,
        host: str = TWITCH_IRC_HOST,
        port: int = TWITCH_IRC_PORT,
        ssl: Union[bool, ssl_module.SSLContext, None] = True,
        reconnect_delay: float = 5.0,
        max_reconnect_delay: float = 60.0,
    ):
        self.login_name = login_name.lower()
        self.channel_name = channel_name.lstrip("#").lower()
        self.token_store = token_store
        self.host = host
        self.port = port
        self.ssl = ssl or None
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self._welcomed = False

    async def run(self, queue: asyncio.Queue) -> None:
        """Stay connected forever, queueing every PRIVMSG."""
        delay = self.reconnect_delay
        refreshed = False
        while True:
            self._welcomed = False
            try:
                await self._session(queue)
                logger.info("Twitch closed the connection")
            except AuthenticationError as e:
                if refreshed:
                    raise
                logger.warning("%s - refreshing token and reconnecting", e)
                refreshed = True
                await asyncio.to_thread(self.token_store.refresh)
                continue
            except (OSError, asyncio.IncompleteReadError) as e:
                logger.warning("Chat connection lost: %s", e)

            if self._welcomed:
                delay = self.reconnect_delay
                refreshed = False
            logger.info("Reconnecting in %.0fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    async def _session(self, queue: asyncio.Queue) -> None:
        """One connection lifetime. Returns when the server hangs up."""
        token = await asyncio.to_thread(self.token_store.get_valid_token)
        reader, writer = await asyncio.open_connection(self.host, self.port, ssl=self.ssl)
        try:
            await self._send(writer, f"PASS oauth:{token.access_token}", secret=True)
            await self._send(writer, f"NICK {self.login_name}")
            await self._send(writer, f"JOIN #{self.channel_name}")

            while True:
                raw = await reader.readline()
                if not raw:
                    return
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line:
                    continue
                logger.debug("< %s", line)
                if not await self._dispatch(parse_irc_line(line), writer, queue):
                    return
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug("Error closing chat connection: %s", e)

    async def _dispatch(self, message: IrcMessage, writer: asyncio.StreamWriter, queue: asyncio.Queue) -> bool:
        """Handle one server message. Returns False when the session should end."""
        command = message.command
        if command == "PING":
            await self._send(writer, "PONG :" + (message.params[-1] if message.params else ""))
        elif command == "001":
            self._welcomed = True
            logger.info("Logged in to %s as %s", self.host, self.login_name)
        elif command == "JOIN" and message.nick == self.login_name:
            logger.info("Joined #%s", self.channel_name)
        elif command == "NOTICE":
            text = message.params[-1] if message.params else ""
            if any(notice in text for notice in AUTH_FAILURE_NOTICES):
                raise AuthenticationError(f"Twitch rejected login: {text}")
            logger.info("Notice: %s", text)
        elif command == "RECONNECT":
            logger.info("Server requested reconnect")
            return False
        else:
            chat = to_chat_message(message)
            if chat is not None:
                await queue.put(chat)
        return True

    async def _send(self, writer: asyncio.StreamWriter, line: str, secret: bool = False) -> None:
        logger.debug("> %s", "PASS ***" if secret else line)
        writer.write(line.encode("utf-8") + b"\r\n")
        await writer.drain()
