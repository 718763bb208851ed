"""Chat transports - where pixel commands come from."""

from .messages import ChatMessage
from .console import ConsoleTransport
from .irc import TwitchIRCTransport, parse_irc_line, to_chat_message
from .tokens import TokenStore, UserToken, device_authorize, refresh_token

__all__ = [
    "ChatMessage",
    "ConsoleTransport",
    "TwitchIRCTransport",
    "parse_irc_line",
    "to_chat_message",
    "TokenStore",
    "UserToken",
    "device_authorize",
    "refresh_token",
]
