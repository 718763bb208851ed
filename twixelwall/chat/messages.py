"""Chat messages as seen by the pixel wall."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ChatMessage:
    """One chat line from one user, independent of the transport it came from."""
    channel: str
    user: str
    text: str
