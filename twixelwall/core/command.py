"""Pixel-write command parsing.

Grammar: ``x y r g b [a]`` - space separated decimal integers, color
components in 0-255, alpha optional and defaulting to fully opaque.

Tokens are only ever turned into integers, never used as paths or format
strings. Coordinates are not checked here: the canvas updater owns the
canvas dimensions.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .errors import ArityMismatch, ColorOutOfRange, MalformedCommand, ParseError

logger = logging.getLogger(__name__)

OPAQUE = 255
CHANNEL_MAX = 255

_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Rgba:
    """An 8-bit RGBA color."""
    r: int
    g: int
    b: int
    a: int = OPAQUE

    def __post_init__(self):
        for name in ("r", "g", "b", "a"):
            value = getattr(self, name)
            if not 0 <= value <= CHANNEL_MAX:
                raise ValueError(f"{name}={value} outside 0-{CHANNEL_MAX}")

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.r, self.g, self.b, self.a)


@dataclass(frozen=True)
class PixelCommand:
    """A validated request to blend ``color`` onto pixel ``(x, y)``."""
    x: int
    y: int
    color: Rgba


def _tokenize(text: str) -> list[int]:
    values = []
    for token in text.split(" "):
        if not _DIGITS.fullmatch(token):
            raise MalformedCommand(f"not a non-negative integer: {token!r}")
        values.append(int(token))
    return values


def parse_command(text: str) -> PixelCommand:
    """Parse a chat line into a PixelCommand.

    Raises:
        MalformedCommand: a token is not made of decimal digits.
        ArityMismatch: the line has fewer than 5 or more than 6 tokens.
        ColorOutOfRange: a color component exceeds 255.
    """
    values = _tokenize(text)

    if len(values) not in (5, 6):
        raise ArityMismatch(f"expected 5 or 6 values, got {len(values)}")

    channels = values[2:]
    if any(c > CHANNEL_MAX for c in channels):
        raise ColorOutOfRange(f"color components must be 0-{CHANNEL_MAX}: {channels}")

    x, y, r, g, b = values[:5]
    a = values[5] if len(values) == 6 else OPAQUE
    return PixelCommand(x=x, y=y, color=Rgba(r, g, b, a))


def try_parse_command(text: str) -> Optional[PixelCommand]:
    """Like parse_command, but returns None for lines that are not commands."""
    try:
        return parse_command(text)
    except ParseError as e:
        logger.debug("Ignoring chat line %r: %s", text, e)
        return None
