"""Core pixel-wall logic - command parsing and the canvas update cycle."""

from .errors import (
    TwixelWallError,
    ParseError,
    MalformedCommand,
    ArityMismatch,
    ColorOutOfRange,
    UpdateError,
    CanvasLoadError,
    CanvasEncodeError,
    CanvasPublishError,
    ConfigError,
    AuthenticationError,
)
from .command import Rgba, PixelCommand, parse_command, try_parse_command
from .canvas import apply_command, blend_over, create_canvas, load_canvas, publish_canvas

__all__ = [
    # Errors
    "TwixelWallError",
    "ParseError",
    "MalformedCommand",
    "ArityMismatch",
    "ColorOutOfRange",
    "UpdateError",
    "CanvasLoadError",
    "CanvasEncodeError",
    "CanvasPublishError",
    "ConfigError",
    "AuthenticationError",
    # Commands
    "Rgba",
    "PixelCommand",
    "parse_command",
    "try_parse_command",
    # Canvas
    "apply_command",
    "blend_over",
    "create_canvas",
    "load_canvas",
    "publish_canvas",
]
