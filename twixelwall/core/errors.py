"""Exception hierarchy for twixelwall.

Parse errors and update errors are recoverable per chat line; the daemon
logs them and keeps listening. Config errors are fatal at startup.
"""


class TwixelWallError(Exception):
    """Base class for all twixelwall errors."""


# --- Command parsing ---


class ParseError(TwixelWallError):
    """A chat line is not a valid pixel command."""


class MalformedCommand(ParseError):
    """A token is not a non-negative decimal integer."""


class ArityMismatch(ParseError):
    """The line does not have exactly 5 or 6 tokens."""


class ColorOutOfRange(ParseError):
    """A color component is greater than 255."""


# --- Canvas update cycle ---


class UpdateError(TwixelWallError):
    """One load -> blend -> persist cycle failed."""


class CanvasLoadError(UpdateError):
    """The canvas could not be read or decoded."""


class CanvasEncodeError(UpdateError):
    """The updated canvas could not be written to its temporary file."""


class CanvasPublishError(UpdateError):
    """The temporary file could not be renamed onto the canvas path."""


# --- Startup / transport ---


class ConfigError(TwixelWallError):
    """The configuration file is missing or invalid."""


class AuthenticationError(TwixelWallError):
    """The chat server rejected our credentials or a token could not be obtained."""
