"""Bot configuration loaded once at startup from a JSON file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .core.command import Rgba
from .core.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("twixelwall-bot.json")

TRANSPORTS = ("twitch", "console")


def _known(cls, d: dict) -> dict:
    """Drop keys the dataclass doesn't define."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in d.items() if k in names}


@dataclass
class TwitchConfig:
    """Twitch account and channel settings."""
    token_filepath: str = "twixelwall-token.json"
    login_name: str = ""
    channel_name: str = ""
    client_id: str = ""
    secret: str = ""

    def missing(self) -> list[str]:
        """Names of required fields that are empty."""
        return [f.name for f in fields(self) if not getattr(self, f.name)]


@dataclass
class CanvasConfig:
    """Where the canvas lives and how big it is."""
    img_filepath: str = "twixelwall.png"
    width: int = 32
    height: int = 32
    scratch_dir: Optional[str] = None
    background: list[int] = field(default_factory=lambda: [255, 255, 255, 255])

    @property
    def background_color(self) -> Rgba:
        return Rgba(*self.background)

    def validate(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"canvas.{name} must be a positive integer, got {value!r}")
        if not self.img_filepath:
            raise ConfigError("canvas.img_filepath must not be empty")
        try:
            self.background_color
        except (TypeError, ValueError) as e:
            raise ConfigError(f"canvas.background must be four values in 0-255: {e}") from e


@dataclass
class ChatConfig:
    """Chat transport selection and reconnect policy."""
    transport: str = "twitch"
    reconnect_delay: float = 5.0
    max_reconnect_delay: float = 60.0

    def validate(self) -> None:
        if self.transport not in TRANSPORTS:
            raise ConfigError(
                f"chat.transport must be one of {', '.join(TRANSPORTS)}, got {self.transport!r}"
            )
        for name in ("reconnect_delay", "max_reconnect_delay"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"chat.{name} must be a positive number, got {value!r}")


@dataclass
class BotConfig:
    """Main configuration combining all sections."""
    twitch: TwitchConfig = field(default_factory=TwitchConfig)
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)

    def to_dict(self) -> dict:
        return {
            "twitch": vars(self.twitch).copy(),
            "canvas": vars(self.canvas).copy(),
            "chat": vars(self.chat).copy(),
        }

    @classmethod
    def from_dict(cls, d: dict, transport: Optional[str] = None) -> "BotConfig":
        """Build and validate a config. ``transport`` overrides chat.transport."""
        if not isinstance(d, dict):
            raise ConfigError("configuration must be a JSON object")
        try:
            chat = ChatConfig(**_known(ChatConfig, d.get("chat", {})))
            config = cls(
                twitch=TwitchConfig(**_known(TwitchConfig, d.get("twitch", {}))),
                # Accept the "twixel" section name used by older config files
                canvas=CanvasConfig(**_known(CanvasConfig, d.get("canvas", d.get("twixel", {})))),
                chat=chat,
            )
        except (TypeError, AttributeError) as e:
            raise ConfigError(f"invalid configuration section: {e}") from e
        if transport:
            config.chat.transport = transport
        config.validate()
        return config

    def validate(self) -> None:
        self.canvas.validate()
        self.chat.validate()
        if self.chat.transport == "twitch":
            missing = self.twitch.missing()
            if missing:
                raise ConfigError(f"twitch section is missing: {', '.join(missing)}")

    def save(self, path: Path = DEFAULT_CONFIG_PATH):
        temp = path.with_suffix(".tmp")
        temp.write_text(json.dumps(self.to_dict(), indent=2))
        temp.rename(path)

    @classmethod
    def load(cls, path: Path = DEFAULT_CONFIG_PATH, transport: Optional[str] = None) -> "BotConfig":
        path = Path(path)
        try:
            raw = path.read_text()
        except OSError as e:
            raise ConfigError(
                f"Error opening the configuration file {path}: {e}. "
                "Create the file or use --config-file to specify an alternative location"
            ) from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Error parsing configuration file {path}: {e}") from e
        return cls.from_dict(data, transport=transport)
