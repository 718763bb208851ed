"""Tests for bot configuration."""

import json
import pytest
from pathlib import Path

from twixelwall.config import (
    BotConfig,
    CanvasConfig,
    ChatConfig,
    TwitchConfig,
    DEFAULT_CONFIG_PATH,
)
from twixelwall.core.command import Rgba
from twixelwall.core.errors import ConfigError


class TestCanvasConfig:
    """Tests for CanvasConfig dataclass."""

    def test_default_values(self):
        config = CanvasConfig()
        assert config.width > 0
        assert config.height > 0
        assert config.scratch_dir is None
        assert config.background_color == Rgba(255, 255, 255, 255)

    @pytest.mark.parametrize("width", [0, -3, "10", 2.5, True])
    def test_rejects_bad_width(self, width):
        with pytest.raises(ConfigError, match="canvas.width"):
            CanvasConfig(width=width).validate()

    def test_rejects_empty_path(self):
        with pytest.raises(ConfigError, match="img_filepath"):
            CanvasConfig(img_filepath="").validate()

    @pytest.mark.parametrize("background", [[1, 2], [0, 0, 0, 999], "white"])
    def test_rejects_bad_background(self, background):
        with pytest.raises(ConfigError, match="background"):
            CanvasConfig(background=background).validate()


class TestChatConfig:
    """Tests for ChatConfig dataclass."""

    def test_defaults_are_valid(self):
        ChatConfig().validate()

    def test_accepts_int_and_float_delays(self):
        ChatConfig(reconnect_delay=1, max_reconnect_delay=0.5).validate()

    @pytest.mark.parametrize("field", ["reconnect_delay", "max_reconnect_delay"])
    @pytest.mark.parametrize("value", ["5", 0, -1.0, None, True])
    def test_rejects_bad_delay(self, field, value):
        with pytest.raises(ConfigError, match=f"chat.{field}"):
            ChatConfig(**{field: value}).validate()

    def test_bad_delay_fails_at_load(self):
        with pytest.raises(ConfigError, match="reconnect_delay"):
            BotConfig.from_dict({"chat": {"transport": "console", "reconnect_delay": "5"}})


class TestTwitchConfig:
    """Tests for TwitchConfig dataclass."""

    def test_missing_lists_empty_fields(self):
        config = TwitchConfig(login_name="bot", channel_name="wall")
        assert config.missing() == ["client_id", "secret"]

    def test_complete(self):
        config = TwitchConfig(login_name="a", channel_name="b", client_id="c", secret="d")
        assert config.missing() == []


class TestBotConfig:
    """Tests for BotConfig loading and validation."""

    def test_from_dict(self, sample_config_dict):
        config = BotConfig.from_dict(sample_config_dict)
        assert config.twitch.login_name == "twixelbot"
        assert config.canvas.width == 64
        assert config.canvas.height == 48
        assert config.chat.transport == "twitch"

    def test_ignores_unknown_keys(self, sample_config_dict):
        sample_config_dict["canvas"]["dpi"] = 300
        sample_config_dict["extra"] = {"x": 1}
        config = BotConfig.from_dict(sample_config_dict)
        assert not hasattr(config.canvas, "dpi")

    def test_accepts_legacy_twixel_section(self, sample_config_dict):
        sample_config_dict["twixel"] = sample_config_dict.pop("canvas")
        config = BotConfig.from_dict(sample_config_dict)
        assert config.canvas.width == 64

    def test_twitch_transport_requires_credentials(self, sample_config_dict):
        del sample_config_dict["twitch"]["secret"]
        with pytest.raises(ConfigError, match="secret"):
            BotConfig.from_dict(sample_config_dict)

    def test_console_transport_skips_credentials(self):
        config = BotConfig.from_dict({"chat": {"transport": "console"}})
        assert config.chat.transport == "console"

    def test_transport_override(self):
        """The --console override works even without a twitch section."""
        config = BotConfig.from_dict({"canvas": {"width": 5, "height": 5}}, transport="console")
        assert config.chat.transport == "console"

    def test_unknown_transport(self):
        with pytest.raises(ConfigError, match="transport"):
            BotConfig.from_dict({"chat": {"transport": "carrier-pigeon"}})

    def test_not_an_object(self):
        with pytest.raises(ConfigError):
            BotConfig.from_dict(["canvas"])

    def test_section_not_an_object(self):
        with pytest.raises(ConfigError):
            BotConfig.from_dict({"canvas": "big", "chat": {"transport": "console"}})

    def test_to_dict_roundtrip(self, sample_config_dict):
        config = BotConfig.from_dict(sample_config_dict)
        again = BotConfig.from_dict(config.to_dict())
        assert again == config


class TestLoadSave:
    """Tests for reading and writing the config file."""

    def test_default_path(self):
        assert DEFAULT_CONFIG_PATH == Path("twixelwall-bot.json")

    def test_load(self, config_file):
        config = BotConfig.load(config_file)
        assert config.twitch.channel_name == "twixelwall"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="--config-file"):
            BotConfig.load(tmp_path / "nope.json")

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Error parsing"):
            BotConfig.load(path)

    def test_save_writes_json(self, tmp_path, sample_config_dict):
        config = BotConfig.from_dict(sample_config_dict)
        path = tmp_path / "saved.json"
        config.save(path)

        assert json.loads(path.read_text())["canvas"]["width"] == 64
        assert not path.with_suffix(".tmp").exists()
        assert BotConfig.load(path) == config
