"""Shared test fixtures."""

import io
import json
import struct
import zlib
import pytest
from pathlib import Path
from PIL import Image

from twixelwall.config import BotConfig, CanvasConfig, ChatConfig


WHITE = (255, 255, 255, 255)


@pytest.fixture
def canvas_file(tmp_path):
    """A 10x10 opaque white PNG canvas."""
    path = tmp_path / "canvas.png"
    Image.new("RGBA", (10, 10), WHITE).save(path)
    return path


@pytest.fixture
def read_pixel():
    """Read one RGBA pixel from an image file."""
    def _read(path: Path, x: int, y: int) -> tuple:
        with Image.open(path) as image:
            return image.convert("RGBA").getpixel((x, y))
    return _read


@pytest.fixture
def read_all_pixels():
    """Read every pixel of an image file as a flat list."""
    def _read(path: Path) -> list:
        with Image.open(path) as image:
            return list(image.convert("RGBA").getdata())
    return _read


def _chunk(ctype: bytes, body: bytes) -> bytes:
    crc = zlib.crc32(ctype + body) & 0xFFFFFFFF
    return struct.pack(">I", len(body)) + ctype + body + struct.pack(">I", crc)


@pytest.fixture
def broken_png():
    """Write a PNG whose image data is split by a chunk with an invalid type."""
    def _write(path: Path, size=(200, 200)) -> Path:
        buf = io.BytesIO()
        Image.new("RGBA", size, WHITE).save(buf, format="PNG")
        data = buf.getvalue()

        out = [data[:8]]
        pos = 8
        while pos < len(data):
            length = struct.unpack(">I", data[pos:pos + 4])[0]
            ctype = data[pos + 4:pos + 8]
            body = data[pos + 8:pos + 8 + length]
            pos += length + 12
            if ctype == b"IDAT":
                half = len(body) // 2
                out += [_chunk(b"IDAT", body[:half]), _chunk(b"\x01\x02\x03\x04", b""),
                        _chunk(b"IDAT", body[half:])]
            else:
                out.append(_chunk(ctype, body))

        path.write_bytes(b"".join(out))
        return path
    return _write


@pytest.fixture
def console_config(canvas_file):
    """Config pointing at the test canvas with the console transport."""
    return BotConfig(
        canvas=CanvasConfig(img_filepath=str(canvas_file), width=10, height=10),
        chat=ChatConfig(transport="console"),
    )


@pytest.fixture
def sample_config_dict(tmp_path):
    """A complete config file body for the twitch transport."""
    return {
        "twitch": {
            "token_filepath": str(tmp_path / "token.json"),
            "login_name": "twixelbot",
            "channel_name": "twixelwall",
            "client_id": "client-abc",
            "secret": "secret-xyz",
        },
        "canvas": {
            "img_filepath": str(tmp_path / "wall.png"),
            "width": 64,
            "height": 48,
        },
    }


@pytest.fixture
def config_file(tmp_path, sample_config_dict):
    """Write the sample config to disk."""
    path = tmp_path / "twixelwall-bot.json"
    path.write_text(json.dumps(sample_config_dict))
    return path
