"""Canvas update cycle: load, blend one pixel, atomically persist.

Every command is an independent transaction against the file on disk.
Nothing is cached between commands, so each cycle starts from durable state.

The new image is always written in full to a temporary file first and then
renamed onto the canvas path. Readers of the canvas see either the old or the
new image, never a partial one.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from .command import OPAQUE, PixelCommand, Rgba
from .errors import CanvasEncodeError, CanvasLoadError, CanvasPublishError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

DEFAULT_FORMAT = "PNG"
DEFAULT_BACKGROUND = Rgba(255, 255, 255, OPAQUE)


def blend_over(dst: Rgba, src: Rgba) -> Rgba:
    """Composite ``src`` over ``dst`` (straight alpha, Porter-Duff over)."""
    if src.a == 0:
        return dst
    if src.a == OPAQUE:
        return src

    src_a = src.a / OPAQUE
    dst_a = dst.a / OPAQUE
    out_a = src_a + dst_a * (1.0 - src_a)

    def channel(s: int, d: int) -> int:
        value = (s * src_a + d * dst_a * (1.0 - src_a)) / out_a
        return min(OPAQUE, round(value))

    return Rgba(
        channel(src.r, dst.r),
        channel(src.g, dst.g),
        channel(src.b, dst.b),
        min(OPAQUE, round(out_a * OPAQUE)),
    )


def load_canvas(canvas_path: PathLike) -> tuple[np.ndarray, str]:
    """Decode the canvas into a writable (height, width, 4) uint8 array.

    Returns the pixels and the format the file was stored in.
    """
    try:
        with Image.open(canvas_path) as image:
            fmt = image.format or DEFAULT_FORMAT
            pixels = np.array(image.convert("RGBA"), dtype=np.uint8)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise CanvasLoadError(f"Cannot load canvas {canvas_path}: {e}") from e
    return pixels, fmt


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        logger.debug("Could not remove temporary canvas %s: %s", path, e)


def _published_mode(canvas_path: Path) -> int:
    """Permission bits the published canvas should carry.

    The live canvas keeps its mode across updates. A new canvas gets what
    a plain open() would give it under the current umask.
    """
    try:
        return stat.S_IMODE(canvas_path.stat().st_mode)
    except OSError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def publish_canvas(
    pixels: np.ndarray,
    canvas_path: PathLike,
    fmt: str = DEFAULT_FORMAT,
    scratch_dir: Optional[PathLike] = None,
) -> None:
    """Write ``pixels`` to a temporary file, then rename it onto ``canvas_path``.

    The scratch directory defaults to the canvas's own directory so the rename
    never crosses a filesystem boundary.

    Raises:
        CanvasEncodeError: the temporary file could not be created or written.
            The canvas file is untouched.
        CanvasPublishError: the rename failed. The canvas file is untouched.
    """
    canvas_path = Path(canvas_path)
    scratch = Path(scratch_dir) if scratch_dir else canvas_path.parent
    image = Image.fromarray(pixels)

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{canvas_path.stem}-", suffix=canvas_path.suffix or ".png", dir=scratch
        )
    except OSError as e:
        raise CanvasEncodeError(f"Cannot create temporary file in {scratch}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            # mkstemp creates the file 0600
            os.fchmod(f.fileno(), _published_mode(canvas_path))
            image.save(f, format=fmt)
            f.flush()
            os.fsync(f.fileno())
    except (OSError, ValueError, KeyError) as e:
        _discard(tmp_path)
        raise CanvasEncodeError(f"Cannot encode canvas as {fmt}: {e}") from e

    try:
        tmp_path.replace(canvas_path)
    except OSError as e:
        _discard(tmp_path)
        raise CanvasPublishError(f"Cannot replace {canvas_path}: {e}") from e


def apply_command(
    command: PixelCommand,
    canvas_path: PathLike,
    width: int,
    height: int,
    scratch_dir: Optional[PathLike] = None,
) -> bool:
    """Run one update cycle for ``command``.

    Returns True if the canvas was rewritten, False if the command fell
    outside the ``width`` x ``height`` canvas and was dropped.

    Raises:
        UpdateError: loading, encoding or publishing failed. The canvas file
            is left as it was.
    """
    if command.x >= width or command.y >= height:
        logger.debug("Dropping out-of-bounds pixel (%d, %d) on %dx%d canvas",
                     command.x, command.y, width, height)
        return False

    pixels, fmt = load_canvas(canvas_path)
    rows, cols = pixels.shape[:2]
    if command.x >= cols or command.y >= rows:
        raise CanvasLoadError(
            f"Canvas {canvas_path} is {cols}x{rows}, smaller than configured {width}x{height}"
        )

    dst = Rgba(*(int(v) for v in pixels[command.y, command.x]))
    pixels[command.y, command.x] = blend_over(dst, command.color).as_tuple()

    publish_canvas(pixels, canvas_path, fmt, scratch_dir)
    return True


def create_canvas(
    canvas_path: PathLike,
    width: int,
    height: int,
    background: Rgba = DEFAULT_BACKGROUND,
    overwrite: bool = False,
) -> bool:
    """Create a blank ``width`` x ``height`` canvas.

    Returns False without touching anything if the file exists and
    ``overwrite`` is not set.
    """
    canvas_path = Path(canvas_path)
    if canvas_path.exists() and not overwrite:
        return False

    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[:, :] = background.as_tuple()
    fmt = Image.registered_extensions().get(canvas_path.suffix.lower(), DEFAULT_FORMAT)
    publish_canvas(pixels, canvas_path, fmt)
    return True
