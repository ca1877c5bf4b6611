"""Dimension clamping and pixel-mode normalisation shared by the raster executors."""
import logging
from typing import Tuple

from PIL import Image

logger = logging.getLogger("fileconv.resize")

WHITE = (255, 255, 255)

# Modes every output encoder accepts as-is
_PORTABLE_MODES = ("RGB", "RGBA", "L", "LA")


def scale_to_fit(width: float, height: float, max_dimension: int) -> Tuple[int, int]:
    """
    Scale (width, height) down so the longer side is at most max_dimension,
    maintaining aspect ratio. Never enlarges; never returns a zero side.
    """
    if width <= 0 or height <= 0:
        return (max_dimension, max_dimension)
    longest = max(width, height)
    scale = min(1.0, max_dimension / longest)
    return (max(1, int(round(width * scale))), max(1, int(round(height * scale))))


def has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA"):
        return True
    return img.mode == "P" and "transparency" in img.info


def flatten_alpha(img: Image.Image, fill_color: Tuple[int, int, int] = WHITE) -> Image.Image:
    """Composite onto an opaque background and return an RGB image."""
    if not has_alpha(img):
        return img if img.mode == "RGB" else img.convert("RGB")
    rgba = img.convert("RGBA")
    out = Image.new("RGB", rgba.size, fill_color)
    out.paste(rgba, mask=rgba.getchannel("A"))
    return out


def to_portable_mode(img: Image.Image) -> Image.Image:
    """Convert palette/CMYK/16-bit and other exotic modes to RGB or RGBA."""
    if img.mode in _PORTABLE_MODES:
        return img
    target = "RGBA" if has_alpha(img) else "RGB"
    logger.debug("Converting image mode %s -> %s", img.mode, target)
    return img.convert(target)
