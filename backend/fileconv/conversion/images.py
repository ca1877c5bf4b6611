"""Image executor: re-encode a raster (or rasterised SVG) into the requested format."""
import io
import logging
import re
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from fileconv.config import (
    AVIF_DEFAULT_QUALITY,
    DEFAULT_QUALITY,
    MAX_IMAGE_DIMENSION,
    SVG_DEFAULT_SIZE,
    WEBP_EFFORT,
)
from fileconv.conversion.models import ConvertedFile
from fileconv.conversion.resize import flatten_alpha, scale_to_fit, to_portable_mode
from fileconv.detector import file_extension
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import content_type_for, normalize_format_id, output_filename

logger = logging.getLogger("fileconv.images")

IMAGE_OUTPUT_FORMATS = ["jpg", "png", "webp", "avif", "tiff", "gif", "svg"]

_HEIF_EXTENSIONS = ("heic", "heif")
_SVG_TAG = re.compile(r"<svg\b[^>]*>", re.I | re.S)
_VIEWBOX = re.compile(r"""viewBox\s*=\s*["']\s*[-\d.eE]+[\s,]+[-\d.eE]+[\s,]+([\d.eE]+)[\s,]+([\d.eE]+)""", re.I)
_WIDTH = re.compile(r"""(?<![\w-])width\s*=\s*["']?\s*([\d.]+)\s*([a-z%]*)""", re.I)
_HEIGHT = re.compile(r"""(?<![\w-])height\s*=\s*["']?\s*([\d.]+)\s*([a-z%]*)""", re.I)


def is_svg(filename: Optional[str], content_type: Optional[str]) -> bool:
    return "svg" in (content_type or "").lower() or file_extension(filename) == "svg"


def validate_image_upload(filename: Optional[str], content_type: Optional[str]) -> None:
    """Accept image/* or .svg; reject HEIC/HEIF with a suggestion."""
    ctype = (content_type or "").lower()
    ext = file_extension(filename)
    if ext in _HEIF_EXTENSIONS or "heic" in ctype or "heif" in ctype:
        raise ConversionError(
            ErrorCode.UNSUPPORTED_FORMAT,
            "HEIC/HEIF format is not directly supported. Please convert to JPG or PNG first using a compatible tool.",
            suggestion="Try converting to JPG or PNG format first",
        )
    if not ctype.startswith("image/") and ext != "svg":
        raise ConversionError(ErrorCode.INVALID_FILE_TYPE, "Only image files are supported by this endpoint")


def parse_quality(value: Union[str, int, None], target: str) -> int:
    """Clamp to 1-100; missing or non-numeric values use the per-format default."""
    default = AVIF_DEFAULT_QUALITY if normalize_format_id(target) == "avif" else DEFAULT_QUALITY
    try:
        quality = int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        quality = default
    if quality == 0:
        quality = default
    return max(1, min(100, quality))


def png_compress_level(quality: int) -> int:
    """PNG has no quality setting; higher quality means less compression (0-9)."""
    return max(0, min(9, round((100 - quality) / 11.11)))


def svg_dimensions(svg_text: str) -> tuple[int, int]:
    """Intrinsic size from viewBox, else width/height, else the default; clamped."""
    width = height = float(SVG_DEFAULT_SIZE)
    tag_match = _SVG_TAG.search(svg_text)
    tag = tag_match.group(0) if tag_match else svg_text
    viewbox = _VIEWBOX.search(tag)
    if viewbox:
        width, height = float(viewbox.group(1)) or width, float(viewbox.group(2)) or height
    else:
        w, h = _WIDTH.search(tag), _HEIGHT.search(tag)
        if w and h and w.group(2).lower() in ("", "px") and h.group(2).lower() in ("", "px"):
            width, height = float(w.group(1)) or width, float(h.group(1)) or height
    return scale_to_fit(width, height, MAX_IMAGE_DIMENSION)


def rasterize_svg(data: bytes) -> bytes:
    """Render SVG bytes to PNG bytes at the document's intrinsic size."""
    try:
        import cairosvg

        width, height = svg_dimensions(data.decode("utf-8", errors="replace"))
        return cairosvg.svg2png(bytestring=data, output_width=width, output_height=height)
    except Exception as e:
        logger.exception("SVG conversion error: %s", e)
        raise ConversionError(
            ErrorCode.SVG_PROCESSING_ERROR,
            "Failed to process SVG file. The SVG may contain unsupported features or be corrupted.",
            details=str(e),
        ) from e


def open_image(data: bytes) -> Image.Image:
    """Decode fully so corrupt input fails here rather than in the encoder."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        return img
    except Image.DecompressionBombError as e:
        raise ConversionError(
            ErrorCode.IMAGE_TOO_LARGE,
            "Image is too large to process. Please resize or compress the image before conversion.",
            details=str(e),
        ) from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ConversionError(
            ErrorCode.INVALID_IMAGE_FORMAT,
            "The uploaded file is not a valid image or uses an unsupported format. Please ensure the file is a valid image.",
            details=str(e),
        ) from e
    except MemoryError as e:
        raise ConversionError(
            ErrorCode.IMAGE_TOO_LARGE,
            "Image is too large to process. Please resize or compress the image before conversion.",
        ) from e


def _encode(img: Image.Image, target: str, quality: int) -> bytes:
    buf = io.BytesIO()
    if target == "jpg":
        flatten_alpha(img).save(buf, format="JPEG", quality=quality, optimize=True, progressive=True)
    elif target == "png":
        to_portable_mode(img).save(buf, format="PNG", compress_level=png_compress_level(quality))
    elif target == "webp":
        to_portable_mode(img).save(buf, format="WEBP", quality=quality, method=WEBP_EFFORT)
    elif target == "avif":
        to_portable_mode(img).save(buf, format="AVIF", quality=quality)
    elif target == "tiff":
        to_portable_mode(img).save(buf, format="TIFF", compression="tiff_lzw")
    elif target == "gif":
        to_portable_mode(img).save(buf, format="GIF", optimize=True)
    else:
        raise ValueError(f"no encoder for {target}")
    return buf.getvalue()


def convert_image(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    target: str,
    quality: Union[str, int, None] = None,
) -> ConvertedFile:
    """Convert one image to ``target``; raises ConversionError on any failure."""
    target = normalize_format_id(target)
    if target not in IMAGE_OUTPUT_FORMATS:
        raise ConversionError(
            ErrorCode.UNSUPPORTED_FORMAT,
            f"Unsupported output format: {target}. Supported formats are: JPG, PNG, WebP, AVIF, TIFF, GIF, SVG",
            supported=IMAGE_OUTPUT_FORMATS,
        )
    out_name = output_filename(filename, target)
    svg_input = is_svg(filename, content_type)

    if target == "svg":
        if not svg_input:
            raise ConversionError(
                ErrorCode.RASTER_TO_SVG_UNSUPPORTED,
                "Raster to SVG conversion is not supported. SVG is a vector format that cannot be accurately generated from raster images.",
            )
        return ConvertedFile(content=data, content_type=content_type_for("svg"), filename=out_name)

    clamped = parse_quality(quality, target)
    raster = rasterize_svg(data) if svg_input else data
    with open_image(raster) as img:
        try:
            converted = _encode(img, target, clamped)
        except MemoryError as e:
            raise ConversionError(
                ErrorCode.IMAGE_TOO_LARGE,
                "Image is too large to process. Please resize or compress the image before conversion.",
            ) from e
        except (KeyError, ValueError, OSError) as e:
            logger.exception("Format conversion error for %s -> %s: %s", filename, target, e)
            raise ConversionError(
                ErrorCode.CONVERSION_FAILED,
                f"Failed to convert to {target.upper()}. The image format may not be compatible.",
                details=str(e),
            ) from e

    if not converted:
        raise ConversionError(ErrorCode.CONVERSION_ERROR, "Conversion failed: No output generated")
    logger.info("Converted %s -> %s (%s bytes, quality=%s)", filename, out_name, len(converted), clamped)
    return ConvertedFile(content=converted, content_type=content_type_for(target), filename=out_name)
