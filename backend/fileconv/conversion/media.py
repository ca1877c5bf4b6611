"""
Video/audio endpoints. The server does not transcode: it validates the
request and tells the caller to run the conversion on its own engine.
"""
import logging
from typing import Optional

from fileconv.config import MEDIA_SERVER_MAX_BYTES
from fileconv.detector import detect_format
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import AUDIO, VIDEO, category_of, normalize_format_id

logger = logging.getLogger("fileconv.media")

MEDIA_OUTPUT_FORMATS = {
    VIDEO: ["mp4", "mov", "avi", "mkv", "webm"],
    AUDIO: ["mp3", "wav", "aac", "flac", "ogg"],
}


def validate_media_upload(family: str, filename: Optional[str], content_type: Optional[str]) -> None:
    ctype = (content_type or "").lower()
    if ctype.startswith(f"{family}/") or category_of(detect_format(filename, content_type)) == family:
        return
    raise ConversionError(ErrorCode.INVALID_FILE_TYPE, f"Only {family} files are supported by this endpoint")


def check_media_request(family: str, filename: Optional[str], content_type: Optional[str], target: str, size: int) -> None:
    """
    Validate a media conversion request. Always raises: a valid request gets
    SERVER_SIDE_UNAVAILABLE so the caller falls back to client-side conversion.
    """
    validate_media_upload(family, filename, content_type)
    supported = MEDIA_OUTPUT_FORMATS[family]
    target = normalize_format_id(target)
    if target not in supported:
        raise ConversionError(
            ErrorCode.UNSUPPORTED_FORMAT,
            f"Unsupported output format: {target}. Supported formats are: {', '.join(s.upper() for s in supported)}",
            supported=supported,
        )
    if size > MEDIA_SERVER_MAX_BYTES:
        max_mb = MEDIA_SERVER_MAX_BYTES / (1024 * 1024)
        raise ConversionError(
            ErrorCode.FILE_TOO_LARGE,
            f"File too large for server-side conversion (max {max_mb:g} MB). Please use client-side conversion.",
            useClientSide=True,
            maxSize=MEDIA_SERVER_MAX_BYTES,
        )
    logger.info("Deferring %s conversion of %s to the client", family, filename)
    raise ConversionError(
        ErrorCode.SERVER_SIDE_UNAVAILABLE,
        f"Server-side {family} conversion is not available. Please use client-side conversion.",
        useClientSide=True,
    )
