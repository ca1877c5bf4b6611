"""Resolve an uploaded file to a canonical format id."""
from typing import Optional

from fileconv.registry import ALIASES

# (MIME substring, format id), checked in order within each family
_IMAGE_MIME_HINTS = (
    ("jpeg", "jpg"), ("png", "png"), ("webp", "webp"), ("gif", "gif"),
    ("tiff", "tiff"), ("avif", "avif"), ("svg", "svg"),
)
_VIDEO_MIME_HINTS = (
    ("mp4", "mp4"), ("quicktime", "mov"), ("x-msvideo", "avi"),
    ("matroska", "mkv"), ("webm", "webm"),
)
_AUDIO_MIME_HINTS = (
    ("mpeg", "mp3"), ("mp3", "mp3"), ("wav", "wav"), ("wave", "wav"),
    ("aac", "aac"), ("flac", "flac"), ("ogg", "ogg"),
)
_DOCUMENT_MIME_HINTS = (
    ("pdf", "pdf"), ("wordprocessingml", "docx"), ("text/plain", "txt"), ("rtf", "rtf"),
)


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased substring after the last '.', or '' when there is none."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].strip().lower()


def _match(content_type: str, hints: tuple) -> str:
    for needle, format_id in hints:
        if needle in content_type:
            return format_id
    return ""


def detect_format(filename: Optional[str], content_type: Optional[str] = None) -> str:
    """
    Extension first (with jpeg/tif/oga aliases), then the declared MIME type.
    Returns '' when nothing matches; callers treat that as unsupported.
    """
    ext = file_extension(filename)
    if ext:
        return ALIASES.get(ext, ext)

    ctype = (content_type or "").strip().lower()
    if not ctype:
        return ""
    if ctype.startswith("image/"):
        found = _match(ctype, _IMAGE_MIME_HINTS)
        if found:
            return found
    if ctype.startswith("video/"):
        found = _match(ctype, _VIDEO_MIME_HINTS)
        if found:
            return found
    if ctype.startswith("audio/"):
        found = _match(ctype, _AUDIO_MIME_HINTS)
        if found:
            return found
    return _match(ctype, _DOCUMENT_MIME_HINTS)
