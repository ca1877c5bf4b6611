"""Known formats and which targets each source format can be converted to."""
import re
from dataclasses import dataclass
from typing import Optional

IMAGE = "image"
VIDEO = "video"
AUDIO = "audio"
DOCUMENT = "document"
OTHER = "other"


@dataclass(frozen=True)
class FormatInfo:
    id: str
    label: str
    category: str
    mime_types: tuple  # first entry is the preferred Content-Type
    extensions: tuple  # first entry is the canonical extension

    @property
    def mime_type(self) -> str:
        return self.mime_types[0]


ALL_FORMATS: tuple[FormatInfo, ...] = (
    # Images
    FormatInfo("jpg", "JPG", IMAGE, ("image/jpeg",), ("jpg", "jpeg")),
    FormatInfo("png", "PNG", IMAGE, ("image/png",), ("png",)),
    FormatInfo("webp", "WebP", IMAGE, ("image/webp",), ("webp",)),
    FormatInfo("gif", "GIF", IMAGE, ("image/gif",), ("gif",)),
    FormatInfo("tiff", "TIFF", IMAGE, ("image/tiff",), ("tiff", "tif")),
    FormatInfo("avif", "AVIF", IMAGE, ("image/avif",), ("avif",)),
    FormatInfo("svg", "SVG", IMAGE, ("image/svg+xml",), ("svg",)),
    # Videos
    FormatInfo("mp4", "MP4", VIDEO, ("video/mp4",), ("mp4",)),
    FormatInfo("mov", "MOV", VIDEO, ("video/quicktime",), ("mov",)),
    FormatInfo("avi", "AVI", VIDEO, ("video/x-msvideo",), ("avi",)),
    FormatInfo("mkv", "MKV", VIDEO, ("video/x-matroska",), ("mkv",)),
    FormatInfo("webm", "WebM", VIDEO, ("video/webm",), ("webm",)),
    # Audio
    FormatInfo("mp3", "MP3", AUDIO, ("audio/mpeg", "audio/mp3"), ("mp3",)),
    FormatInfo("wav", "WAV", AUDIO, ("audio/wav", "audio/wave"), ("wav",)),
    FormatInfo("aac", "AAC", AUDIO, ("audio/aac",), ("aac",)),
    FormatInfo("flac", "FLAC", AUDIO, ("audio/flac",), ("flac",)),
    FormatInfo("ogg", "OGG", AUDIO, ("audio/ogg",), ("ogg", "oga")),
    # Documents
    FormatInfo("pdf", "PDF", DOCUMENT, ("application/pdf",), ("pdf",)),
    FormatInfo(
        "docx", "DOCX", DOCUMENT,
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
        ("docx",),
    ),
    FormatInfo("txt", "TXT", DOCUMENT, ("text/plain",), ("txt",)),
    FormatInfo("rtf", "RTF", DOCUMENT, ("application/rtf", "text/rtf"), ("rtf",)),
)

FORMATS: dict[str, FormatInfo] = {f.id: f for f in ALL_FORMATS}

# Extension aliases normalised to the canonical format id
ALIASES = {"jpeg": "jpg", "tif": "tiff", "oga": "ogg"}

_IMAGE_TARGETS = ("pdf", "jpg", "png", "webp", "tiff", "avif", "gif")
_VIDEO_TARGETS = ("mp4", "mov", "avi", "mkv", "webm")
_AUDIO_TARGETS = ("mp3", "wav", "aac", "flac", "ogg")
_DOCUMENT_TARGETS = ("pdf", "docx", "txt", "rtf")

# source -> ordered targets
COMPATIBILITY: dict[str, tuple[str, ...]] = {
    "jpg": _IMAGE_TARGETS,
    "jpeg": _IMAGE_TARGETS,
    "png": _IMAGE_TARGETS,
    "webp": _IMAGE_TARGETS,
    "gif": _IMAGE_TARGETS,
    "tiff": _IMAGE_TARGETS,
    "tif": _IMAGE_TARGETS,
    "avif": _IMAGE_TARGETS,
    "svg": _IMAGE_TARGETS + ("svg",),
    "mp4": _VIDEO_TARGETS,
    "mov": _VIDEO_TARGETS,
    "avi": _VIDEO_TARGETS,
    "mkv": _VIDEO_TARGETS,
    "webm": _VIDEO_TARGETS,
    "mp3": _AUDIO_TARGETS,
    "wav": _AUDIO_TARGETS,
    "aac": _AUDIO_TARGETS,
    "flac": _AUDIO_TARGETS,
    "ogg": _AUDIO_TARGETS,
    "oga": _AUDIO_TARGETS,
    "pdf": _DOCUMENT_TARGETS,
    "docx": _DOCUMENT_TARGETS,
    "txt": _DOCUMENT_TARGETS,
    "rtf": _DOCUMENT_TARGETS,
}

DOCUMENT_FORMATS = frozenset(f.id for f in ALL_FORMATS if f.category == DOCUMENT)
IMAGE_FORMATS = frozenset(f.id for f in ALL_FORMATS if f.category == IMAGE)

_FINAL_EXTENSION = re.compile(r"\.[^/.]+$")


def normalize_format_id(format_id: Optional[str]) -> str:
    fid = (format_id or "").strip().lower()
    return ALIASES.get(fid, fid)


def get_format(format_id: Optional[str]) -> Optional[FormatInfo]:
    return FORMATS.get(normalize_format_id(format_id))


def category_of(format_id: Optional[str]) -> str:
    info = get_format(format_id)
    return info.category if info else OTHER


def is_conversion_supported(source: str, target: str) -> bool:
    """Advisory check against the compatibility map; executors re-validate."""
    supported = COMPATIBILITY.get((source or "").lower())
    if not supported:
        return False
    return (target or "").lower() in supported


def supported_targets(source: str) -> list[str]:
    return list(COMPATIBILITY.get((source or "").lower(), ()))


def canonical_extension(format_id: str) -> str:
    info = get_format(format_id)
    return info.extensions[0] if info else (format_id or "").lower()


def content_type_for(format_id: str) -> str:
    info = get_format(format_id)
    return info.mime_type if info else "application/octet-stream"


def output_filename(original_name: str, target_format: str) -> str:
    """Replace only the final extension: 'report.v2.txt' -> 'report.v2.pdf'."""
    name = (original_name or "").replace("\\", "/").rsplit("/", 1)[-1]
    stem = _FINAL_EXTENSION.sub("", name) or name or "converted"
    return f"{stem}.{canonical_extension(target_format)}"
