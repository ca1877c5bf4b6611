"""API routes: stateless conversion endpoints plus the URL import proxy."""
import asyncio
import logging
import re
from typing import Callable, Optional
from urllib.error import HTTPError
from urllib.parse import quote, urlparse
from urllib.request import Request, urlopen

from fastapi import APIRouter, Body, File, Form, UploadFile
from fastapi.responses import Response

from fileconv.config import (
    CLIENT_MEDIA_MAX_BYTES,
    MAX_SERVER_UPLOAD_BYTES,
    MEDIA_SERVER_MAX_BYTES,
    PROCESSING_TIMEOUT,
    URL_DOWNLOAD_MAX_BYTES,
    URL_DOWNLOAD_TIMEOUT,
)
from fileconv.conversion.documents import convert_document, detect_document_source
from fileconv.conversion.images import convert_image, validate_image_upload
from fileconv.conversion.media import check_media_request, validate_media_upload
from fileconv.conversion.models import ConvertedFile
from fileconv.conversion.pdf import convert_image_to_pdf, validate_pdf_source
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import ALL_FORMATS, AUDIO, COMPATIBILITY, VIDEO, normalize_format_id

logger = logging.getLogger("fileconv.api")
router = APIRouter(prefix="/api", tags=["converter"])

_UPLOAD_CHUNK = 1024 * 1024
_NON_ASCII = re.compile(r"[^\x20-\x7e]")


def _require(file: Optional[UploadFile], target: Optional[str]) -> str:
    if file is None or not (file.filename or "").strip() or not (target or "").strip():
        raise ConversionError(ErrorCode.MISSING_PARAMETERS, "Missing file or format parameter")
    return target.strip().lower()


async def _read_upload(file: UploadFile, max_bytes: int = MAX_SERVER_UPLOAD_BYTES, **extra) -> bytes:
    """Read in 1 MB chunks; abort with FILE_TOO_LARGE as soon as the limit is passed."""
    chunks = []
    total = 0
    while chunk := await file.read(_UPLOAD_CHUNK):
        total += len(chunk)
        if total > max_bytes:
            max_mb = max_bytes / (1024 * 1024)
            raise ConversionError(ErrorCode.FILE_TOO_LARGE, f"File too large (max {max_mb:g} MB)", **extra)
        chunks.append(chunk)
    return b"".join(chunks)


async def _run(func: Callable[..., ConvertedFile], *args) -> ConvertedFile:
    """Run a blocking executor in a worker thread under the processing timeout."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=PROCESSING_TIMEOUT)
    except ConversionError:
        raise
    except asyncio.TimeoutError as e:
        logger.error("%s timed out after %ss", func.__name__, PROCESSING_TIMEOUT)
        raise ConversionError(
            ErrorCode.TIMEOUT,
            "Conversion timed out. Please try a smaller file.",
        ) from e
    except MemoryError as e:
        raise ConversionError(ErrorCode.MEMORY_ERROR, "Not enough memory to convert this file.") from e
    except Exception as e:
        logger.exception("%s failed: %s", func.__name__, e)
        raise ConversionError(ErrorCode.CONVERSION_ERROR, "Conversion failed", details=str(e)) from e


def content_disposition(filename: str) -> str:
    """attachment header; non-ASCII names get an RFC 5987 filename* as well."""
    fallback = _NON_ASCII.sub("_", filename).replace('"', "'")
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


def _file_response(result: ConvertedFile) -> Response:
    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Content-Disposition": content_disposition(result.filename)},
    )


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/limits")
def get_limits():
    """Size tiers the client uses to pick an execution path."""
    return {
        "max_server_upload_bytes": MAX_SERVER_UPLOAD_BYTES,
        "media_server_max_bytes": MEDIA_SERVER_MAX_BYTES,
        "client_media_max_bytes": CLIENT_MEDIA_MAX_BYTES,
        "url_download_max_bytes": URL_DOWNLOAD_MAX_BYTES,
        "processing_timeout": PROCESSING_TIMEOUT,
    }


@router.get("/formats")
def get_formats():
    return {
        "formats": [
            {
                "id": f.id,
                "label": f.label,
                "category": f.category,
                "mimeTypes": list(f.mime_types),
                "extensions": list(f.extensions),
            }
            for f in ALL_FORMATS
        ],
        "compatibility": {source: list(targets) for source, targets in COMPATIBILITY.items()},
    }


@router.post("/convert/images")
async def convert_images(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
    quality: Optional[str] = Form(None),
):
    target = _require(file, format)
    validate_image_upload(file.filename, file.content_type)
    data = await _read_upload(file)
    logger.info("Image conversion: %s (%s, %s bytes) -> %s", file.filename, file.content_type, len(data), target)
    result = await _run(convert_image, data, file.filename, file.content_type, target, quality)
    return _file_response(result)


@router.post("/convert/documents")
async def convert_documents(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
):
    target = _require(file, format)
    if not detect_document_source(file.filename, file.content_type):
        raise ConversionError(ErrorCode.INVALID_FILE_TYPE, "Unsupported file type for document conversion")
    data = await _read_upload(file)
    logger.info("Document conversion: %s (%s bytes) -> %s", file.filename, len(data), target)
    result = await _run(convert_document, data, file.filename, file.content_type, target)
    return _file_response(result)


@router.post("/convert/pdf")
async def convert_pdf(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
):
    target = _require(file, format)
    if target != "pdf":
        raise ConversionError(
            ErrorCode.UNSUPPORTED_FORMAT,
            "This endpoint only converts images to PDF",
            supported=["pdf"],
        )
    validate_pdf_source(file.filename, file.content_type)
    data = await _read_upload(file)
    result = await _run(convert_image_to_pdf, data, file.filename, file.content_type)
    return _file_response(result)


async def _convert_media(family: str, file: Optional[UploadFile], target: Optional[str]):
    target = _require(file, target)
    validate_media_upload(family, file.filename, file.content_type)
    data = await _read_upload(file, useClientSide=True, maxSize=MEDIA_SERVER_MAX_BYTES)
    check_media_request(family, file.filename, file.content_type, normalize_format_id(target), len(data))


@router.post("/convert/video")
async def convert_video(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
):
    await _convert_media(VIDEO, file, format)


@router.post("/convert/audio")
async def convert_audio(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
):
    await _convert_media(AUDIO, file, format)


def fetch_url(url: str) -> tuple[bytes, str, Optional[str]]:
    """Download url; returns (content, content_type, content_disposition). Raises ConversionError."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ConversionError(ErrorCode.URL_FETCH_FAILED, "Invalid URL", status_code=400)
    if parsed.scheme not in ("http", "https"):
        raise ConversionError(ErrorCode.URL_FETCH_FAILED, "Only http and https URLs are supported", status_code=400)
    req = Request(url, headers={"User-Agent": "fileconv/1.0"})
    try:
        with urlopen(req, timeout=URL_DOWNLOAD_TIMEOUT) as resp:
            content_type = resp.headers.get("Content-Type") or "application/octet-stream"
            disposition = resp.headers.get("Content-Disposition")
            chunks = []
            total = 0
            while True:
                chunk = resp.read(_UPLOAD_CHUNK)
                if not chunk:
                    break
                total += len(chunk)
                if total > URL_DOWNLOAD_MAX_BYTES:
                    raise ConversionError(
                        ErrorCode.FILE_TOO_LARGE,
                        f"File too large (max {URL_DOWNLOAD_MAX_BYTES // (1024 * 1024)} MB)",
                    )
                chunks.append(chunk)
            return b"".join(chunks), content_type, disposition
    except ConversionError:
        raise
    except HTTPError as e:
        logger.warning("Proxy upstream %s returned %s", url, e.code)
        raise ConversionError(
            ErrorCode.URL_FETCH_FAILED,
            f"Failed to fetch: {e.reason}",
            status_code=e.code,
        ) from e
    except Exception as e:
        logger.exception("URL download failed: %s", e)
        raise ConversionError(
            ErrorCode.URL_FETCH_FAILED,
            "Failed to fetch URL",
            status_code=500,
            details=str(e),
        ) from e


@router.post("/proxy")
def proxy(url: Optional[str] = Body(None, embed=True)):
    """Fetch a remote file on the caller's behalf (the browser cannot, because of CORS)."""
    url = (url or "").strip()
    if not url:
        raise ConversionError(ErrorCode.MISSING_PARAMETERS, "URL is required")
    content, content_type, disposition = fetch_url(url)
    headers = {"Content-Disposition": disposition} if disposition else {}
    logger.info("Proxied %s (%s bytes, %s)", url, len(content), content_type)
    return Response(content=content, media_type=content_type, headers=headers)