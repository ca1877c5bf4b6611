"""HTTP client for the conversion endpoints.

Every response is reduced to an ExecutionOutcome so callers never look at
endpoint-specific error bodies.
"""
import logging
import re
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from fileconv.config import API_BASE_URL, API_TIMEOUT
from fileconv.conversion.models import (
    ConversionResult,
    ExecutionOutcome,
    ExecutionPath,
    Failure,
    RetryOnClient,
    SourceFile,
    Success,
)
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import AUDIO, content_type_for, get_format, normalize_format_id, output_filename

logger = logging.getLogger("fileconv.client.api")

ENDPOINTS = {
    ExecutionPath.DOCUMENT_SERVER: "/api/convert/documents",
    ExecutionPath.IMAGE_SERVER: "/api/convert/images",
    ExecutionPath.IMAGE_TO_PDF_SERVER: "/api/convert/pdf",
}
VIDEO_ENDPOINT = "/api/convert/video"
AUDIO_ENDPOINT = "/api/convert/audio"
PROXY_ENDPOINT = "/api/proxy"

_FILENAME_STAR = re.compile(r"filename\*\s*=\s*(?:UTF-8|utf-8)''([^;]+)")
_FILENAME = re.compile(r"""filename\s*=\s*"?([^";]+)"?""")

DEFAULT_IMPORT_NAME = "imported-file"


def filename_from_disposition(value: Optional[str]) -> Optional[str]:
    """Prefer the RFC 5987 filename*, then the plain filename parameter."""
    if not value:
        return None
    m = _FILENAME_STAR.search(value)
    if m:
        return unquote(m.group(1).strip().strip('"')) or None
    m = _FILENAME.search(value)
    if m:
        return m.group(1).strip() or None
    return None


def imported_filename(url: str, content_type: str, disposition: Optional[str]) -> str:
    """Name for a file fetched by URL: header, then the URL path, then a generic name plus an extension from the type."""
    name = filename_from_disposition(disposition)
    if not name:
        last = unquote(urlparse(url).path.rstrip("/").split("/")[-1])
        name = last if "." in last else DEFAULT_IMPORT_NAME
    if "." not in name:
        subtype = content_type.split(";", 1)[0].split("/")[-1].strip()
        if subtype:
            name = f"{name}.{subtype}"
    return name


def endpoint_for(path: ExecutionPath, file: SourceFile) -> str:
    if path == ExecutionPath.MEDIA_SERVER:
        return AUDIO_ENDPOINT if file.category == AUDIO else VIDEO_ENDPOINT
    try:
        return ENDPOINTS[path]
    except KeyError:
        raise ValueError(f"{path.value} is not a server execution path") from None


def upload_content_type(file: SourceFile) -> str:
    """Declared type, or the detected format's MIME type when the file came untyped."""
    declared = (file.content_type or "").split(";", 1)[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return file.content_type
    return content_type_for(file.format_id)


class ConversionApiClient:
    """Posts files to the conversion API. Pass ``client`` or ``transport`` to target an in-process app."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = API_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ConversionApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def execute(
        self,
        path: ExecutionPath,
        file: SourceFile,
        target: str,
        quality: Optional[int] = None,
    ) -> ExecutionOutcome:
        """Send one file to the endpoint behind ``path``. Never raises for server or network errors."""
        endpoint = endpoint_for(path, file)
        form = {"format": normalize_format_id(target)}
        if quality is not None:
            form["quality"] = str(quality)
        files = {"file": (file.filename, file.read(), upload_content_type(file))}
        try:
            resp = await self._client.post(endpoint, data=form, files=files)
        except httpx.TimeoutException as e:
            logger.warning("Request to %s timed out: %s", endpoint, e)
            return Failure(ConversionError(ErrorCode.TIMEOUT, "The server took too long to respond."))
        except httpx.HTTPError as e:
            logger.warning("Request to %s failed: %s", endpoint, e)
            return Failure(ConversionError(ErrorCode.NETWORK_ERROR, "Could not reach the conversion server.", details=str(e)))

        if resp.is_success:
            content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip()
            filename = filename_from_disposition(resp.headers.get("content-disposition"))
            return Success(ConversionResult(
                content=resp.content,
                content_type=content_type or "application/octet-stream",
                filename=filename or output_filename(file.filename, target),
            ))

        error = ConversionError.from_response(resp.status_code, _json_or_none(resp))
        logger.info("%s returned %s %s", endpoint, resp.status_code, error.code)
        if error.use_client_side:
            return RetryOnClient(error)
        return Failure(error)

    async def fetch_remote(self, url: str) -> SourceFile:
        """Import a remote file through the server proxy."""
        try:
            resp = await self._client.post(PROXY_ENDPOINT, json={"url": url})
        except httpx.HTTPError as e:
            raise ConversionError(ErrorCode.NETWORK_ERROR, "Could not reach the conversion server.", details=str(e)) from e
        if not resp.is_success:
            body = _json_or_none(resp)
            if not isinstance(body, dict):
                raise ConversionError(
                    ErrorCode.URL_FETCH_FAILED,
                    f"Failed to fetch URL (proxy returned status {resp.status_code})",
                    status_code=resp.status_code,
                )
            body.setdefault("code", ErrorCode.URL_FETCH_FAILED.value)
            raise ConversionError.from_response(resp.status_code, body)
        content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip()
        name = imported_filename(url, content_type, resp.headers.get("content-disposition"))
        info = get_format(name.rsplit(".", 1)[-1])
        if not content_type or content_type == "application/octet-stream":
            content_type = info.mime_type if info else "application/octet-stream"
        return SourceFile.from_bytes(resp.content, name, content_type)


def _json_or_none(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return None
