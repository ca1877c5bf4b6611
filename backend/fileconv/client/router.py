"""Pick an execution path for a conversion and drive it to a ConversionResult."""
import logging
from typing import Callable, Optional

from fileconv.client.api import ConversionApiClient
from fileconv.client.engine import MediaEngine
from fileconv.config import CLIENT_MEDIA_MAX_BYTES, MAX_SERVER_UPLOAD_BYTES, MEDIA_SERVER_MAX_BYTES
from fileconv.conversion.models import (
    ConversionResult,
    ConversionStatus,
    ExecutionPath,
    Failure,
    RetryOnClient,
    SourceFile,
    Success,
)
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import (
    AUDIO,
    DOCUMENT_FORMATS,
    IMAGE,
    IMAGE_FORMATS,
    VIDEO,
    category_of,
    normalize_format_id,
    output_filename,
    supported_targets,
)

logger = logging.getLogger("fileconv.client.router")

StatusCallback = Callable[[ConversionStatus], None]
ProgressCallback = Callable[[float], None]

SERVER_PATHS = (ExecutionPath.DOCUMENT_SERVER, ExecutionPath.IMAGE_TO_PDF_SERVER, ExecutionPath.IMAGE_SERVER)


def _choose_path(file: SourceFile, target: str) -> ExecutionPath:
    source = file.format_id
    category = category_of(source)
    if source in DOCUMENT_FORMATS:
        return ExecutionPath.DOCUMENT_SERVER
    if target == "pdf" and category == IMAGE:
        return ExecutionPath.IMAGE_TO_PDF_SERVER
    if category == IMAGE or (not source and target in IMAGE_FORMATS):
        return ExecutionPath.IMAGE_SERVER
    if category in (VIDEO, AUDIO):
        return ExecutionPath.MEDIA_SERVER if file.size <= MEDIA_SERVER_MAX_BYTES else ExecutionPath.MEDIA_CLIENT
    return ExecutionPath.UNSUPPORTED


def route(file: SourceFile, target: str) -> ExecutionPath:
    """
    First matching rule wins: documents, image->PDF, images, media by size,
    else UNSUPPORTED. Raises FILE_TOO_LARGE when the file exceeds the limit
    of its path, so oversize uploads never reach the network.
    """
    path = _choose_path(file, normalize_format_id(target))
    if path in SERVER_PATHS and file.size > MAX_SERVER_UPLOAD_BYTES:
        max_mb = MAX_SERVER_UPLOAD_BYTES / (1024 * 1024)
        raise ConversionError(ErrorCode.FILE_TOO_LARGE, f"File too large for server conversion (max {max_mb:g} MB)")
    if path == ExecutionPath.MEDIA_CLIENT and file.size > CLIENT_MEDIA_MAX_BYTES:
        max_mb = CLIENT_MEDIA_MAX_BYTES // (1024 * 1024)
        raise ConversionError(ErrorCode.FILE_TOO_LARGE, f"File too large (max {max_mb} MB)")
    return path


class ConversionRouter:
    def __init__(self, api_client: Optional[ConversionApiClient] = None, engine: Optional[MediaEngine] = None):
        self.api = api_client or ConversionApiClient()
        self.engine = engine or MediaEngine()

    async def convert(
        self,
        file: SourceFile,
        target: str,
        quality: Optional[int] = None,
        on_status: Optional[StatusCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConversionResult:
        target = normalize_format_id(target)
        path = route(file, target)
        logger.info("Routing %s (%s, %s bytes) -> %s via %s", file.filename, file.format_id or "?", file.size, target, path.value)

        if path == ExecutionPath.UNSUPPORTED:
            raise ConversionError(
                ErrorCode.UNSUPPORTED_CONVERSION,
                f"Conversion from {(file.format_id or 'unknown').upper()} to {target.upper()} is not supported.",
                supported=supported_targets(file.format_id),
            )
        _notify(on_status, ConversionStatus.UPLOADING)
        if path == ExecutionPath.MEDIA_CLIENT:
            return await self._convert_locally(file, target, on_status, on_progress)

        _notify(on_status, ConversionStatus.CONVERTING)
        outcome = await self.api.execute(path, file, target, quality)
        if isinstance(outcome, Success):
            _notify(on_progress, 100.0)
            return outcome.result

        if path == ExecutionPath.MEDIA_SERVER:
            reason = outcome.reason if isinstance(outcome, RetryOnClient) else outcome.error
            logger.warning("Server media conversion unavailable (%s); falling back to the local engine", reason.code)
            return await self._convert_locally(file, target, on_status, on_progress)

        if isinstance(outcome, Failure):
            raise outcome.error
        # RetryOnClient from a non-media endpoint has no local path to retry on
        raise outcome.reason

    async def _convert_locally(
        self,
        file: SourceFile,
        target: str,
        on_status: Optional[StatusCallback],
        on_progress: Optional[ProgressCallback],
    ) -> ConversionResult:
        _notify(on_status, ConversionStatus.CONVERTING)
        content, content_type = await self.engine.transcode(file, target, on_progress)
        return ConversionResult(content=content, content_type=content_type, filename=output_filename(file.filename, target))


def _notify(callback: Optional[Callable], value) -> None:
    if callback is not None:
        callback(value)
