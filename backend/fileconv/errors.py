"""
Error taxonomy shared by the conversion endpoints and the client.

Every failure is a ConversionError carrying a machine-readable code, a
human-readable message and the HTTP status it maps to. The API renders it as
``{"error": ..., "code": ..., "details"?: ...}``.
"""
from enum import Enum
from typing import Any, Optional, Union


class ErrorCode(str, Enum):
    # Request validation
    MISSING_PARAMETERS = "MISSING_PARAMETERS"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_CONVERSION = "UNSUPPORTED_CONVERSION"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"

    # Images
    INVALID_IMAGE_FORMAT = "INVALID_IMAGE_FORMAT"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    SVG_PROCESSING_ERROR = "SVG_PROCESSING_ERROR"
    RASTER_TO_SVG_UNSUPPORTED = "RASTER_TO_SVG_UNSUPPORTED"

    # Documents
    PDF_EXTRACTION_FAILED = "PDF_EXTRACTION_FAILED"
    DOCX_EXTRACTION_FAILED = "DOCX_EXTRACTION_FAILED"

    # Media
    SERVER_SIDE_UNAVAILABLE = "SERVER_SIDE_UNAVAILABLE"
    ENGINE_LOAD_FAILED = "ENGINE_LOAD_FAILED"
    MEMORY_ERROR = "MEMORY_ERROR"

    # Transport
    URL_FETCH_FAILED = "URL_FETCH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"

    # Generic
    TIMEOUT = "TIMEOUT"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    CONVERSION_ERROR = "CONVERSION_ERROR"


ERROR_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.MISSING_PARAMETERS: 400,
    ErrorCode.INVALID_FILE_TYPE: 400,
    ErrorCode.UNSUPPORTED_FORMAT: 400,
    ErrorCode.UNSUPPORTED_CONVERSION: 400,
    ErrorCode.INVALID_IMAGE_FORMAT: 400,
    ErrorCode.SVG_PROCESSING_ERROR: 400,
    ErrorCode.RASTER_TO_SVG_UNSUPPORTED: 400,
    ErrorCode.CONVERSION_FAILED: 400,
    ErrorCode.PDF_EXTRACTION_FAILED: 400,
    ErrorCode.DOCX_EXTRACTION_FAILED: 400,
    ErrorCode.FILE_TOO_LARGE: 413,
    ErrorCode.IMAGE_TOO_LARGE: 413,
    ErrorCode.MEMORY_ERROR: 413,
    ErrorCode.NOT_IMPLEMENTED: 501,
    ErrorCode.SERVER_SIDE_UNAVAILABLE: 501,
    ErrorCode.URL_FETCH_FAILED: 502,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.ENGINE_LOAD_FAILED: 500,
    ErrorCode.NETWORK_ERROR: 502,
    ErrorCode.PROCESSING_ERROR: 500,
    ErrorCode.CONVERSION_ERROR: 500,
}

# Short advice shown next to a failed conversion
RETRY_HINTS: dict[str, str] = {
    ErrorCode.FILE_TOO_LARGE.value: "Compress or split the file and try again.",
    ErrorCode.IMAGE_TOO_LARGE.value: "Resize or compress the image before converting.",
    ErrorCode.MEMORY_ERROR.value: "Try a smaller file or close other tabs and applications.",
    ErrorCode.TIMEOUT.value: "Try again with a smaller or simpler file.",
    ErrorCode.UNSUPPORTED_CONVERSION.value: "Pick a different target format.",
    ErrorCode.UNSUPPORTED_FORMAT.value: "Convert the file to a common format such as JPG or PNG first.",
    ErrorCode.NOT_IMPLEMENTED.value: "Pick a different target format.",
    ErrorCode.NETWORK_ERROR.value: "Check your connection and retry.",
    ErrorCode.ENGINE_LOAD_FAILED.value: "Check that the transcoding engine is installed, then retry.",
}
DEFAULT_RETRY_HINT = "Retry the conversion or select a different file."


class ConversionError(Exception):
    """A classified conversion failure. ``extra`` fields are merged into the JSON body."""

    def __init__(
        self,
        code: Union[ErrorCode, str],
        message: str,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
        **extra: Any,
    ):
        super().__init__(message)
        self.code = code.value if isinstance(code, ErrorCode) else str(code)
        self.message = message
        if status_code is None:
            status_code = ERROR_STATUS_MAP.get(code, 500)
        self.status_code = status_code
        self.details = details
        self.extra = extra

    @property
    def use_client_side(self) -> bool:
        return self.code == ErrorCode.SERVER_SIDE_UNAVAILABLE.value or bool(self.extra.get("useClientSide"))

    @property
    def retry_hint(self) -> str:
        return RETRY_HINTS.get(self.code, DEFAULT_RETRY_HINT)

    def to_dict(self, include_details: bool = False) -> dict:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if include_details and self.details:
            body["details"] = str(self.details)[:1000]
        body.update(self.extra)
        return body

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "ConversionError":
        """Rebuild an error from a JSON error body returned by the API."""
        if not isinstance(body, dict):
            return cls(ErrorCode.CONVERSION_ERROR, f"Server returned status {status_code}", status_code=status_code)
        reserved = ("error", "code", "details", "message", "status_code")
        extra = {k: v for k, v in body.items() if k not in reserved}
        return cls(
            body.get("code") or ErrorCode.CONVERSION_ERROR,
            body.get("error") or f"Server returned status {status_code}",
            status_code=status_code,
            details=body.get("details"),
            **extra,
        )

    def __repr__(self) -> str:
        return f"ConversionError({self.code!r}, {self.message!r}, status_code={self.status_code})"
