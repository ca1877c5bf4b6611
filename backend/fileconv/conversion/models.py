"""Conversion request/response models."""
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from fileconv.detector import detect_format
from fileconv.errors import ConversionError
from fileconv.registry import category_of


class ConversionStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    CONVERTING = "converting"
    SUCCESS = "success"
    ERROR = "error"


class ExecutionPath(str, Enum):
    DOCUMENT_SERVER = "document_server"
    IMAGE_SERVER = "image_server"
    IMAGE_TO_PDF_SERVER = "image_to_pdf_server"
    MEDIA_SERVER = "media_server"
    MEDIA_CLIENT = "media_client"
    UNSUPPORTED = "unsupported"


@dataclass
class SourceFile:
    """An uploaded file: in-memory bytes or a local path read on demand."""

    filename: str
    content_type: str = ""
    data: Optional[bytes] = field(default=None, repr=False)
    path: Optional[Path] = None

    @classmethod
    def from_bytes(cls, data: bytes, filename: str, content_type: Optional[str] = None) -> "SourceFile":
        if content_type is None:
            content_type = mimetypes.guess_type(filename)[0] or ""
        return cls(filename=filename, content_type=content_type, data=data)

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "SourceFile":
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or ""
        return cls(filename=path.name, content_type=content_type, path=path)

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        if self.path is not None:
            return self.path.stat().st_size
        return 0

    @property
    def format_id(self) -> str:
        return detect_format(self.filename, self.content_type)

    @property
    def category(self) -> str:
        return category_of(self.format_id)

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is not None:
            return self.path.read_bytes()
        return b""


@dataclass
class ConversionRequest:
    source: SourceFile
    target: str
    quality: Optional[int] = None


@dataclass
class ConvertedFile:
    """Executor output: bytes plus the headers needed to serve them."""

    content: bytes = field(repr=False)
    content_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.content)


# The client hands the same shape back to its caller
ConversionResult = ConvertedFile


@dataclass
class ConversionFailure:
    code: str
    message: str
    retry_hint: str

    @classmethod
    def from_error(cls, error: ConversionError) -> "ConversionFailure":
        return cls(code=error.code, message=error.message, retry_hint=error.retry_hint)


# Uniform result of one server executor call, so the router never inspects
# endpoint-specific error bodies.
@dataclass
class Success:
    result: ConvertedFile


@dataclass
class RetryOnClient:
    reason: ConversionError


@dataclass
class Failure:
    error: ConversionError


ExecutionOutcome = Union[Success, RetryOnClient, Failure]
