"""
Observable conversion session: one conversion in flight, with its phase,
progress and outcome published to subscribers.

    idle -> uploading -> converting -> success | error

Starting a new conversion cancels the one in flight; the cancelled attempt
publishes nothing further. ``cancel()`` returns to idle, ``reset()`` also
clears the last result or failure.
"""
import asyncio
import logging
from typing import Callable, Optional

from fileconv.client.router import ConversionRouter
from fileconv.conversion.models import (
    ConversionFailure,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    SourceFile,
)
from fileconv.errors import ConversionError, ErrorCode

logger = logging.getLogger("fileconv.client.session")

Listener = Callable[["ConversionSession"], None]

_ORDER = {
    ConversionStatus.IDLE: 0,
    ConversionStatus.UPLOADING: 1,
    ConversionStatus.CONVERTING: 2,
    ConversionStatus.SUCCESS: 3,
    ConversionStatus.ERROR: 3,
}


class ConversionSession:
    def __init__(self, router: Optional[ConversionRouter] = None):
        self.router = router or ConversionRouter()
        self.status = ConversionStatus.IDLE
        self.progress = 0.0
        self.result: Optional[ConversionResult] = None
        self.error: Optional[ConversionFailure] = None
        self._listeners: list[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._attempt = 0

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(session)`` on every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def _set_status(self, attempt: int, status: ConversionStatus) -> None:
        if attempt != self._attempt:
            return
        # Phases only move forward within an attempt
        if _ORDER[status] <= _ORDER[self.status] and status != ConversionStatus.IDLE:
            return
        self.status = status
        self._publish()

    def _set_progress(self, attempt: int, value: float) -> None:
        if attempt != self._attempt:
            return
        value = max(0.0, min(100.0, float(value)))
        if value <= self.progress:
            return
        self.progress = value
        self._publish()

    def start(self, file: SourceFile, target: str, quality: Optional[int] = None) -> asyncio.Task:
        """Begin a conversion, superseding any in flight. Must be called from a running event loop."""
        if self.busy:
            logger.info("Superseding in-flight conversion")
            self._task.cancel()
        self._attempt += 1
        attempt = self._attempt
        self.status = ConversionStatus.IDLE
        self.progress = 0.0
        self.result = None
        self.error = None
        self._publish()
        self._task = asyncio.get_running_loop().create_task(self._run(attempt, ConversionRequest(file, target, quality)))
        return self._task

    async def convert(self, file: SourceFile, target: str, quality: Optional[int] = None) -> Optional[ConversionResult]:
        """Run a conversion to completion; returns the result, or None on failure (see ``error``)."""
        return await self.start(file, target, quality)

    async def _run(self, attempt: int, request: ConversionRequest) -> Optional[ConversionResult]:
        try:
            result = await self.router.convert(
                request.source,
                request.target,
                quality=request.quality,
                on_status=lambda status: self._set_status(attempt, status),
                on_progress=lambda value: self._set_progress(attempt, value),
            )
        except asyncio.CancelledError:
            raise
        except ConversionError as e:
            self._fail(attempt, e)
            return None
        except Exception as e:
            logger.exception("Unexpected conversion failure: %s", e)
            self._fail(attempt, ConversionError(ErrorCode.CONVERSION_ERROR, "Conversion failed", details=str(e)))
            return None
        if attempt != self._attempt:
            return result
        self.result = result
        self.progress = 100.0
        self._set_status(attempt, ConversionStatus.SUCCESS)
        logger.info("Conversion finished: %s (%s bytes)", result.filename, result.size)
        return result

    def _fail(self, attempt: int, error: ConversionError) -> None:
        if attempt != self._attempt:
            return
        self.error = ConversionFailure.from_error(error)
        logger.warning("Conversion failed [%s]: %s. %s", error.code, error.message, self.error.retry_hint)
        self._set_status(attempt, ConversionStatus.ERROR)

    def cancel(self) -> None:
        """Abort the in-flight conversion and return to idle."""
        self._attempt += 1
        if self.busy:
            self._task.cancel()
        self._task = None
        self.status = ConversionStatus.IDLE
        self.progress = 0.0
        self._publish()

    def reset(self) -> None:
        self.result = None
        self.error = None
        self.cancel()
