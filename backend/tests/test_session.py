"""Conversion session state machine."""
import asyncio
import logging

import pytest

from fileconv.client.session import ConversionSession
from fileconv.conversion.models import ConversionResult, ConversionStatus, SourceFile
from fileconv.errors import ConversionError, ErrorCode

SOURCE = SourceFile.from_bytes(b"data", "clip.mov")


class ScriptedRouter:
    """Stands in for ConversionRouter: replays statuses/progress, then returns or raises."""

    def __init__(self, progress=(5, 30, 20, 80), error=None, gate=None):
        self.progress = progress
        self.error = error
        self.gate = gate
        self.calls = 0

    async def convert(self, file, target, quality=None, on_status=None, on_progress=None):
        self.calls += 1
        on_status(ConversionStatus.UPLOADING)
        if self.gate is not None:
            await self.gate.wait()
        on_status(ConversionStatus.CONVERTING)
        for value in self.progress:
            on_progress(value)
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return ConversionResult(content=b"out", content_type="video/mp4", filename=f"clip.{target}")


def record(session):
    seen = []
    session.subscribe(lambda s: seen.append((s.status, s.progress)))
    return seen


class TestConversionSession:
    @pytest.mark.asyncio
    async def test_success_flow(self):
        session = ConversionSession(ScriptedRouter())
        seen = record(session)
        result = await session.convert(SOURCE, "mp4")

        assert result.filename == "clip.mp4"
        assert session.status == ConversionStatus.SUCCESS
        assert session.result is result
        assert session.progress == 100.0
        statuses = [status for status, _ in seen]
        assert statuses[0] == ConversionStatus.IDLE
        assert statuses[-1] == ConversionStatus.SUCCESS
        assert statuses.index(ConversionStatus.UPLOADING) < statuses.index(ConversionStatus.CONVERTING)
        progress = [p for _, p in seen]
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_failure_flow(self, caplog):
        error = ConversionError(ErrorCode.FILE_TOO_LARGE, "File too large")
        session = ConversionSession(ScriptedRouter(error=error))
        with caplog.at_level(logging.WARNING, logger="fileconv.client.session"):
            result = await session.convert(SOURCE, "mp4")

        assert result is None
        assert session.status == ConversionStatus.ERROR
        assert session.error.code == "FILE_TOO_LARGE"
        assert session.error.retry_hint == "Compress or split the file and try again."
        assert "FILE_TOO_LARGE" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_classified(self):
        session = ConversionSession(ScriptedRouter(error=RuntimeError("boom")))
        await session.convert(SOURCE, "mp4")
        assert session.status == ConversionStatus.ERROR
        assert session.error.code == "CONVERSION_ERROR"

    @pytest.mark.asyncio
    async def test_new_start_supersedes_in_flight(self):
        gate = asyncio.Event()
        router = ScriptedRouter(gate=gate)
        session = ConversionSession(router)

        first = session.start(SOURCE, "webm")
        await asyncio.sleep(0)
        assert session.status == ConversionStatus.UPLOADING
        second = session.start(SOURCE, "mp4")
        gate.set()

        result = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        assert first.cancelled()
        assert result.filename == "clip.mp4"
        assert session.result.filename == "clip.mp4"
        assert session.status == ConversionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_cancel_returns_to_idle(self):
        gate = asyncio.Event()
        session = ConversionSession(ScriptedRouter(gate=gate))
        task = session.start(SOURCE, "mp4")
        await asyncio.sleep(0)
        assert session.busy

        session.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.status == ConversionStatus.IDLE
        assert session.progress == 0.0
        assert not session.busy

    @pytest.mark.asyncio
    async def test_reset_clears_outcome(self):
        session = ConversionSession(ScriptedRouter())
        await session.convert(SOURCE, "mp4")
        session.reset()
        assert session.status == ConversionStatus.IDLE
        assert session.result is None
        assert session.error is None

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        session = ConversionSession(ScriptedRouter())
        seen = []
        unsubscribe = session.subscribe(lambda s: seen.append(s.status))
        unsubscribe()
        await session.convert(SOURCE, "mp4")
        assert seen == []
