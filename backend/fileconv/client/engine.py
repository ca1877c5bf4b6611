"""
Local transcoding engine: drives an ffmpeg binary for audio/video conversions
that the server does not perform.

The binary is resolved and probed once per engine instance. Each transcode
runs in its own temporary directory holding ``input.<ext>`` and
``output.<ext>``; the directory is removed when the call ends.
"""
import asyncio
import logging
import os
import re
import shutil
import tempfile
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, Optional

from fileconv.config import CLIENT_MEDIA_MAX_BYTES, ENGINE_LOAD_SHARE, FFMPEG_BINARY, MEDIA_TIMEOUT
from fileconv.conversion.models import SourceFile
from fileconv.detector import file_extension
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import AUDIO, VIDEO, canonical_extension, category_of, content_type_for, normalize_format_id

logger = logging.getLogger("fileconv.client.engine")

ProgressCallback = Callable[[float], None]

CODEC_ARGS = {
    "mp3": ["-c:a", "libmp3lame", "-q:a", "2"],
    "mp4": ["-c:v", "libx264", "-preset", "medium", "-crf", "23", "-c:a", "aac", "-b:a", "128k"],
    "webm": ["-c:v", "libvpx-vp9", "-crf", "30", "-b:v", "0", "-c:a", "libopus"],
}

_DURATION = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_TIME = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_LOG_TAIL = 40

# stderr fragment -> (code, message); first match wins
_FAILURE_PATTERNS = (
    ("Unknown encoder", ErrorCode.UNSUPPORTED_FORMAT, "This conversion is not supported by the local engine."),
    ("not supported", ErrorCode.UNSUPPORTED_FORMAT, "This conversion is not supported by the local engine."),
    ("Invalid argument", ErrorCode.UNSUPPORTED_FORMAT, "This conversion is not supported by the local engine."),
    ("Cannot allocate memory", ErrorCode.MEMORY_ERROR, "Not enough memory to convert this file."),
)


def _seconds(h: str, m: str, s: str) -> float:
    return int(h) * 3600 + int(m) * 60 + float(s)


def parse_duration(line: str) -> Optional[float]:
    m = _DURATION.search(line)
    return _seconds(*m.groups()) if m else None


def parse_progress_time(line: str) -> Optional[float]:
    m = _TIME.search(line)
    return _seconds(*m.groups()) if m else None


def build_args(input_name: str, output_name: str, target: str) -> list[str]:
    """ffmpeg arguments for one conversion; targets without an entry use ffmpeg's defaults."""
    target = normalize_format_id(target)
    codec = CODEC_ARGS.get(target, [])
    if category_of(target) == AUDIO:
        codec = ["-vn"] + codec
    return ["-hide_banner", "-nostdin", "-y", "-i", input_name, *codec, output_name]


def mime_type_for(target: str) -> str:
    return content_type_for(target)


def classify_failure(log_lines: Iterable[str], returncode: Optional[int]) -> ConversionError:
    log = "\n".join(log_lines)
    for fragment, code, message in _FAILURE_PATTERNS:
        if fragment in log:
            return ConversionError(code, message, details=log[-1000:])
    return ConversionError(
        ErrorCode.CONVERSION_FAILED,
        f"The local engine failed (exit code {returncode}).",
        status_code=500,
        details=log[-1000:],
    )


class ProgressTracker:
    """Maps engine load and transcode fractions onto 0-100; never goes backwards."""

    def __init__(self, callback: Optional[ProgressCallback] = None, load_share: float = ENGINE_LOAD_SHARE):
        self.callback = callback
        self.load_share = load_share
        self.value = 0.0

    def report(self, value: float) -> None:
        value = max(0.0, min(100.0, value))
        if value <= self.value:
            return
        self.value = value
        if self.callback:
            self.callback(value)

    def loaded(self) -> None:
        self.report(self.load_share)

    def transcoded(self, fraction: float) -> None:
        fraction = max(0.0, min(1.0, fraction))
        self.report(self.load_share + fraction * (100.0 - self.load_share))


class MediaEngine:
    def __init__(self, binary: str = FFMPEG_BINARY, timeout: float = MEDIA_TIMEOUT):
        self.binary = binary
        self.timeout = timeout
        self._executable: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._executable is not None

    async def load(self) -> str:
        """Resolve and probe the binary. Concurrent callers share a single load."""
        if self._executable:
            return self._executable
        async with self._lock:
            if self._executable:
                return self._executable
            executable = shutil.which(self.binary)
            if not executable:
                raise ConversionError(
                    ErrorCode.ENGINE_LOAD_FAILED,
                    f"Transcoding engine not found: {self.binary}",
                )
            try:
                proc = await asyncio.create_subprocess_exec(
                    executable, "-version",
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=30)
            except (OSError, asyncio.TimeoutError) as e:
                logger.exception("Engine probe failed: %s", e)
                raise ConversionError(
                    ErrorCode.ENGINE_LOAD_FAILED,
                    "Failed to load the transcoding engine.",
                    details=str(e),
                ) from e
            if proc.returncode != 0:
                raise ConversionError(
                    ErrorCode.ENGINE_LOAD_FAILED,
                    "Failed to load the transcoding engine.",
                    details=stderr.decode("utf-8", errors="replace")[-1000:],
                )
            version = stdout.decode("utf-8", errors="replace").splitlines()[:1]
            logger.info("Transcoding engine loaded: %s (%s)", executable, version[0] if version else "unknown version")
            self._executable = executable
            return executable

    async def transcode(
        self,
        file: SourceFile,
        target: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> tuple[bytes, str]:
        """Convert an audio/video file locally. Returns (content, mime type)."""
        target = normalize_format_id(target)
        if category_of(target) not in (VIDEO, AUDIO):
            raise ConversionError(
                ErrorCode.UNSUPPORTED_FORMAT,
                f"Unsupported output format for the local engine: {target}",
            )
        if file.size > CLIENT_MEDIA_MAX_BYTES:
            raise ConversionError(
                ErrorCode.FILE_TOO_LARGE,
                f"File too large (max {CLIENT_MEDIA_MAX_BYTES // (1024 * 1024)} MB)",
            )

        progress = ProgressTracker(on_progress)
        executable = await self.load()
        progress.loaded()

        with tempfile.TemporaryDirectory(prefix="fileconv-") as workdir:
            work = Path(workdir)
            input_name = f"input.{file_extension(file.filename) or file.format_id or 'bin'}"
            output_name = f"output.{canonical_extension(target)}"
            _place_input(file, work / input_name)
            args = build_args(input_name, output_name, target)
            logger.info("Transcoding %s -> %s", file.filename, target)
            logger.debug("ffmpeg %s", " ".join(args))

            proc = await asyncio.create_subprocess_exec(
                executable, *args,
                cwd=workdir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            tail: deque = deque(maxlen=_LOG_TAIL)
            try:
                await asyncio.wait_for(self._follow(proc, tail, progress), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                await _kill(proc)
                raise ConversionError(
                    ErrorCode.TIMEOUT,
                    f"Conversion timed out after {self.timeout:g} seconds.",
                ) from e
            except asyncio.CancelledError:
                await _kill(proc)
                logger.info("Transcode of %s cancelled", file.filename)
                raise

            output = work / output_name
            if proc.returncode != 0 or not output.exists():
                error = classify_failure(tail, proc.returncode)
                logger.error("Transcode of %s failed: %s", file.filename, error.code)
                raise error
            content = output.read_bytes()

        if not content:
            raise ConversionError(ErrorCode.CONVERSION_FAILED, "Conversion produced an empty file.", status_code=500)
        progress.report(100.0)
        return content, mime_type_for(target)

    async def _follow(self, proc: asyncio.subprocess.Process, tail: deque, progress: ProgressTracker) -> None:
        duration: Optional[float] = None
        pending = b""
        while True:
            chunk = await proc.stderr.read(4096)
            if not chunk:
                break
            pending += chunk
            *lines, pending = re.split(rb"[\r\n]", pending)
            for raw in lines:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                tail.append(line)
                if duration is None:
                    duration = parse_duration(line)
                elapsed = parse_progress_time(line)
                if elapsed is not None and duration:
                    progress.transcoded(elapsed / duration)
        if pending.strip():
            tail.append(pending.decode("utf-8", errors="replace").strip())
        await proc.wait()


def _place_input(file: SourceFile, dest: Path) -> None:
    if file.path is not None and file.data is None:
        try:
            os.symlink(Path(file.path).resolve(), dest)
            return
        except OSError:
            shutil.copyfile(file.path, dest)
            return
    dest.write_bytes(file.read())


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()
