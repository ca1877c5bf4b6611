"""Execution path selection and the client-side conversion flow."""
import httpx
import pytest

from conftest import make_docx, make_png
from fileconv.client.api import ConversionApiClient
from fileconv.client.router import ConversionRouter, route
from fileconv.conversion.models import ConversionStatus, ExecutionPath, Failure, SourceFile
from fileconv.errors import ConversionError, ErrorCode
from fileconv.main import app

MB = 1024 * 1024


def sparse_file(tmp_path, name: str, size: int) -> SourceFile:
    path = tmp_path / name
    with open(path, "wb") as f:
        f.truncate(size)
    return SourceFile.from_path(path)


class FakeEngine:
    def __init__(self, content=b"transcoded", content_type="video/mp4"):
        self.calls = []
        self.content = content
        self.content_type = content_type

    async def transcode(self, file, target, on_progress=None):
        self.calls.append((file.filename, target))
        if on_progress:
            for value in (10, 40, 100):
                on_progress(value)
        return self.content, self.content_type


class NoNetwork:
    async def execute(self, *args, **kwargs):
        raise AssertionError("no server call expected")


def asgi_client() -> ConversionApiClient:
    return ConversionApiClient(base_url="http://testserver", transport=httpx.ASGITransport(app=app))


class TestRoute:
    def test_document(self):
        assert route(SourceFile.from_bytes(b"x", "notes.docx"), "pdf") == ExecutionPath.DOCUMENT_SERVER

    def test_document_wins_over_pdf_target(self):
        assert route(SourceFile.from_bytes(b"x", "notes.txt"), "pdf") == ExecutionPath.DOCUMENT_SERVER

    def test_image_to_pdf(self):
        assert route(SourceFile.from_bytes(b"x", "photo.png"), "pdf") == ExecutionPath.IMAGE_TO_PDF_SERVER

    def test_image(self):
        assert route(SourceFile.from_bytes(b"x", "photo.png"), "webp") == ExecutionPath.IMAGE_SERVER

    def test_undetermined_source_with_image_target(self):
        assert route(SourceFile(filename="blob", content_type=""), "png") == ExecutionPath.IMAGE_SERVER

    def test_small_media_goes_to_server(self):
        assert route(SourceFile.from_bytes(b"x" * 1024, "clip.mp4"), "webm") == ExecutionPath.MEDIA_SERVER

    def test_large_media_stays_local(self, tmp_path):
        clip = sparse_file(tmp_path, "clip.mov", 600 * MB)
        assert clip.size == 600 * MB
        assert route(clip, "mp4") == ExecutionPath.MEDIA_CLIENT

    def test_unknown_source(self):
        assert route(SourceFile.from_bytes(b"x", "archive.xyz"), "png") == ExecutionPath.UNSUPPORTED
        assert route(SourceFile(filename="blob", content_type=""), "mp3") == ExecutionPath.UNSUPPORTED

    def test_oversize_server_upload(self, tmp_path):
        with pytest.raises(ConversionError) as exc:
            route(sparse_file(tmp_path, "photo.png", 10 * MB), "jpg")
        assert exc.value.code == "FILE_TOO_LARGE"
        assert exc.value.status_code == 413

    def test_oversize_local_media(self, tmp_path, monkeypatch):
        monkeypatch.setattr("fileconv.client.router.CLIENT_MEDIA_MAX_BYTES", 100 * MB)
        with pytest.raises(ConversionError) as exc:
            route(sparse_file(tmp_path, "clip.mkv", 200 * MB), "mp4")
        assert exc.value.code == "FILE_TOO_LARGE"


class TestConvert:
    @pytest.mark.asyncio
    async def test_large_clip_converted_locally(self, tmp_path):
        engine = FakeEngine()
        router = ConversionRouter(api_client=NoNetwork(), engine=engine)
        statuses, progress = [], []
        result = await router.convert(
            sparse_file(tmp_path, "clip.mov", 600 * MB), "mp4",
            on_status=statuses.append, on_progress=progress.append,
        )
        assert result.filename == "clip.mp4"
        assert result.content_type == "video/mp4"
        assert engine.calls == [("clip.mov", "mp4")]
        assert statuses == [ConversionStatus.UPLOADING, ConversionStatus.CONVERTING]
        assert progress == [10, 40, 100]

    @pytest.mark.asyncio
    async def test_unsupported_makes_no_network_call(self):
        router = ConversionRouter(api_client=NoNetwork(), engine=FakeEngine())
        with pytest.raises(ConversionError) as exc:
            await router.convert(SourceFile.from_bytes(b"x", "archive.xyz"), "png")
        assert exc.value.code == ErrorCode.UNSUPPORTED_CONVERSION.value
        assert exc.value.extra["supported"] == []

    @pytest.mark.asyncio
    async def test_oversize_makes_no_network_call(self, tmp_path):
        router = ConversionRouter(api_client=NoNetwork(), engine=FakeEngine())
        with pytest.raises(ConversionError) as exc:
            await router.convert(sparse_file(tmp_path, "scan.png", 10 * MB), "pdf")
        assert exc.value.code == "FILE_TOO_LARGE"

    @pytest.mark.asyncio
    async def test_image_through_server(self):
        async with asgi_client() as api:
            router = ConversionRouter(api_client=api, engine=FakeEngine())
            result = await router.convert(SourceFile.from_bytes(make_png(), "photo.png"), "jpg", quality=80)
        assert result.filename == "photo.jpg"
        assert result.content_type == "image/jpeg"
        assert result.content[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["", "application/octet-stream"])
    async def test_untyped_image_through_server(self, content_type):
        async with asgi_client() as api:
            router = ConversionRouter(api_client=api, engine=FakeEngine())
            source = SourceFile(filename="photo.png", content_type=content_type, data=make_png())
            result = await router.convert(source, "jpg")
        assert result.filename == "photo.jpg"
        assert result.content[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_document_through_server(self):
        async with asgi_client() as api:
            router = ConversionRouter(api_client=api, engine=FakeEngine())
            result = await router.convert(SourceFile.from_bytes(make_docx(["Hello"]), "notes.docx"), "txt")
        assert result.filename == "notes.txt"
        assert result.content.decode().startswith("Hello")

    @pytest.mark.asyncio
    async def test_server_failure_surfaces(self):
        async with asgi_client() as api:
            router = ConversionRouter(api_client=api, engine=FakeEngine())
            with pytest.raises(ConversionError) as exc:
                await router.convert(SourceFile.from_bytes(make_docx(["Hello"]), "notes.docx"), "xlsx")
        assert exc.value.code == "UNSUPPORTED_CONVERSION"
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_small_media_falls_back_to_local_engine(self):
        engine = FakeEngine(content=b"ID3", content_type="audio/mpeg")
        statuses = []
        async with asgi_client() as api:
            router = ConversionRouter(api_client=api, engine=engine)
            result = await router.convert(
                SourceFile.from_bytes(b"\0" * 2048, "voice.wav", "audio/wav"), "mp3",
                on_status=statuses.append,
            )
        assert engine.calls == [("voice.wav", "mp3")]
        assert result.filename == "voice.mp3"
        assert result.content == b"ID3"
        assert statuses[0] == ConversionStatus.UPLOADING
        assert statuses[-1] == ConversionStatus.CONVERTING


class TestApiClient:
    @pytest.mark.asyncio
    async def test_network_error_becomes_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with ConversionApiClient(base_url="http://converter.test", transport=httpx.MockTransport(refuse)) as api:
            outcome = await api.execute(
                ExecutionPath.IMAGE_SERVER, SourceFile.from_bytes(make_png(), "a.png"), "jpg",
            )
        assert isinstance(outcome, Failure)
        assert outcome.error.code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_media_network_error_falls_back(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        engine = FakeEngine()
        async with ConversionApiClient(base_url="http://converter.test", transport=httpx.MockTransport(refuse)) as api:
            result = await ConversionRouter(api_client=api, engine=engine).convert(
                SourceFile.from_bytes(b"\0" * 100, "clip.mp4"), "webm",
            )
        assert engine.calls == [("clip.mp4", "webm")]
        assert result.filename == "clip.webm"
