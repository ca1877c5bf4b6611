"""Response mapping and URL import in the API client."""
import httpx
import pytest

from fileconv.client.api import (
    ConversionApiClient,
    endpoint_for,
    filename_from_disposition,
    imported_filename,
    upload_content_type,
)
from fileconv.conversion.models import ExecutionPath, Failure, RetryOnClient, SourceFile, Success
from fileconv.errors import ConversionError


def mock_client(handler) -> ConversionApiClient:
    return ConversionApiClient(base_url="http://converter.test", transport=httpx.MockTransport(handler))


class TestHeaders:
    @pytest.mark.parametrize("value,expected", [
        ('attachment; filename="photo.jpg"', "photo.jpg"),
        ("attachment; filename=plain.txt", "plain.txt"),
        ("attachment; filename=\"x.pdf\"; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf", "résumé.pdf"),
        ("inline", None),
        (None, None),
    ])
    def test_filename_from_disposition(self, value, expected):
        assert filename_from_disposition(value) == expected

    @pytest.mark.parametrize("url,ctype,disposition,expected", [
        ("https://cdn.test/a/cat.png?x=1", "image/png", None, "cat.png"),
        ("https://cdn.test/download", "application/pdf", 'attachment; filename="q3.pdf"', "q3.pdf"),
        ("https://cdn.test/download", "image/webp", None, "imported-file.webp"),
        ("https://cdn.test/my%20song.mp3", "audio/mpeg", None, "my song.mp3"),
        ("https://cdn.test/", "", None, "imported-file"),
    ])
    def test_imported_filename(self, url, ctype, disposition, expected):
        assert imported_filename(url, ctype, disposition) == expected

    def test_endpoint_for_media_family(self):
        assert endpoint_for(ExecutionPath.MEDIA_SERVER, SourceFile.from_bytes(b"", "a.flac")) == "/api/convert/audio"
        assert endpoint_for(ExecutionPath.MEDIA_SERVER, SourceFile.from_bytes(b"", "a.mkv")) == "/api/convert/video"
        with pytest.raises(ValueError):
            endpoint_for(ExecutionPath.MEDIA_CLIENT, SourceFile.from_bytes(b"", "a.mkv"))

    @pytest.mark.parametrize("name,ctype,expected", [
        ("photo.png", "", "image/png"),
        ("photo.png", "application/octet-stream", "image/png"),
        ("notes.docx", None, "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
        ("clip.mov", "video/quicktime", "video/quicktime"),
        ("archive.xyz", "", "application/octet-stream"),
    ])
    def test_upload_content_type(self, name, ctype, expected):
        assert upload_content_type(SourceFile(filename=name, content_type=ctype or "", data=b"")) == expected


class TestExecute:
    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request):
            assert request.url.path == "/api/convert/documents"
            return httpx.Response(
                200,
                content=b"%PDF",
                headers={"Content-Type": "application/pdf", "Content-Disposition": 'attachment; filename="a.pdf"'},
            )

        async with mock_client(handler) as api:
            outcome = await api.execute(ExecutionPath.DOCUMENT_SERVER, SourceFile.from_bytes(b"hi", "a.txt"), "pdf")
        assert isinstance(outcome, Success)
        assert outcome.result.filename == "a.pdf"
        assert outcome.result.content == b"%PDF"

    @pytest.mark.asyncio
    async def test_client_side_hint(self):
        def handler(request):
            return httpx.Response(413, json={"error": "too big", "code": "FILE_TOO_LARGE", "useClientSide": True})

        async with mock_client(handler) as api:
            outcome = await api.execute(ExecutionPath.MEDIA_SERVER, SourceFile.from_bytes(b"x", "a.mp4"), "webm")
        assert isinstance(outcome, RetryOnClient)
        assert outcome.reason.code == "FILE_TOO_LARGE"

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        async with mock_client(handler) as api:
            outcome = await api.execute(ExecutionPath.IMAGE_SERVER, SourceFile.from_bytes(b"x", "a.png"), "jpg")
        assert isinstance(outcome, Failure)
        assert outcome.error.code == "CONVERSION_ERROR"
        assert outcome.error.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with mock_client(handler) as api:
            outcome = await api.execute(ExecutionPath.IMAGE_SERVER, SourceFile.from_bytes(b"x", "a.png"), "jpg")
        assert isinstance(outcome, Failure)
        assert outcome.error.code == "TIMEOUT"


class TestFetchRemote:
    @pytest.mark.asyncio
    async def test_import(self):
        def handler(request):
            assert request.url.path == "/api/proxy"
            return httpx.Response(200, content=b"\x89PNG", headers={"Content-Type": "image/png"})

        async with mock_client(handler) as api:
            source = await api.fetch_remote("https://cdn.test/images/cat")
        assert source.filename == "imported-file.png"
        assert source.content_type == "image/png"
        assert source.format_id == "png"
        assert source.read() == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_upstream_failure(self):
        def handler(request):
            return httpx.Response(404, json={"error": "Failed to fetch: Not Found", "code": "URL_FETCH_FAILED"})

        async with mock_client(handler) as api:
            with pytest.raises(ConversionError) as exc:
                await api.fetch_remote("https://cdn.test/missing.png")
        assert exc.value.code == "URL_FETCH_FAILED"
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_non_json_failure(self):
        def handler(request):
            return httpx.Response(502, content=b"<html>Bad Gateway</html>", headers={"Content-Type": "text/html"})

        async with mock_client(handler) as api:
            with pytest.raises(ConversionError) as exc:
                await api.fetch_remote("https://cdn.test/cat.png")
        assert exc.value.code == "URL_FETCH_FAILED"
        assert exc.value.status_code == 502
