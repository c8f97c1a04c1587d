"""Tests for binary data storage and file uploads."""
import base64
import io

import pytest
from starlette.datastructures import Headers, UploadFile

from autoflow.binary_data import BinaryDataService, binary_entry
from autoflow.binary_data.service import DEFAULT_MODE, format_file_size, location_to_path
from autoflow.errors import BadRequestError, NotFoundError
from autoflow.services.file_uploads import FileUploadError, store_upload

EXECUTION_LOCATION = {"type": "execution", "workflow_id": "wf1", "execution_id": "42"}


@pytest.fixture
def binary_data(tmp_path):
    return BinaryDataService(storage_path=tmp_path / "storage")


def upload_file(content: bytes, filename: str = "notes.txt", content_type: str = "text/plain") -> UploadFile:
    return UploadFile(
        io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0 B"), (999, "999 B"), (1500, "1.5 kB"), (1_000_000, "1 MB"), (123_456_789, "123 MB")],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


class TestLocations:
    def test_execution_location(self):
        assert location_to_path(EXECUTION_LOCATION) == "workflows/wf1/executions/42/binary_data"

    def test_custom_location(self):
        assert location_to_path({"type": "custom", "path_segments": ["a", "b"]}) == "a/b"

    @pytest.mark.parametrize("segment", ["..", ".", "", "a/b"])
    def test_rejects_unsafe_segments(self, segment):
        with pytest.raises(BadRequestError, match="Invalid binary data location"):
            location_to_path({"type": "custom", "path_segments": ["ok", segment]})

    def test_unknown_type(self):
        with pytest.raises(BadRequestError):
            location_to_path({"type": "s3"})


class TestBinaryEntry:
    def test_guesses_mime_type_and_extension(self):
        entry = binary_entry(data="aGk=", size=2, file_name="report.pdf")
        assert entry["mimeType"] == "application/pdf"
        assert entry["fileExtension"] == "pdf"
        assert entry["fileSize"] == "2 B"
        assert "id" not in entry

    def test_defaults_to_octet_stream(self):
        assert binary_entry(data="", size=0)["mimeType"] == "application/octet-stream"


class TestBinaryDataService:
    async def test_store_and_read(self, binary_data):
        entry = await binary_data.store(EXECUTION_LOCATION, b"hello world", "hello.txt", "text/plain")

        assert entry["id"].startswith("filesystem:workflows/wf1/executions/42/binary_data/")
        assert entry["data"] == "filesystem"
        assert entry["bytes"] == 11
        assert await binary_data.get_as_bytes(entry) == b"hello world"
        assert await binary_data.get_as_bytes(entry["id"]) == b"hello world"

    async def test_stream_in_chunks(self, binary_data):
        entry = await binary_data.store(EXECUTION_LOCATION, b"abcdefghij", "letters.txt")

        chunks = [chunk async for chunk in binary_data.get_stream(entry["id"], chunk_size=4)]

        assert chunks == [b"abcd", b"efgh", b"ij"]

    async def test_metadata(self, binary_data):
        entry = await binary_data.store(EXECUTION_LOCATION, b"{}", "data.json", "application/json")

        metadata = await binary_data.get_metadata(entry["id"])

        assert metadata == {"fileName": "data.json", "mimeType": "application/json", "fileSize": 2}

    async def test_store_copies_a_path(self, binary_data, tmp_path):
        source = tmp_path / "source.bin"
        source.write_bytes(b"\x00\x01")

        entry = await binary_data.store({"type": "custom", "path_segments": ["copies"]}, source, "source.bin")

        assert await binary_data.get_as_bytes(entry) == b"\x00\x01"
        assert source.exists()

    async def test_prepare_in_filesystem_mode(self, binary_data):
        entry = await binary_data.prepare_binary_data(b"abc", "a.txt", location=EXECUTION_LOCATION)
        assert entry["id"].startswith("filesystem:")

    async def test_prepare_in_default_mode(self, tmp_path):
        service = BinaryDataService(mode=DEFAULT_MODE, storage_path=tmp_path)

        entry = await service.prepare_binary_data(b"abc", "a.txt", location=EXECUTION_LOCATION)

        assert base64.b64decode(entry["data"]) == b"abc"
        assert "id" not in entry
        assert await service.get_as_bytes(entry) == b"abc"

    async def test_missing_file(self, binary_data):
        with pytest.raises(NotFoundError, match="not found"):
            await binary_data.get_as_bytes("filesystem:nope/missing")

    async def test_unknown_mode(self, binary_data):
        with pytest.raises(NotFoundError, match="Unknown binary data id"):
            await binary_data.get_as_bytes("s3:bucket/key")

    async def test_id_cannot_escape_storage(self, binary_data):
        with pytest.raises(BadRequestError, match="Invalid binary data id"):
            await binary_data.get_as_bytes("filesystem:../../etc/passwd")

    async def test_delete_many(self, binary_data):
        entry = await binary_data.store(EXECUTION_LOCATION, b"x", "x.txt")

        await binary_data.delete_many([EXECUTION_LOCATION])

        with pytest.raises(NotFoundError):
            await binary_data.get_as_bytes(entry)


class TestStoreUpload:
    async def test_stores_file(self, binary_data, tmp_path):
        result = await store_upload(
            binary_data,
            upload_file(b"some notes"),
            max_size=1024,
            upload_dir=tmp_path / "spool",
        )

        assert result["fileName"] == "notes.txt"
        assert result["mimeType"] == "text/plain"
        assert result["fileSize"] == 10
        assert result["fileId"].startswith("filesystem:file-uploads/")
        assert await binary_data.get_as_bytes(result["fileId"]) == b"some notes"
        assert list((tmp_path / "spool").iterdir()) == []

    async def test_too_large(self, binary_data, tmp_path):
        with pytest.raises(BadRequestError, match="File upload error: File too large"):
            await store_upload(binary_data, upload_file(b"x" * 100), max_size=10, upload_dir=tmp_path / "spool")
        assert list((tmp_path / "spool").iterdir()) == []

    async def test_missing_file(self, binary_data):
        with pytest.raises(BadRequestError, match="No file uploaded"):
            await store_upload(binary_data, None, max_size=10)

    async def test_parse_error(self, binary_data):
        with pytest.raises(BadRequestError, match="File upload error: boundary missing"):
            await store_upload(binary_data, None, max_size=10, upload_error=FileUploadError("boundary missing"))

    async def test_unexpected_error(self, binary_data):
        with pytest.raises(BadRequestError, match="File upload failed"):
            await store_upload(binary_data, None, max_size=10, upload_error=RuntimeError("boom"))

    async def test_storage_failure(self, binary_data, tmp_path, monkeypatch):
        async def full_disk(*args, **kwargs):
            raise OSError("No space left on device")

        monkeypatch.setattr(binary_data, "store", full_disk)

        with pytest.raises(BadRequestError, match="File upload failed"):
            await store_upload(binary_data, upload_file(b"notes"), max_size=1024, upload_dir=tmp_path / "spool")
        assert list((tmp_path / "spool").iterdir()) == []
