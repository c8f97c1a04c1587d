"""Binary data storage.

Binary properties of items are dicts in n8n's shape:

    {
        "data": "<base64>" | "filesystem",
        "mimeType": "text/plain",
        "fileName": "notes.txt",
        "fileExtension": "txt",
        "fileSize": "1.5 kB",
        "id": "filesystem:workflows/1/executions/7/binary_data/<uuid>",
        "bytes": 1500,
    }

In ``default`` mode the content lives base64 encoded inside the item. In
``filesystem`` mode it is written under the storage path and the item only
carries the ``id``. Explicit ``store`` calls (file uploads) always write to
the filesystem so the content can be referenced later by id.
"""
import asyncio
import base64
import json
import mimetypes
import shutil
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Optional, Union
from uuid import uuid4

import structlog

from autoflow.errors import BadRequestError, NotFoundError

logger = structlog.get_logger()


FILESYSTEM_MODE = "filesystem"
DEFAULT_MODE = "default"
METADATA_SUFFIX = ".metadata"
STREAM_CHUNK_SIZE = 64 * 1024

_SIZE_UNITS = ("B", "kB", "MB", "GB", "TB")


def format_file_size(size: int) -> str:
    """Human readable size with SI units and three significant digits."""
    value = float(size)
    unit = 0
    while value >= 1000 and unit < len(_SIZE_UNITS) - 1:
        value /= 1000
        unit += 1
    return f"{float(f'{value:.3g}'):g} {_SIZE_UNITS[unit]}"


def binary_entry(
    data: str,
    size: int,
    file_name: Optional[str] = None,
    mime_type: Optional[str] = None,
    binary_id: Optional[str] = None,
) -> dict:
    """Build a binary entry in the shape items carry."""
    if not mime_type and file_name:
        mime_type = mimetypes.guess_type(file_name)[0]
    entry = {
        "data": data,
        "mimeType": mime_type or "application/octet-stream",
        "fileSize": format_file_size(size),
        "bytes": size,
    }
    if file_name:
        entry["fileName"] = file_name
        suffix = PurePosixPath(file_name).suffix
        if suffix:
            entry["fileExtension"] = suffix[1:]
    if binary_id:
        entry["id"] = binary_id
    return entry


def location_to_path(location: dict) -> str:
    """Translate a storage location into a relative directory.

    Locations are ``{"type": "execution", "workflow_id", "execution_id"}``
    or ``{"type": "custom", "path_segments": [...]}``.
    """
    if location.get("type") == "execution":
        workflow_id = location.get("workflow_id") or "temp"
        execution_id = location.get("execution_id") or "temp"
        return f"workflows/{workflow_id}/executions/{execution_id}/binary_data"
    if location.get("type") == "custom":
        segments = [str(segment) for segment in location.get("path_segments", [])]
        if any(segment in ("", ".", "..") or "/" in segment for segment in segments):
            raise BadRequestError("Invalid binary data location")
        return "/".join(segments)
    raise BadRequestError(f"Unknown binary data location type: {location.get('type')}")


class BinaryDataService:
    """Stores and retrieves binary item data."""

    def __init__(self, mode: str = FILESYSTEM_MODE, storage_path: Union[str, Path] = "binary-data"):
        self.mode = mode
        self.storage_path = Path(storage_path)

    # =========================================================================
    # Paths
    # =========================================================================

    def _resolve(self, binary_id: str) -> Path:
        mode, _, relative = binary_id.partition(":")
        if mode != FILESYSTEM_MODE or not relative:
            raise NotFoundError(f"Unknown binary data id '{binary_id}'")

        root = self.storage_path.resolve()
        path = (root / PurePosixPath(relative)).resolve()
        if not path.is_relative_to(root):
            raise BadRequestError("Invalid binary data id")
        return path

    # =========================================================================
    # Store / read
    # =========================================================================

    async def store(
        self,
        location: dict,
        data: Union[bytes, Path],
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> dict:
        """Write binary data to the filesystem.

        Args:
            location: Storage location (see location_to_path)
            data: Raw bytes or a path to a file to copy
            file_name: Original file name
            mime_type: MIME type, guessed from the name when omitted

        Returns:
            Binary entry referencing the stored file by id
        """
        relative = f"{location_to_path(location)}/{uuid4()}"
        target = self.storage_path / PurePosixPath(relative)

        def _write() -> int:
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, Path):
                shutil.copyfile(data, target)
            else:
                target.write_bytes(data)
            size = target.stat().st_size
            metadata = {"fileName": file_name, "mimeType": mime_type, "fileSize": size}
            Path(f"{target}{METADATA_SUFFIX}").write_text(json.dumps(metadata))
            return size

        size = await asyncio.to_thread(_write)
        binary_id = f"{FILESYSTEM_MODE}:{relative}"

        logger.debug("binary_data_stored", binary_id=binary_id, bytes=size)

        return binary_entry(
            data=FILESYSTEM_MODE,
            size=size,
            file_name=file_name,
            mime_type=mime_type,
            binary_id=binary_id,
        )

    async def prepare_binary_data(
        self,
        data: bytes,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
        location: Optional[dict] = None,
    ) -> dict:
        """Create a binary entry for an item, honoring the configured mode."""
        if self.mode == FILESYSTEM_MODE and location is not None:
            return await self.store(location, data, file_name, mime_type)

        return binary_entry(
            data=base64.b64encode(data).decode("ascii"),
            size=len(data),
            file_name=file_name,
            mime_type=mime_type,
        )

    async def get_as_bytes(self, binary: Union[dict, str]) -> bytes:
        """Read the content of a binary entry or binary id."""
        if isinstance(binary, dict):
            binary_id = binary.get("id")
            if not binary_id:
                return base64.b64decode(binary.get("data", ""))
        else:
            binary_id = binary

        path = self._resolve(binary_id)
        if not path.is_file():
            raise NotFoundError(f"Binary data '{binary_id}' not found")
        return await asyncio.to_thread(path.read_bytes)

    async def get_stream(
        self,
        binary_id: str,
        chunk_size: int = STREAM_CHUNK_SIZE,
    ) -> AsyncIterator[bytes]:
        """Iterate over a stored file in chunks."""
        path = self._resolve(binary_id)
        if not path.is_file():
            raise NotFoundError(f"Binary data '{binary_id}' not found")

        handle = await asyncio.to_thread(path.open, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def get_metadata(self, binary_id: str) -> dict:
        path = self._resolve(binary_id)
        metadata_path = Path(f"{path}{METADATA_SUFFIX}")
        if not metadata_path.is_file():
            raise NotFoundError(f"Binary data '{binary_id}' not found")
        return json.loads(await asyncio.to_thread(metadata_path.read_text))

    async def delete_many(self, locations: list[dict]) -> None:
        """Delete everything stored under the given locations."""
        for location in locations:
            directory = self.storage_path / PurePosixPath(location_to_path(location))
            await asyncio.to_thread(shutil.rmtree, directory, True)
            logger.debug("binary_data_deleted", location=str(directory))
