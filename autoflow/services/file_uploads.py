"""Uploading files into binary data storage."""
import asyncio
import tempfile
from pathlib import Path
from typing import Optional
from uuid import uuid4

import structlog
from starlette.datastructures import UploadFile

from autoflow.binary_data import BinaryDataService
from autoflow.errors import BadRequestError

logger = structlog.get_logger()

UPLOAD_LOCATION = {"type": "custom", "path_segments": ["file-uploads"]}
UPLOAD_DIR = Path(tempfile.gettempdir()) / "autoflow-file-uploads"
CHUNK_SIZE = 64 * 1024


class FileUploadError(Exception):
    """The multipart upload could not be received."""


async def spool_to_temp(upload: UploadFile, max_size: int, upload_dir: Path = UPLOAD_DIR) -> Path:
    """Copy an upload to a temporary file, enforcing ``max_size`` bytes.

    Raises:
        FileUploadError: The file is larger than ``max_size``
    """
    upload_dir.mkdir(parents=True, exist_ok=True)
    temp_path = upload_dir / uuid4().hex[:10]
    size = 0
    out = await asyncio.to_thread(open, temp_path, "wb")
    try:
        with out:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > max_size:
                    raise FileUploadError("File too large")
                await asyncio.to_thread(out.write, chunk)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


async def store_upload(
    binary_data: BinaryDataService,
    upload: Optional[UploadFile],
    max_size: int,
    upload_error: Optional[Exception] = None,
    upload_dir: Path = UPLOAD_DIR,
) -> dict:
    """
    Store an uploaded file and describe it.

    Args:
        binary_data: Storage for the file content
        upload: The ``file`` field of the request, None when missing
        max_size: Largest accepted file in bytes
        upload_error: Error raised while parsing the request, if any
        upload_dir: Where the temporary copy is written

    Returns:
        ``{fileId, fileName, mimeType, fileSize}``

    Raises:
        BadRequestError: The upload failed or no file was sent
    """
    if upload_error is not None:
        if isinstance(upload_error, FileUploadError):
            raise BadRequestError(f"File upload error: {upload_error}")
        if isinstance(upload_error, BadRequestError):
            raise upload_error
        raise BadRequestError("File upload failed")

    if upload is None:
        raise BadRequestError("No file uploaded")

    try:
        temp_path = await spool_to_temp(upload, max_size, upload_dir)
    except FileUploadError as e:
        raise BadRequestError(f"File upload error: {e}")
    except OSError as e:
        logger.error("file_upload_spool_error", error=str(e))
        raise BadRequestError("File upload failed")

    file_name = upload.filename or temp_path.name
    mime_type = upload.content_type or "application/octet-stream"
    try:
        stored = await binary_data.store(UPLOAD_LOCATION, temp_path, file_name, mime_type)
    except Exception as e:
        logger.error("file_upload_store_error", file_name=file_name, error=str(e))
        raise BadRequestError("File upload failed")
    finally:
        temp_path.unlink(missing_ok=True)

    logger.info("file_uploaded", file_id=stored["id"], bytes=stored["bytes"])
    return {
        "fileId": stored["id"],
        "fileName": file_name,
        "mimeType": mime_type,
        "fileSize": stored["bytes"],
    }
