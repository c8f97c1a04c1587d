"""Multipart file upload into binary data storage."""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from autoflow.api.dependencies import services, to_http_exception
from autoflow.services import Services
from autoflow.services.file_uploads import FileUploadError, store_upload

logger = structlog.get_logger()

router = APIRouter()


@router.post("/file-uploads")
async def upload_file(request: Request, svc: Services = Depends(services)) -> dict:
    """
    Store the ``file`` field of a multipart request.

    Returns:
        ``{fileId, fileName, mimeType, fileSize}``
    """
    upload: Optional[UploadFile] = None
    upload_error: Optional[Exception] = None
    try:
        form = await request.form()
        field = form.get("file")
        if isinstance(field, UploadFile):
            upload = field
    except MultiPartException as e:
        upload_error = FileUploadError(e.message)
    except StarletteHTTPException as e:
        upload_error = FileUploadError(e.detail)
    except Exception as e:
        logger.warning("file_upload_parse_error", error=str(e))
        upload_error = e

    try:
        return await store_upload(
            svc.binary_data,
            upload,
            max_size=svc.settings.upload_max_file_size,
            upload_error=upload_error,
        )
    except Exception as e:
        raise to_http_exception(e, "file_upload_error")
