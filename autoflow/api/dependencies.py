"""Shared route dependencies and error translation."""
from typing import Optional

import structlog
from fastapi import Header, HTTPException

from autoflow.config import get_settings
from autoflow.errors import AutoflowError, ResponseError
from autoflow.services import Services, get_services

logger = structlog.get_logger()

API_KEY_HEADER = "X-N8N-API-KEY"


async def verify_api_key(x_n8n_api_key: Optional[str] = Header(None, alias=API_KEY_HEADER)) -> None:
    """Reject requests without the configured API key. No key configured disables the check."""
    settings = get_settings()
    if settings.api_key and x_n8n_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def services() -> Services:
    return get_services()


def to_http_exception(error: Exception, event: str, **context) -> HTTPException:
    """Map a service error onto the HTTPException a route raises."""
    if isinstance(error, ResponseError):
        return HTTPException(status_code=error.status_code, detail=error.message)
    if isinstance(error, AutoflowError):
        detail = error.message if not error.description else f"{error.message}: {error.description}"
        return HTTPException(status_code=400, detail=detail)
    logger.error(event, error=str(error), **context)
    return HTTPException(status_code=500, detail=str(error))
