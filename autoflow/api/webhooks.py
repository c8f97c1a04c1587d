"""Incoming webhook requests for active workflows."""
import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from autoflow.api.dependencies import services, to_http_exception
from autoflow.services import Services

logger = structlog.get_logger()

router = APIRouter()

WEBHOOK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


async def _read_body(request: Request):
    raw = await request.body()
    if not raw:
        return None
    content_type = request.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("webhook_invalid_json", path=request.url.path)
            return raw.decode("utf-8", errors="replace")
    if content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        return dict(form)
    return raw.decode("utf-8", errors="replace")


@router.api_route("/{path:path}", methods=WEBHOOK_METHODS)
async def handle_webhook(path: str, request: Request, svc: Services = Depends(services)) -> Response:
    try:
        response = await svc.webhooks.handle(
            request.method,
            path,
            headers=dict(request.headers),
            query=dict(request.query_params),
            body=await _read_body(request),
        )
    except Exception as e:
        raise to_http_exception(e, "webhook_error", path=path, method=request.method)
    if response.body is None:
        return Response(status_code=response.status_code)
    return JSONResponse(status_code=response.status_code, content=response.body)
