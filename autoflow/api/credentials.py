"""Credential endpoints."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from autoflow.api.dependencies import services, to_http_exception
from autoflow.models.credential import CredentialCreate, CredentialUpdate
from autoflow.services import Services

router = APIRouter()


class ImportCredentialsRequest(BaseModel):
    credentials: list[dict[str, Any]] = Field(..., description="Credentials as returned by the export endpoint")


@router.get("/credentials")
async def list_credentials(
    type: Optional[str] = None,
    include_data: bool = Query(False, alias="includeData"),
    svc: Services = Depends(services),
) -> dict:
    credentials = await svc.credentials.list(type)
    return {"data": [credential.public(include_data) for credential in credentials]}


@router.post("/credentials")
async def create_credential(body: CredentialCreate, svc: Services = Depends(services)) -> dict:
    try:
        return (await svc.credentials.create(body)).public()
    except Exception as e:
        raise to_http_exception(e, "credential_create_error")


@router.get("/credentials/export")
async def export_credentials(svc: Services = Depends(services)) -> dict:
    """Export credentials with their synchable data only."""
    return {"data": await svc.credentials.export()}


@router.post("/credentials/import")
async def import_credentials(body: ImportCredentialsRequest, svc: Services = Depends(services)) -> dict:
    try:
        imported = await svc.credentials.import_credentials(body.credentials)
        return {"data": [credential.public() for credential in imported]}
    except Exception as e:
        raise to_http_exception(e, "credential_import_error")


@router.get("/credentials/{credential_id}")
async def get_credential(
    credential_id: str,
    include_data: bool = Query(False, alias="includeData"),
    svc: Services = Depends(services),
) -> dict:
    try:
        return (await svc.credentials.get(credential_id)).public(include_data)
    except Exception as e:
        raise to_http_exception(e, "credential_get_error", credential_id=credential_id)


@router.patch("/credentials/{credential_id}")
async def update_credential(credential_id: str, body: CredentialUpdate, svc: Services = Depends(services)) -> dict:
    try:
        return (await svc.credentials.update(credential_id, body)).public()
    except Exception as e:
        raise to_http_exception(e, "credential_update_error", credential_id=credential_id)


@router.delete("/credentials/{credential_id}")
async def delete_credential(credential_id: str, svc: Services = Depends(services)) -> dict:
    try:
        await svc.credentials.delete(credential_id)
        return {"success": True}
    except Exception as e:
        raise to_http_exception(e, "credential_delete_error", credential_id=credential_id)
