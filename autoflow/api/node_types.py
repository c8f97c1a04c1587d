"""Installed node and credential types."""
from fastapi import APIRouter, Depends

from autoflow.api.dependencies import services
from autoflow.credentials import CREDENTIAL_TYPES
from autoflow.services import Services

router = APIRouter()


@router.get("/node-types")
async def list_node_types(svc: Services = Depends(services)) -> dict:
    return {
        "data": [
            description.model_dump(mode="json", by_alias=True)
            for description in svc.node_types.descriptions()
        ]
    }


@router.get("/credential-types")
async def list_credential_types() -> dict:
    return {"data": [credential_type.model_dump(mode="json") for credential_type in CREDENTIAL_TYPES.values()]}
