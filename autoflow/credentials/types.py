"""Credential types and how they authenticate HTTP requests."""
from typing import Any, Optional

from pydantic import BaseModel, Field


class CredentialProperty(BaseModel):
    name: str
    display_name: str
    type: str = "string"
    default: Any = ""
    password: bool = False
    required: bool = False


class CredentialType(BaseModel):
    name: str
    display_name: str
    properties: list[CredentialProperty] = Field(default_factory=list)
    documentation_url: Optional[str] = None


CREDENTIAL_TYPES: dict[str, CredentialType] = {
    credential_type.name: credential_type
    for credential_type in (
        CredentialType(
            name="httpHeaderAuth",
            display_name="Header Auth",
            properties=[
                CredentialProperty(name="name", display_name="Name", required=True),
                CredentialProperty(name="value", display_name="Value", password=True),
            ],
        ),
        CredentialType(
            name="httpBasicAuth",
            display_name="Basic Auth",
            properties=[
                CredentialProperty(name="user", display_name="User"),
                CredentialProperty(name="password", display_name="Password", password=True),
            ],
        ),
        CredentialType(
            name="httpQueryAuth",
            display_name="Query Auth",
            properties=[
                CredentialProperty(name="name", display_name="Name", required=True),
                CredentialProperty(name="value", display_name="Value", password=True),
            ],
        ),
        CredentialType(
            name="httpBearerAuth",
            display_name="Bearer Auth",
            properties=[
                CredentialProperty(name="token", display_name="Bearer Token", password=True, required=True),
            ],
        ),
    )
}


def get_credential_type(name: str) -> Optional[CredentialType]:
    return CREDENTIAL_TYPES.get(name)


def authenticate(credential_type: str, data: dict, request: dict) -> dict:
    """Apply credential data to httpx request keyword arguments.

    Args:
        credential_type: Name of the credential type
        data: Decrypted credential data
        request: Keyword arguments for ``httpx.AsyncClient.request``

    Returns:
        The request keyword arguments with authentication applied
    """
    request = dict(request)
    if credential_type == "httpHeaderAuth":
        request["headers"] = {**(request.get("headers") or {}), data.get("name", ""): data.get("value", "")}
    elif credential_type == "httpBasicAuth":
        request["auth"] = (data.get("user", ""), data.get("password", ""))
    elif credential_type == "httpQueryAuth":
        request["params"] = {**(request.get("params") or {}), data.get("name", ""): data.get("value", "")}
    elif credential_type == "httpBearerAuth":
        request["headers"] = {
            **(request.get("headers") or {}),
            "Authorization": f"Bearer {data.get('token', '')}",
        }
    else:
        raise ValueError(f"Credential type '{credential_type}' can't authenticate HTTP requests")
    return request
