"""Credential models."""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import Field

from autoflow.models.workflow import CamelModel, _utcnow


class Credential(CamelModel):
    """A stored credential. ``data`` holds the secret values."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    type: str
    data: Optional[dict[str, Any]] = None
    owned_by: Optional[str] = None
    is_global: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def public(self, include_data: bool = False) -> dict:
        """Serialize for API responses, hiding ``data`` unless asked for."""
        exclude = None if include_data else {"data"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class CredentialCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_global: bool = False


class CredentialUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    data: Optional[dict[str, Any]] = None
    is_global: Optional[bool] = None
