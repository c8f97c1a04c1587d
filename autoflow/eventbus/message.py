"""Messages carried by the event bus."""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import Field

from autoflow.models import CamelModel
from autoflow.models.workflow import _utcnow

# Payload keys holding personal data, removed by anonymize()
PERSONAL_KEYS = {
    "email",
    "firstName",
    "lastName",
    "ip",
    "userEmail",
    "inviteeEmail",
    "targetUserEmail",
}


def _anonymize(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _anonymize(item)
            for key, item in value.items()
            if key not in PERSONAL_KEYS and not key.startswith("_")
        }
    if isinstance(value, list):
        return [_anonymize(item) for item in value]
    return value


class EventMessage(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    event_name: str
    message: Optional[str] = None
    ts: datetime = Field(default_factory=_utcnow)
    payload: dict[str, Any] = Field(default_factory=dict)

    def anonymize(self) -> dict[str, Any]:
        """Payload without personal keys (``email``, ``_email``, ``ip``...)."""
        return _anonymize(self.payload or {})
