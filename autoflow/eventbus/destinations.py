"""Event bus destinations.

Destinations round-trip through plain dicts so they can be stored and
restored:

    data = destination.serialize()
    restored = deserialize_destination(data, audit_repository=repo)
"""
import fnmatch
import json
from typing import Any, Optional
from uuid import uuid4

import httpx
import structlog

from autoflow.audit.models import AuditLog
from autoflow.eventbus.message import EventMessage

logger = structlog.get_logger()

DATABASE_TYPE = "$$MessageEventBusDestinationDatabase"
WEBHOOK_TYPE = "$$MessageEventBusDestinationWebhook"


class MessageEventBusDestination:
    """Base class: subscription matching and option serialization."""

    type_name: str = ""
    default_label: str = "Destination"

    def __init__(
        self,
        id: Optional[str] = None,
        label: Optional[str] = None,
        enabled: bool = True,
        subscribed_events: Optional[list[str]] = None,
        anonymize_audit_messages: bool = False,
    ):
        self.id = id or str(uuid4())
        self.label = label or self.default_label
        self.enabled = enabled
        self.subscribed_events = list(subscribed_events or [])
        self.anonymize_audit_messages = anonymize_audit_messages

    def has_subscribed_to_event(self, msg: EventMessage) -> bool:
        if not self.enabled:
            return False
        return any(fnmatch.fnmatchcase(msg.event_name, pattern) for pattern in self.subscribed_events)

    def payload_for(self, msg: EventMessage) -> dict[str, Any]:
        if self.anonymize_audit_messages:
            return msg.anonymize()
        return dict(msg.payload or {})

    async def receive(self, msg: EventMessage) -> bool:
        raise NotImplementedError

    def serialize(self) -> dict[str, Any]:
        return {
            "__type": self.type_name,
            "id": self.id,
            "label": self.label,
            "enabled": self.enabled,
            "subscribedEvents": self.subscribed_events,
            "anonymizeAuditMessages": self.anonymize_audit_messages,
        }

    def to_string(self) -> str:
        return json.dumps(self.serialize())

    @staticmethod
    def _base_options(data: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": data.get("id"),
            "label": data.get("label"),
            "enabled": data.get("enabled", True),
            "subscribed_events": data.get("subscribedEvents"),
            "anonymize_audit_messages": data.get("anonymizeAuditMessages", False),
        }


def is_database_destination_options(data: Any) -> bool:
    return isinstance(data, dict) and data.get("__type") == DATABASE_TYPE


def is_webhook_destination_options(data: Any) -> bool:
    return isinstance(data, dict) and data.get("__type") == WEBHOOK_TYPE and bool(data.get("url"))


def _user_id(payload: dict[str, Any]) -> Optional[str]:
    user_id = payload.get("userId")
    if isinstance(user_id, str):
        return user_id
    user = payload.get("user")
    if isinstance(user, dict) and isinstance(user.get("id"), str):
        return user["id"]
    return None


class DatabaseDestination(MessageEventBusDestination):
    """Writes every subscribed message to the audit log."""

    type_name = DATABASE_TYPE
    default_label = "Local Database"

    def __init__(self, audit_repository, **options):
        super().__init__(**options)
        self.audit_repository = audit_repository

    async def receive(self, msg: EventMessage) -> bool:
        payload = msg.payload or {}
        entry = AuditLog(
            event_name=msg.event_name,
            message=msg.message or msg.event_name,
            user_id=_user_id(payload),
            timestamp=msg.ts,
            payload=self.payload_for(msg),
        )
        await self.audit_repository.save(entry)
        return True

    @classmethod
    def deserialize(cls, data: Any, audit_repository) -> Optional["DatabaseDestination"]:
        if not is_database_destination_options(data):
            return None
        return cls(audit_repository, **cls._base_options(data))


class WebhookDestination(MessageEventBusDestination):
    """POSTs every subscribed message to a URL."""

    type_name = WEBHOOK_TYPE
    default_label = "Webhook Endpoint"

    def __init__(
        self,
        url: str,
        method: str = "POST",
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        **options,
    ):
        super().__init__(**options)
        self.url = url
        self.method = method.upper()
        self.headers = dict(headers or {})
        self.transport = transport
        self.timeout = timeout

    async def receive(self, msg: EventMessage) -> bool:
        body = msg.model_dump(mode="json", by_alias=True)
        body["payload"] = self.payload_for(msg)
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.request(self.method, self.url, json=body, headers=self.headers)
            response.raise_for_status()
        return True

    def serialize(self) -> dict[str, Any]:
        data = super().serialize()
        data.update({"url": self.url, "method": self.method, "headers": self.headers})
        return data

    @classmethod
    def deserialize(cls, data: Any, transport=None) -> Optional["WebhookDestination"]:
        if not is_webhook_destination_options(data):
            return None
        return cls(
            url=data["url"],
            method=data.get("method", "POST"),
            headers=data.get("headers"),
            transport=transport,
            **cls._base_options(data),
        )


def deserialize_destination(data: Any, audit_repository=None) -> Optional[MessageEventBusDestination]:
    """Restore a destination of any known type, None for unknown data."""
    if is_database_destination_options(data):
        if audit_repository is None:
            return None
        return DatabaseDestination.deserialize(data, audit_repository)
    if is_webhook_destination_options(data):
        return WebhookDestination.deserialize(data)
    return None
