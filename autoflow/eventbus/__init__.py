"""Event bus and log streaming destinations."""
from autoflow.eventbus.bus import MessageEventBus
from autoflow.eventbus.destinations import (
    DatabaseDestination,
    MessageEventBusDestination,
    WebhookDestination,
    deserialize_destination,
    is_database_destination_options,
    is_webhook_destination_options,
)
from autoflow.eventbus.message import EventMessage

__all__ = [
    "DatabaseDestination",
    "EventMessage",
    "MessageEventBus",
    "MessageEventBusDestination",
    "WebhookDestination",
    "deserialize_destination",
    "is_database_destination_options",
    "is_webhook_destination_options",
]
