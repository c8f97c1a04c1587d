"""Fan-out of event messages to log streaming destinations."""
from typing import Any, Optional

import structlog

from autoflow.eventbus.destinations import MessageEventBusDestination
from autoflow.eventbus.message import EventMessage

logger = structlog.get_logger()


class MessageEventBus:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.destinations: dict[str, MessageEventBusDestination] = {}

    def add_destination(self, destination: MessageEventBusDestination) -> MessageEventBusDestination:
        self.destinations[destination.id] = destination
        logger.info("event_destination_added", destination_id=destination.id, label=destination.label)
        return destination

    def remove_destination(self, destination_id: str) -> Optional[MessageEventBusDestination]:
        return self.destinations.pop(destination_id, None)

    def find_destination(self, destination_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Serialized destinations, optionally only the one with ``destination_id``."""
        return [
            destination.serialize()
            for destination in self.destinations.values()
            if destination_id is None or destination.id == destination_id
        ]

    async def send(self, msg: EventMessage) -> int:
        """Deliver ``msg`` to every subscribed destination.

        Returns:
            Number of destinations that accepted the message
        """
        if not self.enabled:
            return 0
        delivered = 0
        for destination in list(self.destinations.values()):
            if not destination.has_subscribed_to_event(msg):
                continue
            try:
                if await destination.receive(msg):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "event_destination_error",
                    destination_id=destination.id,
                    event_name=msg.event_name,
                    error=str(e),
                )
        return delivered

    async def send_event(self, event_name: str, payload: Optional[dict] = None, message: Optional[str] = None) -> int:
        return await self.send(EventMessage(event_name=event_name, payload=payload or {}, message=message))
