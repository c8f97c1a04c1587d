"""Lifecycle events emitted while a workflow executes.

Handlers subscribe by event name and receive keyword arguments:

    events = EventService()
    events.on("node-post-execute", record_node)
    await events.emit("node-post-execute", node_name="Set", task_data=task)

Handler failures are logged and never interrupt an execution.
"""
import inspect
from collections import defaultdict
from typing import Any, Callable

import structlog

logger = structlog.get_logger()


WORKFLOW_PRE_EXECUTE = "workflow-pre-execute"
WORKFLOW_POST_EXECUTE = "workflow-post-execute"
NODE_PRE_EXECUTE = "node-pre-execute"
NODE_POST_EXECUTE = "node-post-execute"
EXECUTION_RESUMED = "execution-resumed"

LIFECYCLE_EVENTS = (
    WORKFLOW_PRE_EXECUTE,
    WORKFLOW_POST_EXECUTE,
    NODE_PRE_EXECUTE,
    NODE_POST_EXECUTE,
    EXECUTION_RESUMED,
)


class EventService:
    """Minimal async event emitter."""

    def __init__(self):
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    async def emit(self, event: str, **payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(**payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "event_handler_error",
                    hook=event,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )
