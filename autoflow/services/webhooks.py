"""Webhook registration and request handling.

Active workflows register one entry per enabled webhook node. Paths may
contain ``:param`` segments; static paths win over dynamic ones when both
match a request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from autoflow.errors import ConflictError, NotFoundError
from autoflow.models import ExecutionMode, ExecutionStatus, Workflow
from autoflow.nodes import NodeTypes
from autoflow.services.executions import ExecutionService
from autoflow.services.results import get_output_items

logger = structlog.get_logger()


def normalize_path(path: str) -> str:
    return path.strip().strip("/")


@dataclass
class WebhookEntry:
    workflow_id: str
    node_name: str
    method: str
    path: str
    segments: list[str] = field(default_factory=list)

    @property
    def is_dynamic(self) -> bool:
        return any(segment.startswith(":") for segment in self.segments)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for conflicts: parameter names do not matter."""
        shape = "/".join(":" if segment.startswith(":") else segment for segment in self.segments)
        return self.method, shape

    def match(self, segments: list[str]) -> Optional[dict[str, str]]:
        if len(segments) != len(self.segments):
            return None
        params = {}
        for expected, actual in zip(self.segments, segments):
            if expected.startswith(":"):
                params[expected[1:]] = actual
            elif expected != actual:
                return None
        return params


@dataclass
class WebhookResponse:
    status_code: int = 200
    body: Any = None


class WebhookRegistry:
    def __init__(self):
        self._entries: dict[tuple[str, str], WebhookEntry] = {}

    @staticmethod
    def entries_for(workflow: Workflow, node_types: NodeTypes) -> list[WebhookEntry]:
        entries = []
        for node in workflow.nodes:
            if node.disabled:
                continue
            node_type = node_types.get(node.type)
            if node_type is None or not node_type.webhook_methods:
                continue
            path = normalize_path(str(node.parameters.get("path") or node.id))
            method = str(node.parameters.get("httpMethod") or node_type.get_parameter_default("httpMethod")).upper()
            entries.append(WebhookEntry(
                workflow_id=workflow.id,
                node_name=node.name,
                method=method,
                path=path,
                segments=path.split("/") if path else [],
            ))
        return entries

    def register(self, workflow: Workflow, node_types: NodeTypes) -> list[WebhookEntry]:
        """Register every webhook of ``workflow``, all or nothing."""
        entries = self.entries_for(workflow, node_types)
        seen = set()
        for entry in entries:
            existing = self._entries.get(entry.key)
            if entry.key in seen or (existing is not None and existing.workflow_id != workflow.id):
                raise ConflictError(
                    f"There is a conflict with one of the webhooks: {entry.method} /{entry.path} is already in use"
                )
            seen.add(entry.key)
        self.unregister(workflow.id)
        for entry in entries:
            self._entries[entry.key] = entry
            logger.info("webhook_registered", workflow_id=workflow.id, method=entry.method, path=entry.path)
        return entries

    def unregister(self, workflow_id: str) -> int:
        keys = [key for key, entry in self._entries.items() if entry.workflow_id == workflow_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def find(self, method: str, path: str) -> tuple[WebhookEntry, dict[str, str]]:
        method = method.upper()
        path = normalize_path(path)
        static = self._entries.get((method, path))
        if static is not None and not static.is_dynamic:
            return static, {}
        segments = path.split("/") if path else []
        for entry in self._entries.values():
            if entry.method != method or not entry.is_dynamic:
                continue
            params = entry.match(segments)
            if params is not None:
                return entry, params
        raise NotFoundError(f'The requested webhook "{method} {path}" is not registered.')

    def list(self) -> list[WebhookEntry]:
        return list(self._entries.values())


class WebhookService:
    def __init__(self, registry: WebhookRegistry, executions: ExecutionService):
        self.registry = registry
        self.executions = executions

    async def handle(
        self,
        method: str,
        path: str,
        headers: Optional[dict[str, str]] = None,
        query: Optional[dict[str, Any]] = None,
        body: Any = None,
    ) -> WebhookResponse:
        """Start the workflow registered for the request and build the response."""
        entry, params = self.registry.find(method, path)
        workflow = await self.executions.workflows.get(entry.workflow_id)
        if workflow is None or not workflow.active:
            raise NotFoundError(f'The requested webhook "{method.upper()} {normalize_path(path)}" is not registered.')
        node = workflow.get_node(entry.node_name)
        parameters = node.parameters if node else {}
        response_mode = parameters.get("responseMode", "onReceived")
        response_code = int(parameters.get("responseCode", 200))

        trigger_item = {
            "json": {
                "headers": dict(headers or {}),
                "params": params,
                "query": dict(query or {}),
                "body": body if body is not None else {},
            }
        }
        logger.info("webhook_received", workflow_id=workflow.id, method=entry.method, path=entry.path)

        wait = response_mode == "lastNode"
        execution = await self.executions.run(
            workflow,
            mode=ExecutionMode.WEBHOOK,
            start_node=entry.node_name,
            trigger_items=[trigger_item],
            wait=wait,
        )
        if not wait:
            return WebhookResponse(response_code, {"message": "Workflow was started"})

        if execution.status == ExecutionStatus.ERROR:
            return WebhookResponse(500, {"message": "Error in workflow"})

        response_data = parameters.get("responseData", "firstEntryJson")
        items = get_output_items(execution.data)
        if response_data == "noData":
            return WebhookResponse(response_code, None)
        if response_data == "allEntries":
            return WebhookResponse(response_code, [item.get("json", {}) for item in items])
        return WebhookResponse(response_code, items[0].get("json", {}) if items else {})
