"""Stored workflows: CRUD, search, activation and editing."""
from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

import structlog

from autoflow.db.repositories import CredentialRepository, WorkflowRepository
from autoflow.engine.graph import get_start_node, get_trigger_nodes
from autoflow.errors import NotFoundError, WorkflowActivationError
from autoflow.eventbus import MessageEventBus
from autoflow.models import Workflow, WorkflowCreate, WorkflowUpdate
from autoflow.models.workflow import _utcnow
from autoflow.nodes import NodeTypes
from autoflow.services.webhooks import WebhookRegistry
from autoflow.workflow.operations import apply_operations
from autoflow.workflow.setup_state import WorkflowSetupState, get_setup_state, set_node_credential, unset_node_credential
from autoflow.workflow.validation import ValidationResult, validate_workflow

logger = structlog.get_logger()


class WorkflowService:
    def __init__(
        self,
        repository: WorkflowRepository,
        node_types: NodeTypes,
        webhooks: WebhookRegistry,
        event_bus: Optional[MessageEventBus] = None,
        credentials: Optional[CredentialRepository] = None,
    ):
        self.repository = repository
        self.node_types = node_types
        self.webhooks = webhooks
        self.event_bus = event_bus
        self.credentials = credentials

    async def _audit(self, event_name: str, workflow: Workflow) -> None:
        if self.event_bus is not None:
            await self.event_bus.send_event(
                event_name,
                {"workflowId": workflow.id, "workflowName": workflow.name, "versionId": workflow.version_id},
            )

    async def init(self) -> int:
        """Register the webhooks of every stored active workflow."""
        count = 0
        for workflow in await self.repository.list(active=True):
            try:
                self.webhooks.register(workflow, self.node_types)
                count += 1
            except Exception as e:
                logger.error("workflow_reactivation_failed", workflow_id=workflow.id, error=str(e))
        return count

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, body: WorkflowCreate) -> Workflow:
        workflow = Workflow(**body.model_dump())
        workflow = await self.repository.save(workflow)
        logger.info("workflow_created", workflow_id=workflow.id, name=workflow.name)
        await self._audit("n8n.audit.workflow.created", workflow)
        return workflow

    async def get(self, workflow_id: str) -> Workflow:
        workflow = await self.repository.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow with ID '{workflow_id}' could not be found")
        return workflow

    async def list(self, active: Optional[bool] = None) -> list[Workflow]:
        return await self.repository.list(active=active)

    async def _store_update(self, current: Workflow, changes: dict[str, Any]) -> Workflow:
        updated = current.model_copy(update={
            **changes,
            "version_id": str(uuid4()),
            "updated_at": _utcnow(),
        })
        if updated.active:
            # Fails with ConflictError before anything is stored
            self.webhooks.register(updated, self.node_types)
        updated = await self.repository.save(updated)
        logger.info("workflow_updated", workflow_id=updated.id, version_id=updated.version_id)
        await self._audit("n8n.audit.workflow.updated", updated)
        return updated

    async def update(self, workflow_id: str, body: WorkflowUpdate) -> Workflow:
        current = await self.get(workflow_id)
        changes = {
            key: getattr(body, key)
            for key in body.model_fields_set
            if getattr(body, key) is not None
        }
        return await self._store_update(current, changes)

    async def delete(self, workflow_id: str) -> None:
        workflow = await self.get(workflow_id)
        self.webhooks.unregister(workflow_id)
        await self.repository.delete(workflow_id)
        logger.info("workflow_deleted", workflow_id=workflow_id)
        await self._audit("n8n.audit.workflow.deleted", workflow)

    # =========================================================================
    # Search
    # =========================================================================

    async def search(self, query: Optional[str] = None, active: Optional[bool] = None, limit: int = 50) -> dict:
        """Case-insensitive search on name and description."""
        needle = (query or "").strip().lower()
        matches = []
        for workflow in await self.repository.list(active=active):
            haystack = f"{workflow.name}\n{workflow.description or ''}".lower()
            if needle and needle not in haystack:
                continue
            triggers = get_trigger_nodes(workflow, self.node_types)
            matches.append({
                "id": workflow.id,
                "name": workflow.name,
                "description": workflow.description,
                "active": workflow.active,
                "createdAt": workflow.created_at.isoformat(),
                "updatedAt": workflow.updated_at.isoformat(),
                "triggerCount": len(triggers),
                "nodes": [{"name": node.name, "type": node.type} for node in workflow.nodes],
                "canExecute": get_start_node(workflow, self.node_types) is not None,
            })
        return {"data": matches[:limit], "count": len(matches)}

    # =========================================================================
    # Activation
    # =========================================================================

    async def activate(self, workflow_id: str) -> Workflow:
        workflow = await self.get(workflow_id)
        result = validate_workflow(workflow, self.node_types)
        if not result.valid:
            raise WorkflowActivationError(
                "Workflow has issues and cannot be activated",
                description="; ".join(issue.message for issue in result.errors),
            )
        activatable = [
            node
            for node in get_trigger_nodes(workflow, self.node_types)
            if self.node_types.get(node.type).activatable
        ]
        if not activatable:
            raise WorkflowActivationError(
                "Workflow has no node to start the workflow",
                description="At least one trigger that listens for events (e.g. a Webhook) is required",
            )

        workflow.active = True
        self.webhooks.register(workflow, self.node_types)
        workflow = await self.repository.save(workflow)
        logger.info("workflow_activated", workflow_id=workflow_id)
        await self._audit("n8n.audit.workflow.activated", workflow)
        return workflow

    async def deactivate(self, workflow_id: str) -> Workflow:
        workflow = await self.get(workflow_id)
        self.webhooks.unregister(workflow_id)
        workflow.active = False
        workflow = await self.repository.save(workflow)
        logger.info("workflow_deactivated", workflow_id=workflow_id)
        await self._audit("n8n.audit.workflow.deactivated", workflow)
        return workflow

    # =========================================================================
    # Editing and inspection
    # =========================================================================

    async def apply_operations(self, workflow_id: str, operations: list[dict[str, Any]]) -> Workflow:
        current = await self.get(workflow_id)
        edited = apply_operations(current, operations, self.node_types)
        return await self._store_update(current, {
            "nodes": edited.nodes,
            "connections": edited.connections,
            "pin_data": edited.pin_data,
        })

    async def validate(self, workflow_id: str) -> ValidationResult:
        return validate_workflow(await self.get(workflow_id), self.node_types)

    async def setup_state(self, workflow_id: str) -> WorkflowSetupState:
        workflow = await self.get(workflow_id)
        lookup = self.credentials.get_sync if self.credentials is not None else None
        return get_setup_state(workflow, self.node_types, lookup)

    async def set_node_credential(self, workflow_id: str, node_name: str, credential_id: str) -> Workflow:
        """Select a stored credential for one node of the workflow."""
        workflow = await self.get(workflow_id)
        credential = await self.credentials.get(credential_id) if self.credentials is not None else None
        if credential is None:
            raise NotFoundError(f"Credential with ID '{credential_id}' could not be found")
        edited = set_node_credential(workflow, node_name, credential)
        return await self._store_update(workflow, {"nodes": edited.nodes})

    async def unset_node_credential(self, workflow_id: str, node_name: str, credential_type: str) -> Workflow:
        workflow = await self.get(workflow_id)
        edited = unset_node_credential(workflow, node_name, credential_type)
        return await self._store_update(workflow, {"nodes": edited.nodes})
