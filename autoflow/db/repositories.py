"""In-memory repositories for workflows, executions and credentials.

Stored models are copied on the way in and out so callers never share
state with the store.
"""
from __future__ import annotations

import itertools
from datetime import datetime
from typing import Optional
from uuid import uuid4

import structlog

from autoflow.models import Execution, ExecutionStatus, Workflow
from autoflow.models.credential import Credential
from autoflow.models.workflow import _utcnow

logger = structlog.get_logger()

ACTIVE_STATUSES = {ExecutionStatus.NEW, ExecutionStatus.RUNNING, ExecutionStatus.WAITING}


def generate_workflow_id() -> str:
    return uuid4().hex[:16]


class WorkflowRepository:
    def __init__(self):
        self._workflows: dict[str, Workflow] = {}

    async def save(self, workflow: Workflow) -> Workflow:
        if not workflow.id:
            workflow = workflow.model_copy(update={"id": generate_workflow_id()})
        self._workflows[workflow.id] = workflow.model_copy(deep=True)
        return workflow.model_copy(deep=True)

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def list(self, active: Optional[bool] = None) -> list[Workflow]:
        workflows = [
            workflow.model_copy(deep=True)
            for workflow in self._workflows.values()
            if active is None or workflow.active == active
        ]
        return sorted(workflows, key=lambda w: w.updated_at, reverse=True)

    async def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None


class ExecutionRepository:
    """Executions keyed by monotonically increasing integer ids."""

    def __init__(self):
        self._executions: dict[str, Execution] = {}
        self._ids = itertools.count(1)

    async def create(self, **fields) -> Execution:
        execution = Execution(id=str(next(self._ids)), **fields)
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def update(self, execution: Execution) -> Execution:
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def get(self, execution_id: str) -> Optional[Execution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> list[Execution]:
        """Executions matching the filters, newest first."""
        matches = [
            execution
            for execution in self._executions.values()
            if (workflow_id is None or execution.workflow_id == workflow_id)
            and (status is None or execution.status == status)
        ]
        matches.sort(key=lambda e: int(e.id), reverse=True)
        return [execution.model_copy(deep=True) for execution in matches[:limit]]

    async def get_waiting(self, until: Optional[datetime] = None) -> list[Execution]:
        """Waiting executions whose wait ends at or before ``until`` (default now)."""
        until = until or _utcnow()
        return [
            execution.model_copy(deep=True)
            for execution in self._executions.values()
            if execution.status == ExecutionStatus.WAITING
            and execution.wait_till is not None
            and execution.wait_till <= until
        ]

    async def delete(self, execution_id: str) -> bool:
        return self._executions.pop(execution_id, None) is not None

    async def prune(self, max_count: int) -> int:
        """Delete the oldest ended executions beyond ``max_count``.

        Executions that are new, running or waiting are never pruned.
        """
        ended = sorted(
            (e for e in self._executions.values() if e.status not in ACTIVE_STATUSES),
            key=lambda e: int(e.id),
        )
        excess = len(ended) - max_count
        if excess <= 0:
            return 0
        for execution in ended[:excess]:
            del self._executions[execution.id]
        logger.info("executions_pruned", count=excess)
        return excess


class CredentialRepository:
    def __init__(self):
        self._credentials: dict[str, Credential] = {}

    async def save(self, credential: Credential) -> Credential:
        self._credentials[credential.id] = credential.model_copy(deep=True)
        return credential.model_copy(deep=True)

    async def get(self, credential_id: str) -> Optional[Credential]:
        credential = self._credentials.get(credential_id)
        return credential.model_copy(deep=True) if credential else None

    def get_sync(self, credential_id: str) -> Optional[Credential]:
        """Lookup for synchronous callers such as the setup state builder."""
        credential = self._credentials.get(credential_id)
        return credential.model_copy(deep=True) if credential else None

    async def list(self, credential_type: Optional[str] = None) -> list[Credential]:
        return [
            credential.model_copy(deep=True)
            for credential in self._credentials.values()
            if credential_type is None or credential.type == credential_type
        ]

    async def delete(self, credential_id: str) -> bool:
        return self._credentials.pop(credential_id, None) is not None
