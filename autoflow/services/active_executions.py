"""Registry of executions currently running in this process."""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from autoflow.errors import NotFoundError
from autoflow.models import Execution, ExecutionMode
from autoflow.models.workflow import _utcnow

logger = structlog.get_logger()


@dataclass
class ActiveExecution:
    execution_id: str
    workflow_id: Optional[str]
    mode: ExecutionMode
    task: Optional[asyncio.Task] = None
    started_at: datetime = field(default_factory=_utcnow)
    result: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class ActiveExecutions:
    def __init__(self):
        self._executions: dict[str, ActiveExecution] = {}

    def add(self, execution: Execution) -> ActiveExecution:
        active = ActiveExecution(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            mode=execution.mode,
        )
        self._executions[execution.id] = active
        return active

    def attach_task(self, execution_id: str, task: asyncio.Task) -> None:
        self._executions[execution_id].task = task

    def has(self, execution_id: str) -> bool:
        return execution_id in self._executions

    def finalize(self, execution_id: str, execution: Execution) -> None:
        """Resolve waiters with the final execution and forget it."""
        active = self._executions.pop(execution_id, None)
        if active is not None and not active.result.done():
            active.result.set_result(execution)

    def fail(self, execution_id: str, error: BaseException) -> None:
        active = self._executions.pop(execution_id, None)
        if active is not None and not active.result.done():
            active.result.set_exception(error)

    async def wait_for(self, execution_id: str) -> Execution:
        active = self._executions.get(execution_id)
        if active is None:
            raise NotFoundError(f"Execution '{execution_id}' is not running")
        return await asyncio.shield(active.result)

    def stop(self, execution_id: str) -> bool:
        """Cancel a running execution. Returns False when it is not running."""
        active = self._executions.get(execution_id)
        if active is None or active.task is None or active.task.done():
            return False
        logger.info("execution_stop_requested", execution_id=execution_id)
        active.task.cancel()
        return True

    def get_active(self) -> list[dict]:
        return [
            {
                "id": active.execution_id,
                "workflowId": active.workflow_id,
                "mode": active.mode.value,
                "startedAt": active.started_at.isoformat(),
            }
            for active in self._executions.values()
        ]
