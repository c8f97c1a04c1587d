"""Running workflows as stored executions.

ExecutionService wraps the WorkflowExecutor with everything around a run:
the execution record, the concurrency limit, save settings, pruning, the
error workflow and log streaming messages.
"""
from __future__ import annotations

import asyncio
import copy
from typing import Any, Optional

import structlog

from autoflow.binary_data import BinaryDataService
from autoflow.config import Settings
from autoflow.db.repositories import ExecutionRepository, WorkflowRepository
from autoflow.engine import AdditionalData, EventService, WorkflowExecutor, execution_status
from autoflow.engine.hooks import NODE_POST_EXECUTE, NODE_PRE_EXECUTE, WORKFLOW_POST_EXECUTE, WORKFLOW_PRE_EXECUTE
from autoflow.errors import BadRequestError, NotFoundError, WorkflowOperationError, error_to_dict
from autoflow.eventbus import MessageEventBus
from autoflow.models import (
    Execution,
    ExecutionMode,
    ExecutionResult,
    ExecutionStatus,
    Item,
    RunExecutionData,
    Workflow,
)
from autoflow.models.workflow import _utcnow
from autoflow.nodes import NodeTypes
from autoflow.services.active_executions import ActiveExecutions
from autoflow.services.results import get_error_message, get_message_from_run_data, get_output_items

logger = structlog.get_logger()

ERROR_TRIGGER_TYPE = "errorTrigger"
EXECUTE_WORKFLOW_TRIGGER_TYPE = "executeWorkflowTrigger"

# Modes that never wait for a concurrency slot
UNLIMITED_MODES = {ExecutionMode.MANUAL, ExecutionMode.INTEGRATED, ExecutionMode.ERROR}


class ExecutionService:
    def __init__(
        self,
        settings: Settings,
        repository: ExecutionRepository,
        workflows: WorkflowRepository,
        node_types: NodeTypes,
        event_bus: Optional[MessageEventBus] = None,
        events: Optional[EventService] = None,
        binary_data: Optional[BinaryDataService] = None,
        credentials=None,
        active_executions: Optional[ActiveExecutions] = None,
        http_transport=None,
    ):
        self.settings = settings
        self.repository = repository
        self.workflows = workflows
        self.node_types = node_types
        self.event_bus = event_bus
        self.events = events or EventService()
        self.binary_data = binary_data
        self.credentials = credentials
        self.active = active_executions or ActiveExecutions()
        self.http_transport = http_transport

        limit = settings.executions_concurrency
        self._semaphore = asyncio.Semaphore(limit) if limit > 0 else None

        self.events.on(WORKFLOW_PRE_EXECUTE, self._on_workflow_pre_execute)
        self.events.on(WORKFLOW_POST_EXECUTE, self._on_workflow_post_execute)
        self.events.on(NODE_PRE_EXECUTE, self._on_node_pre_execute)
        self.events.on(NODE_POST_EXECUTE, self._on_node_post_execute)

    # =========================================================================
    # Running
    # =========================================================================

    async def run(
        self,
        workflow: Workflow,
        mode: ExecutionMode = ExecutionMode.MANUAL,
        start_node: Optional[str] = None,
        destination_node: Optional[str] = None,
        trigger_items: Optional[list[Item]] = None,
        pin_data: Optional[dict[str, list[Any]]] = None,
        retry_of: Optional[str] = None,
        wait: bool = True,
    ) -> Execution:
        """
        Start an execution of ``workflow``.

        Args:
            workflow: Workflow to run (snapshotted into the execution)
            mode: How the execution was started
            start_node: Node to start from, defaults to the trigger
            destination_node: Stop after this node
            trigger_items: Items handed to the start node
            pin_data: Pinned node outputs
            retry_of: Id of the execution this one retries
            wait: Await the end of the execution

        Returns:
            The finished execution, or the running one when ``wait`` is False
        """
        execution = await self.repository.create(
            workflow_id=workflow.id,
            mode=mode,
            status=ExecutionStatus.NEW,
            retry_of=retry_of,
            workflow_data=workflow,
        )
        logger.info("execution_created", execution_id=execution.id, workflow_id=workflow.id, mode=mode.value)

        async def runner(executor: WorkflowExecutor) -> RunExecutionData:
            return await executor.run(
                workflow,
                start_node=start_node,
                destination_node=destination_node,
                trigger_items=trigger_items,
                pin_data=pin_data,
            )

        return await self._start(execution, workflow, runner, wait)

    async def resume(self, execution_id: str, wait: bool = True) -> Execution:
        """Continue a waiting execution."""
        execution = await self.get(execution_id)
        if execution.status != ExecutionStatus.WAITING:
            raise BadRequestError(f"Execution '{execution_id}' is not waiting")
        if execution.workflow_data is None:
            raise WorkflowOperationError(f"Execution '{execution_id}' has no workflow data")
        workflow = execution.workflow_data
        run_data = execution.data

        async def runner(executor: WorkflowExecutor) -> RunExecutionData:
            return await executor.resume(workflow, run_data)

        return await self._start(execution, workflow, runner, wait)

    async def _start(self, execution: Execution, workflow: Workflow, runner, wait: bool) -> Execution:
        active = self.active.add(execution)
        task = asyncio.create_task(self._execute(execution, workflow, runner))
        self.active.attach_task(execution.id, task)
        # Let the task enter _execute so a stop request is always recorded
        await asyncio.sleep(0)
        if not wait:
            return execution
        # finalize drops the registry entry, so await the future held here
        return await asyncio.shield(active.result)

    async def _execute(self, execution: Execution, workflow: Workflow, runner) -> None:
        try:
            if self._semaphore is not None and execution.mode not in UNLIMITED_MODES:
                async with self._semaphore:
                    final = await self._execute_inner(execution, workflow, runner)
            else:
                final = await self._execute_inner(execution, workflow, runner)
        except asyncio.CancelledError:
            # Stopped before the executor started
            execution.status = ExecutionStatus.CANCELED
            execution.stopped_at = _utcnow()
            await self.repository.update(execution)
            self.active.finalize(execution.id, execution)
            return
        except Exception as e:
            logger.error("execution_crashed", execution_id=execution.id, error=str(e))
            execution.status = ExecutionStatus.CRASHED
            execution.finished = True
            execution.stopped_at = _utcnow()
            execution.data.result_data.error = error_to_dict(e)
            try:
                await self.repository.update(execution)
            except Exception as save_error:
                logger.error("execution_crash_not_saved", execution_id=execution.id, error=str(save_error))
                self.active.fail(execution.id, save_error)
                return
            self.active.finalize(execution.id, execution)
            return
        self.active.finalize(execution.id, final)

    async def _execute_inner(self, execution: Execution, workflow: Workflow, runner) -> Execution:
        execution.status = ExecutionStatus.RUNNING
        execution.started_at = execution.started_at or _utcnow()
        execution.wait_till = None
        await self.repository.update(execution)

        executor = WorkflowExecutor(
            self.node_types,
            additional_data=self._additional_data(workflow),
            mode=execution.mode,
            execution_id=execution.id,
        )
        static_data = copy.deepcopy(workflow.static_data)
        run_data = await runner(executor)

        status = execution_status(run_data)
        execution.data = run_data
        execution.status = status
        execution.wait_till = run_data.wait_till
        execution.finished = status == ExecutionStatus.SUCCESS
        if status != ExecutionStatus.WAITING:
            execution.stopped_at = _utcnow()

        await self._save(execution, workflow)
        if workflow.static_data != static_data:
            await self._save_static_data(execution, workflow)

        if status == ExecutionStatus.ERROR:
            await self._run_error_workflow(execution, workflow)
        if execution.retry_of and status == ExecutionStatus.SUCCESS:
            original = await self.repository.get(execution.retry_of)
            if original is not None:
                original.retry_success_id = execution.id
                await self.repository.update(original)
        return execution

    def _additional_data(self, workflow: Workflow) -> AdditionalData:
        return AdditionalData(
            settings=self.settings,
            events=self.events,
            binary_data=self.binary_data,
            get_credentials=self.credentials.resolve if self.credentials is not None else None,
            execute_workflow=self.execute_sub_workflow,
            http_transport=self.http_transport,
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    def _should_save(self, execution: Execution, workflow: Workflow) -> bool:
        settings = workflow.settings
        if execution.status == ExecutionStatus.WAITING:
            return True
        if execution.mode == ExecutionMode.MANUAL:
            save_manual = settings.save_manual_executions
            if save_manual is None:
                save_manual = self.settings.save_manual_executions
            if not save_manual:
                return False
        if execution.status == ExecutionStatus.SUCCESS:
            mode = settings.save_data_success_execution or self.settings.save_data_success_execution
        else:
            mode = settings.save_data_error_execution or self.settings.save_data_error_execution
        return mode != "none"

    async def _save(self, execution: Execution, workflow: Workflow) -> None:
        if self._should_save(execution, workflow):
            await self.repository.update(execution)
            await self.repository.prune(self.settings.executions_data_max_count)
        else:
            logger.debug("execution_not_saved", execution_id=execution.id, status=execution.status.value)
            await self.repository.delete(execution.id)

    async def _save_static_data(self, execution: Execution, workflow: Workflow) -> None:
        """Write changed static data back to the stored workflow.

        Manual runs never persist it, matching how test executions behave in
        the editor.
        """
        if execution.mode == ExecutionMode.MANUAL or not workflow.id:
            return
        stored = await self.workflows.get(workflow.id)
        if stored is None:
            return
        stored.static_data = copy.deepcopy(workflow.static_data)
        await self.workflows.save(stored)
        logger.debug("workflow_static_data_saved", workflow_id=workflow.id, execution_id=execution.id)

    # =========================================================================
    # Error workflow and sub-workflows
    # =========================================================================

    def _is_type(self, node, type_name: str) -> bool:
        return self.node_types.canonical_name(node.type) == self.node_types.canonical_name(type_name)

    async def _run_error_workflow(self, execution: Execution, workflow: Workflow) -> None:
        error_workflow_id = workflow.settings.error_workflow
        if not error_workflow_id or execution.mode == ExecutionMode.ERROR:
            return
        error_workflow = await self.workflows.get(error_workflow_id)
        if error_workflow is None:
            logger.warning("error_workflow_not_found", workflow_id=workflow.id, error_workflow=error_workflow_id)
            return
        trigger = next(
            (node for node in error_workflow.nodes if self._is_type(node, ERROR_TRIGGER_TYPE) and not node.disabled),
            None,
        )
        if trigger is None:
            logger.warning("error_workflow_without_trigger", error_workflow=error_workflow_id)
            return

        trigger_item = {
            "json": {
                "execution": {
                    "id": execution.id,
                    "error": execution.data.result_data.error,
                    "lastNodeExecuted": execution.data.result_data.last_node_executed,
                    "mode": execution.mode.value,
                    "retryOf": execution.retry_of,
                },
                "workflow": {"id": workflow.id, "name": workflow.name},
            }
        }
        logger.info("error_workflow_started", workflow_id=workflow.id, error_workflow=error_workflow_id)
        await self.run(
            error_workflow,
            mode=ExecutionMode.ERROR,
            start_node=trigger.name,
            trigger_items=[trigger_item],
            wait=False,
        )

    async def execute_sub_workflow(self, workflow_id: str, items: list[Item]) -> list[Item]:
        """Run a stored workflow with ``items`` and return its last node's output."""
        workflow = await self.workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow with ID '{workflow_id}' could not be found")
        trigger = next(
            (node for node in workflow.nodes if self._is_type(node, EXECUTE_WORKFLOW_TRIGGER_TYPE) and not node.disabled),
            None,
        )
        execution = await self.run(
            workflow,
            mode=ExecutionMode.INTEGRATED,
            start_node=trigger.name if trigger else None,
            trigger_items=items,
            pin_data={},
        )
        if execution.status == ExecutionStatus.ERROR:
            raise WorkflowOperationError(
                get_error_message(execution.data) or "Sub-workflow execution failed",
                description=f"Execution {execution.id} of workflow {workflow_id} failed",
            )
        return get_output_items(execution.data)

    # =========================================================================
    # Queries and control
    # =========================================================================

    async def get(self, execution_id: str) -> Execution:
        execution = await self.repository.get(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution with ID '{execution_id}' could not be found")
        return execution

    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> list[Execution]:
        return await self.repository.list(workflow_id=workflow_id, status=status, limit=limit)

    async def stop(self, execution_id: str) -> Execution:
        """Stop a running or waiting execution."""
        execution = await self.get(execution_id)
        if self.active.stop(execution_id):
            return await self.active.wait_for(execution_id)
        if execution.status in (ExecutionStatus.WAITING, ExecutionStatus.NEW, ExecutionStatus.RUNNING):
            execution.status = ExecutionStatus.CANCELED
            execution.wait_till = None
            execution.stopped_at = _utcnow()
            await self.repository.update(execution)
            logger.info("execution_stopped", execution_id=execution_id)
            return execution
        raise BadRequestError(f"Execution '{execution_id}' is not running and cannot be stopped")

    async def delete(self, execution_id: str) -> None:
        await self.get(execution_id)
        if self.active.has(execution_id):
            raise BadRequestError(f"Execution '{execution_id}' is still running")
        await self.repository.delete(execution_id)

    async def retry(self, execution_id: str, load_workflow: bool = False) -> Execution:
        """Run a failed execution again.

        Args:
            execution_id: Execution to retry
            load_workflow: Use the current saved workflow instead of the snapshot
        """
        execution = await self.get(execution_id)
        if execution.status not in (ExecutionStatus.ERROR, ExecutionStatus.CANCELED, ExecutionStatus.CRASHED):
            raise BadRequestError(f"Execution '{execution_id}' did not fail and cannot be retried")

        workflow = execution.workflow_data
        if load_workflow and execution.workflow_id:
            workflow = await self.workflows.get(execution.workflow_id) or workflow
        if workflow is None:
            raise WorkflowOperationError(f"Execution '{execution_id}' has no workflow data")

        start = execution.data.start_data
        trigger_items = None
        if start.start_nodes:
            first_runs = execution.data.result_data.run_data.get(start.start_nodes[0]) or []
            if first_runs:
                trigger_items = (first_runs[0].data.get("main") or [None])[0]
        return await self.run(
            workflow,
            mode=ExecutionMode.RETRY,
            start_node=start.start_nodes[0] if start.start_nodes else None,
            destination_node=start.destination_node,
            trigger_items=trigger_items,
            retry_of=execution.id,
        )

    @staticmethod
    def to_result(execution: Execution) -> ExecutionResult:
        status = execution.status
        return ExecutionResult(
            success=status in (ExecutionStatus.SUCCESS, ExecutionStatus.WAITING),
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=status,
            data=get_output_items(execution.data),
            message=get_message_from_run_data(execution.data),
            error=get_error_message(execution.data),
            wait_till=execution.wait_till,
        )

    # =========================================================================
    # Log streaming
    # =========================================================================

    async def _send(self, event_name: str, payload: dict) -> None:
        if self.event_bus is not None:
            await self.event_bus.send_event(event_name, payload)

    async def _on_workflow_pre_execute(self, workflow: Workflow, execution_id=None, mode=None, **_):
        await self._send("n8n.workflow.started", {
            "executionId": execution_id,
            "workflowId": workflow.id,
            "workflowName": workflow.name,
        })

    async def _on_workflow_post_execute(self, workflow: Workflow, run_data, status, execution_id=None, mode=None, **_):
        event_name = "n8n.workflow.success" if status == ExecutionStatus.SUCCESS else "n8n.workflow.failed"
        if status == ExecutionStatus.WAITING:
            return
        payload = {
            "executionId": execution_id,
            "workflowId": workflow.id,
            "workflowName": workflow.name,
            "lastNodeExecuted": run_data.result_data.last_node_executed,
        }
        if status != ExecutionStatus.SUCCESS:
            payload["errorMessage"] = get_error_message(run_data)
        await self._send(event_name, payload)

    async def _on_node_pre_execute(self, workflow: Workflow, node_name: str, execution_id=None, **_):
        node = workflow.get_node(node_name)
        await self._send("n8n.node.started", {
            "executionId": execution_id,
            "workflowId": workflow.id,
            "nodeName": node_name,
            "nodeType": node.type if node else None,
        })

    async def _on_node_post_execute(self, workflow: Workflow, node_name: str, task_data=None, execution_id=None, **_):
        node = workflow.get_node(node_name)
        await self._send("n8n.node.finished", {
            "executionId": execution_id,
            "workflowId": workflow.id,
            "nodeName": node_name,
            "nodeType": node.type if node else None,
            "executionStatus": task_data.execution_status if task_data else None,
        })
