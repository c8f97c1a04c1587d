"""Workflow execution runtime.

Nodes run from a stack, front first. When a node finishes, the nodes
connected to its outputs are put at the front of the stack: children of
output 0 before children of output 1, and children of the same output in
canvas order (top to bottom, then left to right). The result is depth-first,
branch by branch execution.

Nodes with several main inputs (Merge) are parked in ``waiting_execution``
until every input has data. When the stack runs dry, the oldest parked node
runs with whatever inputs it has.
"""
import asyncio
import time
from datetime import datetime
from typing import Any, Optional

import structlog

from autoflow.engine import graph
from autoflow.engine.context import AdditionalData, ExecuteContext
from autoflow.engine.hooks import (
    EXECUTION_RESUMED,
    NODE_POST_EXECUTE,
    NODE_PRE_EXECUTE,
    WORKFLOW_POST_EXECUTE,
    WORKFLOW_PRE_EXECUTE,
)
from autoflow.errors import (
    ExecutionCancelledError,
    TimeoutExecutionCancelledError,
    WorkflowOperationError,
    error_to_dict,
)
from autoflow.models import (
    MAIN,
    ExecuteData,
    ExecutionMode,
    ExecutionStatus,
    Item,
    Node,
    OnError,
    RunExecutionData,
    TaskData,
    TaskSource,
    Workflow,
)
from autoflow.models.execution import ExecutionData, NodeData, ResultData, StartData
from autoflow.nodes import NodeTypes

logger = structlog.get_logger()


DEFAULT_MAX_TRIES = 3
MIN_TRIES = 2
MAX_TRIES = 5
DEFAULT_WAIT_BETWEEN_TRIES = 1000
MAX_WAIT_BETWEEN_TRIES = 5000

CANCELLED_ERROR_NAMES = {
    ExecutionCancelledError.__name__,
    TimeoutExecutionCancelledError.__name__,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def retry_settings(node: Node) -> tuple[int, int]:
    """Number of tries and milliseconds between them for a node."""
    if not node.retry_on_fail:
        return 1, 0
    tries = node.max_tries if node.max_tries is not None else DEFAULT_MAX_TRIES
    wait = node.wait_between_tries if node.wait_between_tries is not None else DEFAULT_WAIT_BETWEEN_TRIES
    return _clamp(tries, MIN_TRIES, MAX_TRIES), _clamp(wait, 0, MAX_WAIT_BETWEEN_TRIES)


def execution_status(data: RunExecutionData) -> ExecutionStatus:
    """Derive the final status of an execution from its run data."""
    if data.wait_till is not None:
        return ExecutionStatus.WAITING
    error = data.result_data.error
    if error:
        if error.get("name") in CANCELLED_ERROR_NAMES:
            return ExecutionStatus.CANCELED
        return ExecutionStatus.ERROR
    return ExecutionStatus.SUCCESS


def normalize_pin_data(entries: list[Any]) -> list[Item]:
    """Pinned data may hold raw JSON objects or full items."""
    items = []
    for index, entry in enumerate(entries):
        if isinstance(entry, dict) and isinstance(entry.get("json"), dict):
            item = dict(entry)
        else:
            item = {"json": entry if isinstance(entry, dict) else {"value": entry}}
        item.setdefault("pairedItem", {"item": index})
        items.append(item)
    return items


class WorkflowExecutor:
    """Runs a workflow and produces its RunExecutionData."""

    def __init__(
        self,
        node_types: NodeTypes,
        additional_data: Optional[AdditionalData] = None,
        mode: ExecutionMode = ExecutionMode.MANUAL,
        execution_id: Optional[str] = None,
    ):
        self.node_types = node_types
        self.additional_data = additional_data or AdditionalData()
        self.mode = mode
        self.execution_id = execution_id
        self.logger = logger.bind(execution_id=execution_id)

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run(
        self,
        workflow: Workflow,
        start_node: Optional[str] = None,
        destination_node: Optional[str] = None,
        trigger_items: Optional[list[Item]] = None,
        pin_data: Optional[dict[str, list[Any]]] = None,
    ) -> RunExecutionData:
        """Execute a workflow from its start node.

        Args:
            workflow: Workflow to run
            start_node: Name of the node to start from, defaults to the trigger
            destination_node: Stop once this node has run
            trigger_items: Items handed to the start node
            pin_data: Pinned outputs, defaults to the workflow's in manual mode

        Returns:
            Run data of the finished, failed or waiting execution
        """
        graph.ensure_unique_node_names(workflow)
        if destination_node and workflow.get_node(destination_node) is None:
            raise WorkflowOperationError(f"Destination node '{destination_node}' does not exist")

        start = graph.get_start_node(workflow, self.node_types, start_node)
        if start is None:
            raise WorkflowOperationError("Workflow has no node to start from")

        if pin_data is None:
            pin_data = workflow.pin_data if self.mode == ExecutionMode.MANUAL else {}

        run_data = RunExecutionData(
            start_data=StartData(destination_node=destination_node, start_nodes=[start.name]),
            result_data=ResultData(pin_data=pin_data),
            execution_data=ExecutionData(
                node_execution_stack=[
                    ExecuteData(node=start.name, data={MAIN: [trigger_items or [{"json": {}}]]})
                ],
            ),
        )

        self.logger.info("workflow_execution_started", workflow_id=workflow.id, start_node=start.name)
        await self._emit(WORKFLOW_PRE_EXECUTE, workflow=workflow)
        return await self._run_with_limits(workflow, run_data)

    async def resume(self, workflow: Workflow, run_data: RunExecutionData) -> RunExecutionData:
        """Continue a waiting execution from its saved stack."""
        run_data.wait_till = None
        self.logger.info("workflow_execution_resumed", workflow_id=workflow.id)
        await self._emit(EXECUTION_RESUMED, workflow=workflow, run_data=run_data)
        return await self._run_with_limits(workflow, run_data)

    # =========================================================================
    # Main loop
    # =========================================================================

    async def _run_with_limits(self, workflow: Workflow, run_data: RunExecutionData) -> RunExecutionData:
        timeout = self.additional_data.settings.get_execution_timeout(workflow.settings.execution_timeout)
        try:
            async with asyncio.timeout(timeout):
                await self._process(workflow, run_data)
        except TimeoutError:
            error = TimeoutExecutionCancelledError(self.execution_id or "")
            run_data.result_data.error = error_to_dict(error)
            self.logger.warning("workflow_execution_timed_out", workflow_id=workflow.id, timeout=timeout)
        except asyncio.CancelledError:
            error = ExecutionCancelledError(self.execution_id or "")
            run_data.result_data.error = error_to_dict(error)
            self.logger.info("workflow_execution_cancelled", workflow_id=workflow.id)

        status = execution_status(run_data)
        self.logger.info(
            "workflow_execution_finished",
            workflow_id=workflow.id,
            status=status.value,
            last_node=run_data.result_data.last_node_executed,
        )
        await self._emit(WORKFLOW_POST_EXECUTE, workflow=workflow, run_data=run_data, status=status)
        return run_data

    async def _process(self, workflow: Workflow, run_data: RunExecutionData) -> None:
        execution_data = run_data.execution_data
        result_data = run_data.result_data
        destination = run_data.start_data.destination_node

        while True:
            if not execution_data.node_execution_stack and not self._release_waiting_node(run_data):
                return

            execute_data = execution_data.node_execution_stack.pop(0)
            node = workflow.get_node(execute_data.node)
            if node is None:
                raise WorkflowOperationError(f"Node '{execute_data.node}' does not exist")

            run_index = len(result_data.run_data.get(node.name, []))
            task = TaskData(start_time=_now_ms(), source=execute_data.source or [])
            await self._emit(NODE_PRE_EXECUTE, workflow=workflow, node_name=node.name)

            outputs, wait_till, error = await self._execute_node(workflow, node, execute_data, run_data, run_index)

            task.execution_time = _now_ms() - task.start_time
            result_data.run_data.setdefault(node.name, []).append(task)
            result_data.last_node_executed = node.name

            if error is not None:
                task.execution_status = "error"
                task.error = error_to_dict(error)
                result_data.error = task.error
                self.logger.warning("node_execution_failed", node=node.name, error=str(error))
                await self._emit(NODE_POST_EXECUTE, workflow=workflow, node_name=node.name, task_data=task)
                return

            task.data = {MAIN: outputs}
            await self._emit(NODE_POST_EXECUTE, workflow=workflow, node_name=node.name, task_data=task)

            if node.name == destination:
                return

            self._schedule_children(workflow, run_data, node.name, outputs, run_index)

            if wait_till is not None:
                task.execution_status = "waiting"
                run_data.wait_till = wait_till
                self.logger.info("workflow_execution_waiting", node=node.name, wait_till=wait_till.isoformat())
                return

    # =========================================================================
    # Running a single node
    # =========================================================================

    async def _execute_node(
        self,
        workflow: Workflow,
        node: Node,
        execute_data: ExecuteData,
        run_data: RunExecutionData,
        run_index: int,
    ) -> tuple[list[Optional[list[Item]]], Optional[datetime], Optional[Exception]]:
        """Run a node, honoring disabled state, pinned data, retries and error modes.

        Returns:
            Outputs, the wait time the node requested, and the error when the
            execution has to stop
        """
        input_items = (execute_data.data.get(MAIN) or [None])[0] or []

        if node.disabled:
            return [input_items], None, None

        pinned = run_data.result_data.pin_data.get(node.name)
        if pinned:
            self.logger.debug("node_pin_data_used", node=node.name)
            return [normalize_pin_data(pinned)], None, None

        tries, wait_ms = retry_settings(node)
        last_error: Optional[Exception] = None
        for attempt in range(tries):
            try:
                outputs, wait_till = await self._run_node(workflow, node, execute_data, run_data, run_index)
                if node.error_mode == OnError.CONTINUE_ERROR_OUTPUT:
                    outputs = self._split_error_items(outputs)
                return outputs, wait_till, None
            except Exception as e:
                last_error = e
                self.logger.debug("node_try_failed", node=node.name, attempt=attempt + 1, error=str(e))
                if attempt < tries - 1 and wait_ms:
                    await asyncio.sleep(wait_ms / 1000)

        message = getattr(last_error, "message", None) or str(last_error)
        if node.error_mode == OnError.CONTINUE_REGULAR_OUTPUT:
            return [self._error_items(input_items, message)], None, None
        if node.error_mode == OnError.CONTINUE_ERROR_OUTPUT:
            node_type = self.node_types.get(node.type)
            regular = node_type.get_output_count(node) - 1 if node_type else 1
            return [[] for _ in range(regular)] + [self._error_items(input_items, message)], None, None
        return [], None, last_error

    async def _run_node(
        self,
        workflow: Workflow,
        node: Node,
        execute_data: ExecuteData,
        run_data: RunExecutionData,
        run_index: int,
    ) -> tuple[list[Optional[list[Item]]], Optional[datetime]]:
        node_type = self.node_types.get_or_raise(node.type)

        input_data: NodeData = execute_data.data
        if node.execute_once:
            input_data = {
                connection_type: [items[:1] if items else items for items in inputs]
                for connection_type, inputs in input_data.items()
            }

        ctx = ExecuteContext(
            workflow=workflow,
            node=node,
            run_execution_data=run_data,
            input_data=input_data,
            additional_data=self.additional_data,
            input_source=execute_data.source,
            run_index=run_index,
            mode=self.mode.value,
            execution_id=self.execution_id,
            node_type=node_type,
        )

        outputs = await node_type.execute(ctx) or []
        outputs = [list(items) if items else [] for items in outputs]

        if not any(outputs) and node.always_output_data:
            outputs = outputs or [[]]
            outputs[0] = [{"json": {}, "pairedItem": {"item": 0}}]

        self._assign_paired_items(outputs, ctx.get_input_data())
        return outputs, ctx.wait_till

    @staticmethod
    def _assign_paired_items(outputs: list[list[Item]], input_items: list[Item]) -> None:
        for items in outputs:
            for index, item in enumerate(items):
                if "pairedItem" in item:
                    continue
                if len(input_items) == 1:
                    item["pairedItem"] = {"item": 0}
                elif len(items) == len(input_items):
                    item["pairedItem"] = {"item": index}

    @staticmethod
    def _error_items(input_items: list[Item], message: str) -> list[Item]:
        count = max(len(input_items), 1)
        return [{"json": {"error": message}, "pairedItem": {"item": index}} for index in range(count)]

    @staticmethod
    def _split_error_items(outputs: list[list[Item]]) -> list[list[Item]]:
        """Move items a node flagged with ``error`` to the trailing error output."""
        regular = []
        errors = []
        for items in outputs:
            regular.append([item for item in items if "error" not in item])
            errors.extend(item for item in items if "error" in item)
        return regular + [errors]

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _schedule_children(
        self,
        workflow: Workflow,
        run_data: RunExecutionData,
        node_name: str,
        outputs: list[Optional[list[Item]]],
        run_index: int,
    ) -> None:
        scheduled: list[ExecuteData] = []
        for output_index, targets in enumerate(workflow.connections.get(node_name, {}).get(MAIN, [])):
            if output_index >= len(outputs) or not outputs[output_index]:
                continue
            ordered = sorted(
                targets or [],
                key=lambda connection: self._position_key(workflow, connection.node),
            )
            source = TaskSource(
                previous_node=node_name,
                previous_node_output=output_index,
                previous_node_run=run_index,
            )
            for connection in ordered:
                entry = self._add_node_input(
                    workflow, run_data, connection.node, connection.index, outputs[output_index], source
                )
                if entry is not None:
                    scheduled.append(entry)
        run_data.execution_data.node_execution_stack[0:0] = scheduled

    @staticmethod
    def _position_key(workflow: Workflow, node_name: str) -> tuple[float, float]:
        node = workflow.get_node(node_name)
        if node is None or len(node.position) < 2:
            return (0, 0)
        return (node.position[1], node.position[0])

    def _input_count(self, node: Node) -> int:
        node_type = self.node_types.get(node.type)
        if node_type is None:
            return 1
        return len([connection_type for connection_type in node_type.get_inputs(node) if connection_type == MAIN])

    def _add_node_input(
        self,
        workflow: Workflow,
        run_data: RunExecutionData,
        target_name: str,
        input_index: int,
        items: list[Item],
        source: TaskSource,
    ) -> Optional[ExecuteData]:
        """Hand items to one input of a node.

        Returns the stack entry when the node is ready to run, None while it
        still waits for other inputs.
        """
        target = workflow.get_node(target_name)
        if target is None:
            return None

        input_count = self._input_count(target)
        if input_count <= 1:
            return ExecuteData(node=target_name, data={MAIN: [items]}, source=[source])

        waiting = run_data.execution_data.waiting_execution.setdefault(target_name, {})
        sources = run_data.execution_data.waiting_execution_source.setdefault(target_name, {})

        slot_index = None
        for index in sorted(waiting):
            if waiting[index][MAIN][input_index] is None:
                slot_index = index
                break
        if slot_index is None:
            slot_index = max(waiting) + 1 if waiting else 0
            waiting[slot_index] = {MAIN: [None] * input_count}
            sources[slot_index] = [None] * input_count

        waiting[slot_index][MAIN][input_index] = items
        sources[slot_index][input_index] = source

        if all(inputs is not None for inputs in waiting[slot_index][MAIN]):
            return self._pop_waiting(run_data, target_name, slot_index)
        return None

    def _pop_waiting(self, run_data: RunExecutionData, node_name: str, slot_index: int) -> ExecuteData:
        execution_data = run_data.execution_data
        data = execution_data.waiting_execution[node_name].pop(slot_index)
        source = execution_data.waiting_execution_source.get(node_name, {}).pop(slot_index, None)
        if not execution_data.waiting_execution[node_name]:
            del execution_data.waiting_execution[node_name]
            execution_data.waiting_execution_source.pop(node_name, None)
        return ExecuteData(node=node_name, data=data, source=source)

    def _release_waiting_node(self, run_data: RunExecutionData) -> bool:
        """Push the oldest partially filled node onto the empty stack."""
        waiting = run_data.execution_data.waiting_execution
        if not waiting:
            return False
        node_name = next(iter(waiting))
        slot_index = min(waiting[node_name])
        entry = self._pop_waiting(run_data, node_name, slot_index)
        self.logger.debug("node_released_with_partial_input", node=node_name)
        run_data.execution_data.node_execution_stack.append(entry)
        return True

    async def _emit(self, event: str, **payload: Any) -> None:
        await self.additional_data.events.emit(
            event,
            execution_id=self.execution_id,
            mode=self.mode,
            **payload,
        )
