"""Execution and run data models.

Items flowing between nodes stay plain dicts in n8n's wire format
(``{"json": {...}, "binary": {...}, "pairedItem": {...}}``). The models
below describe the bookkeeping around them.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from autoflow.models.workflow import CamelModel, Workflow


Item = dict[str, Any]
# One list of items per output (or input) index, None when nothing arrived
NodeData = dict[str, list[Optional[list[Item]]]]


class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""
    NEW = "new"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"
    WAITING = "waiting"
    CRASHED = "crashed"


class ExecutionMode(str, Enum):
    """How an execution was started."""
    MANUAL = "manual"
    TRIGGER = "trigger"
    WEBHOOK = "webhook"
    INTEGRATED = "integrated"
    ERROR = "error"
    RETRY = "retry"


class TaskSource(CamelModel):
    """Where a node run got its input from."""

    previous_node: str
    previous_node_output: int = 0
    previous_node_run: int = 0


class TaskData(CamelModel):
    """Result of a single run of a node."""

    start_time: int
    execution_time: int = 0
    execution_status: str = "success"
    data: NodeData = Field(default_factory=dict)
    source: list[Optional[TaskSource]] = Field(default_factory=list)
    error: Optional[dict[str, Any]] = None
    hints: list[str] = Field(default_factory=list)


class ExecuteData(CamelModel):
    """Entry of the node execution stack."""

    node: str
    data: NodeData
    source: Optional[list[Optional[TaskSource]]] = None


class ResultData(CamelModel):
    run_data: dict[str, list[TaskData]] = Field(default_factory=dict)
    pin_data: dict[str, list[Item]] = Field(default_factory=dict)
    last_node_executed: Optional[str] = None
    error: Optional[dict[str, Any]] = None


class ExecutionData(CamelModel):
    node_execution_stack: list[ExecuteData] = Field(default_factory=list)
    # node name -> run index -> {"main": [input0, input1, ...]}
    waiting_execution: dict[str, dict[int, NodeData]] = Field(default_factory=dict)
    waiting_execution_source: dict[str, dict[int, list[Optional[TaskSource]]]] = Field(
        default_factory=dict
    )


class StartData(CamelModel):
    destination_node: Optional[str] = None
    start_nodes: list[str] = Field(default_factory=list)


class RunExecutionData(CamelModel):
    """Full state of an execution, enough to resume it."""

    start_data: StartData = Field(default_factory=StartData)
    result_data: ResultData = Field(default_factory=ResultData)
    execution_data: ExecutionData = Field(default_factory=ExecutionData)
    wait_till: Optional[datetime] = None


class Execution(CamelModel):
    """A stored execution."""

    id: str
    workflow_id: Optional[str] = None
    mode: ExecutionMode = ExecutionMode.MANUAL
    status: ExecutionStatus = ExecutionStatus.NEW
    finished: bool = False
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    wait_till: Optional[datetime] = None
    retry_of: Optional[str] = None
    retry_success_id: Optional[str] = None
    data: RunExecutionData = Field(default_factory=RunExecutionData)
    workflow_data: Optional[Workflow] = None

    def summary(self) -> dict:
        """Execution without run data, for listings."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"data", "workflow_data"},
        )


class ExecutionResult(CamelModel):
    """Outcome of running a workflow, returned by the API."""

    success: bool
    execution_id: str
    workflow_id: Optional[str] = None
    status: ExecutionStatus
    data: Optional[list[Item]] = None
    message: Optional[str] = None
    error: Optional[str] = None
    wait_till: Optional[datetime] = None
