"""Pydantic models for workflows, executions and events."""
from autoflow.models.workflow import (
    MAIN,
    CamelModel,
    Connection,
    Node,
    NodeCredential,
    OnError,
    Workflow,
    WorkflowCreate,
    WorkflowSettings,
    WorkflowUpdate,
)
from autoflow.models.execution import (
    ExecuteData,
    Execution,
    ExecutionMode,
    ExecutionResult,
    ExecutionStatus,
    Item,
    RunExecutionData,
    TaskData,
    TaskSource,
)

__all__ = [
    "MAIN",
    "CamelModel",
    "Connection",
    "Node",
    "NodeCredential",
    "OnError",
    "Workflow",
    "WorkflowCreate",
    "WorkflowSettings",
    "WorkflowUpdate",
    "ExecuteData",
    "Execution",
    "ExecutionMode",
    "ExecutionResult",
    "ExecutionStatus",
    "Item",
    "RunExecutionData",
    "TaskData",
    "TaskSource",
]
