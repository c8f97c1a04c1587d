"""Workflow execution runtime."""
from autoflow.engine.context import AdditionalData, ExecuteContext
from autoflow.engine.executor import WorkflowExecutor, execution_status
from autoflow.engine.hooks import EventService

__all__ = [
    "AdditionalData",
    "EventService",
    "ExecuteContext",
    "WorkflowExecutor",
    "execution_status",
]
