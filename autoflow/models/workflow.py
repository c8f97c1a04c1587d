"""Workflow models in n8n's JSON shape.

A workflow is a list of nodes plus a connections map keyed by source node
name:

    {
        "Source": {
            "main": [
                [{"node": "Target", "type": "main", "index": 0}],  # output 0
                [],                                                 # output 1
            ]
        }
    }

Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


MAIN = "main"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting both spellings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OnError(str, Enum):
    """What the engine does when a node fails."""
    STOP_WORKFLOW = "stopWorkflow"
    CONTINUE_REGULAR_OUTPUT = "continueRegularOutput"
    CONTINUE_ERROR_OUTPUT = "continueErrorOutput"


class NodeCredential(CamelModel):
    """Reference from a node to a stored credential."""

    id: Optional[str] = None
    name: str = ""


class Node(CamelModel):
    """A single node placed in a workflow."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    type_version: float = 1
    position: list[float] = Field(default_factory=lambda: [0, 0])
    parameters: dict[str, Any] = Field(default_factory=dict)
    credentials: dict[str, NodeCredential] = Field(default_factory=dict)
    disabled: bool = False
    notes: Optional[str] = None

    # Error handling
    on_error: Optional[OnError] = None
    continue_on_fail: bool = False
    retry_on_fail: bool = False
    max_tries: Optional[int] = None
    wait_between_tries: Optional[int] = None

    always_output_data: bool = False
    execute_once: bool = False

    @property
    def error_mode(self) -> OnError:
        """Effective error mode, honoring the legacy continueOnFail flag."""
        if self.on_error is not None:
            return self.on_error
        if self.continue_on_fail:
            return OnError.CONTINUE_REGULAR_OUTPUT
        return OnError.STOP_WORKFLOW


class Connection(CamelModel):
    """Target end of a connection."""

    node: str
    type: str = MAIN
    index: int = 0


# source name -> connection type -> output index -> targets
Connections = dict[str, dict[str, list[list[Connection]]]]


class WorkflowSettings(CamelModel):
    """Per-workflow execution settings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    execution_order: str = "v1"
    execution_timeout: Optional[int] = None
    error_workflow: Optional[str] = None
    save_data_success_execution: Optional[str] = None
    save_data_error_execution: Optional[str] = None
    save_manual_executions: Optional[bool] = None
    timezone: Optional[str] = None


class Workflow(CamelModel):
    """A workflow definition."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1, description="Workflow name")
    description: Optional[str] = None
    active: bool = False
    nodes: list[Node] = Field(default_factory=list)
    connections: Connections = Field(default_factory=dict)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    pin_data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    static_data: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    version_id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_node(self, name: str) -> Optional[Node]:
        """Get a node by its name."""
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def get_node_by_id(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def node_names(self) -> list[str]:
        return [node.name for node in self.nodes]


class WorkflowCreate(CamelModel):
    """Request body for creating a workflow."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    nodes: list[Node] = Field(default_factory=list)
    connections: Connections = Field(default_factory=dict)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    pin_data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)


class WorkflowUpdate(CamelModel):
    """Request body for updating a workflow. Omitted fields are unchanged."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    nodes: Optional[list[Node]] = None
    connections: Optional[Connections] = None
    settings: Optional[WorkflowSettings] = None
    pin_data: Optional[dict[str, list[dict[str, Any]]]] = None
    tags: Optional[list[str]] = None
