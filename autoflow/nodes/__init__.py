"""Node type registry."""
from functools import lru_cache
from typing import Iterable, Optional

from autoflow.errors import WorkflowOperationError
from autoflow.nodes.base import NODE_TYPE_ALIASES, NODE_TYPE_PREFIX, NodeType, NodeTypeDescription


class NodeTypes:
    """Node types keyed by their full type name (``n8n-nodes-base.set``)."""

    def __init__(self, node_types: Optional[Iterable[NodeType]] = None):
        self._types: dict[str, NodeType] = {}
        for node_type in node_types or []:
            self.register(node_type)

    def register(self, node_type: NodeType) -> None:
        self._types[node_type.description.type_name] = node_type

    @staticmethod
    def canonical_name(type_name: str) -> str:
        """Map aliases and bare names onto the registry key."""
        for alias in NODE_TYPE_ALIASES:
            if type_name.startswith(alias):
                return NODE_TYPE_PREFIX + type_name[len(alias):]
        if "." not in type_name:
            return NODE_TYPE_PREFIX + type_name
        return type_name

    def get(self, type_name: str) -> Optional[NodeType]:
        return self._types.get(self.canonical_name(type_name))

    def get_or_raise(self, type_name: str) -> NodeType:
        node_type = self.get(type_name)
        if node_type is None:
            raise WorkflowOperationError(
                f"Unrecognized node type: {type_name}",
                description="The node type is not installed on this instance",
            )
        return node_type

    def __contains__(self, type_name: str) -> bool:
        return self.get(type_name) is not None

    def descriptions(self) -> list[NodeTypeDescription]:
        return [node_type.description for node_type in self._types.values()]


def default_node_types() -> list[NodeType]:
    """Instances of every core node."""
    from autoflow.nodes.execute_workflow import ExecuteWorkflow
    from autoflow.nodes.file_data import FileData
    from autoflow.nodes.flow import If, Filter, Switch
    from autoflow.nodes.http_request import HttpRequest
    from autoflow.nodes.merge import Merge
    from autoflow.nodes.set import Set
    from autoflow.nodes.simple import NoOp, StopAndError
    from autoflow.nodes.triggers import ErrorTrigger, ExecuteWorkflowTrigger, ManualTrigger, Webhook
    from autoflow.nodes.wait import Wait

    return [
        ManualTrigger(),
        Webhook(),
        ExecuteWorkflowTrigger(),
        ErrorTrigger(),
        Set(),
        If(),
        Filter(),
        Switch(),
        Merge(),
        NoOp(),
        StopAndError(),
        Wait(),
        HttpRequest(),
        FileData(),
        ExecuteWorkflow(),
    ]


@lru_cache
def get_node_types() -> NodeTypes:
    """Get the registry of core node types."""
    return NodeTypes(default_node_types())


__all__ = ["NodeType", "NodeTypeDescription", "NodeTypes", "get_node_types"]
