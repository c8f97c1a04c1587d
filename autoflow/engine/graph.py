"""Graph queries over a workflow's connections map."""
from collections import Counter
from typing import TYPE_CHECKING, Optional

from autoflow.errors import WorkflowOperationError
from autoflow.models import MAIN, Connection, Node, Workflow
from autoflow.models.workflow import Connections

if TYPE_CHECKING:
    from autoflow.nodes import NodeTypes


MANUAL_TRIGGER_NAME = "manualTrigger"


def get_connections_by_destination(connections: Connections) -> Connections:
    """Invert a connections map so it is keyed by target node.

    The result maps target -> type -> target input index -> sources, where
    each source Connection's ``index`` is the source's output index.
    """
    by_destination: Connections = {}
    for source, types in connections.items():
        for connection_type, outputs in types.items():
            for output_index, targets in enumerate(outputs):
                for target in targets or []:
                    inputs = by_destination.setdefault(target.node, {}).setdefault(target.type, [])
                    while len(inputs) <= target.index:
                        inputs.append([])
                    inputs[target.index].append(
                        Connection(node=source, type=connection_type, index=output_index)
                    )
    return by_destination


def _walk(connections: Connections, name: str, connection_type: str, depth: int) -> list[str]:
    found: list[str] = []
    frontier = [name]
    level = 0
    while frontier and (depth == -1 or level < depth):
        next_frontier = []
        for current in frontier:
            for outputs in connections.get(current, {}).get(connection_type, []):
                for connection in outputs or []:
                    if connection.node != name and connection.node not in found:
                        found.append(connection.node)
                        next_frontier.append(connection.node)
        frontier = next_frontier
        level += 1
    return found


def get_child_nodes(
    workflow: Workflow,
    name: str,
    connection_type: str = MAIN,
    depth: int = -1,
) -> list[str]:
    """Names of nodes downstream of ``name``, nearest first."""
    return _walk(workflow.connections, name, connection_type, depth)


def get_parent_nodes(
    workflow: Workflow,
    name: str,
    connection_type: str = MAIN,
    depth: int = -1,
) -> list[str]:
    """Names of nodes upstream of ``name``, nearest first."""
    by_destination = get_connections_by_destination(workflow.connections)
    return _walk(by_destination, name, connection_type, depth)


def get_trigger_nodes(workflow: Workflow, node_types: "NodeTypes") -> list[Node]:
    """Enabled nodes whose type is a trigger."""
    triggers = []
    for node in workflow.nodes:
        if node.disabled:
            continue
        node_type = node_types.get(node.type)
        if node_type is not None and node_type.is_trigger:
            triggers.append(node)
    return triggers


def get_start_node(
    workflow: Workflow,
    node_types: "NodeTypes",
    start_node: Optional[str] = None,
) -> Optional[Node]:
    """Pick the node an execution starts from.

    An explicit name wins. Otherwise the first enabled trigger is used,
    preferring the manual trigger, and finally the first enabled node that
    has no main input connection.
    """
    if start_node:
        node = workflow.get_node(start_node)
        if node is None:
            raise WorkflowOperationError(f"Start node '{start_node}' does not exist")
        return node

    triggers = get_trigger_nodes(workflow, node_types)
    for node in triggers:
        if node_types.canonical_name(node.type) == node_types.canonical_name(MANUAL_TRIGGER_NAME):
            return node
    if triggers:
        return triggers[0]

    by_destination = get_connections_by_destination(workflow.connections)
    disabled = {node.name for node in workflow.nodes if node.disabled}
    for node in workflow.nodes:
        if node.disabled:
            continue
        inputs = by_destination.get(node.name, {}).get(MAIN, [])
        if not any(source.node not in disabled for sources in inputs for source in sources or []):
            return node
    return None


def get_duplicate_node_names(workflow: Workflow) -> list[str]:
    counts = Counter(node.name for node in workflow.nodes)
    return [name for name, count in counts.items() if count > 1]


def ensure_unique_node_names(workflow: Workflow) -> None:
    duplicates = get_duplicate_node_names(workflow)
    if duplicates:
        raise WorkflowOperationError(
            f"Duplicate node names: {', '.join(duplicates)}",
            description="Node names must be unique within a workflow",
        )
