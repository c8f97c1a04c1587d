"""Incremental edits to a workflow.

Operations are plain dicts tagged with a ``type``, applied in order to a
copy of the workflow:

    apply_operations(workflow, [
        {"type": "addNodes", "nodes": [{"name": "Set", "type": "n8n-nodes-base.set"}]},
        {"type": "connectIntent", "sourceNodeName": "Trigger", "targetNodeName": "Set"},
    ])
"""
import re
from typing import Any, Optional
from uuid import uuid4

import structlog

from autoflow.engine.expressions import is_expression, rename_node_references
from autoflow.errors import WorkflowOperationError
from autoflow.models import MAIN, Connection, Node, Workflow
from autoflow.models.workflow import Connections
from autoflow.nodes import NodeTypes

logger = structlog.get_logger()


def get_unique_node_name(name: str, existing: set[str]) -> str:
    """Return ``name`` or, when taken, ``name`` with the first free numeric suffix."""
    if name not in existing:
        return name
    base = re.sub(r"\d+$", "", name) or name
    suffix = 1
    while f"{base}{suffix}" in existing:
        suffix += 1
    return f"{base}{suffix}"


def _require_node(workflow: Workflow, name: str) -> Node:
    node = workflow.get_node(name)
    if node is None:
        raise WorkflowOperationError(f"Node '{name}' does not exist in the workflow")
    return node


def _to_connection(value: Any) -> Connection:
    return value if isinstance(value, Connection) else Connection.model_validate(value)


# =============================================================================
# NODES
# =============================================================================


def add_nodes(workflow: Workflow, nodes: list[Any]) -> None:
    existing = set(workflow.node_names)
    existing_ids = {node.id for node in workflow.nodes}
    for raw in nodes:
        node = raw.model_copy(deep=True) if isinstance(raw, Node) else Node.model_validate(raw)
        unique = get_unique_node_name(node.name, existing)
        if unique != node.name:
            logger.debug("node_renamed_on_add", requested=node.name, name=unique)
            node.name = unique
        if node.id in existing_ids:
            node.id = str(uuid4())
        existing.add(node.name)
        existing_ids.add(node.id)
        workflow.nodes.append(node)


def remove_nodes(workflow: Workflow, node_names: list[str]) -> None:
    for name in node_names:
        _require_node(workflow, name)

    removed = set(node_names)
    workflow.nodes = [node for node in workflow.nodes if node.name not in removed]
    for name in removed:
        workflow.connections.pop(name, None)
        workflow.pin_data.pop(name, None)

    for types in workflow.connections.values():
        for connection_type, outputs in types.items():
            types[connection_type] = [
                [target for target in targets or [] if target.node not in removed]
                for targets in outputs
            ]


def update_node(workflow: Workflow, node_name: str, updates: dict[str, Any]) -> None:
    """Shallow merge ``updates`` into a node. ``parameters`` is replaced as a whole."""
    node = _require_node(workflow, node_name)
    updates = dict(updates)
    new_name = updates.pop("name", node_name)
    if new_name != node_name:
        rename_node(workflow, node_name, new_name)
        node = _require_node(workflow, new_name)

    merged = {**node.model_dump(by_alias=True), **updates}
    updated = Node.model_validate(merged)
    index = workflow.nodes.index(node)
    workflow.nodes[index] = updated


def _rename_in_parameters(value: Any, old_name: str, new_name: str) -> Any:
    if isinstance(value, str):
        if is_expression(value):
            return rename_node_references(value, old_name, new_name)
        return value
    if isinstance(value, dict):
        return {key: _rename_in_parameters(item, old_name, new_name) for key, item in value.items()}
    if isinstance(value, list):
        return [_rename_in_parameters(item, old_name, new_name) for item in value]
    return value


def rename_node(workflow: Workflow, old_name: str, new_name: str) -> None:
    """Rename a node and every reference to it."""
    node = _require_node(workflow, old_name)
    if old_name == new_name:
        return
    if workflow.get_node(new_name) is not None:
        raise WorkflowOperationError(f"A node named '{new_name}' already exists")

    node.name = new_name

    connections: Connections = {}
    for source, types in workflow.connections.items():
        key = new_name if source == old_name else source
        connections[key] = types
        for outputs in types.values():
            for targets in outputs:
                for target in targets or []:
                    if target.node == old_name:
                        target.node = new_name
    workflow.connections = connections

    if old_name in workflow.pin_data:
        workflow.pin_data[new_name] = workflow.pin_data.pop(old_name)

    for other in workflow.nodes:
        other.parameters = _rename_in_parameters(other.parameters, old_name, new_name)


# =============================================================================
# CONNECTIONS
# =============================================================================


def add_connection(
    workflow: Workflow,
    source: str,
    target: str,
    connection_type: str = MAIN,
    source_output_index: int = 0,
    target_input_index: int = 0,
) -> None:
    """Add a single connection unless it already exists."""
    outputs = workflow.connections.setdefault(source, {}).setdefault(connection_type, [])
    while len(outputs) <= source_output_index:
        outputs.append([])
    targets = outputs[source_output_index]
    for existing in targets:
        if existing.node == target and existing.type == connection_type and existing.index == target_input_index:
            return
    targets.append(Connection(node=target, type=connection_type, index=target_input_index))


def merge_connections(workflow: Workflow, connections: dict[str, Any]) -> None:
    """Union ``connections`` into the workflow, skipping duplicates."""
    for source, types in connections.items():
        _require_node(workflow, source)
        for connection_type, outputs in types.items():
            for output_index, targets in enumerate(outputs or []):
                for raw in targets or []:
                    target = _to_connection(raw)
                    _require_node(workflow, target.node)
                    add_connection(
                        workflow,
                        source,
                        target.node,
                        connection_type,
                        output_index,
                        target.index,
                    )


def remove_connection(
    workflow: Workflow,
    source: str,
    target: str,
    connection_type: str = MAIN,
    source_output_index: int = 0,
    target_input_index: int = 0,
) -> None:
    _require_node(workflow, source)
    _require_node(workflow, target)
    outputs = workflow.connections.get(source, {}).get(connection_type, [])
    if source_output_index >= len(outputs):
        return
    outputs[source_output_index] = [
        connection
        for connection in outputs[source_output_index] or []
        if not (connection.node == target and connection.index == target_input_index)
    ]


def resolve_connect_intent(
    workflow: Workflow,
    node_types: Optional[NodeTypes],
    source_name: str,
    target_name: str,
    connection_type: Optional[str] = None,
    source_output_index: int = 0,
    target_input_index: int = 0,
) -> tuple[str, str, str, int, int]:
    """Turn a loose "connect A to B" request into a concrete connection.

    The connection type is inferred from what the source outputs and the
    target accepts. When only the opposite direction fits, source and
    target are swapped.

    Returns:
        (source, target, connection type, source output index, target input index)

    Raises:
        WorkflowOperationError: the nodes cannot be connected as requested
    """
    source = _require_node(workflow, source_name)
    target = _require_node(workflow, target_name)
    if node_types is None:
        return source.name, target.name, connection_type or MAIN, source_output_index, target_input_index

    source_type = node_types.get_or_raise(source.type)
    target_type = node_types.get_or_raise(target.type)

    def fits(src, src_type, dst, dst_type, wanted: Optional[str]) -> Optional[str]:
        outputs = src_type.get_outputs(src)
        inputs = dst_type.get_inputs(dst)
        if wanted is not None:
            return wanted if wanted in outputs and wanted in inputs else None
        common = [output for output in outputs if output in inputs]
        if MAIN in common:
            return MAIN
        return common[0] if common else None

    resolved = fits(source, source_type, target, target_type, connection_type)
    if resolved is None:
        reversed_type = fits(target, target_type, source, source_type, connection_type)
        if reversed_type is None:
            raise WorkflowOperationError(
                f"Cannot connect '{source.name}' to '{target.name}'",
                description="The source has no output the target accepts",
            )
        logger.info("connection_reversed", source=target.name, target=source.name, type=reversed_type)
        source, target = target, source
        source_type, target_type = target_type, source_type
        resolved = reversed_type

    if resolved == MAIN:
        output_count = source_type.get_output_count(source)
        input_count = len([i for i in target_type.get_inputs(target) if i == MAIN])
    else:
        output_count = source_type.get_outputs(source).count(resolved)
        input_count = target_type.get_inputs(target).count(resolved)

    if not 0 <= source_output_index < output_count:
        raise WorkflowOperationError(
            f"Node '{source.name}' has no output {source_output_index}",
            description=f"Valid output indexes are 0 to {output_count - 1}",
        )
    if not 0 <= target_input_index < input_count:
        raise WorkflowOperationError(
            f"Node '{target.name}' has no input {target_input_index}",
            description=f"Valid input indexes are 0 to {input_count - 1}",
        )
    return source.name, target.name, resolved, source_output_index, target_input_index


# =============================================================================
# DISPATCH
# =============================================================================


def _apply_one(workflow: Workflow, operation: dict[str, Any], node_types: Optional[NodeTypes]) -> None:
    op_type = operation.get("type")

    if op_type == "addNodes":
        add_nodes(workflow, operation.get("nodes", []))
    elif op_type == "removeNode":
        remove_nodes(workflow, operation.get("nodeNames", []))
    elif op_type == "updateNode":
        update_node(workflow, operation["nodeName"], operation.get("updates", {}))
    elif op_type == "renameNode":
        rename_node(workflow, operation["oldName"], operation["newName"])
    elif op_type == "mergeConnections":
        merge_connections(workflow, operation.get("connections", {}))
    elif op_type == "removeConnection":
        remove_connection(
            workflow,
            operation["sourceNode"],
            operation["targetNode"],
            operation.get("connectionType") or MAIN,
            operation.get("sourceOutputIndex", 0),
            operation.get("targetInputIndex", 0),
        )
    elif op_type == "connectIntent":
        add_connection(
            workflow,
            *resolve_connect_intent(
                workflow,
                node_types,
                operation["sourceNodeName"],
                operation["targetNodeName"],
                operation.get("connectionType"),
                operation.get("sourceOutputIndex", 0),
                operation.get("targetInputIndex", 0),
            ),
        )
    else:
        raise WorkflowOperationError(f"Unknown workflow operation: {op_type}")


def apply_operations(
    workflow: Workflow,
    operations: list[dict[str, Any]],
    node_types: Optional[NodeTypes] = None,
) -> Workflow:
    """
    Apply operations in order and return the edited copy.

    Args:
        workflow: Workflow to edit (left untouched)
        operations: Operation dicts, each with a ``type`` key
        node_types: Registry used to infer and check connectIntent operations

    Returns:
        The edited workflow

    Raises:
        WorkflowOperationError: An operation references an unknown node or is invalid
    """
    result = workflow.model_copy(deep=True)
    for operation in operations:
        try:
            _apply_one(result, operation, node_types)
        except KeyError as e:
            raise WorkflowOperationError(
                f"Operation '{operation.get('type')}' is missing the field {e}"
            )
    logger.info("workflow_operations_applied", workflow_id=workflow.id, count=len(operations))
    return result
