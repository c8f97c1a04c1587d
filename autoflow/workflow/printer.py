"""Text rendering of workflows and execution results for logs and the demo script."""
import json
from typing import Any, Optional

from autoflow.models import MAIN, RunExecutionData, Workflow
from autoflow.nodes.base import NODE_TYPE_PREFIX


def print_workflow(workflow: Workflow, include_params: bool = False) -> str:
    """
    Render a workflow outline: header, nodes and the connection tree.

    Args:
        workflow: Workflow to render
        include_params: Include node parameters in output (default: False)

    Returns:
        Formatted string representation of the workflow
    """
    lines = []

    lines.append("=" * 60)
    lines.append(f"  WORKFLOW: {workflow.name}")
    lines.append("=" * 60)
    lines.append(f"  ID: {workflow.id or 'N/A'}")
    lines.append(f"  Active: {'✓ Yes' if workflow.active else '✗ No'}")
    lines.append("")

    lines.append("  NODES:")
    lines.append("  " + "-" * 56)
    for i, node in enumerate(workflow.nodes, 1):
        short_type = node.type.replace(NODE_TYPE_PREFIX, "")
        flags = []
        if node.disabled:
            flags.append("disabled")
        if node.name in workflow.pin_data:
            flags.append("pinned")
        suffix = f" ({', '.join(flags)})" if flags else ""

        lines.append(f"  {_get_node_icon(node.type)} [{i}] {node.name}{suffix}")
        lines.append(f"       Type: {short_type} (v{node.type_version:g})")
        lines.append(f"       Position: ({node.position[0]:g}, {node.position[1]:g})")

        if include_params and node.parameters:
            lines.append("       Parameters:")
            for key, value in node.parameters.items():
                lines.append(f"         • {key}: {_format_param_value(value)}")
        lines.append("")

    lines.append("  FLOW:")
    lines.append("  " + "-" * 56)
    if workflow.connections:
        lines.extend(f"  {line}" for line in _build_flow_diagram(workflow))
    else:
        lines.append("  (No connections defined)")
    lines.append("")

    for node in workflow.nodes:
        if node.type.endswith(".webhook") and node.parameters.get("path"):
            lines.append("  WEBHOOK:")
            lines.append("  " + "-" * 56)
            lines.append(f"  Method: {node.parameters.get('httpMethod', 'GET')}")
            lines.append(f"  Path: /{node.parameters['path']}")
            lines.append("")
            break

    lines.append("=" * 60)
    return "\n".join(lines)


def print_run_data(run_data: RunExecutionData, max_items: int = 3) -> str:
    """Summarize the output of every node run of an execution."""
    lines = []
    for node_name, tasks in run_data.result_data.run_data.items():
        for run_index, task in enumerate(tasks):
            header = f"{node_name} (run {run_index}, {task.execution_time} ms)"
            if task.error:
                lines.append(f"✗ {header}: {task.error.get('message')}")
                continue
            lines.append(f"✓ {header}")
            for output_index, items in enumerate(task.data.get(MAIN, [])):
                items = items or []
                lines.append(f"    output {output_index}: {len(items)} item(s)")
                for item in items[:max_items]:
                    lines.append(f"      {json.dumps(item.get('json', {}), default=str)[:100]}")
    if run_data.wait_till:
        lines.append(f"⏸ waiting until {run_data.wait_till.isoformat()}")
    return "\n".join(lines) if lines else "(No nodes executed)"


def _get_node_icon(node_type: str) -> str:
    """Get an icon for a node type."""
    type_lower = node_type.lower()

    if "webhook" in type_lower:
        return "🔗"
    elif "trigger" in type_lower:
        return "⚡"
    elif "http" in type_lower:
        return "🌐"
    elif type_lower.endswith(".set"):
        return "📝"
    elif type_lower.endswith((".if", ".switch", ".filter")):
        return "🔀"
    elif "merge" in type_lower:
        return "📦"
    elif "wait" in type_lower:
        return "⏸"
    elif "executeworkflow" in type_lower:
        return "🔄"
    elif "file" in type_lower:
        return "📄"
    elif "error" in type_lower:
        return "🛑"
    else:
        return "⚙️"


def _format_param_value(value: Any, max_len: int = 50) -> str:
    """Format a parameter value for display."""
    if isinstance(value, str):
        if len(value) > max_len:
            return f'"{value[:max_len]}..."'
        return f'"{value}"'
    elif isinstance(value, dict):
        return f"{{...}} ({len(value)} keys)"
    elif isinstance(value, list):
        return f"[...] ({len(value)} items)"
    else:
        return str(value)


def _build_flow_diagram(workflow: Workflow) -> list[str]:
    """Render main connections as an indented tree, labelling non-zero outputs."""
    lines: list[str] = []
    edges: dict[str, list[tuple[int, str, int]]] = {}
    targets = set()
    for source, types in workflow.connections.items():
        for output_index, connections in enumerate(types.get(MAIN, [])):
            for connection in connections or []:
                edges.setdefault(source, []).append((output_index, connection.node, connection.index))
                targets.add(connection.node)

    visited = set()

    def traverse(node_name: str, depth: int, label: Optional[str] = None) -> None:
        indent = "  " * depth
        node = workflow.get_node(node_name)
        icon = _get_node_icon(node.type if node else "")
        prefix = f"{label} " if label else ""
        if node_name in visited:
            lines.append(f"{indent}{prefix}↺ {node_name}")
            return
        visited.add(node_name)
        lines.append(f"{indent}{prefix}{icon} {node_name}")

        children = edges.get(node_name, [])
        for i, (output_index, target, input_index) in enumerate(children):
            connector = "└──→" if i == len(children) - 1 else "├──→"
            details = []
            if output_index:
                details.append(f"out {output_index}")
            if input_index:
                details.append(f"in {input_index}")
            child_label = f"{connector} [{', '.join(details)}]" if details else connector
            traverse(target, depth + 1, child_label)

    for node in workflow.nodes:
        if node.name not in targets:
            traverse(node.name, 0)

    return lines if lines else ["(No flow connections)"]
