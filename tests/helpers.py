"""Workflow builders shared by the tests."""
from autoflow.models import Workflow


def node(name: str, node_type: str, x: float = 0, y: float = 0, **fields) -> dict:
    """A node dict in wire format. ``node_type`` may omit the package prefix."""
    if "." not in node_type:
        node_type = f"n8n-nodes-base.{node_type}"
    return {"name": name, "type": node_type, "position": [x, y], **fields}


def connect(*pairs) -> dict:
    """Connections from (source, target) or (source, target, output, input) tuples."""
    connections: dict = {}
    for pair in pairs:
        source, target, output, input_index = (list(pair) + [0, 0])[:4]
        outputs = connections.setdefault(source, {}).setdefault("main", [])
        while len(outputs) <= output:
            outputs.append([])
        outputs[output].append({"node": target, "type": "main", "index": input_index})
    return connections


def make_workflow(nodes: list[dict], connections: dict = None, **fields) -> Workflow:
    return Workflow.model_validate({
        "id": fields.pop("id", "wf1"),
        "name": fields.pop("name", "Test workflow"),
        "nodes": nodes,
        "connections": connections or {},
        **fields,
    })


def set_node(name: str, x: float = 0, y: float = 0, include_other: bool = True, **values) -> dict:
    """Set node assigning string, number and boolean fields."""
    type_names = {bool: "boolean", int: "number", float: "number"}
    assignments = [
        {"name": key, "value": value, "type": type_names.get(type(value), "string")}
        for key, value in values.items()
    ]
    return node(
        name,
        "set",
        x,
        y,
        parameters={
            "mode": "manual",
            "includeOtherFields": include_other,
            "assignments": {"assignments": assignments},
        },
    )


def condition(left, right, operation: str = "equals", operator_type: str = "string") -> dict:
    return {
        "leftValue": left,
        "rightValue": right,
        "operator": {"type": operator_type, "operation": operation},
    }


def conditions(*items, combinator: str = "and") -> dict:
    return {
        "options": {"caseSensitive": True, "typeValidation": "strict"},
        "combinator": combinator,
        "conditions": list(items),
    }


def outputs_of(run_data, node_name: str, run_index: int = -1) -> list[list[dict]]:
    """JSON of every output of a node run."""
    task = run_data.result_data.run_data[node_name][run_index]
    return [[item["json"] for item in (items or [])] for items in task.data.get("main", [])]
