"""Set node: add or overwrite fields of every item."""
import copy
import json
from typing import Any

from autoflow.errors import ExpressionError, NodeOperationError
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription, error_item

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def set_field(data: dict, name: str, value: Any, dot_notation: bool = True) -> None:
    """Set ``name`` in ``data``, creating nested objects for dotted names."""
    if not dot_notation or "." not in name:
        data[name] = value
        return
    *parents, key = name.split(".")
    current = data
    for parent in parents:
        if not isinstance(current.get(parent), dict):
            current[parent] = {}
        current = current[parent]
    current[key] = value


def convert_value(name: str, value: Any, value_type: str) -> Any:
    """Convert an assignment value to its declared type.

    Raises:
        ValueError: When the value cannot be converted
    """
    if value_type == "string":
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if value_type == "number":
        if isinstance(value, bool):
            raise ValueError(f"'{name}' expects a number but we got '{value}'")
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(str(value).strip())
        except ValueError:
            raise ValueError(f"'{name}' expects a number but we got '{value}'")
        return int(number) if number.is_integer() and "." not in str(value) else number

    if value_type == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"'{name}' expects a boolean but we got '{value}'")

    if value_type in ("array", "object"):
        expected = list if value_type == "array" else dict
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise ValueError(f"'{name}' expects an {value_type} but we got '{value}'")
        if not isinstance(value, expected):
            raise ValueError(f"'{name}' expects an {value_type} but we got '{value}'")
        return value

    return value


class Set(NodeType):
    """Edit Fields (Set).

    ``mode="manual"`` applies the ``assignments`` list, each entry having a
    ``name``, ``value`` and ``type``. ``mode="raw"`` merges the object given
    in ``jsonOutput``.
    """

    description = NodeTypeDescription(
        name="set",
        display_name="Edit Fields (Set)",
        description="Modify, add, or remove item fields",
        version=[3.4],
        properties=[
            NodeProperty(
                name="mode",
                display_name="Mode",
                type="options",
                default="manual",
                options=["manual", "raw"],
            ),
            NodeProperty(
                name="assignments",
                display_name="Fields to Set",
                type="assignmentCollection",
                default={"assignments": []},
            ),
            NodeProperty(name="jsonOutput", display_name="JSON", type="json", default="{}"),
            NodeProperty(
                name="includeOtherFields",
                display_name="Include Other Input Fields",
                type="boolean",
                default=False,
            ),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    async def execute(self, ctx):
        items = ctx.get_input_data()
        mode = ctx.get_node_parameter("mode", 0)
        output = []

        for index, item in enumerate(items):
            try:
                output.append(self._process_item(ctx, item, index, mode))
            except (NodeOperationError, ExpressionError) as e:
                if ctx.continue_on_fail():
                    output.append(error_item(e, index))
                    continue
                raise

        return [output]

    def _process_item(self, ctx, item: dict, index: int, mode: str) -> dict:
        include_other = ctx.get_node_parameter("includeOtherFields", index)
        options = ctx.get_node_parameter("options", index) or {}
        dot_notation = options.get("dotNotation", True)
        ignore_errors = options.get("ignoreConversionErrors", False)

        new_json = copy.deepcopy(item.get("json", {})) if include_other else {}

        if mode == "raw":
            raw = ctx.get_node_parameter("jsonOutput", index)
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw or "{}")
                except json.JSONDecodeError as e:
                    raise NodeOperationError(
                        ctx.node.name,
                        "'JSON Output' in item {} does not contain a valid JSON object".format(index),
                        item_index=index,
                        description=str(e),
                    )
            if not isinstance(raw, dict):
                raise NodeOperationError(
                    ctx.node.name,
                    "'JSON Output' in item {} does not contain a valid JSON object".format(index),
                    item_index=index,
                )
            for key, value in raw.items():
                set_field(new_json, key, value, dot_notation)
        else:
            assignments = ctx.get_node_parameter("assignments.assignments", index, [])
            for assignment in assignments or []:
                name = assignment.get("name")
                if not name:
                    continue
                value = assignment.get("value")
                value_type = assignment.get("type", "string")
                try:
                    value = convert_value(name, value, value_type)
                except ValueError as e:
                    if not ignore_errors:
                        raise NodeOperationError(ctx.node.name, str(e), item_index=index)
                set_field(new_json, name, value, dot_notation)

        result = {"json": new_json, "pairedItem": {"item": index}}
        if item.get("binary"):
            result["binary"] = item["binary"]
        return result
