"""Nodes without their own data processing."""
import json

from autoflow.errors import NodeOperationError
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription


class NoOp(NodeType):
    description = NodeTypeDescription(
        name="noOp",
        display_name="No Operation, do nothing",
        description="No Operation",
        group=["organization"],
    )

    async def execute(self, ctx):
        return [ctx.get_input_data()]


class StopAndError(NodeType):
    """Fails the execution with a message or an error object."""

    description = NodeTypeDescription(
        name="stopAndError",
        display_name="Stop and Error",
        description="Throw an error in the workflow",
        outputs=[],
        properties=[
            NodeProperty(
                name="errorType",
                display_name="Error Type",
                type="options",
                default="errorMessage",
                options=["errorMessage", "errorObject"],
            ),
            NodeProperty(name="errorMessage", display_name="Error Message", default=""),
            NodeProperty(name="errorObject", display_name="Error Object", type="json", default="{}"),
        ],
    )

    async def execute(self, ctx):
        error_type = ctx.get_node_parameter("errorType", 0)

        if error_type == "errorObject":
            error_object = ctx.get_node_parameter("errorObject", 0)
            if isinstance(error_object, str):
                try:
                    error_object = json.loads(error_object or "{}")
                except json.JSONDecodeError:
                    raise NodeOperationError(ctx.node.name, "Error Object is not valid JSON")
            if not isinstance(error_object, dict):
                raise NodeOperationError(ctx.node.name, "Error Object must be a JSON object")
            message = (
                error_object.get("message")
                or error_object.get("description")
                or error_object.get("error")
                or "Error"
            )
            raise NodeOperationError(
                ctx.node.name,
                str(message),
                description=error_object.get("description"),
            )

        raise NodeOperationError(ctx.node.name, str(ctx.get_node_parameter("errorMessage", 0)))
