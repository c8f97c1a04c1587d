"""Trigger nodes. They start executions and pass the trigger items on."""
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription


class ManualTrigger(NodeType):
    description = NodeTypeDescription(
        name="manualTrigger",
        display_name="Manual Trigger",
        description="Runs the flow on clicking a button",
        group=["trigger"],
        inputs=[],
    )

    async def execute(self, ctx):
        return [ctx.get_trigger_data()]


class Webhook(NodeType):
    """Starts the workflow when its URL receives an HTTP request.

    The trigger item carries ``headers``, ``params``, ``query`` and ``body``
    of the request.
    """

    description = NodeTypeDescription(
        name="webhook",
        display_name="Webhook",
        description="Starts the workflow when a webhook is called",
        group=["trigger"],
        inputs=[],
        properties=[
            NodeProperty(
                name="httpMethod",
                display_name="HTTP Method",
                type="options",
                default="GET",
                options=["DELETE", "GET", "HEAD", "PATCH", "POST", "PUT"],
            ),
            NodeProperty(name="path", display_name="Path", default="", required=True),
            NodeProperty(
                name="responseMode",
                display_name="Respond",
                type="options",
                default="onReceived",
                options=["onReceived", "lastNode"],
            ),
            NodeProperty(
                name="responseData",
                display_name="Response Data",
                type="options",
                default="firstEntryJson",
                options=["allEntries", "firstEntryJson", "noData"],
            ),
            NodeProperty(name="responseCode", display_name="Response Code", type="number", default=200),
        ],
    )
    webhook_methods = ("DELETE", "GET", "HEAD", "PATCH", "POST", "PUT")
    activatable = True

    async def execute(self, ctx):
        return [ctx.get_trigger_data()]


class ExecuteWorkflowTrigger(NodeType):
    description = NodeTypeDescription(
        name="executeWorkflowTrigger",
        display_name="Execute Workflow Trigger",
        description="Runs the flow when called by another workflow",
        group=["trigger"],
        inputs=[],
    )

    async def execute(self, ctx):
        return [ctx.get_trigger_data()]


class ErrorTrigger(NodeType):
    """Start of an error workflow. The trigger item describes the failed execution."""

    description = NodeTypeDescription(
        name="errorTrigger",
        display_name="Error Trigger",
        description="Triggers the workflow when another workflow has an error",
        group=["trigger"],
        inputs=[],
    )

    async def execute(self, ctx):
        return [ctx.get_trigger_data()]
