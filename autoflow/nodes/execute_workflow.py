"""Execute Workflow node: run another workflow as a sub-workflow."""
from autoflow.errors import AutoflowError, NodeOperationError
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription, error_item


class ExecuteWorkflow(NodeType):
    """Runs a stored workflow with this node's input items.

    ``mode="once"`` hands all items to one sub-workflow execution.
    ``mode="each"`` runs the sub-workflow once per item.
    """

    description = NodeTypeDescription(
        name="executeWorkflow",
        display_name="Execute Workflow",
        description="Execute another workflow",
        version=[1.1],
        properties=[
            NodeProperty(name="source", display_name="Source", type="options", default="database", options=["database"]),
            NodeProperty(name="workflowId", display_name="Workflow ID", default="", required=True),
            NodeProperty(
                name="mode",
                display_name="Mode",
                type="options",
                default="once",
                options=["once", "each"],
            ),
        ],
    )

    async def execute(self, ctx):
        items = ctx.get_input_data()
        mode = ctx.get_node_parameter("mode", 0)

        if mode == "each":
            output = []
            for index, item in enumerate(items):
                try:
                    workflow_id = self._workflow_id(ctx, index)
                    result = await ctx.execute_workflow(workflow_id, [item])
                except AutoflowError as e:
                    if ctx.continue_on_fail():
                        output.append(error_item(e, index))
                        continue
                    raise
                output.extend({**entry, "pairedItem": {"item": index}} for entry in result)
            return [output]

        workflow_id = self._workflow_id(ctx, 0)
        result = await ctx.execute_workflow(workflow_id, items)
        return [list(result)]

    @staticmethod
    def _workflow_id(ctx, index: int) -> str:
        workflow_id = ctx.get_node_parameter("workflowId", index)
        if isinstance(workflow_id, dict):
            # Resource locator: {"__rl": True, "value": "12", "mode": "id"}
            workflow_id = workflow_id.get("value")
        if not workflow_id:
            raise NodeOperationError(ctx.node.name, "No workflow to execute was specified", item_index=index)
        return str(workflow_id)
