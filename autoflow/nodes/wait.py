"""Wait node: pause the execution before continuing."""
import asyncio
from datetime import datetime, timedelta, timezone

from autoflow.errors import NodeOperationError
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription

_UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}


class Wait(NodeType):
    """Waits for a time interval or until a point in time.

    Short waits are slept through in-process. Longer ones put the execution
    to wait so the wait tracker can resume it later.
    """

    description = NodeTypeDescription(
        name="wait",
        display_name="Wait",
        description="Wait before continuing with execution",
        group=["organization"],
        version=[1.1],
        properties=[
            NodeProperty(
                name="resume",
                display_name="Resume",
                type="options",
                default="timeInterval",
                options=["timeInterval", "specificTime"],
            ),
            NodeProperty(name="amount", display_name="Wait Amount", type="number", default=1),
            NodeProperty(
                name="unit",
                display_name="Wait Unit",
                type="options",
                default="hours",
                options=list(_UNIT_SECONDS),
            ),
            NodeProperty(name="dateTime", display_name="Date and Time", type="dateTime", default=""),
        ],
    )

    async def execute(self, ctx):
        items = ctx.get_input_data()
        now = datetime.now(timezone.utc)

        if ctx.get_node_parameter("resume", 0) == "specificTime":
            value = ctx.get_node_parameter("dateTime", 0)
            try:
                wait_till = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
            except ValueError:
                raise NodeOperationError(ctx.node.name, f"Invalid date and time: '{value}'")
            if wait_till.tzinfo is None:
                wait_till = wait_till.replace(tzinfo=timezone.utc)
        else:
            unit = ctx.get_node_parameter("unit", 0)
            if unit not in _UNIT_SECONDS:
                raise NodeOperationError(ctx.node.name, f"Unknown wait unit '{unit}'")
            try:
                amount = float(ctx.get_node_parameter("amount", 0))
            except (TypeError, ValueError):
                raise NodeOperationError(ctx.node.name, "Wait amount must be a number")
            wait_till = now + timedelta(seconds=amount * _UNIT_SECONDS[unit])

        seconds = (wait_till - now).total_seconds()
        threshold = ctx.additional_data.settings.wait_in_process_threshold
        if seconds < threshold:
            if seconds > 0:
                ctx.logger.debug("wait_in_process", seconds=seconds)
                await asyncio.sleep(seconds)
            return [items]

        ctx.put_execution_to_wait(wait_till)
        return [items]
