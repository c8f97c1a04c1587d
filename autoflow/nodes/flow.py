"""Routing nodes: If, Filter and Switch."""
import re

from autoflow.errors import ExpressionError, NodeOperationError
from autoflow.models import MAIN, Node
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription
from autoflow.nodes.filter_parameter import FilterError, evaluate_filter

_FILTER_DEFAULT = {
    "options": {"caseSensitive": True, "typeValidation": "strict"},
    "conditions": [],
    "combinator": "and",
}


def check_conditions(ctx, value: dict, item_index: int, options: dict) -> bool:
    """Evaluate a resolved filter parameter for one item, raising NodeOperationError on failure."""
    try:
        return evaluate_filter(
            value or {},
            loose_type_validation=bool(
                ctx.get_node_parameter("looseTypeValidation", item_index, False)
                or options.get("looseTypeValidation")
            ),
            ignore_case=bool(options.get("ignoreCase")),
        )
    except FilterError as e:
        raise NodeOperationError(ctx.node.name, e.message, item_index=item_index, description=e.description)
    except re.error as e:
        raise NodeOperationError(ctx.node.name, f"Invalid regular expression: {e}", item_index=item_index)


class If(NodeType):
    """Routes items to the ``true`` or ``false`` output."""

    description = NodeTypeDescription(
        name="if",
        display_name="If",
        description="Route items to different branches (true/false)",
        group=["transform"],
        version=[2.2],
        outputs=[MAIN, MAIN],
        output_names=["true", "false"],
        properties=[
            NodeProperty(name="conditions", display_name="Conditions", type="filter", default=_FILTER_DEFAULT),
            NodeProperty(
                name="looseTypeValidation",
                display_name="Convert types where required",
                type="boolean",
                default=False,
            ),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    async def execute(self, ctx):
        true_items = []
        false_items = []
        for index, item in enumerate(ctx.get_input_data()):
            try:
                options = ctx.get_node_parameter("options", index) or {}
                passed = check_conditions(ctx, ctx.get_node_parameter("conditions", index), index, options)
            except (NodeOperationError, ExpressionError):
                if not ctx.continue_on_fail():
                    raise
                false_items.append(item)
                continue
            (true_items if passed else false_items).append(item)
        return [true_items, false_items]


class Filter(NodeType):
    """Keeps only the items that match the conditions."""

    description = NodeTypeDescription(
        name="filter",
        display_name="Filter",
        description="Remove items matching a condition",
        version=[2.2],
        properties=[
            NodeProperty(name="conditions", display_name="Conditions", type="filter", default=_FILTER_DEFAULT),
            NodeProperty(
                name="looseTypeValidation",
                display_name="Convert types where required",
                type="boolean",
                default=False,
            ),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    async def execute(self, ctx):
        kept = []
        for index, item in enumerate(ctx.get_input_data()):
            try:
                options = ctx.get_node_parameter("options", index) or {}
                if check_conditions(ctx, ctx.get_node_parameter("conditions", index), index, options):
                    kept.append(item)
            except (NodeOperationError, ExpressionError):
                if not ctx.continue_on_fail():
                    raise
        return [kept]


class Switch(NodeType):
    """Routes items to one of several outputs.

    In ``rules`` mode every rule is a filter parameter with its own output.
    Unmatched items go to the fallback output (``options.fallbackOutput``:
    ``"none"``, ``"extra"`` or an output index). With
    ``options.allMatchingOutputs`` an item is sent to every matching rule.

    In ``expression`` mode the ``output`` parameter evaluates to the output
    index for each item.
    """

    description = NodeTypeDescription(
        name="switch",
        display_name="Switch",
        description="Route items depending on defined expression or rules",
        version=[3.2],
        outputs=[MAIN],
        properties=[
            NodeProperty(
                name="mode",
                display_name="Mode",
                type="options",
                default="rules",
                options=["rules", "expression"],
            ),
            NodeProperty(name="rules", display_name="Routing Rules", type="fixedCollection", default={"values": []}),
            NodeProperty(name="numberOutputs", display_name="Number of Outputs", type="number", default=4),
            NodeProperty(name="output", display_name="Output Index", type="number", default=0),
            NodeProperty(
                name="looseTypeValidation",
                display_name="Convert types where required",
                type="boolean",
                default=False,
            ),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    def get_outputs(self, node: Node) -> list[str]:
        parameters = node.parameters
        if parameters.get("mode", "rules") == "expression":
            count = parameters.get("numberOutputs", 4)
            return [MAIN] * (count if isinstance(count, int) else 4)
        rules = (parameters.get("rules") or {}).get("values") or []
        count = len(rules)
        if (parameters.get("options") or {}).get("fallbackOutput") == "extra":
            count += 1
        return [MAIN] * count

    async def execute(self, ctx):
        output_count = len(self.get_outputs(ctx.node))
        outputs = [[] for _ in range(output_count)]
        mode = ctx.get_node_parameter("mode", 0)

        for index, item in enumerate(ctx.get_input_data()):
            try:
                if mode == "expression":
                    targets = [self._expression_output(ctx, index, output_count)]
                else:
                    targets = self._rule_outputs(ctx, index, output_count)
            except (NodeOperationError, ExpressionError):
                if not ctx.continue_on_fail():
                    raise
                if outputs:
                    outputs[0].append(item)
                continue
            for target in targets:
                outputs[target].append(item)

        return outputs

    def _expression_output(self, ctx, index: int, output_count: int) -> int:
        value = ctx.get_node_parameter("output", index)
        try:
            output = int(value)
        except (TypeError, ValueError):
            raise NodeOperationError(ctx.node.name, f"The output index '{value}' is not a number", item_index=index)
        if output < 0 or output >= output_count:
            raise NodeOperationError(
                ctx.node.name,
                f"The output {output} is not allowed. It has to be between 0 and {output_count - 1}!",
                item_index=index,
            )
        return output

    def _rule_outputs(self, ctx, index: int, output_count: int) -> list[int]:
        options = ctx.get_node_parameter("options", index) or {}
        rules = ctx.get_node_parameter("rules.values", index, [])
        matched = []
        for rule_index, rule in enumerate(rules or []):
            if check_conditions(ctx, rule.get("conditions"), index, options):
                matched.append(rule_index)
                if not options.get("allMatchingOutputs"):
                    break
        if matched:
            return matched

        fallback = options.get("fallbackOutput", "none")
        if fallback == "extra":
            return [output_count - 1]
        if isinstance(fallback, int) and 0 <= fallback < output_count:
            return [fallback]
        return []
