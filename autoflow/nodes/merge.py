"""Merge node: combine the items of several inputs."""
import copy
from typing import Any, Optional

from autoflow.errors import NodeOperationError
from autoflow.models import MAIN, Item, Node
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription

# Modes that used to be top level and are now "combine" + combineBy
_COMBINE_MODES = ("combineByFields", "combineByPosition", "combineAll")

PREFER_INPUT1 = "preferInput1"
PREFER_INPUT2 = "preferInput2"


def _paired(item_index: int, input_index: int) -> dict:
    return {"item": item_index, "input": input_index}


def _merge_json(first: dict, second: dict, resolve_clash: str) -> dict:
    if resolve_clash == PREFER_INPUT1:
        merged = copy.deepcopy(second)
        merged.update(copy.deepcopy(first))
    else:
        merged = copy.deepcopy(first)
        merged.update(copy.deepcopy(second))
    return merged


def _merge_items(first: Item, second: Item, first_index: int, second_index: int, resolve_clash: str) -> Item:
    item: Item = {
        "json": _merge_json(first.get("json", {}), second.get("json", {}), resolve_clash),
        "pairedItem": [_paired(first_index, 0), _paired(second_index, 1)],
    }
    binary = _merge_json(first.get("binary") or {}, second.get("binary") or {}, resolve_clash)
    if binary:
        item["binary"] = binary
    return item


def _field_value(item: Item, field: str) -> Any:
    current: Any = item.get("json", {})
    for key in field.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def _match_key(item: Item, fields: list[str]) -> Optional[tuple]:
    values = tuple(_field_value(item, field) for field in fields)
    if any(value is None for value in values):
        return None
    return tuple(str(value) for value in values)


class Merge(NodeType):
    """Merge data of multiple streams once data from every input is available.

    Modes:
        append: items of input 1, then input 2, ...
        combine + combineBy:
            combineByPosition: merge items with the same index
            combineByFields: merge items whose fields match (joinMode decides
                which matched/unmatched items are output)
            combineAll: every combination of input 1 and input 2 items
        chooseBranch: output the items of one input
    """

    description = NodeTypeDescription(
        name="merge",
        display_name="Merge",
        description="Merges data of multiple streams once data from both is available",
        version=[3],
        inputs=[MAIN, MAIN],
        properties=[
            NodeProperty(
                name="mode",
                display_name="Mode",
                type="options",
                default="append",
                options=["append", "combine", "chooseBranch"],
            ),
            NodeProperty(
                name="combineBy",
                display_name="Combine By",
                type="options",
                default="combineByFields",
                options=list(_COMBINE_MODES),
            ),
            NodeProperty(name="numberInputs", display_name="Number of Inputs", type="number", default=2),
            NodeProperty(name="fieldsToMatchString", display_name="Fields To Match", default=""),
            NodeProperty(
                name="joinMode",
                display_name="Output Type",
                type="options",
                default="keepMatches",
                options=["keepMatches", "keepNonMatches", "keepEverything", "enrichInput1", "enrichInput2"],
            ),
            NodeProperty(
                name="outputDataFrom",
                display_name="Output Data From",
                type="options",
                default="both",
                options=["both", "input1", "input2"],
            ),
            NodeProperty(
                name="chooseBranchMode",
                display_name="Output Type",
                type="options",
                default="waitForAll",
                options=["waitForAll"],
            ),
            NodeProperty(
                name="output",
                display_name="Output",
                type="options",
                default="specifiedInput",
                options=["specifiedInput", "empty"],
            ),
            NodeProperty(name="useDataOfInput", display_name="Use Data of Input", type="number", default=1),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    def get_inputs(self, node: Node) -> list[str]:
        mode = node.parameters.get("mode", "append")
        count = node.parameters.get("numberInputs", 2)
        if mode not in ("append", "chooseBranch") or not isinstance(count, int):
            count = 2
        return [MAIN] * max(count, 2)

    async def execute(self, ctx):
        mode = ctx.get_node_parameter("mode", 0)
        combine_by = ctx.get_node_parameter("combineBy", 0)
        if mode in _COMBINE_MODES:
            mode, combine_by = "combine", mode

        input_count = len(self.get_inputs(ctx.node))
        inputs = [ctx.get_input_data(index) for index in range(input_count)]
        options = ctx.get_node_parameter("options", 0) or {}
        resolve_clash = ((options.get("clashHandling") or {}).get("values") or {}).get(
            "resolveClash", PREFER_INPUT2
        )

        if mode == "append":
            return [self._append(inputs)]
        if mode == "chooseBranch":
            return [self._choose_branch(ctx, inputs)]
        if mode != "combine":
            raise NodeOperationError(ctx.node.name, f"The mode '{mode}' is not supported")

        first, second = inputs[0], inputs[1]
        if combine_by == "combineByPosition":
            return [self._combine_by_position(first, second, resolve_clash, options.get("includeUnpaired", False))]
        if combine_by == "combineAll":
            return [self._combine_all(first, second, resolve_clash)]
        return [self._combine_by_fields(ctx, first, second, resolve_clash)]

    # =========================================================================
    # Modes
    # =========================================================================

    @staticmethod
    def _append(inputs: list[list[Item]]) -> list[Item]:
        output = []
        for input_index, items in enumerate(inputs):
            for item_index, item in enumerate(items):
                output.append({**item, "pairedItem": _paired(item_index, input_index)})
        return output

    @staticmethod
    def _choose_branch(ctx, inputs: list[list[Item]]) -> list[Item]:
        if ctx.get_node_parameter("output", 0) == "empty":
            return [{"json": {}, "pairedItem": [_paired(0, index) for index in range(len(inputs))]}]
        chosen = int(ctx.get_node_parameter("useDataOfInput", 0)) - 1
        if chosen < 0 or chosen >= len(inputs):
            raise NodeOperationError(ctx.node.name, f"The input {chosen + 1} is not allowed")
        return [
            {**item, "pairedItem": _paired(item_index, chosen)}
            for item_index, item in enumerate(inputs[chosen])
        ]

    @staticmethod
    def _combine_by_position(
        first: list[Item],
        second: list[Item],
        resolve_clash: str,
        include_unpaired: bool,
    ) -> list[Item]:
        output = []
        paired_count = min(len(first), len(second))
        for index in range(paired_count):
            output.append(_merge_items(first[index], second[index], index, index, resolve_clash))
        if include_unpaired:
            for index in range(paired_count, len(first)):
                output.append({**first[index], "pairedItem": _paired(index, 0)})
            for index in range(paired_count, len(second)):
                output.append({**second[index], "pairedItem": _paired(index, 1)})
        return output

    @staticmethod
    def _combine_all(first: list[Item], second: list[Item], resolve_clash: str) -> list[Item]:
        return [
            _merge_items(first_item, second_item, first_index, second_index, resolve_clash)
            for first_index, first_item in enumerate(first)
            for second_index, second_item in enumerate(second)
        ]

    def _combine_by_fields(self, ctx, first: list[Item], second: list[Item], resolve_clash: str) -> list[Item]:
        fields1, fields2 = self._match_fields(ctx)
        join_mode = ctx.get_node_parameter("joinMode", 0)

        index2: dict[tuple, list[int]] = {}
        for second_index, item in enumerate(second):
            key = _match_key(item, fields2)
            if key is not None:
                index2.setdefault(key, []).append(second_index)

        matched = []
        unmatched1 = []
        matched2: set[int] = set()
        for first_index, item in enumerate(first):
            key = _match_key(item, fields1)
            partners = index2.get(key, []) if key is not None else []
            if not partners:
                unmatched1.append(first_index)
                continue
            for second_index in partners:
                matched.append((first_index, second_index))
                matched2.add(second_index)
        unmatched2 = [index for index in range(len(second)) if index not in matched2]

        def merged() -> list[Item]:
            return [
                _merge_items(first[i], second[j], i, j, resolve_clash)
                for i, j in matched
            ]

        def leftovers(indexes: list[int], items: list[Item], input_index: int) -> list[Item]:
            return [{**items[i], "pairedItem": _paired(i, input_index)} for i in indexes]

        if join_mode == "keepMatches":
            output_from = ctx.get_node_parameter("outputDataFrom", 0)
            if output_from == "input1":
                seen = sorted({i for i, _ in matched})
                return leftovers(seen, first, 0)
            if output_from == "input2":
                return leftovers(sorted(matched2), second, 1)
            return merged()
        if join_mode == "keepNonMatches":
            output_from = ctx.get_node_parameter("outputDataFrom", 0)
            output = []
            if output_from in ("both", "input1"):
                output.extend(leftovers(unmatched1, first, 0))
            if output_from in ("both", "input2"):
                output.extend(leftovers(unmatched2, second, 1))
            return output
        if join_mode == "keepEverything":
            return merged() + leftovers(unmatched1, first, 0) + leftovers(unmatched2, second, 1)
        if join_mode == "enrichInput1":
            by_first: dict[int, list[int]] = {}
            for i, j in matched:
                by_first.setdefault(i, []).append(j)
            output = []
            for i, item in enumerate(first):
                if i in by_first:
                    output.extend(_merge_items(item, second[j], i, j, resolve_clash) for j in by_first[i])
                else:
                    output.append({**item, "pairedItem": _paired(i, 0)})
            return output
        if join_mode == "enrichInput2":
            by_second: dict[int, list[int]] = {}
            for i, j in matched:
                by_second.setdefault(j, []).append(i)
            output = []
            for j, item in enumerate(second):
                if j in by_second:
                    output.extend(_merge_items(first[i], item, i, j, resolve_clash) for i in by_second[j])
                else:
                    output.append({**item, "pairedItem": _paired(j, 1)})
            return output

        raise NodeOperationError(ctx.node.name, f"The output type '{join_mode}' is not supported")

    @staticmethod
    def _match_fields(ctx) -> tuple[list[str], list[str]]:
        """Fields to compare, from ``fieldsToMatchString`` or ``mergeByFields``."""
        pairs = (ctx.get_node_parameter("mergeByFields", 0, {}) or {}).get("values") or []
        if pairs:
            fields1 = [pair.get("field1", "") for pair in pairs]
            fields2 = [pair.get("field2", "") for pair in pairs]
        else:
            text = ctx.get_node_parameter("fieldsToMatchString", 0) or ""
            fields1 = [field.strip() for field in text.split(",") if field.strip()]
            fields2 = list(fields1)
        if not fields1 or not all(fields1) or not all(fields2):
            raise NodeOperationError(
                ctx.node.name,
                "You need to define at least one pair of fields in 'Fields to Match' to match on",
            )
        return fields1, fields2
