"""Variables exposed to expressions ($json, $input, $('Node'), ...)."""
import os
from datetime import datetime, timezone
from typing import Any, Optional

from autoflow.engine import expressions
from autoflow.errors import ExpressionError
from autoflow.models import MAIN, Item, TaskData, TaskSource, Workflow


def _normalize_paired_item(paired: Any) -> Optional[dict]:
    if isinstance(paired, list):
        paired = paired[0] if paired else None
    if isinstance(paired, int):
        return {"item": paired}
    if isinstance(paired, dict):
        return paired
    return None


class NodeOutputProxy:
    """Output of another node as seen from an expression."""

    def __init__(self, proxy: "WorkflowDataProxy", node_name: str):
        self._proxy = proxy
        self._node_name = node_name

    def _runs(self) -> list[TaskData]:
        return self._proxy.run_data.get(self._node_name, [])

    def _output(self, branch_index: int = 0, run_index: int = -1) -> list[Item]:
        runs = self._runs()
        if not runs:
            raise ExpressionError(
                f"Node '{self._node_name}' hasn't been executed",
                description="Make sure the referenced node runs before this one",
            )
        try:
            outputs = runs[run_index].data.get(MAIN, [])
        except IndexError:
            return []
        if branch_index >= len(outputs):
            return []
        return outputs[branch_index] or []

    def all(self, branch_index: int = 0, run_index: int = -1) -> list[Item]:
        return self._output(branch_index, run_index)

    def first(self, branch_index: int = 0, run_index: int = -1) -> Optional[Item]:
        items = self._output(branch_index, run_index)
        return items[0] if items else None

    def last(self, branch_index: int = 0, run_index: int = -1) -> Optional[Item]:
        items = self._output(branch_index, run_index)
        return items[-1] if items else None

    @property
    def item(self) -> Optional[Item]:
        return self._proxy.resolve_paired_item(self._node_name)

    @property
    def json(self) -> dict:
        items = self._output()
        if not items:
            return {}
        index = self._proxy.item_index if self._proxy.item_index < len(items) else 0
        return items[index].get("json", {})

    @property
    def binary(self) -> dict:
        items = self._output()
        if not items:
            return {}
        index = self._proxy.item_index if self._proxy.item_index < len(items) else 0
        return items[index].get("binary", {})

    @property
    def params(self) -> dict:
        node = self._proxy.workflow.get_node(self._node_name)
        return node.parameters if node else {}

    @property
    def is_executed(self) -> bool:
        return bool(self._runs())

    # camelCase alias used by n8n expressions
    isExecuted = is_executed


class InputProxy:
    """The current node's input ($input)."""

    def __init__(self, proxy: "WorkflowDataProxy"):
        self._proxy = proxy

    def all(self, input_index: int = 0) -> list[Item]:
        return self._proxy.get_input_items(input_index)

    def first(self, input_index: int = 0) -> Optional[Item]:
        items = self.all(input_index)
        return items[0] if items else None

    def last(self, input_index: int = 0) -> Optional[Item]:
        items = self.all(input_index)
        return items[-1] if items else None

    @property
    def item(self) -> Optional[Item]:
        items = self.all()
        index = self._proxy.item_index
        return items[index] if index < len(items) else None

    @property
    def params(self) -> dict:
        node = self._proxy.workflow.get_node(self._proxy.node_name)
        return node.parameters if node else {}


class _BlockedEnv:
    def __getattr__(self, name):
        raise ExpressionError(
            "Access to env vars denied",
            description="Environment access is disabled for expressions on this instance",
        )

    __getitem__ = __getattr__


class WorkflowDataProxy:
    """Builds the expression context for one node, item and run."""

    def __init__(
        self,
        workflow: Workflow,
        run_data: dict[str, list[TaskData]],
        node_name: str,
        input_data: dict[str, list[Optional[list[Item]]]],
        input_source: Optional[list[Optional[TaskSource]]] = None,
        item_index: int = 0,
        run_index: int = 0,
        execution_id: Optional[str] = None,
        mode: str = "manual",
        variables: Optional[dict[str, Any]] = None,
        block_env_access: bool = True,
    ):
        self.workflow = workflow
        self.run_data = run_data
        self.node_name = node_name
        self.input_data = input_data
        self.input_source = input_source or []
        self.item_index = item_index
        self.run_index = run_index
        self.execution_id = execution_id
        self.mode = mode
        self.variables = variables or {}
        self.block_env_access = block_env_access

    def get_input_items(self, input_index: int = 0) -> list[Item]:
        inputs = self.input_data.get(MAIN, [])
        if input_index >= len(inputs):
            return []
        return inputs[input_index] or []

    def node(self, node_name: str) -> NodeOutputProxy:
        if self.workflow.get_node(node_name) is None:
            raise ExpressionError(f"Referenced node doesn't exist: '{node_name}'")
        return NodeOutputProxy(self, node_name)

    def resolve_paired_item(self, target_node: str) -> Optional[Item]:
        """Follow pairedItem links back from the current item to ``target_node``."""
        index = self.item_index
        source = self.input_source[0] if self.input_source else None

        while source is not None:
            runs = self.run_data.get(source.previous_node, [])
            if source.previous_node_run >= len(runs):
                break
            task = runs[source.previous_node_run]
            outputs = task.data.get(MAIN, [])
            if source.previous_node_output >= len(outputs):
                break
            items = outputs[source.previous_node_output] or []
            if index >= len(items):
                break
            item = items[index]
            if source.previous_node == target_node:
                return item

            paired = _normalize_paired_item(item.get("pairedItem"))
            if paired is None:
                break
            index = paired.get("item", 0)
            input_index = paired.get("input") or 0
            source = task.source[input_index] if input_index < len(task.source) else None

        items = self.node(target_node).all()
        if self.item_index < len(items):
            return items[self.item_index]
        raise ExpressionError(
            "Paired item data unavailable",
            description=f"Can't determine which item of '{target_node}' to use",
        )

    def get_workflow_static_data(self, data_type: str = "global") -> dict:
        key = "global" if data_type == "global" else f"node:{self.node_name}"
        return self.workflow.static_data.setdefault(key, {})

    def _current_item(self) -> Item:
        items = self.get_input_items()
        if self.item_index < len(items):
            return items[self.item_index]
        return {"json": {}}

    def _prev_node(self) -> dict:
        source = self.input_source[0] if self.input_source else None
        if source is None:
            return {"name": None, "outputIndex": 0, "runIndex": 0}
        return {
            "name": source.previous_node,
            "outputIndex": source.previous_node_output,
            "runIndex": source.previous_node_run,
        }

    def get_variables(self) -> dict[str, Any]:
        """Variables keyed by their name without the ``$``."""
        item = self._current_item()
        node = self.workflow.get_node(self.node_name)
        now = datetime.now(timezone.utc)
        return {
            "json": item.get("json", {}),
            "binary": item.get("binary", {}),
            "input": InputProxy(self),
            "node": {name: NodeOutputProxy(self, name) for name in self.workflow.node_names},
            "node_ref": self.node,
            "items": lambda name=None, output_index=0, run_index=-1: (
                self.get_input_items()
                if name is None
                else self.node(name).all(output_index, run_index)
            ),
            "parameter": node.parameters if node else {},
            "workflow": {
                "id": self.workflow.id,
                "name": self.workflow.name,
                "active": self.workflow.active,
            },
            "execution": {"id": self.execution_id, "mode": self.mode},
            "now": now,
            "today": now.replace(hour=0, minute=0, second=0, microsecond=0),
            "itemIndex": self.item_index,
            "runIndex": self.run_index,
            "prevNode": self._prev_node(),
            "vars": self.variables,
            "getWorkflowStaticData": self.get_workflow_static_data,
            "env": _BlockedEnv() if self.block_env_access else dict(os.environ),
        }

    def get_context(self) -> dict[str, Any]:
        return expressions.build_context(self.get_variables())
