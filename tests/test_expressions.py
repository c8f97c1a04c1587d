"""Tests for parameter expression evaluation."""
import pytest

from autoflow.engine.data_proxy import WorkflowDataProxy
from autoflow.engine.expressions import (
    build_context,
    check_syntax,
    evaluate,
    find_node_references,
    is_expression,
    rename_node_references,
    resolve_value,
    translate,
)
from autoflow.errors import ExpressionError
from autoflow.models import TaskData, TaskSource
from tests.helpers import connect, make_workflow, node


def ctx(**variables):
    return build_context(variables)


class TestEvaluate:
    """Expression strings against a plain context."""

    def test_single_segment_keeps_type(self):
        assert evaluate("={{ $json.count + 1 }}", ctx(json={"count": 2})) == 3

    def test_interpolation_returns_string(self):
        result = evaluate("=Hello {{ $json.name }}, you are {{ $json.age }}!", ctx(json={"name": "Ada", "age": 36}))
        assert result == "Hello Ada, you are 36!"

    def test_interpolated_objects_are_json(self):
        assert evaluate("=data: {{ $json.tags }}", ctx(json={"tags": ["a", "b"]})) == 'data: ["a", "b"]'

    def test_missing_field_is_none(self):
        assert evaluate("={{ $json.missing }}", ctx(json={})) is None

    def test_missing_field_interpolates_as_empty(self):
        assert evaluate("=x{{ $json.missing }}y", ctx(json={})) == "xy"

    def test_mapping_keys_win_over_dict_methods(self):
        assert evaluate("={{ $json.items }}", ctx(json={"items": [1, 2]})) == [1, 2]

    def test_javascript_operators(self):
        context = ctx(json={"a": 1, "b": "x"})
        assert evaluate("={{ $json.a === 1 && $json.b !== 'y' }}", context) is True
        assert evaluate("={{ !$json.a || false }}", context) is False

    def test_filters(self):
        assert evaluate("={{ $json.tags | length }}", ctx(json={"tags": [1, 2, 3]})) == 3

    def test_no_segments_returns_body(self):
        assert evaluate("=plain text", ctx()) == "plain text"

    def test_string_literals_are_untouched(self):
        assert evaluate("={{ '$json && !x' }}", ctx(json={})) == "$json && !x"

    def test_runtime_error_raises_expression_error(self):
        with pytest.raises(ExpressionError) as exc_info:
            evaluate("={{ $json.a / 0 }}", ctx(json={"a": 1}))
        assert exc_info.value.expression == "$json.a / 0"


class TestSyntax:
    def test_is_expression(self):
        assert is_expression("={{ 1 }}")
        assert not is_expression("{{ 1 }}")
        assert not is_expression(5)

    def test_translate_rewrites_variables(self):
        assert translate("$json.a === null") == "_json.a == none"
        assert translate("$('Node').item") == "_node_ref('Node').item"

    def test_check_syntax_accepts_valid(self):
        check_syntax("={{ $json.a + 1 }} and {{ $now }}")

    def test_check_syntax_rejects_invalid(self):
        with pytest.raises(ExpressionError, match="Invalid expression syntax"):
            check_syntax("={{ $json.a + }}")


class TestResolveValue:
    def test_resolves_nested_structures(self):
        value = {"a": "={{ $json.x }}", "b": ["={{ $json.x * 2 }}", "literal"], "c": 3}
        assert resolve_value(value, ctx(json={"x": 5})) == {"a": 5, "b": [10, "literal"], "c": 3}


class TestNodeReferences:
    def test_find_references(self):
        expression = "={{ $('Fetch Data').item.json.id }} {{ $node[\"Other\"].json.x }} {{ $node.Plain.json }}"
        assert find_node_references(expression) == {"Fetch Data", "Other", "Plain"}

    def test_rename_quoted_reference(self):
        renamed = rename_node_references("={{ $('Fetch').item.json.id }}", "Fetch", "Load")
        assert renamed == "={{ $('Load').item.json.id }}"

    def test_rename_dotted_reference_to_name_with_space(self):
        renamed = rename_node_references("={{ $node.Fetch.json.id }}", "Fetch", "Fetch Data")
        assert renamed == '={{ $node["Fetch Data"].json.id }}'

    def test_rename_leaves_other_nodes(self):
        expression = "={{ $('Fetcher').item.json.id }}"
        assert rename_node_references(expression, "Fetch", "Load") == expression


class TestSandbox:
    @pytest.mark.parametrize(
        "expression",
        [
            "={{ ''.__class__.__mro__ }}",
            "={{ $json.name.__class__ }}",
            "={{ $json.__class__ }}",
            "={{ $json['__class__'] }}",
            "={{ (1).__class__.__base__.__subclasses__() }}",
        ],
    )
    def test_dunder_access_is_rejected(self, expression):
        with pytest.raises(ExpressionError, match="Expression not allowed"):
            evaluate(expression, ctx(json={"name": "Ada"}))

    def test_dunder_key_of_data_is_readable(self):
        assert evaluate("={{ $json['__meta__'] }}", ctx(json={"__meta__": 1})) == 1


# =============================================================================
# Workflow data proxy
# =============================================================================


class TestWorkflowDataProxy:
    @pytest.fixture
    def workflow(self):
        return make_workflow(
            [node("Start", "manualTrigger"), node("Use", "noOp", 200)],
            connect(("Start", "Use")),
            id="wf7",
            name="Proxy",
            staticData={"global": {"lastId": 41}},
        )

    def proxy(self, workflow, **options) -> WorkflowDataProxy:
        items = [{"json": {"id": 1}}]
        return WorkflowDataProxy(
            workflow=workflow,
            run_data={"Start": [TaskData(start_time=0, data={"main": [items]})]},
            node_name="Use",
            input_data={"main": [items]},
            input_source=[TaskSource(previous_node="Start")],
            execution_id="12",
            mode="trigger",
            **options,
        )

    def test_prev_node(self, workflow):
        context = self.proxy(workflow).get_context()
        assert evaluate("={{ $prevNode.name }}", context) == "Start"
        assert evaluate("={{ $prevNode.outputIndex }}", context) == 0

    def test_workflow_and_execution(self, workflow):
        context = self.proxy(workflow).get_context()
        assert evaluate("={{ $workflow.id }}/{{ $workflow.name }}", context) == "wf7/Proxy"
        assert evaluate("={{ $workflow.active }}", context) is False
        assert evaluate("={{ $execution.id }}", context) == "12"
        assert evaluate("={{ $execution.mode }}", context) == "trigger"

    def test_env_blocked_by_default(self, workflow, monkeypatch):
        monkeypatch.setenv("AUTOFLOW_SECRET", "hunter2")
        context = self.proxy(workflow).get_context()
        with pytest.raises(ExpressionError, match="Access to env vars denied"):
            evaluate("={{ $env.AUTOFLOW_SECRET }}", context)
        with pytest.raises(ExpressionError, match="Access to env vars denied"):
            evaluate("={{ $env['AUTOFLOW_SECRET'] }}", context)

    def test_env_allowed_when_unblocked(self, workflow, monkeypatch):
        monkeypatch.setenv("AUTOFLOW_SECRET", "hunter2")
        context = self.proxy(workflow, block_env_access=False).get_context()
        assert evaluate("={{ $env.AUTOFLOW_SECRET }}", context) == "hunter2"

    def test_workflow_static_data(self, workflow):
        context = self.proxy(workflow).get_context()
        assert evaluate("={{ $getWorkflowStaticData('global').lastId + 1 }}", context) == 42
        assert evaluate("={{ $getWorkflowStaticData('node') }}", context) == {}
        assert workflow.static_data == {"global": {"lastId": 41}, "node:Use": {}}
