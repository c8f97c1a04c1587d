from autoflow.models import RunExecutionData
from autoflow.workflow import print_run_data, print_workflow
from tests.helpers import connect, make_workflow, node, set_node


def branching_workflow():
    return make_workflow(
        [
            node("Start", "manualTrigger"),
            node("Check", "if", 200, parameters={"conditions": {}}),
            set_node("Yes", 400, 0, flag=True),
            node("No", "noOp", 400, 200, disabled=True),
        ],
        connect(("Start", "Check"), ("Check", "Yes", 0), ("Check", "No", 1)),
        name="Branches",
        pinData={"Yes": [{"flag": True}]},
    )


class TestPrintWorkflow:
    def test_outline(self):
        text = print_workflow(branching_workflow())

        assert "WORKFLOW: Branches" in text
        assert "[4] No (disabled)" in text
        assert "[3] Yes (pinned)" in text
        assert "Type: if (v1)" in text
        assert "Parameters:" not in text

    def test_flow_labels_outputs(self):
        lines = print_workflow(branching_workflow()).splitlines()

        assert "  ⚡ Start" in lines
        assert any(line.strip() == "└──→ 🔀 Check" for line in lines)
        assert any(line.strip() == "└──→ [out 1] ⚙️ No" for line in lines)

    def test_parameters_and_webhook(self):
        workflow = make_workflow(
            [node("Hook", "webhook", parameters={"path": "orders", "httpMethod": "POST", "note": "x" * 60})]
        )
        text = print_workflow(workflow, include_params=True)

        assert "(No connections defined)" in text
        assert f'• note: "{"x" * 50}..."' in text
        assert "Method: POST" in text
        assert "Path: /orders" in text


class TestPrintRunData:
    async def test_summarizes_runs(self, executor):
        workflow = make_workflow(
            [node("Start", "manualTrigger"), node("Fail", "stopAndError", 200, parameters={"errorMessage": "nope"})],
            connect(("Start", "Fail")),
        )
        run_data = await executor.run(workflow, trigger_items=[{"json": {"id": i}} for i in range(5)])

        text = print_run_data(run_data, max_items=2)

        assert "output 0: 5 item(s)" in text
        assert '{"id": 1}' in text
        assert '{"id": 2}' not in text
        assert "✗ Fail (run 0" in text
        assert text.endswith(": nope")

    def test_empty(self):
        assert print_run_data(RunExecutionData()) == "(No nodes executed)"
