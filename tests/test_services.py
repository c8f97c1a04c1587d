"""Tests for the execution, workflow, webhook and wait services."""
import asyncio
import inspect
import typing
from datetime import timedelta

import pytest

from autoflow.credentials.service import CredentialsService
from autoflow.db.repositories import CredentialRepository, ExecutionRepository, WorkflowRepository
from autoflow.errors import BadRequestError, ConflictError, NotFoundError, WorkflowActivationError
from autoflow.eventbus import MessageEventBusDestination
from autoflow.models import ExecutionMode, ExecutionStatus, WorkflowCreate, WorkflowUpdate
from autoflow.models.workflow import _utcnow
from autoflow.nodes import NodeTypes, default_node_types
from autoflow.nodes.base import NodeType, NodeTypeDescription
from autoflow.services import create_services
from autoflow.services.executions import ExecutionService
from autoflow.services.webhooks import WebhookRegistry
from autoflow.services.workflows import WorkflowService
from tests.helpers import connect, make_workflow, node, set_node


class RecordingDestination(MessageEventBusDestination):
    def __init__(self, *patterns):
        super().__init__(subscribed_events=list(patterns))
        self.events: list[str] = []

    async def receive(self, msg):
        self.events.append(msg.event_name)
        return True


@pytest.fixture
def svc(settings):
    return create_services(settings)


async def store(svc, nodes, connections=None, name="Stored", **fields):
    body = WorkflowCreate.model_validate({"name": name, "nodes": nodes, "connections": connections or {}, **fields})
    return await svc.workflows.create(body)


async def drain(svc) -> None:
    """Wait for every execution still running in the background."""
    while active := svc.executions.active.get_active():
        for entry in active:
            try:
                await svc.executions.active.wait_for(entry["id"])
            except NotFoundError:
                pass


def linear(*extra_nodes) -> tuple[list[dict], dict]:
    nodes = [node("Start", "manualTrigger"), *extra_nodes]
    pairs = [(nodes[i]["name"], nodes[i + 1]["name"]) for i in range(len(nodes) - 1)]
    return nodes, connect(*pairs)


# =============================================================================
# Executions
# =============================================================================


@pytest.mark.parametrize(
    "service_class",
    [WorkflowRepository, ExecutionRepository, CredentialRepository, CredentialsService, WorkflowService,
     ExecutionService, WebhookRegistry],
)
def test_annotations_resolve_next_to_list_methods(service_class):
    for member in vars(service_class).values():
        if inspect.isfunction(member):
            typing.get_type_hints(member)


class TestExecutionService:
    async def test_run_saves_execution(self, svc):
        workflow = await store(svc, *linear(set_node("Greet", 200, 0, message="hello")))

        execution = await svc.executions.run(workflow, trigger_items=[{"json": {"name": "Ada"}}])

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.finished
        assert execution.stopped_at is not None
        saved = await svc.executions.get(execution.id)
        assert saved.workflow_data.id == workflow.id

        result = svc.executions.to_result(saved)
        assert result.success
        assert result.message == "hello"
        assert result.data[0]["json"] == {"name": "Ada", "message": "hello"}

    async def test_list_newest_first(self, svc):
        workflow = await store(svc, *linear())
        first = await svc.executions.run(workflow)
        second = await svc.executions.run(workflow)

        listed = await svc.executions.list(workflow_id=workflow.id)

        assert [execution.id for execution in listed] == [second.id, first.id]

    async def test_manual_executions_not_saved_when_disabled(self, svc):
        workflow = await store(svc, *linear(), settings={"saveManualExecutions": False})

        execution = await svc.executions.run(workflow)

        assert execution.status == ExecutionStatus.SUCCESS
        with pytest.raises(NotFoundError):
            await svc.executions.get(execution.id)

    async def test_error_data_not_saved(self, svc):
        workflow = await store(
            svc,
            *linear(node("Fail", "stopAndError", parameters={"errorMessage": "nope"})),
            settings={"saveDataErrorExecution": "none"},
        )

        execution = await svc.executions.run(workflow, mode=ExecutionMode.TRIGGER)

        assert execution.status == ExecutionStatus.ERROR
        assert await svc.executions.list() == []

    async def test_prunes_old_executions(self, settings):
        settings.executions_data_max_count = 2
        svc = create_services(settings)
        workflow = await store(svc, *linear())

        for _ in range(3):
            await svc.executions.run(workflow)

        assert len(await svc.executions.list()) == 2

    async def test_failed_execution(self, svc):
        workflow = await store(svc, *linear(node("Fail", "stopAndError", parameters={"errorMessage": "broken"})))

        execution = await svc.executions.run(workflow)
        result = svc.executions.to_result(execution)

        assert execution.status == ExecutionStatus.ERROR
        assert not execution.finished
        assert not result.success
        assert result.error == "broken"

    async def test_retry_with_current_workflow(self, svc):
        nodes, connections = linear(node("Step", "stopAndError", 200, 0, parameters={"errorMessage": "broken"}))
        workflow = await store(svc, nodes, connections)
        failed = await svc.executions.run(workflow)

        await svc.workflows.update(
            workflow.id,
            WorkflowUpdate.model_validate({"nodes": [nodes[0], node("Step", "noOp", 200, 0)]}),
        )
        retried = await svc.executions.retry(failed.id, load_workflow=True)

        assert retried.status == ExecutionStatus.SUCCESS
        assert retried.mode == ExecutionMode.RETRY
        assert retried.retry_of == failed.id
        assert (await svc.executions.get(failed.id)).retry_success_id == retried.id

    async def test_retry_uses_snapshot_by_default(self, svc):
        nodes, connections = linear(node("Step", "stopAndError", 200, 0, parameters={"errorMessage": "broken"}))
        workflow = await store(svc, nodes, connections)
        failed = await svc.executions.run(workflow)
        await svc.workflows.update(
            workflow.id,
            WorkflowUpdate.model_validate({"nodes": [nodes[0], node("Step", "noOp", 200, 0)]}),
        )

        retried = await svc.executions.retry(failed.id)

        assert retried.status == ExecutionStatus.ERROR

    async def test_retry_successful_execution(self, svc):
        workflow = await store(svc, *linear())
        execution = await svc.executions.run(workflow)

        with pytest.raises(BadRequestError, match="cannot be retried"):
            await svc.executions.retry(execution.id)

    async def test_delete(self, svc):
        workflow = await store(svc, *linear())
        execution = await svc.executions.run(workflow)

        await svc.executions.delete(execution.id)

        with pytest.raises(NotFoundError):
            await svc.executions.get(execution.id)

    async def test_stop_running_execution(self, svc):
        workflow = await store(
            svc,
            *linear(node("Pause", "wait", 200, 0, parameters={"amount": 30, "unit": "seconds"})),
        )

        execution = await svc.executions.run(workflow, wait=False)
        assert [entry["id"] for entry in svc.executions.active.get_active()] == [execution.id]

        stopped = await svc.executions.stop(execution.id)

        assert stopped.status == ExecutionStatus.CANCELED
        assert svc.executions.active.get_active() == []
        assert (await svc.executions.get(execution.id)).status == ExecutionStatus.CANCELED

    async def test_stop_finished_execution(self, svc):
        workflow = await store(svc, *linear())
        execution = await svc.executions.run(workflow)

        with pytest.raises(BadRequestError, match="cannot be stopped"):
            await svc.executions.stop(execution.id)

    async def test_stop_waiting_execution(self, svc):
        workflow = await store(svc, *linear(node("Pause", "wait", 200, 0, parameters={"amount": 2, "unit": "hours"})))
        execution = await svc.executions.run(workflow)
        assert execution.status == ExecutionStatus.WAITING

        stopped = await svc.executions.stop(execution.id)

        assert stopped.status == ExecutionStatus.CANCELED
        assert stopped.wait_till is None

    async def test_log_streaming_events(self, svc):
        destination = svc.event_bus.add_destination(RecordingDestination("n8n.workflow.*", "n8n.node.*"))
        workflow = await store(svc, *linear(node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "x"})))

        await svc.executions.run(workflow)

        assert destination.events == [
            "n8n.workflow.started",
            "n8n.node.started",
            "n8n.node.finished",
            "n8n.node.started",
            "n8n.node.finished",
            "n8n.workflow.failed",
        ]


    async def test_run_waits_for_executions_finishing_immediately(self, svc):
        workflow = await store(svc, *linear(set_node("Greet", 200, 0, message="hi")))

        executions = await asyncio.gather(*(svc.executions.run(workflow) for _ in range(5)))

        assert [execution.status for execution in executions] == [ExecutionStatus.SUCCESS] * 5
        assert len({execution.id for execution in executions}) == 5
        assert svc.executions.active.get_active() == []

    async def test_prunes_failed_executions(self, settings):
        settings.executions_data_max_count = 2
        svc = create_services(settings)
        workflow = await store(svc, *linear(node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "x"})))

        runs = [await svc.executions.run(workflow, mode=ExecutionMode.TRIGGER) for _ in range(4)]

        listed = await svc.executions.list()
        assert [execution.id for execution in listed] == [runs[3].id, runs[2].id]
        assert all(execution.status == ExecutionStatus.ERROR for execution in listed)

    async def test_prune_keeps_waiting_executions(self, settings):
        settings.executions_data_max_count = 1
        svc = create_services(settings)
        waiting = await store(svc, *linear(node("Pause", "wait", 200, 0, parameters={"amount": 2, "unit": "hours"})))
        quick = await store(svc, *linear(), name="Quick")

        paused = await svc.executions.run(waiting)
        for _ in range(2):
            await svc.executions.run(quick)

        statuses = {execution.id: execution.status for execution in await svc.executions.list()}
        assert statuses[paused.id] == ExecutionStatus.WAITING
        assert len(statuses) == 2

    async def test_concurrency_limit_queues_production_runs(self, settings):
        settings.executions_concurrency = 1
        svc = create_services(settings)
        slow = await store(svc, *linear(node("Pause", "wait", 200, 0, parameters={"amount": 30, "unit": "seconds"})))
        quick = await store(svc, *linear(), name="Quick")

        first = await svc.executions.run(slow, mode=ExecutionMode.TRIGGER, wait=False)
        queued = await svc.executions.run(quick, mode=ExecutionMode.TRIGGER, wait=False)
        await asyncio.sleep(0.05)
        assert (await svc.executions.get(queued.id)).status == ExecutionStatus.NEW

        manual = await svc.executions.run(quick)
        integrated = await svc.executions.run(quick, mode=ExecutionMode.INTEGRATED)
        assert manual.status == ExecutionStatus.SUCCESS
        assert integrated.status == ExecutionStatus.SUCCESS
        assert (await svc.executions.get(queued.id)).status == ExecutionStatus.NEW

        await svc.executions.stop(first.id)
        await drain(svc)

        assert (await svc.executions.get(queued.id)).status == ExecutionStatus.SUCCESS

    async def test_waiters_get_error_when_crash_cannot_be_saved(self, svc, monkeypatch):
        workflow = await store(svc, *linear())

        async def unavailable(execution):
            raise RuntimeError("execution store unavailable")

        monkeypatch.setattr(svc.executions.repository, "update", unavailable)

        with pytest.raises(RuntimeError, match="execution store unavailable"):
            await svc.executions.run(workflow)
        assert svc.executions.active.get_active() == []


class CountRuns(NodeType):
    """Counts its runs in the workflow's static data."""

    description = NodeTypeDescription(name="countRuns", display_name="Count Runs")

    async def execute(self, ctx):
        data = ctx.get_workflow_static_data("global")
        data["runs"] = data.get("runs", 0) + 1
        return [ctx.get_input_data()]


class TestStaticData:
    @pytest.fixture
    def svc(self, settings):
        services = create_services(settings)
        services.executions.node_types = NodeTypes([*default_node_types(), CountRuns()])
        return services

    async def test_saved_after_production_runs(self, svc):
        workflow = await store(svc, *linear(node("Count", "countRuns", 200, 0)))

        await svc.executions.run(workflow, mode=ExecutionMode.TRIGGER)
        stored = await svc.workflows.get(workflow.id)
        await svc.executions.run(stored, mode=ExecutionMode.WEBHOOK)

        assert (await svc.workflows.get(workflow.id)).static_data == {"global": {"runs": 2}}

    async def test_not_saved_after_manual_runs(self, svc):
        workflow = await store(svc, *linear(node("Count", "countRuns", 200, 0)))

        await svc.executions.run(workflow)

        assert (await svc.workflows.get(workflow.id)).static_data == {}

    async def test_unsaved_workflow_is_ignored(self, svc):
        workflow = make_workflow(*linear(node("Count", "countRuns", 200, 0)), id="not-stored")

        execution = await svc.executions.run(workflow, mode=ExecutionMode.TRIGGER)

        assert execution.status == ExecutionStatus.SUCCESS
        assert workflow.static_data == {"global": {"runs": 1}}


class TestErrorWorkflow:
    async def test_runs_error_workflow(self, svc):
        handler = await store(
            svc,
            [node("On Error", "errorTrigger"), set_node("Record", 200, 0, handled=True)],
            connect(("On Error", "Record")),
            name="Error handler",
        )
        failing = await store(
            svc,
            *linear(node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "kaput"})),
            name="Failing",
            settings={"errorWorkflow": handler.id},
        )

        failed = await svc.executions.run(failing)
        await drain(svc)

        (error_run,) = await svc.executions.list(workflow_id=handler.id)
        assert error_run.mode == ExecutionMode.ERROR
        assert error_run.status == ExecutionStatus.SUCCESS
        (item,) = svc.executions.to_result(error_run).data
        assert item["json"]["handled"] is True
        assert item["json"]["execution"]["id"] == failed.id
        assert item["json"]["execution"]["lastNodeExecuted"] == "Fail"
        assert item["json"]["workflow"] == {"id": failing.id, "name": "Failing"}

    async def test_bare_error_trigger_type(self, svc):
        handler = await store(
            svc,
            [{"name": "On Error", "type": "errorTrigger", "position": [0, 0]}, set_node("Record", 200, 0, handled=True)],
            connect(("On Error", "Record")),
            name="Error handler",
        )
        failing = await store(
            svc,
            *linear(node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "kaput"})),
            settings={"errorWorkflow": handler.id},
        )

        await svc.executions.run(failing)
        await drain(svc)

        (error_run,) = await svc.executions.list(workflow_id=handler.id)
        assert error_run.status == ExecutionStatus.SUCCESS
        assert svc.executions.to_result(error_run).data[0]["json"]["handled"] is True

    async def test_missing_error_workflow_is_ignored(self, svc):
        failing = await store(
            svc,
            *linear(node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "kaput"})),
            settings={"errorWorkflow": "missing"},
        )

        execution = await svc.executions.run(failing)

        assert execution.status == ExecutionStatus.ERROR
        assert svc.executions.active.get_active() == []


class TestSubWorkflows:
    async def test_execute_workflow_node(self, svc):
        sub = await store(
            svc,
            [node("Called", "executeWorkflowTrigger"), set_node("Double", 200, 0, doubled=True)],
            connect(("Called", "Double")),
            name="Sub",
        )
        parent = await store(
            svc,
            *linear(node("Call", "executeWorkflow", 200, 0, parameters={"workflowId": sub.id})),
        )

        execution = await svc.executions.run(parent, trigger_items=[{"json": {"n": 1}}, {"json": {"n": 2}}])

        assert execution.status == ExecutionStatus.SUCCESS
        assert [item["json"] for item in svc.executions.to_result(execution).data] == [
            {"n": 1, "doubled": True},
            {"n": 2, "doubled": True},
        ]
        (sub_run,) = await svc.executions.list(workflow_id=sub.id)
        assert sub_run.mode == ExecutionMode.INTEGRATED

    async def test_trigger_found_by_alias(self, svc):
        sub = await store(
            svc,
            [
                node("Manual", "manualTrigger"),
                set_node("Wrong", 200, 200, source="manual"),
                node("Called", "autoflow-nodes-base.executeWorkflowTrigger"),
                set_node("Right", 200, 0, source="caller"),
            ],
            connect(("Manual", "Wrong"), ("Called", "Right")),
            name="Sub",
        )
        parent = await store(
            svc,
            *linear(node("Call", "executeWorkflow", 200, 0, parameters={"workflowId": sub.id})),
        )

        execution = await svc.executions.run(parent, trigger_items=[{"json": {"n": 1}}])

        assert [item["json"] for item in svc.executions.to_result(execution).data] == [{"n": 1, "source": "caller"}]

    async def test_unknown_sub_workflow(self, svc):
        parent = await store(svc, *linear(node("Call", "executeWorkflow", 200, 0, parameters={"workflowId": "nope"})))

        execution = await svc.executions.run(parent)

        assert execution.status == ExecutionStatus.ERROR
        assert execution.data.result_data.error["message"] == "Workflow with ID 'nope' could not be found"

    async def test_failing_sub_workflow(self, svc):
        sub = await store(
            svc,
            [node("Called", "executeWorkflowTrigger"), node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "inner"})],
            connect(("Called", "Fail")),
        )
        parent = await store(svc, *linear(node("Call", "executeWorkflow", 200, 0, parameters={"workflowId": sub.id})))

        execution = await svc.executions.run(parent)

        assert execution.status == ExecutionStatus.ERROR
        assert execution.data.result_data.error["message"] == "inner"


# =============================================================================
# Wait tracker
# =============================================================================


class TestWaitTracker:
    async def test_resumes_due_executions(self, svc):
        workflow = await store(
            svc,
            *linear(
                node("Pause", "wait", 200, 0, parameters={"amount": 2, "unit": "hours"}),
                set_node("After", 400, 0, resumed=True),
            ),
        )
        execution = await svc.executions.run(workflow)
        assert execution.status == ExecutionStatus.WAITING

        tracker = svc.wait_tracker
        assert await tracker.check() == 0

        waiting = await svc.executions.repository.get(execution.id)
        waiting.wait_till = _utcnow() - timedelta(seconds=1)
        await svc.executions.repository.update(waiting)

        assert await tracker.check() == 1
        await asyncio.gather(*list(tracker._timers.values()))

        resumed = await svc.executions.get(execution.id)
        assert resumed.status == ExecutionStatus.SUCCESS
        assert svc.executions.to_result(resumed).data[0]["json"] == {"resumed": True}
        await tracker.stop()

    async def test_resume_requires_waiting_status(self, svc):
        workflow = await store(svc, *linear())
        execution = await svc.executions.run(workflow)

        with pytest.raises(BadRequestError, match="is not waiting"):
            await svc.executions.resume(execution.id)


# =============================================================================
# Workflows
# =============================================================================


def webhook_workflow(path: str = "orders/:id", **parameters) -> tuple[list[dict], dict]:
    return (
        [
            node(
                "Hook",
                "webhook",
                parameters={"httpMethod": "POST", "path": path, "responseMode": "lastNode", **parameters},
            ),
            set_node("Reply", 200, 0, include_other=False, order="={{ $json.params.id }}", total="={{ $json.body.total }}"),
        ],
        connect(("Hook", "Reply")),
    )


class TestWorkflowService:
    async def test_create_get_delete(self, svc):
        workflow = await store(svc, *linear(), name="CRUD")

        assert (await svc.workflows.get(workflow.id)).name == "CRUD"

        await svc.workflows.delete(workflow.id)
        with pytest.raises(NotFoundError):
            await svc.workflows.get(workflow.id)

    async def test_update_changes_version(self, svc):
        workflow = await store(svc, *linear(), name="Before")

        updated = await svc.workflows.update(workflow.id, WorkflowUpdate(name="After"))

        assert updated.name == "After"
        assert updated.version_id != workflow.version_id
        assert updated.nodes == workflow.nodes

    async def test_search(self, svc):
        await store(svc, *linear(), name="Invoice sync", description="Pushes invoices")
        await store(svc, *linear(), name="Slack alerts")

        result = await svc.workflows.search("INVOICE")

        assert result["count"] == 1
        (match,) = result["data"]
        assert match["name"] == "Invoice sync"
        assert match["triggerCount"] == 1
        assert match["canExecute"] is True

    async def test_audit_events(self, svc):
        from autoflow.audit import AuditLogFilter

        workflow = await store(svc, *linear(), name="Audited")

        (event,) = await svc.audit_log.get_events(AuditLogFilter(event_name="n8n.audit.workflow.created"))
        assert event.payload["workflowId"] == workflow.id

    async def test_activate_without_activatable_trigger(self, svc):
        workflow = await store(svc, *linear())

        with pytest.raises(WorkflowActivationError, match="no node to start the workflow"):
            await svc.workflows.activate(workflow.id)

    async def test_activate_and_deactivate(self, svc):
        workflow = await store(svc, *webhook_workflow())

        activated = await svc.workflows.activate(workflow.id)

        assert activated.active
        assert [(entry.method, entry.path) for entry in svc.webhooks.registry.list()] == [("POST", "orders/:id")]

        await svc.workflows.deactivate(workflow.id)
        assert svc.webhooks.registry.list() == []
        assert not (await svc.workflows.get(workflow.id)).active

    async def test_conflicting_webhooks(self, svc):
        first = await store(svc, *webhook_workflow("orders/:id"))
        second = await store(svc, *webhook_workflow("orders/:orderId"))
        await svc.workflows.activate(first.id)

        with pytest.raises(ConflictError, match="POST /orders/:orderId is already in use"):
            await svc.workflows.activate(second.id)
        assert not (await svc.workflows.get(second.id)).active

    async def test_init_registers_active_workflows(self, settings):
        svc = create_services(settings)
        workflow = await store(svc, *webhook_workflow())
        await svc.workflows.activate(workflow.id)
        svc.webhooks.registry.unregister(workflow.id)

        assert await svc.workflows.init() == 1
        assert len(svc.webhooks.registry.list()) == 1

    async def test_apply_operations(self, svc):
        workflow = await store(svc, *linear())

        updated = await svc.workflows.apply_operations(
            workflow.id,
            [
                {"type": "addNodes", "nodes": [set_node("Tag", 200, 0, tagged=True)]},
                {"type": "connectIntent", "sourceNodeName": "Start", "targetNodeName": "Tag"},
            ],
        )

        assert updated.node_names == ["Start", "Tag"]
        assert updated.connections["Start"]["main"][0][0].node == "Tag"


# =============================================================================
# Webhooks
# =============================================================================


class TestWebhookRegistry:
    def test_static_path_wins(self, node_types):
        registry = WebhookRegistry()
        dynamic = make_workflow(*webhook_workflow("orders/:id"), id="dynamic")
        static = make_workflow(*webhook_workflow("orders/latest"), id="static")
        registry.register(dynamic, node_types)
        registry.register(static, node_types)

        entry, params = registry.find("post", "/orders/latest/")
        assert (entry.workflow_id, params) == ("static", {})

        entry, params = registry.find("POST", "orders/7")
        assert (entry.workflow_id, params) == ("dynamic", {"id": "7"})

    def test_unknown_webhook(self, node_types):
        with pytest.raises(NotFoundError, match='"GET missing" is not registered'):
            WebhookRegistry().find("GET", "missing")

    def test_method_must_match(self, node_types):
        registry = WebhookRegistry()
        registry.register(make_workflow(*webhook_workflow("orders/latest")), node_types)

        with pytest.raises(NotFoundError):
            registry.find("GET", "orders/latest")

    def test_reregister_replaces_entries(self, node_types):
        registry = WebhookRegistry()
        workflow = make_workflow(*webhook_workflow("a"))
        registry.register(workflow, node_types)

        moved = make_workflow(*webhook_workflow("b"))
        registry.register(moved, node_types)

        assert [entry.path for entry in registry.list()] == ["b"]

    def test_disabled_webhook_nodes_are_skipped(self, node_types):
        nodes, connections = webhook_workflow()
        nodes[0]["disabled"] = True

        assert WebhookRegistry.entries_for(make_workflow(nodes, connections), node_types) == []


class TestWebhookService:
    async def test_last_node_response(self, svc):
        workflow = await store(svc, *webhook_workflow())
        await svc.workflows.activate(workflow.id)

        response = await svc.webhooks.handle("POST", "orders/42", body={"total": 9.5}, query={"debug": "1"})

        assert response.status_code == 200
        assert response.body == {"order": "42", "total": "9.5"}
        (execution,) = await svc.executions.list(workflow_id=workflow.id)
        assert execution.mode == ExecutionMode.WEBHOOK

    async def test_trigger_item(self, svc):
        nodes = [node("Hook", "webhook", parameters={"httpMethod": "GET", "path": "ping", "responseMode": "lastNode"})]
        workflow = await store(svc, nodes)
        await svc.workflows.activate(workflow.id)

        response = await svc.webhooks.handle("GET", "ping", headers={"x-id": "1"}, query={"a": "b"})

        assert response.body == {"headers": {"x-id": "1"}, "params": {}, "query": {"a": "b"}, "body": {}}

    async def test_on_received_responds_immediately(self, svc):
        workflow = await store(svc, *webhook_workflow(responseMode="onReceived", responseCode=202))
        await svc.workflows.activate(workflow.id)

        response = await svc.webhooks.handle("POST", "orders/1", body={"total": 1})
        await drain(svc)

        assert response.status_code == 202
        assert response.body == {"message": "Workflow was started"}
        (execution,) = await svc.executions.list(workflow_id=workflow.id)
        assert execution.status == ExecutionStatus.SUCCESS

    async def test_all_entries_and_no_data(self, svc):
        workflow = await store(svc, *webhook_workflow(responseData="allEntries"))
        await svc.workflows.activate(workflow.id)

        response = await svc.webhooks.handle("POST", "orders/1", body={"total": 1})
        assert response.body == [{"order": "1", "total": "1"}]

        await svc.workflows.update(
            workflow.id,
            WorkflowUpdate.model_validate({"nodes": webhook_workflow(responseData="noData")[0]}),
        )
        response = await svc.webhooks.handle("POST", "orders/1", body={"total": 1})
        assert response.body is None

    async def test_failing_workflow(self, svc):
        nodes = [
            node("Hook", "webhook", parameters={"httpMethod": "POST", "path": "boom", "responseMode": "lastNode"}),
            node("Fail", "stopAndError", 200, 0, parameters={"errorMessage": "boom"}),
        ]
        workflow = await store(svc, nodes, connect(("Hook", "Fail")))
        await svc.workflows.activate(workflow.id)

        response = await svc.webhooks.handle("POST", "boom")

        assert response.status_code == 500
        assert response.body == {"message": "Error in workflow"}

    async def test_inactive_workflow(self, svc):
        workflow = await store(svc, *webhook_workflow())
        await svc.workflows.activate(workflow.id)
        await svc.workflows.deactivate(workflow.id)

        with pytest.raises(NotFoundError):
            await svc.webhooks.handle("POST", "orders/1")
