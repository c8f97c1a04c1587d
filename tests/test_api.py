"""REST and webhook endpoints through the FastAPI app."""
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from autoflow.api import dependencies
from autoflow.main import app
from autoflow.services import create_services, reset_services
from tests.helpers import connect, node, set_node


@pytest.fixture
def svc(settings):
    services = create_services(settings)
    reset_services(services)
    yield services
    reset_services()


@pytest.fixture
def client(svc):
    with TestClient(app) as client:
        yield client


def greeting_workflow(name: str = "Greeter") -> dict:
    return {
        "name": name,
        "nodes": [
            node("Start", "manualTrigger"),
            set_node("Greet", 200, greeting="=Hello {{ $json.name }}"),
        ],
        "connections": connect(("Start", "Greet")),
    }


def create(client, body: dict) -> dict:
    response = client.post("/rest/workflows", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestApiKey:
    @pytest.fixture(autouse=True)
    def require_key(self, monkeypatch, settings):
        locked = settings.model_copy(update={"api_key": "secret"})
        monkeypatch.setattr(dependencies, "get_settings", lambda: locked)

    def test_missing_key(self, client):
        assert client.get("/rest/workflows").status_code == 401

    def test_valid_key(self, client):
        response = client.get("/rest/workflows", headers={"X-N8N-API-KEY": "secret"})
        assert response.status_code == 200

    def test_webhooks_are_public(self, client):
        assert client.post("/webhook/unknown").status_code == 404


class TestWorkflowRoutes:
    def test_crud(self, client):
        created = create(client, greeting_workflow())
        workflow_id = created["id"]
        assert created["active"] is False

        assert client.get(f"/rest/workflows/{workflow_id}").json()["name"] == "Greeter"

        patched = client.patch(f"/rest/workflows/{workflow_id}", json={"name": "Welcomer"})
        assert patched.json()["name"] == "Welcomer"
        assert [w["id"] for w in client.get("/rest/workflows").json()["data"]] == [workflow_id]

        assert client.delete(f"/rest/workflows/{workflow_id}").json() == {"success": True}
        missing = client.get(f"/rest/workflows/{workflow_id}")
        assert missing.status_code == 404

    def test_invalid_body(self, client):
        assert client.post("/rest/workflows", json={"nodes": []}).status_code == 422

    def test_search(self, client):
        create(client, greeting_workflow("Greeter"))
        create(client, greeting_workflow("Invoices"))

        result = client.get("/rest/workflows/search", params={"query": "greet"}).json()

        assert result["count"] == 1
        assert result["data"][0]["name"] == "Greeter"
        assert result["data"][0]["triggerCount"] == 1
        assert result["data"][0]["canExecute"] is True

    def test_run_stored_workflow(self, client):
        workflow_id = create(client, greeting_workflow())["id"]

        response = client.post(f"/rest/workflows/{workflow_id}/run", json={"input_data": [{"name": "Ada"}]})

        body = response.json()
        assert body["success"] is True
        assert body["status"] == "success"
        assert body["workflowId"] == workflow_id
        assert body["data"][0]["json"] == {"name": "Ada", "greeting": "Hello Ada"}

    def test_run_unsaved_workflow(self, client):
        response = client.post(
            "/rest/workflows/run",
            json={"workflow_data": greeting_workflow(), "pin_data": {"Start": [{"json": {"name": "Lin"}}]}},
        )
        assert response.json()["data"][0]["json"]["greeting"] == "Hello Lin"

    def test_failed_run(self, client):
        body = {
            "name": "Failing",
            "nodes": [
                node("Start", "manualTrigger"),
                node("Fail", "stopAndError", parameters={"errorMessage": "out of stock"}),
            ],
            "connections": connect(("Start", "Fail")),
        }
        workflow_id = create(client, body)["id"]

        result = client.post(f"/rest/workflows/{workflow_id}/run").json()

        assert result["success"] is False
        assert result["status"] == "error"
        assert result["error"] == "out of stock"

    def test_operations_and_validation(self, client):
        workflow_id = create(client, greeting_workflow())["id"]

        response = client.post(
            f"/rest/workflows/{workflow_id}/operations",
            json={"operations": [
                {"type": "addNodes", "nodes": [node("Done", "noOp", 400)]},
                {"type": "connectIntent", "sourceNodeName": "Greet", "targetNodeName": "Done"},
            ]},
        )
        assert response.status_code == 200
        assert [n["name"] for n in response.json()["nodes"]] == ["Start", "Greet", "Done"]

        validation = client.get(f"/rest/workflows/{workflow_id}/validate").json()
        assert validation["valid"] is True

        bad = client.post(
            f"/rest/workflows/{workflow_id}/operations",
            json={"operations": [{"type": "removeNode", "nodeNames": ["Ghost"]}]},
        )
        assert bad.status_code == 400
        assert "Node 'Ghost' does not exist" in bad.json()["detail"]

    def test_validate_unsaved(self, client):
        body = greeting_workflow()
        body["nodes"].append(node("Odd", "doesNotExist"))
        result = client.post("/rest/workflows/validate", json=body).json()
        assert result["valid"] is False
        assert result["errors"][0]["code"] == "UNKNOWN_NODE_TYPE"

    def test_setup_state(self, client):
        body = {
            "name": "Caller",
            "nodes": [
                node("Start", "manualTrigger"),
                node(
                    "Call",
                    "httpRequest",
                    200,
                    parameters={
                        "url": "https://example.com",
                        "authentication": "genericCredentialType",
                        "genericAuthType": "httpBearerAuth",
                    },
                ),
            ],
            "connections": connect(("Start", "Call")),
        }
        workflow_id = create(client, body)["id"]

        state = client.get(f"/rest/workflows/{workflow_id}/setup-state").json()

        assert state["totalCredentialsMissing"] == 1
        assert state["nodes"][0]["credentialRequirements"][0]["issues"] == [
            "Credentials for 'Bearer Auth' are not set."
        ]

    def test_select_node_credential(self, client):
        body = {
            "name": "Caller",
            "nodes": [
                node("Start", "manualTrigger"),
                node(
                    "Call",
                    "httpRequest",
                    200,
                    parameters={
                        "url": "https://example.com",
                        "authentication": "genericCredentialType",
                        "genericAuthType": "httpBearerAuth",
                    },
                ),
            ],
            "connections": connect(("Start", "Call")),
        }
        workflow_id = create(client, body)["id"]
        credential = client.post(
            "/rest/credentials",
            json={"name": "Token", "type": "httpBearerAuth", "data": {"token": "abc"}},
        ).json()

        selected = client.put(
            f"/rest/workflows/{workflow_id}/nodes/Call/credentials",
            json={"credential_id": credential["id"]},
        )
        assert selected.status_code == 200
        assert selected.json()["nodes"][1]["credentials"] == {
            "httpBearerAuth": {"id": credential["id"], "name": "Token"}
        }
        assert client.get(f"/rest/workflows/{workflow_id}/setup-state").json()["isAllComplete"]

        cleared = client.delete(f"/rest/workflows/{workflow_id}/nodes/Call/credentials/httpBearerAuth")
        assert cleared.json()["nodes"][1]["credentials"] == {}
        assert client.get(f"/rest/workflows/{workflow_id}/setup-state").json()["totalCredentialsMissing"] == 1

    def test_select_unknown_credential(self, client):
        workflow_id = create(client, greeting_workflow())["id"]
        response = client.put(
            f"/rest/workflows/{workflow_id}/nodes/Greet/credentials",
            json={"credential_id": "missing"},
        )
        assert response.status_code == 404


class TestWebhookRoutes:
    @pytest.fixture
    def active_hook(self, client):
        body = {
            "name": "Orders",
            "nodes": [
                node("Hook", "webhook", parameters={"httpMethod": "POST", "path": "orders/:id", "responseMode": "lastNode"}),
                set_node("Reply", 200, include_other=False, order="={{ $json.params.id }}", total="={{ $json.body.total }}"),
            ],
            "connections": connect(("Hook", "Reply")),
        }
        workflow_id = create(client, body)["id"]
        response = client.post(f"/rest/workflows/{workflow_id}/activate")
        assert response.json()["active"] is True
        return workflow_id

    def test_webhook_runs_workflow(self, client, active_hook):
        response = client.post("/webhook/orders/42", json={"total": 9.5})
        assert response.status_code == 200
        assert response.json() == {"order": "42", "total": "9.5"}

    def test_wrong_method(self, client, active_hook):
        assert client.get("/webhook/orders/42").status_code == 404

    def test_deactivated(self, client, active_hook):
        client.post(f"/rest/workflows/{active_hook}/deactivate")
        assert client.post("/webhook/orders/42", json={}).status_code == 404

    def test_conflicting_activation(self, client, active_hook):
        workflow = client.get(f"/rest/workflows/{active_hook}").json()
        copy_id = create(client, {**workflow, "name": "Orders copy"})["id"]

        response = client.post(f"/rest/workflows/{copy_id}/activate")

        assert response.status_code == 409
        assert "POST /orders/:id is already in use" in response.json()["detail"]


class TestExecutionRoutes:
    def test_list_get_delete(self, client):
        workflow_id = create(client, greeting_workflow())["id"]
        execution_id = client.post(f"/rest/workflows/{workflow_id}/run").json()["executionId"]

        listed = client.get("/rest/executions", params={"workflowId": workflow_id}).json()["data"]
        assert [execution["id"] for execution in listed] == [execution_id]
        assert "data" not in listed[0]

        detail = client.get(f"/rest/executions/{execution_id}").json()
        assert detail["status"] == "success"
        assert "Greet" in detail["data"]["resultData"]["runData"]

        assert client.delete(f"/rest/executions/{execution_id}").json() == {"success": True}
        assert client.get(f"/rest/executions/{execution_id}").status_code == 404

    def test_retry_successful_execution_is_rejected(self, client):
        workflow_id = create(client, greeting_workflow())["id"]
        execution_id = client.post(f"/rest/workflows/{workflow_id}/run").json()["executionId"]

        response = client.post(f"/rest/executions/{execution_id}/retry")

        assert response.status_code == 400

    def test_active_is_empty_when_idle(self, client):
        assert client.get("/rest/executions/active").json() == {"data": []}


class TestCredentialRoutes:
    def test_lifecycle(self, client):
        created = client.post(
            "/rest/credentials",
            json={"name": "Shop", "type": "httpHeaderAuth", "data": {"name": "X-Key", "value": "s3cret"}},
        ).json()
        assert "data" not in created

        with_data = client.get(f"/rest/credentials/{created['id']}", params={"includeData": "true"}).json()
        assert with_data["data"] == {"name": "X-Key", "value": "s3cret"}

        client.patch(f"/rest/credentials/{created['id']}", json={"name": "Shop key"})
        listed = client.get("/rest/credentials", params={"type": "httpHeaderAuth"}).json()["data"]
        assert [credential["name"] for credential in listed] == ["Shop key"]

        assert client.delete(f"/rest/credentials/{created['id']}").json() == {"success": True}
        assert client.get(f"/rest/credentials/{created['id']}").status_code == 404

    def test_unknown_type(self, client):
        response = client.post("/rest/credentials", json={"name": "Odd", "type": "nope", "data": {}})
        assert response.status_code == 400

    def test_audit_log_records_changes(self, client):
        client.post("/rest/credentials", json={"name": "Shop", "type": "httpBearerAuth", "data": {"token": "t"}})
        create(client, greeting_workflow())

        events = client.get("/rest/audit-log/events").json()["data"]

        assert {event["eventName"] for event in events} == {
            "n8n.audit.workflow.created",
            "n8n.audit.user.credentials.created",
        }


class TestCatalogRoutes:
    def test_node_types(self, client):
        names = {description["name"] for description in client.get("/rest/node-types").json()["data"]}
        assert {"manualTrigger", "webhook", "httpRequest", "merge", "set"} <= names

    def test_credential_types(self, client):
        names = [entry["name"] for entry in client.get("/rest/credential-types").json()["data"]]
        assert "httpBasicAuth" in names


class TestUploads:
    def test_upload(self, client):
        response = client.post(
            "/rest/file-uploads",
            files={"file": ("notes.txt", b"remember the milk", "text/plain")},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["fileName"] == "notes.txt"
        assert body["mimeType"] == "text/plain"
        assert body["fileSize"] == 17

    def test_missing_file(self, client):
        response = client.post("/rest/file-uploads", data={"other": "x"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No file uploaded"

    def test_unreadable_form(self, client, monkeypatch):
        async def broken_form(self, **_):
            raise ValueError("stream ended early")

        monkeypatch.setattr(Request, "form", broken_form)
        response = client.post("/rest/file-uploads", files={"file": ("a.txt", b"a", "text/plain")})

        assert response.status_code == 400
        assert response.json()["detail"] == "File upload failed"

    def test_storage_failure(self, client, svc, monkeypatch):
        async def full_disk(*args, **kwargs):
            raise OSError("No space left on device")

        monkeypatch.setattr(svc.binary_data, "store", full_disk)
        response = client.post("/rest/file-uploads", files={"file": ("a.txt", b"a", "text/plain")})

        assert response.status_code == 400
        assert response.json()["detail"] == "File upload failed"
