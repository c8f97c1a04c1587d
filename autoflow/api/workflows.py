"""Workflow endpoints: CRUD, search, activation, runs and editing."""
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from autoflow.api.dependencies import services, to_http_exception
from autoflow.models import ExecutionMode, ExecutionResult, Workflow, WorkflowCreate, WorkflowUpdate
from autoflow.services import Services
from autoflow.workflow.setup_state import WorkflowSetupState
from autoflow.workflow.validation import ValidationResult, validate_workflow

logger = structlog.get_logger()

router = APIRouter()


class RunWorkflowRequest(BaseModel):
    """Request to run a workflow manually."""

    start_node: Optional[str] = Field(None, description="Node to start from, defaults to the trigger")
    destination_node: Optional[str] = Field(None, description="Stop after this node has run")
    input_data: Optional[list[dict[str, Any]]] = Field(
        None, description="JSON objects handed to the start node, one item each"
    )
    pin_data: Optional[dict[str, list[Any]]] = Field(None, description="Pinned outputs, by node name")
    wait: bool = Field(True, description="Wait for the execution to finish")


class RunUnsavedWorkflowRequest(RunWorkflowRequest):
    workflow_data: Workflow = Field(..., description="The workflow to run without saving it")


class OperationsRequest(BaseModel):
    operations: list[dict[str, Any]] = Field(..., description="Operations applied in order")


class NodeCredentialRequest(BaseModel):
    credential_id: str = Field(..., description="Stored credential to select for the node")


def _dump(workflow: Workflow) -> dict:
    return workflow.model_dump(mode="json", by_alias=True)


def _trigger_items(input_data: Optional[list[dict[str, Any]]]) -> Optional[list[dict]]:
    if input_data is None:
        return None
    return [{"json": entry} for entry in input_data]


@router.get("/workflows")
async def list_workflows(active: Optional[bool] = None, svc: Services = Depends(services)) -> dict:
    workflows = await svc.workflows.list(active=active)
    return {"data": [_dump(workflow) for workflow in workflows]}


@router.post("/workflows")
async def create_workflow(body: WorkflowCreate, svc: Services = Depends(services)) -> dict:
    try:
        return _dump(await svc.workflows.create(body))
    except Exception as e:
        raise to_http_exception(e, "workflow_create_error")


@router.get("/workflows/search")
async def search_workflows(
    query: Optional[str] = None,
    active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    svc: Services = Depends(services),
) -> dict:
    """Search workflows by name or description."""
    return await svc.workflows.search(query=query, active=active, limit=limit)


@router.post("/workflows/run", response_model=ExecutionResult)
async def run_unsaved_workflow(body: RunUnsavedWorkflowRequest, svc: Services = Depends(services)) -> ExecutionResult:
    """Run a workflow sent in the request body without storing it."""
    try:
        execution = await svc.executions.run(
            body.workflow_data,
            mode=ExecutionMode.MANUAL,
            start_node=body.start_node,
            destination_node=body.destination_node,
            trigger_items=_trigger_items(body.input_data),
            pin_data=body.pin_data,
            wait=body.wait,
        )
        return svc.executions.to_result(execution)
    except Exception as e:
        raise to_http_exception(e, "workflow_run_error")


@router.post("/workflows/validate", response_model=ValidationResult)
async def validate_unsaved_workflow(workflow: Workflow, svc: Services = Depends(services)) -> ValidationResult:
    return validate_workflow(workflow, svc.node_types)


@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str, svc: Services = Depends(services)) -> dict:
    try:
        return _dump(await svc.workflows.get(workflow_id))
    except Exception as e:
        raise to_http_exception(e, "workflow_get_error", workflow_id=workflow_id)


@router.patch("/workflows/{workflow_id}")
async def update_workflow(workflow_id: str, body: WorkflowUpdate, svc: Services = Depends(services)) -> dict:
    try:
        return _dump(await svc.workflows.update(workflow_id, body))
    except Exception as e:
        raise to_http_exception(e, "workflow_update_error", workflow_id=workflow_id)


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: str, svc: Services = Depends(services)) -> dict:
    try:
        await svc.workflows.delete(workflow_id)
        return {"success": True}
    except Exception as e:
        raise to_http_exception(e, "workflow_delete_error", workflow_id=workflow_id)


@router.post("/workflows/{workflow_id}/activate")
async def activate_workflow(workflow_id: str, svc: Services = Depends(services)) -> dict:
    try:
        return _dump(await svc.workflows.activate(workflow_id))
    except Exception as e:
        raise to_http_exception(e, "workflow_activate_error", workflow_id=workflow_id)


@router.post("/workflows/{workflow_id}/deactivate")
async def deactivate_workflow(workflow_id: str, svc: Services = Depends(services)) -> dict:
    try:
        return _dump(await svc.workflows.deactivate(workflow_id))
    except Exception as e:
        raise to_http_exception(e, "workflow_deactivate_error", workflow_id=workflow_id)


@router.post("/workflows/{workflow_id}/run", response_model=ExecutionResult)
async def run_workflow(
    workflow_id: str,
    body: Optional[RunWorkflowRequest] = None,
    svc: Services = Depends(services),
) -> ExecutionResult:
    """
    Run a stored workflow manually.

    Returns the outcome once the execution finished (or started, when
    ``wait`` is false).
    """
    body = body or RunWorkflowRequest()
    try:
        workflow = await svc.workflows.get(workflow_id)
        execution = await svc.executions.run(
            workflow,
            mode=ExecutionMode.MANUAL,
            start_node=body.start_node,
            destination_node=body.destination_node,
            trigger_items=_trigger_items(body.input_data),
            pin_data=body.pin_data,
            wait=body.wait,
        )
        logger.info("workflow_run_requested", workflow_id=workflow_id, execution_id=execution.id)
        return svc.executions.to_result(execution)
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "workflow_run_error", workflow_id=workflow_id)


@router.post("/workflows/{workflow_id}/operations")
async def apply_workflow_operations(
    workflow_id: str,
    body: OperationsRequest,
    svc: Services = Depends(services),
) -> dict:
    try:
        return _dump(await svc.workflows.apply_operations(workflow_id, body.operations))
    except Exception as e:
        raise to_http_exception(e, "workflow_operations_error", workflow_id=workflow_id)


@router.get("/workflows/{workflow_id}/validate", response_model=ValidationResult)
async def validate_stored_workflow(workflow_id: str, svc: Services = Depends(services)) -> ValidationResult:
    try:
        return await svc.workflows.validate(workflow_id)
    except Exception as e:
        raise to_http_exception(e, "workflow_validate_error", workflow_id=workflow_id)


@router.get("/workflows/{workflow_id}/setup-state", response_model=WorkflowSetupState)
async def get_setup_state(workflow_id: str, svc: Services = Depends(services)) -> WorkflowSetupState:
    try:
        return await svc.workflows.setup_state(workflow_id)
    except Exception as e:
        raise to_http_exception(e, "workflow_setup_state_error", workflow_id=workflow_id)


@router.put("/workflows/{workflow_id}/nodes/{node_name}/credentials")
async def set_node_credential(
    workflow_id: str,
    node_name: str,
    body: NodeCredentialRequest,
    svc: Services = Depends(services),
) -> dict:
    try:
        return _dump(await svc.workflows.set_node_credential(workflow_id, node_name, body.credential_id))
    except Exception as e:
        raise to_http_exception(e, "workflow_node_credential_error", workflow_id=workflow_id, node=node_name)


@router.delete("/workflows/{workflow_id}/nodes/{node_name}/credentials/{credential_type}")
async def unset_node_credential(
    workflow_id: str,
    node_name: str,
    credential_type: str,
    svc: Services = Depends(services),
) -> dict:
    try:
        return _dump(await svc.workflows.unset_node_credential(workflow_id, node_name, credential_type))
    except Exception as e:
        raise to_http_exception(e, "workflow_node_credential_error", workflow_id=workflow_id, node=node_name)
