"""Execution endpoints: listing, inspection, stop, delete and retry."""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from autoflow.api.dependencies import services, to_http_exception
from autoflow.models import ExecutionResult, ExecutionStatus
from autoflow.services import Services

logger = structlog.get_logger()

router = APIRouter()


@router.get("/executions")
async def list_executions(
    workflow_id: Optional[str] = Query(None, alias="workflowId"),
    status: Optional[ExecutionStatus] = None,
    limit: int = Query(100, ge=1, le=250),
    svc: Services = Depends(services),
) -> dict:
    executions = await svc.executions.list(workflow_id=workflow_id, status=status, limit=limit)
    return {"data": [execution.summary() for execution in executions]}


@router.get("/executions/active")
async def list_active_executions(svc: Services = Depends(services)) -> dict:
    return {"data": svc.executions.active.get_active()}


@router.get("/executions/{execution_id}")
async def get_execution(execution_id: str, svc: Services = Depends(services)) -> dict:
    try:
        execution = await svc.executions.get(execution_id)
        return execution.model_dump(mode="json", by_alias=True)
    except Exception as e:
        raise to_http_exception(e, "execution_get_error", execution_id=execution_id)


@router.post("/executions/{execution_id}/stop")
async def stop_execution(execution_id: str, svc: Services = Depends(services)) -> dict:
    try:
        execution = await svc.executions.stop(execution_id)
        return execution.summary()
    except Exception as e:
        raise to_http_exception(e, "execution_stop_error", execution_id=execution_id)


@router.delete("/executions/{execution_id}")
async def delete_execution(execution_id: str, svc: Services = Depends(services)) -> dict:
    try:
        await svc.executions.delete(execution_id)
        return {"success": True}
    except Exception as e:
        raise to_http_exception(e, "execution_delete_error", execution_id=execution_id)


@router.post("/executions/{execution_id}/retry", response_model=ExecutionResult)
async def retry_execution(
    execution_id: str,
    load_workflow: bool = Query(False, alias="loadWorkflow"),
    svc: Services = Depends(services),
) -> ExecutionResult:
    """
    Retry a failed execution.

    With ``loadWorkflow`` the currently saved workflow runs instead of the
    snapshot stored with the execution.
    """
    try:
        execution = await svc.executions.retry(execution_id, load_workflow=load_workflow)
        logger.info("execution_retried", execution_id=execution_id, retry_id=execution.id)
        return svc.executions.to_result(execution)
    except Exception as e:
        raise to_http_exception(e, "execution_retry_error", execution_id=execution_id)
