"""Application services wired together.

The API obtains them through get_services(); tests call reset_services()
to start from a clean in-memory state.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from autoflow.audit import AuditLogService, create_audit_log_repository
from autoflow.binary_data import BinaryDataService
from autoflow.config import Settings, get_settings
from autoflow.credentials.service import CredentialsService
from autoflow.db.repositories import CredentialRepository, ExecutionRepository, WorkflowRepository
from autoflow.engine import EventService
from autoflow.eventbus import DatabaseDestination, MessageEventBus
from autoflow.nodes import NodeTypes, get_node_types
from autoflow.services.active_executions import ActiveExecutions
from autoflow.services.executions import ExecutionService
from autoflow.services.wait_tracker import WaitTracker
from autoflow.services.webhooks import WebhookRegistry, WebhookService
from autoflow.services.workflows import WorkflowService

logger = structlog.get_logger()


@dataclass
class Services:
    settings: Settings
    node_types: NodeTypes
    events: EventService
    event_bus: MessageEventBus
    binary_data: BinaryDataService
    audit_log: AuditLogService
    credentials: CredentialsService
    workflows: WorkflowService
    executions: ExecutionService
    webhooks: WebhookService
    wait_tracker: WaitTracker


def create_services(settings: Optional[Settings] = None, http_transport=None) -> Services:
    """Build the service graph with in-memory repositories."""
    settings = settings or get_settings()
    node_types = get_node_types()
    events = EventService()

    audit_repository = create_audit_log_repository(settings)
    event_bus = MessageEventBus(enabled=settings.log_streaming_enabled)
    event_bus.add_destination(DatabaseDestination(
        audit_repository,
        subscribed_events=["n8n.audit.*"],
        anonymize_audit_messages=settings.anonymize_audit_messages,
    ))

    binary_data = BinaryDataService(
        mode=settings.binary_data_mode,
        storage_path=Path(settings.binary_data_storage_path),
    )

    workflow_repository = WorkflowRepository()
    credential_repository = CredentialRepository()
    credentials = CredentialsService(credential_repository, event_bus)
    registry = WebhookRegistry()

    workflows = WorkflowService(workflow_repository, node_types, registry, event_bus, credential_repository)
    executions = ExecutionService(
        settings,
        ExecutionRepository(),
        workflow_repository,
        node_types,
        event_bus=event_bus,
        events=events,
        binary_data=binary_data,
        credentials=credentials,
        active_executions=ActiveExecutions(),
        http_transport=http_transport,
    )

    return Services(
        settings=settings,
        node_types=node_types,
        events=events,
        event_bus=event_bus,
        binary_data=binary_data,
        audit_log=AuditLogService(audit_repository),
        credentials=credentials,
        workflows=workflows,
        executions=executions,
        webhooks=WebhookService(registry, executions),
        wait_tracker=WaitTracker(executions),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Get the process wide services, creating them on first use."""
    global _services
    if _services is None:
        _services = create_services()
        logger.info("services_initialized")
    return _services


def reset_services(services: Optional[Services] = None) -> None:
    """Replace the process wide services (for testing)."""
    global _services
    _services = services


__all__ = ["Services", "create_services", "get_services", "reset_services"]
