"""Which nodes still need credentials before a workflow can run."""
from typing import Callable, Optional

from pydantic import Field

from autoflow.credentials.types import get_credential_type
from autoflow.errors import WorkflowOperationError
from autoflow.models import CamelModel, NodeCredential, Workflow
from autoflow.models.credential import Credential
from autoflow.nodes import NodeTypes

CredentialLookup = Callable[[str], Optional[Credential]]


class NodeCredentialRequirement(CamelModel):
    credential_type: str
    credential_display_name: str
    selected_credential_id: Optional[str] = None
    issues: list[str] = Field(default_factory=list)


class NodeSetupState(CamelModel):
    node_name: str
    node_type: str
    credential_requirements: list[NodeCredentialRequirement]
    is_complete: bool


class WorkflowSetupState(CamelModel):
    nodes: list[NodeSetupState]
    total_credentials_missing: int
    total_nodes_requiring_setup: int
    is_all_complete: bool


def _credential_display_name(credential_type: str) -> str:
    definition = get_credential_type(credential_type)
    return definition.display_name if definition else credential_type


def _issues(
    credential_type: str,
    selected: Optional[NodeCredential],
    lookup: Optional[CredentialLookup],
) -> list[str]:
    if selected is None or not selected.id:
        return [f"Credentials for '{_credential_display_name(credential_type)}' are not set."]
    if lookup is None:
        return []
    credential = lookup(selected.id)
    if credential is None:
        return [f"Credentials with ID '{selected.id}' do not exist."]
    if credential.type != credential_type:
        return [f"Credentials '{credential.name}' are of type '{credential.type}', not '{credential_type}'."]
    return []


def get_setup_state(
    workflow: Workflow,
    node_types: NodeTypes,
    lookup: Optional[CredentialLookup] = None,
) -> WorkflowSetupState:
    """
    Build the credential setup state of a workflow.

    Args:
        workflow: Workflow to inspect
        node_types: Registry providing each node's credential requirements
        lookup: Resolves a credential id, used to flag stale selections

    Returns:
        One entry per enabled node that requires credentials, left to right
    """
    states = []
    nodes = sorted(
        (node for node in workflow.nodes if not node.disabled),
        key=lambda node: node.position[0],
    )
    for node in nodes:
        node_type = node_types.get(node.type)
        if node_type is None:
            continue
        requirements = []
        for requirement in node_type.required_credentials(node):
            selected = node.credentials.get(requirement.name)
            requirements.append(NodeCredentialRequirement(
                credential_type=requirement.name,
                credential_display_name=_credential_display_name(requirement.name),
                selected_credential_id=selected.id if selected else None,
                issues=_issues(requirement.name, selected, lookup),
            ))
        if not requirements:
            continue
        states.append(NodeSetupState(
            node_name=node.name,
            node_type=node.type,
            credential_requirements=requirements,
            is_complete=all(req.selected_credential_id and not req.issues for req in requirements),
        ))

    missing = sum(
        1
        for state in states
        for req in state.credential_requirements
        if not req.selected_credential_id or req.issues
    )
    return WorkflowSetupState(
        nodes=states,
        total_credentials_missing=missing,
        total_nodes_requiring_setup=len(states),
        is_all_complete=bool(states) and all(state.is_complete for state in states),
    )


def set_node_credential(workflow: Workflow, node_name: str, credential: Credential) -> Workflow:
    """Select ``credential`` for the node, keyed by the credential's type."""
    updated = workflow.model_copy(deep=True)
    node = updated.get_node(node_name)
    if node is None:
        raise WorkflowOperationError(f"Node '{node_name}' does not exist in the workflow")
    node.credentials[credential.type] = NodeCredential(id=credential.id, name=credential.name)
    return updated


def unset_node_credential(workflow: Workflow, node_name: str, credential_type: str) -> Workflow:
    updated = workflow.model_copy(deep=True)
    node = updated.get_node(node_name)
    if node is None:
        raise WorkflowOperationError(f"Node '{node_name}' does not exist in the workflow")
    node.credentials.pop(credential_type, None)
    return updated
