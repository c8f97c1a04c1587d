"""Execution context handed to NodeType.execute()."""
import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
import structlog

from autoflow.binary_data import BinaryDataService, binary_entry
from autoflow.config import Settings, get_settings
from autoflow.engine import expressions
from autoflow.engine.data_proxy import WorkflowDataProxy
from autoflow.engine.hooks import EventService
from autoflow.errors import NodeOperationError, WorkflowOperationError
from autoflow.models import MAIN, Item, Node, NodeCredential, OnError, RunExecutionData, TaskSource, Workflow
from autoflow.models.execution import NodeData

logger = structlog.get_logger()


# (node credential reference, credential type) -> decrypted credential data
CredentialsResolver = Callable[[NodeCredential, str], Awaitable[dict]]
# (workflow id, input items) -> output items of the sub-workflow
SubWorkflowRunner = Callable[[str, list[Item]], Awaitable[list[Item]]]

_MISSING = object()


@dataclass
class AdditionalData:
    """Services and callbacks available to nodes during an execution."""

    settings: Settings = field(default_factory=get_settings)
    events: EventService = field(default_factory=EventService)
    binary_data: Optional[BinaryDataService] = None
    get_credentials: Optional[CredentialsResolver] = None
    execute_workflow: Optional[SubWorkflowRunner] = None
    # Injected in tests to avoid real network calls
    http_transport: Optional[httpx.AsyncBaseTransport] = None
    variables: dict[str, Any] = field(default_factory=dict)


def _get_path(data: dict, path: str) -> Any:
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


async def _read_all(data: Union[bytes, AsyncIterator[bytes]]) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    chunks = [chunk async for chunk in data]
    return b"".join(chunks)


class ExecuteHelpers:
    """HTTP and binary data helpers (``ctx.helpers``)."""

    def __init__(self, ctx: "ExecuteContext"):
        self._ctx = ctx

    @property
    def _binary_data(self) -> Optional[BinaryDataService]:
        return self._ctx.additional_data.binary_data

    async def http_request(
        self,
        method: str,
        url: str,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an HTTP request with httpx.

        Extra keyword arguments (params, headers, json, data, content, files,
        auth) are passed to ``httpx.AsyncClient.request``.
        """
        settings = self._ctx.additional_data.settings
        async with httpx.AsyncClient(
            transport=self._ctx.additional_data.http_transport,
            timeout=timeout or settings.http_request_timeout,
            follow_redirects=True,
        ) as client:
            return await client.request(method, url, **kwargs)

    async def prepare_binary_data(
        self,
        data: Union[bytes, AsyncIterator[bytes]],
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> dict:
        """Turn raw content into a binary entry for an output item."""
        content = await _read_all(data)
        if self._binary_data is None:
            return binary_entry(
                data=base64.b64encode(content).decode("ascii"),
                size=len(content),
                file_name=file_name,
                mime_type=mime_type,
            )
        location = {
            "type": "execution",
            "workflow_id": self._ctx.workflow.id,
            "execution_id": self._ctx.execution_id,
        }
        return await self._binary_data.prepare_binary_data(content, file_name, mime_type, location)

    async def get_binary_stream(self, binary_id: str) -> AsyncIterator[bytes]:
        if self._binary_data is None:
            raise WorkflowOperationError("Binary data storage is not configured")
        return self._binary_data.get_stream(binary_id)

    async def get_binary_data_buffer(self, item_index: int, property_name: str) -> bytes:
        """Read the content of a binary property of an input item."""
        items = self._ctx.get_input_data()
        binary = items[item_index].get("binary", {}) if item_index < len(items) else {}
        entry = binary.get(property_name)
        if entry is None:
            raise NodeOperationError(
                self._ctx.node.name,
                f"This operation expects the node's input data to contain a binary file "
                f"'{property_name}', but none was found [item {item_index}]",
                item_index=item_index,
            )
        if entry.get("id") and self._binary_data is not None:
            return await self._binary_data.get_as_bytes(entry)
        return base64.b64decode(entry.get("data", ""))


class ExecuteContext:
    """Everything a node can see and do while it runs."""

    def __init__(
        self,
        workflow: Workflow,
        node: Node,
        run_execution_data: RunExecutionData,
        input_data: NodeData,
        additional_data: AdditionalData,
        input_source: Optional[list[Optional[TaskSource]]] = None,
        run_index: int = 0,
        mode: str = "manual",
        execution_id: Optional[str] = None,
        node_type: Any = None,
    ):
        self.workflow = workflow
        self.node = node
        self.node_type = node_type
        self.run_execution_data = run_execution_data
        self.input_data = input_data
        self.input_source = input_source or []
        self.additional_data = additional_data
        self.run_index = run_index
        self.mode = mode
        self.execution_id = execution_id
        self.wait_till: Optional[datetime] = None
        self.helpers = ExecuteHelpers(self)
        self.logger = logger.bind(
            workflow_id=workflow.id,
            execution_id=execution_id,
            node=node.name,
        )

    # =========================================================================
    # Input and parameters
    # =========================================================================

    def get_input_data(self, input_index: int = 0, connection_type: str = MAIN) -> list[Item]:
        inputs = self.input_data.get(connection_type, [])
        if input_index >= len(inputs):
            return []
        return inputs[input_index] or []

    def get_data_proxy(self, item_index: int = 0) -> WorkflowDataProxy:
        return WorkflowDataProxy(
            workflow=self.workflow,
            run_data=self.run_execution_data.result_data.run_data,
            node_name=self.node.name,
            input_data=self.input_data,
            input_source=self.input_source,
            item_index=item_index,
            run_index=self.run_index,
            execution_id=self.execution_id,
            mode=self.mode,
            variables=self.additional_data.variables,
            block_env_access=self.additional_data.settings.block_env_access_in_node,
        )

    def evaluate_expression(self, expression: str, item_index: int = 0) -> Any:
        context = self.get_data_proxy(item_index).get_context()
        return expressions.resolve_value(expression, context)

    def get_node_parameter(self, name: str, item_index: int = 0, default: Any = _MISSING) -> Any:
        """Get a parameter value with its expressions resolved for one item.

        Args:
            name: Parameter name, dotted for nested values ("options.timeout")
            item_index: Index of the input item expressions see as $json
            default: Returned when the parameter is not set

        Returns:
            The resolved parameter value
        """
        value = _get_path(self.node.parameters, name)
        if value is _MISSING:
            if default is not _MISSING:
                return default
            if self.node_type is not None and "." not in name:
                return self.node_type.get_parameter_default(name)
            return None
        return self.evaluate_expression(value, item_index)

    def continue_on_fail(self) -> bool:
        return self.node.error_mode != OnError.STOP_WORKFLOW

    # =========================================================================
    # Credentials, state and sub-workflows
    # =========================================================================

    async def get_credentials(self, credential_type: str) -> dict:
        reference = self.node.credentials.get(credential_type)
        if reference is None:
            raise NodeOperationError(
                self.node.name,
                f"Node does not have any credentials set for '{credential_type}'",
            )
        if self.additional_data.get_credentials is None:
            raise NodeOperationError(self.node.name, "No credentials store is configured")
        return await self.additional_data.get_credentials(reference, credential_type)

    def get_workflow_static_data(self, data_type: str = "global") -> dict:
        """Persistent data of the workflow, shared ("global") or per node ("node")."""
        key = "global" if data_type == "global" else f"node:{self.node.name}"
        return self.workflow.static_data.setdefault(key, {})

    def put_execution_to_wait(self, wait_till: datetime) -> None:
        """Pause the execution after this node until ``wait_till``."""
        self.wait_till = wait_till

    async def execute_workflow(self, workflow_id: str, items: list[Item]) -> list[Item]:
        if self.additional_data.execute_workflow is None:
            raise NodeOperationError(self.node.name, "Sub-workflow execution is not available")
        return await self.additional_data.execute_workflow(workflow_id, items)

    def get_trigger_data(self) -> list[Item]:
        """Items that started the execution, an empty item when there are none."""
        return self.get_input_data() or [{"json": {}}]
