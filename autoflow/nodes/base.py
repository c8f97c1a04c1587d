"""Node type contract.

Every node type describes itself with a NodeTypeDescription and implements
``execute``, which receives an ExecuteContext and returns one list of
items per output:

    class NoOp(NodeType):
        description = NodeTypeDescription(name="noOp", ...)

        async def execute(self, ctx):
            return [ctx.get_input_data()]
"""
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from autoflow.errors import error_to_dict
from autoflow.models import MAIN, Item, Node, OnError

if TYPE_CHECKING:
    from autoflow.engine.context import ExecuteContext


NODE_TYPE_PREFIX = "n8n-nodes-base."
NODE_TYPE_ALIASES = ("autoflow-nodes-base.",)


class NodeProperty(BaseModel):
    """A parameter a node type accepts."""

    name: str
    display_name: str
    type: str = "string"  # string, number, boolean, options, collection, fixedCollection, json
    default: Any = None
    required: bool = False
    description: str = ""
    options: Optional[list[Any]] = None


class CredentialRequirement(BaseModel):
    """A credential type a node type can use."""

    name: str
    required: bool = True
    # Only required when the given parameter has one of the values
    display_options: Optional[dict[str, list[Any]]] = None


class NodeTypeDescription(BaseModel):
    """Static description of a node type."""

    name: str
    display_name: str
    description: str = ""
    group: list[str] = Field(default_factory=lambda: ["transform"])
    version: list[float] = Field(default_factory=lambda: [1])
    inputs: list[str] = Field(default_factory=lambda: [MAIN])
    outputs: list[str] = Field(default_factory=lambda: [MAIN])
    output_names: list[str] = Field(default_factory=list)
    credentials: list[CredentialRequirement] = Field(default_factory=list)
    properties: list[NodeProperty] = Field(default_factory=list)
    defaults: dict[str, Any] = Field(default_factory=dict)

    @property
    def type_name(self) -> str:
        return f"{NODE_TYPE_PREFIX}{self.name}"


class NodeType:
    """Base class for node implementations."""

    description: NodeTypeDescription

    # HTTP methods a webhook node answers, empty for other nodes
    webhook_methods: tuple[str, ...] = ()
    # Triggers that listen for outside events and keep a workflow active
    activatable: bool = False

    @property
    def is_trigger(self) -> bool:
        return "trigger" in self.description.group

    def get_inputs(self, node: Node) -> list[str]:
        """Connection types of the node's inputs. Override for dynamic inputs."""
        return list(self.description.inputs)

    def get_outputs(self, node: Node) -> list[str]:
        """Connection types of the node's regular outputs. Override for dynamic outputs."""
        return list(self.description.outputs)

    def get_output_count(self, node: Node) -> int:
        """Number of main outputs, including the error output when enabled."""
        count = len([output for output in self.get_outputs(node) if output == MAIN])
        if node.error_mode == OnError.CONTINUE_ERROR_OUTPUT:
            count += 1
        return count

    def get_parameter_default(self, name: str) -> Any:
        for prop in self.description.properties:
            if prop.name == name:
                return prop.default
        return None

    def required_credentials(self, node: Node) -> list[CredentialRequirement]:
        """Credential requirements that apply given the node's parameters."""
        required = []
        for requirement in self.description.credentials:
            if not requirement.required:
                continue
            if requirement.display_options:
                matches = all(
                    node.parameters.get(param, self.get_parameter_default(param)) in values
                    for param, values in requirement.display_options.items()
                )
                if not matches:
                    continue
            required.append(requirement)
        return required

    async def execute(self, ctx: "ExecuteContext") -> list[list[Item]]:
        raise NotImplementedError


def error_item(error: Exception, item_index: int) -> Item:
    """Output item for an input item that failed while continue-on-fail is set."""
    return {
        "json": {"error": getattr(error, "message", None) or str(error)},
        "error": error_to_dict(error),
        "pairedItem": {"item": item_index},
    }
