"""Workflow validation built from plugins.

Each plugin checks one concern and reports ValidationIssue objects. Plugins
run in descending priority; errors make a workflow invalid, warnings do not.
"""
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Optional

import structlog

from autoflow.engine.expressions import check_syntax, find_node_references, is_expression
from autoflow.engine.graph import get_connections_by_destination, get_duplicate_node_names, get_trigger_nodes
from autoflow.errors import ExpressionError
from autoflow.models import MAIN, CamelModel, Node, Workflow
from autoflow.nodes import NodeTypes, get_node_types

logger = structlog.get_logger()

PLACEHOLDER_PREFIX = "<__PLACEHOLDER_VALUE__"
PLACEHOLDER_SUFFIX = "__>"


class ValidationIssue(CamelModel):
    code: str
    message: str
    severity: Literal["error", "warning"] = "error"
    node_name: Optional[str] = None
    parameter_path: Optional[str] = None


class ValidationResult(CamelModel):
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]


@dataclass
class ValidationContext:
    workflow: Workflow
    node_types: NodeTypes


class ValidatorPlugin:
    """Base class for validators. Override either hook or both."""

    id: str = ""
    name: str = ""
    priority: int = 0

    def validate_node(self, node: Node, ctx: ValidationContext) -> list[ValidationIssue]:
        return []

    def validate_workflow(self, ctx: ValidationContext) -> list[ValidationIssue]:
        return []


def iter_parameters(value: Any, path: str = "", in_array: bool = False) -> Iterator[tuple[str, Any, bool]]:
    """Yield ``(path, leaf value, inside an array)`` for every leaf of a parameter tree.

    Paths use ``values[0].option`` notation.
    """
    if isinstance(value, dict):
        for key, item in value.items():
            yield from iter_parameters(item, f"{path}.{key}" if path else key, in_array)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from iter_parameters(item, f"{path}[{index}]", True)
    else:
        yield path, value, in_array


# =============================================================================
# BUILT-IN PLUGINS
# =============================================================================


class StructureValidator(ValidatorPlugin):
    id = "core:structure"
    name = "Structure Validator"
    priority = 100

    def validate_node(self, node, ctx):
        if node.type not in ctx.node_types:
            return [ValidationIssue(
                code="UNKNOWN_NODE_TYPE",
                message=f"'{node.name}' uses the unknown node type '{node.type}'",
                node_name=node.name,
            )]
        return []

    def validate_workflow(self, ctx):
        workflow = ctx.workflow
        issues = [
            ValidationIssue(
                code="DUPLICATE_NODE_NAME",
                message=f"More than one node is named '{name}'",
                node_name=name,
            )
            for name in get_duplicate_node_names(workflow)
        ]
        issues.extend(self._check_connections(ctx))

        enabled = [node for node in workflow.nodes if not node.disabled]
        triggers = get_trigger_nodes(workflow, ctx.node_types)
        if enabled and not triggers:
            issues.append(ValidationIssue(
                code="NO_TRIGGER",
                message="The workflow has no trigger node and can only start from a chosen node",
                severity="warning",
            ))

        if len(enabled) > 1:
            by_destination = get_connections_by_destination(workflow.connections)
            trigger_names = {node.name for node in triggers}
            for node in enabled:
                if node.name in trigger_names:
                    continue
                has_inputs = any(by_destination.get(node.name, {}).get(MAIN, []))
                if not has_inputs:
                    issues.append(ValidationIssue(
                        code="DISCONNECTED_NODE",
                        message=f"'{node.name}' is not connected to any input and will never run",
                        severity="warning",
                        node_name=node.name,
                    ))
        return issues

    def _check_connections(self, ctx: ValidationContext) -> list[ValidationIssue]:
        workflow = ctx.workflow
        issues = []
        for source_name, types in workflow.connections.items():
            source = workflow.get_node(source_name)
            if source is None:
                issues.append(ValidationIssue(
                    code="INVALID_CONNECTION",
                    message=f"Connection from unknown node '{source_name}'",
                    node_name=source_name,
                ))
                continue
            source_type = ctx.node_types.get(source.type)

            for connection_type, outputs in types.items():
                for output_index, targets in enumerate(outputs):
                    if not targets:
                        continue
                    if (
                        source_type is not None
                        and connection_type == MAIN
                        and output_index >= source_type.get_output_count(source)
                    ):
                        issues.append(ValidationIssue(
                            code="INVALID_OUTPUT_INDEX",
                            message=f"'{source_name}' has no output {output_index}",
                            node_name=source_name,
                        ))
                    for target in targets:
                        issues.extend(self._check_target(ctx, source_name, target))
        return issues

    def _check_target(self, ctx, source_name, target) -> list[ValidationIssue]:
        node = ctx.workflow.get_node(target.node)
        if node is None:
            return [ValidationIssue(
                code="INVALID_CONNECTION",
                message=f"'{source_name}' connects to unknown node '{target.node}'",
                node_name=source_name,
            )]
        node_type = ctx.node_types.get(node.type)
        if node_type is None:
            return []
        input_count = node_type.get_inputs(node).count(target.type)
        if target.index >= input_count:
            return [ValidationIssue(
                code="INVALID_INPUT_INDEX",
                message=f"'{node.name}' has no {target.type} input {target.index}",
                node_name=node.name,
            )]
        return []


class ExpressionValidator(ValidatorPlugin):
    id = "core:expressions"
    name = "Expression Validator"
    priority = 50

    def validate_node(self, node, ctx):
        issues = []
        names = set(ctx.workflow.node_names)
        for path, value, _ in iter_parameters(node.parameters):
            if not is_expression(value):
                continue
            try:
                check_syntax(value)
            except ExpressionError as e:
                issues.append(ValidationIssue(
                    code="EXPRESSION_SYNTAX",
                    message=f"'{node.name}' has an invalid expression at \"{path}\": {e.message}",
                    node_name=node.name,
                    parameter_path=path,
                ))
                continue
            for referenced in sorted(find_node_references(value) - names):
                issues.append(ValidationIssue(
                    code="UNKNOWN_NODE_REFERENCE",
                    message=f"'{node.name}' references the unknown node '{referenced}' at \"{path}\"",
                    severity="warning",
                    node_name=node.name,
                    parameter_path=path,
                ))
        return issues


class CredentialsValidator(ValidatorPlugin):
    id = "core:credentials"
    name = "Credentials Validator"
    priority = 40

    def validate_node(self, node, ctx):
        node_type = ctx.node_types.get(node.type)
        if node_type is None or node.disabled:
            return []
        issues = []
        for requirement in node_type.required_credentials(node):
            selected = node.credentials.get(requirement.name)
            if selected is None or not selected.id:
                issues.append(ValidationIssue(
                    code="MISSING_CREDENTIALS",
                    message=f"'{node.name}' needs credentials of type '{requirement.name}'",
                    severity="warning",
                    node_name=node.name,
                ))
        return issues


def placeholder_hint(value: Any) -> Optional[str]:
    """The hint of a placeholder value, or None when ``value`` is not one."""
    if isinstance(value, str) and value.startswith(PLACEHOLDER_PREFIX) and value.endswith(PLACEHOLDER_SUFFIX):
        return value[len(PLACEHOLDER_PREFIX):-len(PLACEHOLDER_SUFFIX)]
    return None


class PlaceholderValidator(ValidatorPlugin):
    """Placeholders must be direct parameter values, never inside arrays."""

    id = "core:placeholder"
    name = "Placeholder Validator"
    priority = 30

    def validate_node(self, node, ctx):
        issues = []
        for path, value, in_array in iter_parameters(node.parameters):
            hint = placeholder_hint(value)
            if hint is None or not in_array:
                continue
            issues.append(ValidationIssue(
                code="NESTED_PLACEHOLDER",
                message=(
                    f"'{node.name}' has placeholder('{hint}') nested inside an array at \"{path}\". "
                    "Use placeholder() directly as a parameter value, not inside arrays or objects."
                ),
                severity="warning",
                node_name=node.name,
                parameter_path=path,
            ))
        return issues


DEFAULT_PLUGINS: list[ValidatorPlugin] = [
    StructureValidator(),
    ExpressionValidator(),
    CredentialsValidator(),
    PlaceholderValidator(),
]


def validate_workflow(
    workflow: Workflow,
    node_types: Optional[NodeTypes] = None,
    plugins: Optional[list[ValidatorPlugin]] = None,
) -> ValidationResult:
    """
    Run validator plugins over a workflow.

    Args:
        workflow: Workflow to check
        node_types: Node type registry (defaults to the core nodes)
        plugins: Plugins to run (defaults to the built-in ones)

    Returns:
        ValidationResult with errors and warnings split
    """
    ctx = ValidationContext(workflow=workflow, node_types=node_types or get_node_types())
    issues: list[ValidationIssue] = []

    for plugin in sorted(plugins or DEFAULT_PLUGINS, key=lambda p: p.priority, reverse=True):
        for node in workflow.nodes:
            issues.extend(plugin.validate_node(node, ctx))
        issues.extend(plugin.validate_workflow(ctx))

    errors = [issue for issue in issues if issue.severity == "error"]
    warnings = [issue for issue in issues if issue.severity == "warning"]
    logger.debug(
        "workflow_validated",
        workflow_id=workflow.id,
        errors=len(errors),
        warnings=len(warnings),
    )
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
