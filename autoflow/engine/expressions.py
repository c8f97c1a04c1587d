"""Expression resolution for node parameters.

A parameter is an expression when it is a string starting with ``=``. Every
``{{ ... }}`` segment inside it is evaluated with Jinja2's sandboxed
environment:

    "={{ $json.email }}"               -> value of the field, any type
    "=Hello {{ $json.name }}!"         -> interpolated string
    "={{ $('Fetch').item.json.id }}"   -> paired item of another node

n8n-style ``$`` variables are rewritten to plain identifiers before
compilation, and the common JavaScript operators (``===``, ``!==``, ``&&``,
``||``, ``!``) are translated to their Jinja2 counterparts. Everything else
is Jinja2 expression syntax, including filters (``$json.tags | length``).
"""
import json
import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Callable

import structlog
from jinja2 import ChainableUndefined, TemplateSyntaxError, Undefined
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from autoflow.errors import ExpressionError

logger = structlog.get_logger()


EXPRESSION_PREFIX = "="
SEGMENT_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)

# Prefix used for rewritten $ variables: $json -> _json
VARIABLE_PREFIX = "_"
NODE_REFERENCE_FUNCTION = "_node_ref"

_IDENTIFIER_CHAR = re.compile(r"[A-Za-z0-9_]")
_WORD_REPLACEMENTS = {
    "null": "none",
    "undefined": "none",
}


class ExpressionEnvironment(SandboxedEnvironment):
    """Sandbox that prefers mapping keys over attributes.

    Without this ``$json.items`` would resolve to ``dict.items`` instead of
    the ``items`` field of the JSON object.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except KeyError:
                if attribute.startswith("__"):
                    return self.unsafe_undefined(obj, attribute)
                return self.undefined(obj=obj, name=attribute)
        return super().getattr(obj, attribute)

    def unsafe_undefined(self, obj: Any, attribute: str) -> Undefined:
        # Fail on access instead of returning an undefined that chains to None
        raise SecurityError(f"access to attribute {attribute!r} of {type(obj).__name__!r} object is unsafe")


_environment = ExpressionEnvironment(undefined=ChainableUndefined, autoescape=False)


def is_expression(value: Any) -> bool:
    """Check whether a parameter value is an expression."""
    return isinstance(value, str) and value.startswith(EXPRESSION_PREFIX)


def translate(source: str) -> str:
    """Rewrite an n8n-style expression into Jinja2 expression syntax.

    String literals are copied verbatim.
    """
    out = []
    i = 0
    length = len(source)
    while i < length:
        char = source[i]

        # String literals
        if char in ("'", '"', "`"):
            quote = char
            j = i + 1
            while j < length and source[j] != quote:
                if source[j] == "\\":
                    j += 1
                j += 1
            literal = source[i:j + 1]
            if quote == "`":
                literal = '"' + literal[1:-1].replace('"', '\\"') + '"'
            out.append(literal)
            i = j + 1
            continue

        if char == "$":
            if source.startswith("$(", i):
                out.append(NODE_REFERENCE_FUNCTION + "(")
                i += 2
                continue
            j = i + 1
            while j < length and _IDENTIFIER_CHAR.match(source[j]):
                j += 1
            out.append(VARIABLE_PREFIX + source[i + 1:j])
            i = j
            continue

        if source.startswith("===", i) or source.startswith("!==", i):
            out.append("==" if char == "=" else "!=")
            i += 3
            continue
        if source.startswith("&&", i):
            out.append(" and ")
            i += 2
            continue
        if source.startswith("||", i):
            out.append(" or ")
            i += 2
            continue
        if char == "!" and not source.startswith("!=", i):
            out.append(" not ")
            i += 1
            continue

        if _IDENTIFIER_CHAR.match(char) and (i == 0 or not _IDENTIFIER_CHAR.match(source[i - 1])):
            j = i
            while j < length and _IDENTIFIER_CHAR.match(source[j]):
                j += 1
            word = source[i:j]
            if i > 0 and source[i - 1] == ".":
                out.append(word)
            else:
                out.append(_WORD_REPLACEMENTS.get(word, word))
            i = j
            continue

        out.append(char)
        i += 1
    return "".join(out)


@lru_cache(maxsize=2048)
def compile_segment(segment: str) -> Callable[..., Any]:
    """Compile one ``{{ }}`` segment, cached by source text."""
    translated = translate(segment.strip())
    try:
        return _environment.compile_expression(translated, undefined_to_none=True)
    except TemplateSyntaxError as e:
        raise ExpressionError(
            f"Invalid expression syntax: {e.message}",
            expression=segment.strip(),
        )


def extract_segments(value: str) -> list[str]:
    """Return the raw source of every ``{{ }}`` segment of an expression."""
    body = value[len(EXPRESSION_PREFIX):] if is_expression(value) else value
    return [match.group(1) for match in SEGMENT_PATTERN.finditer(body)]


def check_syntax(value: str) -> None:
    """Compile every segment of an expression, raising ExpressionError on failure."""
    for segment in extract_segments(value):
        compile_segment(segment)


def _stringify(value: Any) -> str:
    if value is None or isinstance(value, Undefined):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _evaluate_segment(segment: str, context: dict[str, Any]) -> Any:
    compiled = compile_segment(segment)
    try:
        return compiled(**context)
    except ExpressionError:
        raise
    except SecurityError as e:
        raise ExpressionError(f"Expression not allowed: {e}", expression=segment.strip())
    except Exception as e:
        raise ExpressionError(
            f"Error evaluating expression: {e}",
            expression=segment.strip(),
        )


def evaluate(value: str, context: dict[str, Any]) -> Any:
    """Evaluate an expression string against a context.

    Args:
        value: Parameter value starting with "="
        context: Variables, keyed by their rewritten names (see build_context)

    Returns:
        The raw value for a single-segment expression, otherwise a string
    """
    body = value[len(EXPRESSION_PREFIX):]
    matches = list(SEGMENT_PATTERN.finditer(body))
    if not matches:
        return body

    if len(matches) == 1 and matches[0].group(0) == body.strip():
        return _evaluate_segment(matches[0].group(1), context)

    parts = []
    last = 0
    for match in matches:
        parts.append(body[last:match.start()])
        parts.append(_stringify(_evaluate_segment(match.group(1), context)))
        last = match.end()
    parts.append(body[last:])
    return "".join(parts)


def resolve_value(value: Any, context: dict[str, Any]) -> Any:
    """Resolve expressions recursively inside dicts and lists."""
    if is_expression(value):
        return evaluate(value, context)
    if isinstance(value, dict):
        return {key: resolve_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, context) for item in value]
    return value


def build_context(variables: dict[str, Any]) -> dict[str, Any]:
    """Map ``$`` variable names to the identifiers produced by translate().

    ``{"json": {...}, "node_ref": fn}`` becomes ``{"_json": {...}, "_node_ref": fn}``.
    """
    return {VARIABLE_PREFIX + name: value for name, value in variables.items()}


# =============================================================================
# NODE REFERENCES IN EXPRESSIONS
# =============================================================================

_REFERENCE_TEMPLATES = (
    r"\$\(\s*(['\"]){name}\1\s*\)",
    r"\$node\[\s*(['\"]){name}\1\s*\]",
    r"\$items\(\s*(['\"]){name}\1",
)


def find_node_references(value: str) -> set[str]:
    """Find node names referenced by an expression."""
    names = set()
    for pattern in (
        r"\$\(\s*(['\"])(.+?)\1\s*\)",
        r"\$node\[\s*(['\"])(.+?)\1\s*\]",
        r"\$items\(\s*(['\"])(.+?)\1",
    ):
        for match in re.finditer(pattern, value):
            names.add(match.group(2))
    for match in re.finditer(r"\$node\.([A-Za-z_][A-Za-z0-9_]*)", value):
        names.add(match.group(1))
    return names


def rename_node_references(value: str, old_name: str, new_name: str) -> str:
    """Rewrite references to ``old_name`` inside an expression string."""
    escaped = re.escape(old_name)

    def _swap(match: re.Match) -> str:
        quote = match.group(1)
        return match.group(0).replace(f"{quote}{old_name}{quote}", f"{quote}{new_name}{quote}")

    for template in _REFERENCE_TEMPLATES:
        value = re.sub(template.format(name=escaped), _swap, value)
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", old_name):
        replacement = (
            f"$node.{new_name}"
            if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", new_name)
            else f'$node["{new_name}"]'
        )
        value = re.sub(rf"\$node\.{escaped}\b", replacement, value)
    return value
