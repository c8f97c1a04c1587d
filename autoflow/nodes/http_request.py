"""HTTP Request node."""
import json
from typing import Any, Optional

import httpx

from autoflow.credentials.types import CREDENTIAL_TYPES, authenticate
from autoflow.errors import ExpressionError, NodeApiError, NodeOperationError
from autoflow.nodes.base import CredentialRequirement, NodeProperty, NodeType, NodeTypeDescription, error_item

_TEXT_CONTENT_TYPES = ("text/", "application/xml", "application/xhtml", "application/javascript")


def _key_value_pairs(parameters: Optional[dict]) -> dict:
    """``{"parameters": [{"name", "value"}]}`` -> ``{name: value}``."""
    result = {}
    for pair in (parameters or {}).get("parameters") or []:
        name = pair.get("name")
        if name:
            result[name] = pair.get("value")
    return result


def _json_parameter(node_name: str, value: Any, label: str, item_index: int) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value or "{}")
    except json.JSONDecodeError:
        raise NodeOperationError(node_name, f"JSON parameter needs to be valid JSON ({label})", item_index=item_index)


def _detect_format(content_type: str) -> str:
    content_type = content_type.lower()
    if "json" in content_type:
        return "json"
    if not content_type or content_type.startswith(_TEXT_CONTENT_TYPES) or "form-urlencoded" in content_type:
        return "text"
    return "file"


class HttpRequest(NodeType):
    """Makes an HTTP request and returns the response data.

    Parameters follow n8n's HTTP Request node: ``method``, ``url``,
    ``sendQuery``/``queryParameters``, ``sendHeaders``/``headerParameters``,
    ``sendBody`` with ``contentType`` json, form-urlencoded, raw or
    binaryData, and ``options.response`` for full responses, never-error
    and the response format.
    """

    description = NodeTypeDescription(
        name="httpRequest",
        display_name="HTTP Request",
        description="Makes an HTTP request and returns the response data",
        group=["output"],
        version=[4.2],
        credentials=[
            CredentialRequirement(
                name=name,
                required=True,
                display_options={"authentication": ["genericCredentialType"], "genericAuthType": [name]},
            )
            for name in CREDENTIAL_TYPES
        ],
        properties=[
            NodeProperty(
                name="method",
                display_name="Method",
                type="options",
                default="GET",
                options=["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"],
            ),
            NodeProperty(name="url", display_name="URL", default="", required=True),
            NodeProperty(
                name="authentication",
                display_name="Authentication",
                type="options",
                default="none",
                options=["none", "genericCredentialType"],
            ),
            NodeProperty(name="genericAuthType", display_name="Generic Auth Type", type="options", default=""),
            NodeProperty(name="sendQuery", display_name="Send Query Parameters", type="boolean", default=False),
            NodeProperty(name="specifyQuery", display_name="Specify Query Parameters", default="keypair"),
            NodeProperty(name="queryParameters", display_name="Query Parameters", type="fixedCollection", default={}),
            NodeProperty(name="jsonQuery", display_name="JSON", type="json", default=""),
            NodeProperty(name="sendHeaders", display_name="Send Headers", type="boolean", default=False),
            NodeProperty(name="specifyHeaders", display_name="Specify Headers", default="keypair"),
            NodeProperty(name="headerParameters", display_name="Header Parameters", type="fixedCollection", default={}),
            NodeProperty(name="jsonHeaders", display_name="JSON", type="json", default=""),
            NodeProperty(name="sendBody", display_name="Send Body", type="boolean", default=False),
            NodeProperty(
                name="contentType",
                display_name="Body Content Type",
                type="options",
                default="json",
                options=["json", "form-urlencoded", "raw", "binaryData"],
            ),
            NodeProperty(name="specifyBody", display_name="Specify Body", default="keypair"),
            NodeProperty(name="bodyParameters", display_name="Body Parameters", type="fixedCollection", default={}),
            NodeProperty(name="jsonBody", display_name="JSON", type="json", default=""),
            NodeProperty(name="body", display_name="Body", default=""),
            NodeProperty(name="rawContentType", display_name="Content Type", default="text/plain"),
            NodeProperty(name="inputDataFieldName", display_name="Input Data Field Name", default="data"),
            NodeProperty(name="options", display_name="Options", type="collection", default={}),
        ],
    )

    async def execute(self, ctx):
        output = []
        for index, item in enumerate(ctx.get_input_data()):
            try:
                output.extend(await self._request(ctx, index))
            except (NodeOperationError, ExpressionError) as e:
                if ctx.continue_on_fail():
                    output.append(error_item(e, index))
                    continue
                raise
        return [output]

    async def _build_request(self, ctx, index: int) -> dict:
        node_name = ctx.node.name
        request: dict[str, Any] = {}

        if ctx.get_node_parameter("sendQuery", index):
            if ctx.get_node_parameter("specifyQuery", index) == "json":
                request["params"] = _json_parameter(node_name, ctx.get_node_parameter("jsonQuery", index), "Query", index)
            else:
                request["params"] = _key_value_pairs(ctx.get_node_parameter("queryParameters", index))

        if ctx.get_node_parameter("sendHeaders", index):
            if ctx.get_node_parameter("specifyHeaders", index) == "json":
                headers = _json_parameter(node_name, ctx.get_node_parameter("jsonHeaders", index), "Headers", index)
            else:
                headers = _key_value_pairs(ctx.get_node_parameter("headerParameters", index))
            request["headers"] = {name: str(value) for name, value in headers.items()}

        if ctx.get_node_parameter("sendBody", index):
            content_type = ctx.get_node_parameter("contentType", index)
            if content_type == "raw":
                request["content"] = str(ctx.get_node_parameter("body", index) or "")
                request["headers"] = {
                    **request.get("headers", {}),
                    "Content-Type": ctx.get_node_parameter("rawContentType", index),
                }
            elif content_type == "binaryData":
                property_name = ctx.get_node_parameter("inputDataFieldName", index)
                request["content"] = await ctx.helpers.get_binary_data_buffer(index, property_name)
                binary = ctx.get_input_data()[index].get("binary", {}).get(property_name, {})
                request["headers"] = {
                    **request.get("headers", {}),
                    "Content-Type": binary.get("mimeType", "application/octet-stream"),
                }
            else:
                if ctx.get_node_parameter("specifyBody", index) == "json":
                    body = _json_parameter(node_name, ctx.get_node_parameter("jsonBody", index), "Body", index)
                else:
                    body = _key_value_pairs(ctx.get_node_parameter("bodyParameters", index))
                request["data" if content_type == "form-urlencoded" else "json"] = body

        if ctx.get_node_parameter("authentication", index) == "genericCredentialType":
            credential_type = ctx.get_node_parameter("genericAuthType", index)
            credentials = await ctx.get_credentials(credential_type)
            try:
                request = authenticate(credential_type, credentials, request)
            except ValueError as e:
                raise NodeOperationError(node_name, str(e), item_index=index)

        return request

    async def _request(self, ctx, index: int) -> list[dict]:
        method = str(ctx.get_node_parameter("method", index)).upper()
        url = ctx.get_node_parameter("url", index)
        if not url:
            raise NodeOperationError(ctx.node.name, "The URL parameter is empty", item_index=index)

        options = ctx.get_node_parameter("options", index) or {}
        response_options = (options.get("response") or {}).get("response") or {}
        timeout = options.get("timeout")

        request = await self._build_request(ctx, index)
        try:
            response = await ctx.helpers.http_request(
                method,
                url,
                timeout=timeout / 1000 if timeout else None,
                **request,
            )
        except httpx.HTTPError as e:
            raise NodeApiError(
                ctx.node.name,
                f"The connection to the server failed: {e}",
                item_index=index,
                description=type(e).__name__,
            )

        if response.status_code >= 400 and not response_options.get("neverError"):
            raise NodeApiError(
                ctx.node.name,
                f"Request failed with status code {response.status_code}",
                http_code=response.status_code,
                response_body=response.text,
                item_index=index,
                description=response.text[:1000] or None,
            )

        return await self._format_response(ctx, response, response_options, index)

    async def _format_response(self, ctx, response: httpx.Response, options: dict, index: int) -> list[dict]:
        response_format = options.get("responseFormat", "autodetect")
        output_property = options.get("outputPropertyName", "data")
        content_type = response.headers.get("content-type", "")
        if response_format == "autodetect":
            response_format = _detect_format(content_type)

        binary = None
        if response_format == "json":
            if not response.content:
                body: Any = {}
            else:
                try:
                    body = response.json()
                except ValueError:
                    raise NodeOperationError(ctx.node.name, "Response body is not valid JSON", item_index=index)
        elif response_format == "file":
            file_name = response.url.path.rsplit("/", 1)[-1] or None
            binary = await ctx.helpers.prepare_binary_data(
                response.content,
                file_name,
                content_type.split(";")[0] or None,
            )
            body = {}
        else:
            body = {output_property: response.text}

        if options.get("fullResponse"):
            json_data = {
                "body": body if binary is None else None,
                "headers": dict(response.headers),
                "statusCode": response.status_code,
                "statusMessage": response.reason_phrase,
            }
            items = [{"json": json_data}]
        elif isinstance(body, list):
            items = [{"json": entry if isinstance(entry, dict) else {output_property: entry}} for entry in body]
        elif isinstance(body, dict):
            items = [{"json": body}]
        else:
            items = [{"json": {output_property: body}}]

        for item in items:
            item["pairedItem"] = {"item": index}
        if binary is not None:
            items[0]["binary"] = {output_property: binary}
        return items
