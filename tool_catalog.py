"""
Derives the MCP catalog (tools, prompts, resources) from a bridge configuration.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from bridge_models import BridgeConfig, EndpointDescriptor
from mcp_types import McpTool
from request_translator import tool_inputs

MAX_TOOL_NAME_LENGTH = 64

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def generate_standard_tool_name(method: str, path: str) -> str:
    """
    <method>_<resource>_<action>, e.g. GET /users -> get_users_list,
    GET /users/{id} -> get_users_read, POST /users -> post_users_create.
    """
    method = method.lower()
    parts = [p.lower() for p in re.sub(r"\{[^}]+\}", "", path).split("/") if p]
    has_params = "{" in path
    action = {
        "get": "read" if has_params else "list",
        "post": "create",
        "put": "update",
        "patch": "update",
        "delete": "delete",
    }.get(method, "")
    resource = parts[-1] if parts else "root"
    return sanitize_tool_name(f"{method}_{resource}_{action}")


def sanitize_tool_name(name: str) -> str:
    name = _INVALID_NAME_CHARS.sub("_", name.strip())
    name = _REPEATED_UNDERSCORES.sub("_", name).strip("_")
    return name[:MAX_TOOL_NAME_LENGTH]


def tool_names(endpoints: List[EndpointDescriptor]) -> List[Tuple[str, EndpointDescriptor]]:
    """Unique, identifier-safe names for the enabled endpoints, in order."""
    taken = set()
    named = []
    for endpoint in endpoints:
        if not endpoint.enabled:
            continue
        base = sanitize_tool_name(endpoint.name) or generate_standard_tool_name(endpoint.method, endpoint.path)
        name, counter = base, 2
        while name in taken:
            suffix = f"_{counter}"
            name = base[:MAX_TOOL_NAME_LENGTH - len(suffix)] + suffix
            counter += 1
        taken.add(name)
        named.append((name, endpoint))
    return named


def find_endpoint(bridge: BridgeConfig, tool_name: str) -> Optional[EndpointDescriptor]:
    for name, endpoint in tool_names(bridge.endpoints):
        if name == tool_name:
            return endpoint
    return None


def build_input_schema(endpoint: EndpointDescriptor) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for tool_input in tool_inputs(endpoint):
        prop: Dict[str, Any] = dict(tool_input.extra_schema)
        if tool_input.type != "any":
            prop["type"] = tool_input.type
        prop["description"] = tool_input.description or f"{tool_input.name} parameter"
        if tool_input.default is not None:
            prop["default"] = tool_input.default
        properties[tool_input.name] = prop
        if tool_input.required:
            required.append(tool_input.name)
    return {"type": "object", "properties": properties, "required": required}


def build_tool_description(endpoint: EndpointDescriptor) -> str:
    description = endpoint.description or f"{endpoint.method} {endpoint.path}"

    path_names = set(endpoint.path_parameters)
    required = [p for p in endpoint.parameters if p.required or p.name in path_names]
    optional = [p for p in endpoint.parameters if not (p.required or p.name in path_names)]
    if required:
        description += "\n\nRequired parameters: " + ", ".join(f"{p.name} ({p.type})" for p in required)
    if optional:
        description += "\n\nOptional parameters: " + ", ".join(f"{p.name} ({p.type})" for p in optional)

    body = endpoint.requestBody
    if body is not None and endpoint.has_body:
        if body.properties:
            req_fields = [f"{n} ({p.type})" for n, p in body.properties.items() if p.required]
            opt_fields = [f"{n} ({p.type})" for n, p in body.properties.items() if not p.required]
            if req_fields:
                description += "\n\nRequired body fields: " + ", ".join(req_fields)
            if opt_fields:
                description += "\n\nOptional body fields: " + ", ".join(opt_fields)
        else:
            description += f"\n\nAccepts {body.contentType} request body"
    return description


def build_tools(bridge: BridgeConfig) -> List[Dict[str, Any]]:
    return [
        McpTool(
            name=name,
            description=build_tool_description(endpoint),
            inputSchema=build_input_schema(endpoint),
        ).model_dump()
        for name, endpoint in tool_names(bridge.endpoints)
    ]


def build_prompts(bridge: BridgeConfig) -> List[Dict[str, Any]]:
    return [
        {
            "name": prompt.name,
            "description": prompt.description,
            "arguments": [arg.model_dump() for arg in prompt.arguments],
        }
        for prompt in bridge.prompts
    ]


def build_resources(bridge: BridgeConfig) -> List[Dict[str, Any]]:
    return [
        {
            "uri": resource.uri,
            "name": resource.name,
            "description": resource.description,
            "mimeType": resource.mimeType,
        }
        for resource in bridge.resources
    ]
