"""
Translation of an MCP tools/call into an outbound HTTP request.

The inputs a tool accepts are derived from its endpoint descriptor in one
place (``tool_inputs``) so the advertised JSON Schema and the placement of
arguments on the wire can never disagree.
"""
import json
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from bridge_models import BridgeConfig, EndpointDescriptor, normalise_type
from errors import ToolArgumentError

RAW_BODY_ARGUMENT = "requestBody"

Location = Literal["path", "query", "body", "raw_body"]

_PYTHON_TYPES = {
    "string": str,
    "number": Union[int, float],
    "boolean": bool,
    "object": Dict[str, Any],
    "array": List[Any],
}


class ToolInput(BaseModel):
    """One argument a tool accepts and where it lands in the HTTP request."""
    name: str
    type: str
    location: Location
    required: bool = False
    description: Optional[str] = None
    default: Optional[Any] = None
    extra_schema: Dict[str, Any] = Field(default_factory=dict)


class RequestSpec(BaseModel):
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    query: List[Tuple[str, str]] = Field(default_factory=list)
    body: Optional[Any] = None
    body_encoding: Literal["json", "form", "text"] = "json"
    content_type: Optional[str] = None


def join_url(base_url: str, path: str) -> str:
    """Join base URL and path with exactly one slash between them."""
    base = base_url.rstrip("/")
    clean_path = path.lstrip("/")
    if not clean_path:
        return base + "/" if path.startswith("/") else base
    return f"{base}/{clean_path}"


def tool_inputs(descriptor: EndpointDescriptor) -> List[ToolInput]:
    path_names = set(descriptor.path_parameters)
    inputs = []
    for param in descriptor.parameters:
        if param.name in path_names:
            location = "path"
        elif param.location in ("query", "body"):
            location = param.location
        else:
            location = "body" if descriptor.has_body else "query"
        inputs.append(ToolInput(
            name=param.name,
            type=param.type,
            location=location,
            required=param.required or location == "path",
            description=param.description,
            default=param.defaultValue,
        ))

    request_body = descriptor.requestBody
    if request_body is None or not descriptor.has_body:
        return inputs

    if request_body.properties:
        declared = {i.name for i in inputs}
        for prop_name, prop in request_body.properties.items():
            if prop_name in declared:
                continue
            prop_type = normalise_type(prop.type)
            inputs.append(ToolInput(
                name=prop_name,
                type=prop_type if prop_type in _PYTHON_TYPES else "any",
                location="body",
                required=prop.required,
                description=prop.description,
                extra_schema=dict(prop.model_extra or {}),
            ))
    elif RAW_BODY_ARGUMENT not in {i.name for i in inputs}:
        inputs.append(ToolInput(
            name=RAW_BODY_ARGUMENT,
            type="string" if request_body.encoding == "text" else "object",
            location="raw_body",
            required=request_body.required,
            description="Request body data",
            extra_schema=dict(request_body.body_schema or {}),
        ))
    return inputs


def argument_model(inputs: List[ToolInput]) -> Type[BaseModel]:
    """Build a pydantic model validating the arguments of one tool."""
    fields = {}
    for index, tool_input in enumerate(inputs):
        annotation = _PYTHON_TYPES.get(tool_input.type, Any)
        if tool_input.required:
            fields[f"arg_{index}"] = (annotation, Field(alias=tool_input.name))
        else:
            fields[f"arg_{index}"] = (Optional[annotation], Field(default=tool_input.default, alias=tool_input.name))
    return create_model(
        "ToolArguments",
        __config__=ConfigDict(extra="ignore", coerce_numbers_to_str=True),
        **fields,
    )


def validate_arguments(descriptor: EndpointDescriptor, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate raw tools/call arguments against the descriptor.

    Returns a dict keyed by argument name holding typed values for every
    supplied (or defaulted) argument. Undeclared keys are dropped.
    Raises ToolArgumentError describing every problem at once.
    """
    if not isinstance(arguments, dict):
        raise ToolArgumentError("Tool arguments must be an object")

    inputs = tool_inputs(descriptor)
    # explicit nulls count as absent
    cleaned = {k: v for k, v in arguments.items() if v is not None}
    try:
        record = argument_model(inputs).model_validate(cleaned)
    except ValidationError as e:
        missing, problems = [], []
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"])
            if err["type"] == "missing":
                missing.append(field)
            else:
                problems.append({"field": field, "message": err["msg"]})
        path_names = set(descriptor.path_parameters)
        if missing and all(name in path_names for name in missing):
            message = f"Missing required path parameter: {', '.join(missing)}"
        elif missing:
            message = f"Missing required argument: {', '.join(missing)}"
        else:
            message = "Invalid tool arguments"
        raise ToolArgumentError(message, data={"missing": missing, "errors": problems}) from e

    values = record.model_dump(by_alias=True)
    return {name: value for name, value in values.items() if value is not None}


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _query_items(name: str, value: Any) -> List[Tuple[str, str]]:
    if isinstance(value, list):
        return [(name, _to_text(item)) for item in value]
    return [(name, _to_text(value))]


def translate_tool_call(bridge: BridgeConfig, descriptor: EndpointDescriptor,
                        arguments: Dict[str, Any]) -> RequestSpec:
    """Map validated tool arguments onto an HTTP request for ``descriptor``."""
    values = validate_arguments(descriptor, arguments)
    inputs = {i.name: i for i in tool_inputs(descriptor)}

    path = descriptor.path
    for name in descriptor.path_parameters:
        path = path.replace("{" + name + "}", quote(_to_text(values[name]), safe=""))

    query: List[Tuple[str, str]] = []
    body_fields: Dict[str, Any] = {}
    raw_body = None
    for name, value in values.items():
        location = inputs[name].location
        if location == "query":
            query.extend(_query_items(name, value))
        elif location == "body":
            body_fields[name] = value
        elif location == "raw_body":
            raw_body = value

    request_body = descriptor.requestBody
    encoding = request_body.encoding if request_body else "json"
    body = raw_body if raw_body is not None else (body_fields or None)
    if body is not None and encoding == "form" and isinstance(body, dict):
        body = {key: _to_text(value) for key, value in body.items()}
    if body is not None and encoding == "text" and not isinstance(body, str):
        body = _to_text(body)

    return RequestSpec(
        method=descriptor.method,
        url=join_url(bridge.baseUrl, path),
        headers=dict(bridge.headers),
        query=query,
        body=body,
        body_encoding=encoding,
        content_type=request_body.contentType if request_body else None,
    )


def build_read_request(bridge: BridgeConfig, path: str) -> RequestSpec:
    """GET request for a resource backed by an upstream path."""
    return RequestSpec(method="GET", url=join_url(bridge.baseUrl, path), headers=dict(bridge.headers))
