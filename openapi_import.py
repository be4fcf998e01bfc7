#!/usr/bin/env python3
"""
Build a bridge configuration from an OpenAPI 3 or Swagger 2 document.

    python openapi_import.py petstore.json -o petstore-bridge.json --user-id me

The result can be loaded through BRIDGES_FILE or served with stdio_server.py.
Credentials are left blank; fill them in before use.
"""
import argparse
import json
import logging
import re
import sys
from typing import Any, Dict, List, Optional

from bridge_models import PATH_PARAM_RE, BridgeConfig, normalise_type

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete")
PARAM_TYPES = ("string", "number", "boolean", "object", "array")
MAX_REF_DEPTH = 20


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "bridge"


def resolve_ref(document: Dict[str, Any], node: Any, depth: int = 0) -> Any:
    """Follow local "$ref" pointers (#/components/..., #/definitions/...)."""
    while isinstance(node, dict) and isinstance(node.get("$ref"), str) and depth < MAX_REF_DEPTH:
        ref = node["$ref"]
        if not ref.startswith("#/"):
            logger.warning("Skipping external reference %s", ref)
            return {}
        target: Any = document
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            target = target.get(part, {}) if isinstance(target, dict) else {}
        node, depth = target, depth + 1
    return node if isinstance(node, dict) else {}


def openapi_type(schema: Dict[str, Any]) -> str:
    """Map an OpenAPI schema onto one of the bridge's parameter types."""
    declared = schema.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    if not declared and "properties" in schema:
        declared = "object"
    declared = normalise_type(declared or schema.get("format") or "string")
    return declared if declared in PARAM_TYPES else "string"


def base_url_of(document: Dict[str, Any]) -> str:
    servers = document.get("servers")
    if servers and isinstance(servers[0], dict) and servers[0].get("url"):
        url = servers[0]["url"]
        for name, variable in (servers[0].get("variables") or {}).items():
            url = url.replace("{" + name + "}", str(variable.get("default", "")))
        return url
    if document.get("host"):
        scheme = (document.get("schemes") or ["https"])[0]
        return f"{scheme}://{document['host']}{document.get('basePath', '')}"
    return ""


def convert_parameter(document: Dict[str, Any], raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    param = resolve_ref(document, raw)
    location = param.get("in")
    if location not in ("path", "query"):
        return None
    # swagger 2 keeps the type on the parameter, OpenAPI 3 in its schema
    schema = resolve_ref(document, param["schema"]) if "schema" in param else param
    converted = {
        "name": param["name"],
        "type": openapi_type(schema),
        "required": bool(param.get("required")) or location == "path",
        "description": param.get("description") or schema.get("description"),
        "location": location,
    }
    if "default" in schema:
        converted["defaultValue"] = schema["default"]
    return converted


def convert_body_schema(document: Dict[str, Any], schema: Dict[str, Any], content_type: str,
                        required: bool) -> Dict[str, Any]:
    schema = resolve_ref(document, schema)
    body: Dict[str, Any] = {"contentType": content_type, "required": required, "schema": schema}
    if schema.get("properties"):
        required_fields = set(schema.get("required") or [])
        properties = {}
        for name, prop in schema["properties"].items():
            prop = resolve_ref(document, prop)
            converted = {
                "type": openapi_type(prop),
                "description": prop.get("description"),
                "required": name in required_fields,
            }
            for keyword in ("enum", "format", "items", "default"):
                if keyword in prop:
                    converted[keyword] = prop[keyword]
            properties[name] = converted
        body["properties"] = properties
    return body


def convert_request_body(document: Dict[str, Any], operation: Dict[str, Any],
                         parameters: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if "requestBody" in operation:
        request_body = resolve_ref(document, operation["requestBody"])
        content = request_body.get("content") or {}
        if not content:
            return None
        content_type = "application/json" if "application/json" in content else next(iter(content))
        return convert_body_schema(
            document, content[content_type].get("schema") or {}, content_type, bool(request_body.get("required"))
        )

    # swagger 2: a single "body" parameter or a set of "formData" parameters
    for raw in parameters:
        param = resolve_ref(document, raw)
        if param.get("in") == "body":
            content_type = (operation.get("consumes") or document.get("consumes") or ["application/json"])[0]
            return convert_body_schema(document, param.get("schema") or {}, content_type, bool(param.get("required")))
    form_fields = [resolve_ref(document, p) for p in parameters if resolve_ref(document, p).get("in") == "formData"]
    if form_fields:
        schema = {
            "type": "object",
            "properties": {p["name"]: {k: v for k, v in p.items() if k not in ("name", "in", "required")}
                           for p in form_fields},
            "required": [p["name"] for p in form_fields if p.get("required")],
        }
        return convert_body_schema(document, schema, "application/x-www-form-urlencoded", False)
    return None


def guess_authentication(document: Dict[str, Any]) -> Dict[str, Any]:
    schemes = (document.get("components") or {}).get("securitySchemes") or document.get("securityDefinitions") or {}
    for scheme in schemes.values():
        scheme = resolve_ref(document, scheme)
        kind = scheme.get("type")
        if kind == "http" and scheme.get("scheme", "").lower() == "bearer":
            return {"type": "bearer", "token": ""}
        if (kind == "http" and scheme.get("scheme", "").lower() == "basic") or kind == "basic":
            return {"type": "basic", "username": "", "password": ""}
        if kind == "apiKey" and scheme.get("in") in ("header", "query"):
            auth = {"type": "apiKey", "key": "", "location": scheme["in"]}
            auth["headerName" if scheme["in"] == "header" else "paramName"] = scheme.get("name")
            return auth
        if kind in ("oauth2", "openIdConnect"):
            return {"type": "bearer", "token": ""}
    return {"type": "none"}


def convert_document(document: Dict[str, Any], bridge_id: Optional[str] = None, user_id: str = "local",
                     base_url: Optional[str] = None, public: bool = False) -> BridgeConfig:
    info = document.get("info") or {}
    title = info.get("title") or "Imported API"
    endpoints = []
    for path, path_item in (document.get("paths") or {}).items():
        path_item = resolve_ref(document, path_item)
        shared = path_item.get("parameters") or []
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue
            # operation-level parameters override path-level ones of the same name and location
            merged: Dict[tuple, Dict[str, Any]] = {}
            for raw in list(shared) + list(operation.get("parameters") or []):
                param = resolve_ref(document, raw)
                merged[(param.get("name"), param.get("in"))] = raw
            raw_params = list(merged.values())

            parameters = [p for p in (convert_parameter(document, raw) for raw in raw_params) if p]
            declared = {p["name"] for p in parameters}
            for name in PATH_PARAM_RE.findall(path):
                if name not in declared:
                    parameters.append({"name": name, "type": "string", "required": True, "location": "path"})

            endpoint = {
                "name": operation.get("operationId") or "",
                "method": method.upper(),
                "path": path,
                "description": operation.get("summary") or operation.get("description"),
                "parameters": parameters,
                "enabled": not operation.get("deprecated", False),
            }
            request_body = convert_request_body(document, operation, raw_params)
            if request_body is not None and method in ("post", "put", "patch"):
                endpoint["requestBody"] = request_body
            endpoints.append(endpoint)

    bridge = BridgeConfig.model_validate({
        "id": bridge_id or _slug(title),
        "name": title,
        "description": info.get("description") or "",
        "userId": user_id,
        "baseUrl": base_url or base_url_of(document),
        "authentication": guess_authentication(document),
        "access": {"public": public, "authRequired": not public},
        "endpoints": endpoints,
    })
    logger.info("Converted %s: %d endpoints", title, len(bridge.endpoints))
    return bridge


def main(argv=None):
    parser = argparse.ArgumentParser(description="Convert an OpenAPI/Swagger JSON document into a bridge configuration")
    parser.add_argument("source", help="OpenAPI 3 or Swagger 2 document (JSON)")
    parser.add_argument("-o", "--output", help="Write the bridge configuration here instead of stdout")
    parser.add_argument("--bridge-id", help="Bridge id (default: derived from the API title)")
    parser.add_argument("--user-id", default="local", help="Owner of the bridge")
    parser.add_argument("--base-url", help="Override the base URL taken from the document")
    parser.add_argument("--public", action="store_true", help="Allow calls without credentials")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s", stream=sys.stderr)

    with open(args.source, "r", encoding="utf-8") as f:
        document = json.load(f)

    bridge = convert_document(
        document,
        bridge_id=args.bridge_id,
        user_id=args.user_id,
        base_url=args.base_url,
        public=args.public,
    )
    output = json.dumps(bridge.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output + "\n")
        print(f"Wrote {len(bridge.endpoints)} endpoints to {args.output}")
    else:
        print(output)
    if not bridge.baseUrl:
        logger.warning("The document declares no server; pass --base-url")
    return 0


if __name__ == "__main__":
    sys.exit(main())
