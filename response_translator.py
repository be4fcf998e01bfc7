"""
Converts HTTP outcomes into MCP results.

An upstream 4xx/5xx is a *successful* tools/call whose result carries
``isError: true``; only failures of the bridge itself (timeouts, DNS,
refused connections) become JSON-RPC errors.
"""
import json
from typing import Any, Dict, Optional

from http_executor import HttpOutcome
from errors import InternalError
from mcp_types import McpCallToolResult, McpContent

EMPTY_BODY_TEXT = "(empty response body)"


def format_body(body: str, content_type: Optional[str] = None) -> str:
    """Pretty-print JSON bodies, pass anything else through as text."""
    if not body:
        return EMPTY_BODY_TEXT
    looks_like_json = (content_type and "json" in content_type.lower()) or body.lstrip()[:1] in ("{", "[")
    if looks_like_json:
        try:
            return json.dumps(json.loads(body), indent=2)
        except ValueError:
            pass
    return body


def raise_for_infrastructure(outcome: HttpOutcome) -> None:
    if outcome.kind == "timeout":
        raise InternalError("Upstream request timed out", data={"kind": "timeout"})
    if outcome.kind == "transport_error":
        raise InternalError("Upstream request failed", data={"kind": "network"})


def tool_result(outcome: HttpOutcome) -> Dict[str, Any]:
    raise_for_infrastructure(outcome)
    text = format_body(outcome.body, outcome.content_type)
    if outcome.kind == "http_error":
        reason = f" {outcome.reason}" if outcome.reason else ""
        text = f"HTTP {outcome.status_code}{reason}\n\n{text}"
    result = McpCallToolResult(
        content=[McpContent(text=text)],
        isError=outcome.kind == "http_error",
    )
    return result.model_dump()


def resource_contents(uri: str, mime_type: str, outcome: HttpOutcome) -> Dict[str, Any]:
    raise_for_infrastructure(outcome)
    if outcome.kind == "http_error":
        raise InternalError(
            "Upstream API rejected resource read",
            data={"status": outcome.status_code, "body": outcome.body},
        )
    return {"contents": [{"uri": uri, "mimeType": mime_type, "text": format_body(outcome.body, outcome.content_type)}]}
