import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from access_control import AccessGate
from audit import LoggingAuditSink
from auth_injector import inject_auth
from bridge_models import BridgeConfig, Session
from encryption import EncryptionService, decrypt_auth_config
from errors import (
    BridgeError, BridgeNotFoundError, DecryptionError, InternalError, InvalidParamsError,
    InvalidRequestError, MethodNotFoundError, RateLimitedError,
)
from http_executor import HttpExecutor
from mcp_types import (
    INTERNAL_ERROR, PARSE_ERROR, SERVER_VERSION,
    JsonRpcRequest, McpCallToolParams, McpGetPromptParams, McpListToolsResult, McpReadResourceParams,
    error_response, success_response,
)
from rate_limiter import NoRateLimit, RateLimiter
from request_translator import build_read_request, translate_tool_call
from response_translator import resource_contents, tool_result
from stores import BridgeStore
from tool_catalog import build_prompts, build_resources, build_tools, find_endpoint

logger = logging.getLogger(__name__)

NOTIFICATION_PREFIX = "notifications/"

_PROMPT_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _request_id(data: Any) -> Any:
    """The id to echo for a body that failed validation, when it has a usable one."""
    if isinstance(data, dict):
        request_id = data.get("id")
        if isinstance(request_id, (int, float, str)) and not isinstance(request_id, bool):
            return request_id
    return None


def _params_model(model, params: Optional[Dict[str, Any]]):
    try:
        return model.model_validate(params or {})
    except ValidationError as e:
        problems = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidParamsError(data={"errors": problems}) from e


class McpServer:
    """
    JSON-RPC 2.0 dispatcher for bridges.

    ``handle`` always returns an (HTTP status, JSON-RPC response) pair and
    never raises; every fault is turned into a JSON-RPC error here.
    """

    def __init__(
        self,
        bridges: BridgeStore,
        gate: AccessGate,
        encryption: EncryptionService,
        executor: Optional[HttpExecutor] = None,
        audit: Optional[LoggingAuditSink] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.bridges = bridges
        self.gate = gate
        self.encryption = encryption
        self.executor = executor or HttpExecutor()
        self.audit = audit or LoggingAuditSink()
        self.rate_limiter = rate_limiter or NoRateLimit()

    async def handle(
        self,
        body,
        bridge_id: str,
        session: Optional[Session] = None,
        authorization: Optional[str] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        request_id = None
        try:
            bridge = await self.bridges.get_by_id(bridge_id)
            if bridge is None or not bridge.enabled:
                raise BridgeNotFoundError()

            try:
                data = json.loads(body)
            except ValueError as e:
                logger.info("Unparseable JSON-RPC body for bridge %s: %s", bridge_id, e)
                return 200, error_response(None, PARSE_ERROR, "Parse error")

            request_id = _request_id(data)
            request = self._validate_envelope(data)

            token = await self.gate.authorize(bridge, session, authorization, request.method, request.params)

            limit_key = f"{bridge.id}:{token.id if token else (session.userId if session else 'anonymous')}"
            if not self.rate_limiter.check(limit_key):
                raise RateLimitedError()

            result = await self._route(bridge, request)
            return 200, success_response(request_id, result)

        except BridgeError as e:
            if e.http_status != 200:
                self.audit.record(bridge_id, "warn", f"Request rejected: {e.message}", {"code": e.code})
            return e.http_status, error_response(request_id, e.code, e.message, e.data)
        except Exception:
            logger.exception("Unhandled error while dispatching request for bridge %s", bridge_id)
            return 200, error_response(request_id, INTERNAL_ERROR, "Internal error")

    def _validate_envelope(self, data: Any) -> JsonRpcRequest:
        if not isinstance(data, dict):
            raise InvalidRequestError("Invalid Request: expected a single JSON-RPC object")
        try:
            request = JsonRpcRequest.model_validate(data)
        except ValidationError as e:
            error = InvalidRequestError(data={"errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]})
            raise error from e
        if "id" not in data and not request.method.startswith(NOTIFICATION_PREFIX):
            raise InvalidRequestError("Invalid Request: missing id")
        return request

    async def _route(self, bridge: BridgeConfig, request: JsonRpcRequest) -> Any:
        method = request.method
        if method == "initialize":
            return {
                "initialized": True,
                "serverInfo": {"name": bridge.name, "version": SERVER_VERSION},
            }
        elif method == "ping":
            return {}
        elif method == "tools/list":
            return McpListToolsResult(tools=build_tools(bridge)).model_dump()
        elif method == "tools/call":
            return await self._handle_call_tool(bridge, request)
        elif method == "prompts/list":
            return {"prompts": build_prompts(bridge)}
        elif method == "prompts/get":
            return self._handle_get_prompt(bridge, request)
        elif method == "resources/list":
            return {"resources": build_resources(bridge)}
        elif method == "resources/read":
            return await self._handle_read_resource(bridge, request)
        elif method.startswith(NOTIFICATION_PREFIX):
            return {}
        else:
            raise MethodNotFoundError(f"Method not found: {method}")

    async def _handle_call_tool(self, bridge: BridgeConfig, request: JsonRpcRequest) -> Dict[str, Any]:
        params = _params_model(McpCallToolParams, request.params)
        endpoint = find_endpoint(bridge, params.name)
        if endpoint is None:
            raise InternalError(f"Tool not found: {params.name}")

        spec = translate_tool_call(bridge, endpoint, params.arguments or {})
        spec = inject_auth(self._credentials(bridge), spec)
        outcome = await self.executor.execute(spec, timeout=self._timeout(bridge))

        self.audit.record(
            bridge.id,
            "info" if outcome.ok else "warn",
            f"tools/call {params.name}: {outcome.status_code or outcome.kind}",
            {"tool": params.name, "method": spec.method, "status": outcome.status_code,
             "kind": outcome.kind, "durationMs": round(outcome.elapsed_ms)},
        )
        return tool_result(outcome)

    async def _handle_read_resource(self, bridge: BridgeConfig, request: JsonRpcRequest) -> Dict[str, Any]:
        params = _params_model(McpReadResourceParams, request.params)
        resource = next((r for r in bridge.resources if r.uri == params.uri), None)
        if resource is None:
            raise InvalidParamsError(f"Unknown resource: {params.uri}")

        if resource.text is not None or not resource.path:
            return {"contents": [{"uri": resource.uri, "mimeType": resource.mimeType, "text": resource.text or ""}]}

        spec = inject_auth(self._credentials(bridge), build_read_request(bridge, resource.path))
        outcome = await self.executor.execute(spec, timeout=self._timeout(bridge))
        return resource_contents(resource.uri, resource.mimeType, outcome)

    def _handle_get_prompt(self, bridge: BridgeConfig, request: JsonRpcRequest) -> Dict[str, Any]:
        params = _params_model(McpGetPromptParams, request.params)
        prompt = next((p for p in bridge.prompts if p.name == params.name), None)
        if prompt is None:
            raise InvalidParamsError(f"Unknown prompt: {params.name}")

        arguments = {k: v for k, v in (params.arguments or {}).items() if v is not None}
        missing = [a.name for a in prompt.arguments if a.required and a.name not in arguments]
        if missing:
            raise InvalidParamsError(f"Missing required argument: {', '.join(missing)}", data={"missing": missing})

        if prompt.template:
            text = _PROMPT_PLACEHOLDER.sub(
                lambda m: str(arguments[m.group(1)]) if m.group(1) in arguments else m.group(0),
                prompt.template,
            )
        else:
            text = prompt.description or prompt.name
            if arguments:
                text += "\n\n" + "\n".join(f"{k}: {v}" for k, v in arguments.items())
        return {
            "description": prompt.description,
            "messages": [{"role": "user", "content": {"type": "text", "text": text}}],
        }

    def _credentials(self, bridge: BridgeConfig):
        try:
            return decrypt_auth_config(bridge.authentication, self.encryption)
        except DecryptionError as e:
            raise InternalError("Failed to decrypt bridge credentials") from e

    def _timeout(self, bridge: BridgeConfig) -> Optional[float]:
        if bridge.performance.timeout:
            return bridge.performance.timeout / 1000
        return None
