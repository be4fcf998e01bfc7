"""
Decides whether an incoming MCP call may use a bridge.

A call is allowed when the bridge is public, when the session belongs to the
bridge owner, or when it carries a bearer access token for this bridge whose
permissions cover the method being called.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set, Tuple

from access_tokens import AccessToken
from bridge_models import BridgeConfig, Session
from errors import UnauthorizedError
from stores import TokenStore

logger = logging.getLogger(__name__)

# method -> (capability, action); action None means any action on the capability
METHOD_PERMISSIONS: Dict[str, Tuple[Optional[str], Optional[str]]] = {
    "initialize": (None, None),
    "ping": (None, None),
    "tools/list": ("tools", None),
    "tools/call": ("tools", "execute"),
    "resources/list": ("resources", None),
    "resources/read": ("resources", "read"),
    "prompts/list": ("prompts", None),
    "prompts/get": ("prompts", "execute"),
}


def required_permission(method: str, params: Optional[Dict[str, Any]] = None):
    """
    Return (capability, action, endpoint) for a JSON-RPC method. Methods the
    bridge does not know need only a usable credential; routing rejects them.
    """
    capability, action = METHOD_PERMISSIONS.get(method, (None, None))
    endpoint = None
    if method == "tools/call" and isinstance(params, dict) and isinstance(params.get("name"), str):
        endpoint = params["name"]
    return capability, action, endpoint


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


class AccessGate:
    def __init__(self, tokens: TokenStore):
        self.tokens = tokens
        self._pending: Set[asyncio.Task] = set()

    async def authorize(
        self,
        bridge: BridgeConfig,
        session: Optional[Session],
        authorization: Optional[str],
        method: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Optional[AccessToken]:
        """
        Allow or deny the call. Returns the access token used, if any.
        Raises UnauthorizedError on denial; the message never says whether
        the credential or the bridge was the problem.
        """
        if bridge.access.public:
            return None
        if session is not None and session.userId == bridge.userId:
            return None

        secret = bearer_token(authorization)
        if secret:
            token = await self.tokens.find_by_secret(secret)
            capability, action, endpoint = required_permission(method, params)
            if token is not None and token.bridgeId == bridge.id and token.allows(capability, action, endpoint):
                self._touch(token)
                return token
            logger.info("Rejected access token for bridge %s (method %s)", bridge.id, method)

        raise UnauthorizedError()

    def _touch(self, token: AccessToken) -> None:
        task = asyncio.create_task(self._touch_last_used(token.id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _touch_last_used(self, token_id: str) -> None:
        try:
            await self.tokens.touch_last_used(token_id)
        except Exception:
            logger.exception("Failed to update lastUsedAt for token %s", token_id)

    async def drain(self) -> None:
        """Wait for outstanding lastUsedAt updates (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
