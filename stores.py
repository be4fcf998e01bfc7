"""
Storage collaborators used by the bridge: bridge configurations, access
tokens and user sessions.

The interfaces are Protocols so a database-backed store can be dropped in;
the in-memory implementations here back the default application, the stdio
server and the tests. Bridge configurations are frozen models, so a lookup
hands the caller a consistent snapshot even if the bridge is replaced while
a request is in flight.
"""
import json
import logging
import secrets
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import TypeAdapter

from access_tokens import AccessToken, utcnow
from bridge_models import BridgeConfig, Session

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"


class BridgeStore(Protocol):
    async def get_by_id(self, bridge_id: str) -> Optional[BridgeConfig]: ...


class TokenStore(Protocol):
    async def find_by_bridge(self, bridge_id: str) -> List[AccessToken]: ...
    async def find_by_secret(self, secret: str) -> Optional[AccessToken]: ...
    async def touch_last_used(self, token_id: str) -> None: ...


class InMemoryTokenStore:
    def __init__(self):
        self._tokens: Dict[str, AccessToken] = {}

    async def find_by_bridge(self, bridge_id: str) -> List[AccessToken]:
        tokens = [t for t in self._tokens.values() if t.bridgeId == bridge_id]
        return [t.model_copy(deep=True) for t in sorted(tokens, key=lambda t: t.createdAt, reverse=True)]

    async def find_by_secret(self, secret: str) -> Optional[AccessToken]:
        for token in self._tokens.values():
            if secrets.compare_digest(token.token.encode("utf-8"), secret.encode("utf-8")):
                return token.model_copy(deep=True)
        return None

    async def get(self, token_id: str) -> Optional[AccessToken]:
        token = self._tokens.get(token_id)
        return token.model_copy(deep=True) if token else None

    async def touch_last_used(self, token_id: str) -> None:
        token = self._tokens.get(token_id)
        if token is not None:
            self._tokens[token_id] = token.model_copy(update={"lastUsedAt": utcnow()})

    async def create(self, token: AccessToken) -> AccessToken:
        self._tokens[token.id] = token.model_copy(deep=True)
        return token

    async def update(self, token_id: str, **changes) -> Optional[AccessToken]:
        token = self._tokens.get(token_id)
        if token is None:
            return None
        updated = token.model_copy(update=changes)
        self._tokens[token_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, token_id: str) -> bool:
        return self._tokens.pop(token_id, None) is not None

    async def delete_by_bridge(self, bridge_id: str) -> int:
        doomed = [t.id for t in self._tokens.values() if t.bridgeId == bridge_id]
        for token_id in doomed:
            del self._tokens[token_id]
        return len(doomed)


class InMemoryBridgeStore:
    def __init__(self, bridges: Iterable[BridgeConfig] = (), tokens: Optional[InMemoryTokenStore] = None):
        self._bridges: Dict[str, BridgeConfig] = {b.id: b for b in bridges}
        self.tokens = tokens

    async def get_by_id(self, bridge_id: str) -> Optional[BridgeConfig]:
        return self._bridges.get(bridge_id)

    async def put(self, bridge: BridgeConfig) -> BridgeConfig:
        # replacing the reference is the whole update; readers keep their snapshot
        self._bridges[bridge.id] = bridge
        return bridge

    async def update(self, bridge_id: str, **changes) -> Optional[BridgeConfig]:
        current = self._bridges.get(bridge_id)
        if current is None:
            return None
        updated = BridgeConfig.model_validate({**current.model_dump(), **changes})
        self._bridges[bridge_id] = updated
        return updated

    async def delete(self, bridge_id: str) -> bool:
        if self._bridges.pop(bridge_id, None) is None:
            return False
        if self.tokens is not None:
            removed = await self.tokens.delete_by_bridge(bridge_id)
            logger.info("Deleted bridge %s and %d access tokens", bridge_id, removed)
        return True


class InMemorySessionResolver:
    """Maps opaque session cookies to users."""

    def __init__(self, sessions: Optional[Dict[str, str]] = None):
        self._sessions: Dict[str, str] = dict(sessions or {})

    def issue(self, user_id: str) -> str:
        session_token = secrets.token_urlsafe(32)
        self._sessions[session_token] = user_id
        return session_token

    def resolve(self, request) -> Optional[Session]:
        session_token = request.cookies.get(SESSION_COOKIE)
        if not session_token:
            return None
        user_id = self._sessions.get(session_token)
        return Session(userId=user_id) if user_id else None


_bridge_list = TypeAdapter(List[BridgeConfig])


def load_bridges(path) -> List[BridgeConfig]:
    """
    Read bridge configurations from a JSON file holding either a single
    bridge object or a list of them.
    """
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = [data]
    bridges = _bridge_list.validate_python(data)
    logger.info("Loaded %d bridge configurations from %s", len(bridges), path)
    return bridges
