"""
Bridge-scoped access tokens: issuance and permission checks.
"""
import fnmatch
import secrets
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

PermissionType = Literal["tools", "resources", "prompts", "admin"]

TOKEN_PREFIX = "mcp"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PermissionConstraints(BaseModel):
    rateLimit: Optional[int] = None
    allowedEndpoints: Optional[List[str]] = None
    timeWindows: Optional[List[str]] = None


class TokenPermission(BaseModel):
    type: PermissionType
    actions: List[str] = Field(default_factory=list)
    constraints: Optional[PermissionConstraints] = None

    def covers(self, action: Optional[str], endpoint: Optional[str] = None) -> bool:
        # action None: listing the capability, any granted action will do
        if action is not None and action not in self.actions and "*" not in self.actions:
            return False
        if endpoint and self.constraints and self.constraints.allowedEndpoints:
            return any(fnmatch.fnmatchcase(endpoint, pattern) for pattern in self.constraints.allowedEndpoints)
        return True


class AccessToken(BaseModel):
    id: str
    bridgeId: str
    token: str
    name: str
    description: Optional[str] = None
    permissions: List[TokenPermission] = Field(default_factory=list)
    expiresAt: Optional[datetime] = None
    createdAt: datetime = Field(default_factory=utcnow)
    lastUsedAt: Optional[datetime] = None
    isActive: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiresAt is None:
            return False
        now = now or utcnow()
        expires_at = self.expiresAt
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def allows(self, capability: Optional[PermissionType], action: Optional[str] = None,
               endpoint: Optional[str] = None) -> bool:
        """
        True when the token is usable and one of its permissions covers the
        capability/action pair. A capability of None (initialize, ping) only
        requires a usable token.
        """
        if not self.isActive or self.is_expired():
            return False
        if capability is None:
            return True
        for permission in self.permissions:
            if permission.type == "admin":
                return True
            if permission.type == capability and permission.covers(action, endpoint):
                return True
        return False


def default_permissions() -> List[TokenPermission]:
    return [
        TokenPermission(type="tools", actions=["execute"], constraints=PermissionConstraints(rateLimit=100)),
        TokenPermission(type="resources", actions=["read"]),
        TokenPermission(type="prompts", actions=["read", "execute"]),
    ]


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
        if not number:
            return out


def generate_token_secret(prefix: str = TOKEN_PREFIX) -> str:
    """Opaque bearer secret: prefix, base36 issue time, 32 random bytes."""
    timestamp = _base36(int(time.time() * 1000))
    return f"{prefix}_{timestamp}_{secrets.token_urlsafe(32)}"


def create_access_token(
    bridge_id: str,
    name: str,
    description: Optional[str] = None,
    permissions: Optional[List[TokenPermission]] = None,
    expires_in_days: Optional[int] = None,
) -> AccessToken:
    now = utcnow()
    return AccessToken(
        id=str(uuid.uuid4()),
        bridgeId=bridge_id,
        token=generate_token_secret(),
        name=name,
        description=description,
        permissions=permissions if permissions else default_permissions(),
        expiresAt=now + timedelta(days=expires_in_days) if expires_in_days else None,
        createdAt=now,
    )
