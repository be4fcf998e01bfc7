"""
Owner-facing management of a bridge's access tokens.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from access_tokens import AccessToken, TokenPermission, create_access_token
from bridge_models import BridgeConfig, Session

logger = logging.getLogger(__name__)

tokens_router = APIRouter(prefix="/api/bridges", tags=["tokens"])


class CreateTokenRequest(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    permissions: Optional[List[TokenPermission]] = None
    expiresInDays: Optional[int] = Field(default=None, gt=0)


class UpdateTokenRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    isActive: Optional[bool] = None
    permissions: Optional[List[TokenPermission]] = None


def mask_secret(secret: str) -> str:
    return secret[:8] + "..." + secret[-4:] if len(secret) > 16 else "..."


def token_view(token: AccessToken, reveal: bool = False) -> dict:
    data = token.model_dump(mode="json")
    if not reveal:
        data["token"] = mask_secret(token.token)
    return data


def require_session(request: Request) -> Session:
    session = request.app.state.sessions.resolve(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return session


async def owned_bridge(bridge_id: str, request: Request, session: Session = Depends(require_session)) -> BridgeConfig:
    """The bridge, if the caller owns it. Bridges owned by others look missing."""
    bridge = await request.app.state.bridges.get_by_id(bridge_id)
    if bridge is None or bridge.userId != session.userId:
        raise HTTPException(status_code=404, detail=f"Bridge '{bridge_id}' not found")
    return bridge


async def _owned_token(request: Request, bridge: BridgeConfig, token_id: str) -> AccessToken:
    token = await request.app.state.tokens.get(token_id)
    if token is None or token.bridgeId != bridge.id:
        raise HTTPException(status_code=404, detail=f"Token '{token_id}' not found")
    return token


@tokens_router.get("/{bridge_id}/tokens", summary="List access tokens of a bridge")
async def list_tokens(request: Request, bridge: BridgeConfig = Depends(owned_bridge)):
    tokens = await request.app.state.tokens.find_by_bridge(bridge.id)
    return {"tokens": [token_view(t) for t in tokens]}


@tokens_router.post("/{bridge_id}/tokens", status_code=201, summary="Issue an access token")
async def create_token(body: CreateTokenRequest, request: Request, bridge: BridgeConfig = Depends(owned_bridge)):
    token = create_access_token(
        bridge.id,
        body.name,
        description=body.description,
        permissions=body.permissions,
        expires_in_days=body.expiresInDays,
    )
    await request.app.state.tokens.create(token)
    logger.info("Issued access token %s for bridge %s", token.id, bridge.id)
    # the secret is only ever shown here
    return {"token": token_view(token, reveal=True)}


@tokens_router.put("/{bridge_id}/tokens/{token_id}", summary="Update an access token")
async def update_token(token_id: str, body: UpdateTokenRequest, request: Request,
                       bridge: BridgeConfig = Depends(owned_bridge)):
    await _owned_token(request, bridge, token_id)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes supplied")
    if "permissions" in changes:
        if not body.permissions:
            raise HTTPException(status_code=400, detail="A token needs at least one permission")
        changes["permissions"] = body.permissions
    updated = await request.app.state.tokens.update(token_id, **changes)
    return {"token": token_view(updated)}


@tokens_router.delete("/{bridge_id}/tokens/{token_id}", summary="Delete an access token")
async def delete_token(token_id: str, request: Request, bridge: BridgeConfig = Depends(owned_bridge)):
    await _owned_token(request, bridge, token_id)
    await request.app.state.tokens.delete(token_id)
    logger.info("Deleted access token %s of bridge %s", token_id, bridge.id)
    return {"deleted": True}
