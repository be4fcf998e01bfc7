import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from access_control import AccessGate
from audit import LoggingAuditSink
from config import Settings
from encryption import EncryptionService
from http_executor import HttpExecutor
from mcp_server import McpServer
from mcp_types import SERVER_VERSION
from rate_limiter import FixedWindowRateLimiter, NoRateLimit
from stores import InMemoryBridgeStore, InMemorySessionResolver, InMemoryTokenStore, load_bridges
from token_routes import tokens_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    bridges: Optional[InMemoryBridgeStore] = None,
    tokens: Optional[InMemoryTokenStore] = None,
    sessions: Optional[InMemorySessionResolver] = None,
    executor: Optional[HttpExecutor] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    tokens = tokens or InMemoryTokenStore()
    if bridges is None:
        initial = load_bridges(settings.bridges_file) if settings.bridges_file else []
        bridges = InMemoryBridgeStore(initial, tokens=tokens)
    sessions = sessions or InMemorySessionResolver()
    executor = executor or HttpExecutor(default_timeout=settings.upstream_timeout_seconds)
    gate = AccessGate(tokens)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = executor.client is None
        if owns_client:
            executor.client = httpx.AsyncClient(follow_redirects=True)
        try:
            yield
        finally:
            await gate.drain()
            if owns_client:
                await executor.client.aclose()
                executor.client = None

    app = FastAPI(
        title="MCP Bridge",
        version=SERVER_VERSION,
        description="Exposes configured REST APIs to AI agents as MCP tools over JSON-RPC 2.0",
        lifespan=lifespan,
    )

    # --- CORS Configuration ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.bridges = bridges
    app.state.tokens = tokens
    app.state.sessions = sessions
    app.state.server = McpServer(
        bridges=bridges,
        gate=gate,
        encryption=EncryptionService(settings.bridge_secret),
        executor=executor,
        audit=LoggingAuditSink(),
        rate_limiter=(
            FixedWindowRateLimiter(settings.rate_limit_per_minute)
            if settings.rate_limit_per_minute else NoRateLimit()
        ),
    )

    app.include_router(tokens_router)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @app.get("/", summary="Health check", tags=["internal-admin"])
    async def root():
        return {"status": "ok", "service": "mcp-bridge", "version": SERVER_VERSION}

    @app.post("/mcp/{bridge_id}", tags=["mcp"])
    async def mcp_endpoint(bridge_id: str, request: Request):
        """
        MCP JSON-RPC 2.0 endpoint of one bridge.
        Public bridges need no credentials; private ones need the owner's
        session cookie or a bearer access token issued for the bridge.
        """
        body = await request.body()
        session = request.app.state.sessions.resolve(request)
        status, payload = await dispatch(
            request.app.state.server, body, bridge_id,
            session=session, authorization=request.headers.get("authorization"),
        )
        return JSONResponse(content=payload, status_code=status)

    return app


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Abandoned dispatch failed", exc_info=task.exception())


async def dispatch(server: McpServer, body: bytes, bridge_id: str, session=None, authorization=None):
    """
    Run one dispatch shielded from the caller. If the client goes away the
    upstream call still completes, but its result is dropped.
    """
    task = asyncio.ensure_future(server.handle(body, bridge_id, session=session, authorization=authorization))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        logger.info("Client went away during a request to bridge %s; result discarded", bridge_id)
        task.add_done_callback(_discard_result)
        raise


def run():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
