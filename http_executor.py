"""
Performs the outbound call for a tool invocation and classifies what happened.
One attempt per call; retries are not this layer's business.
"""
import asyncio
import logging
import time
from typing import Dict, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from request_translator import RequestSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

OutcomeKind = Literal["success", "http_error", "transport_error", "timeout"]


class HttpOutcome(BaseModel):
    kind: OutcomeKind
    status_code: Optional[int] = None
    reason: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""
    content_type: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.kind == "success"


class HttpExecutor:
    """
    Executes request specs with httpx.

    A shared ``client`` may be supplied (the application owns its lifetime);
    without one a short-lived client is opened per call.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, default_timeout: float = DEFAULT_TIMEOUT):
        self.client = client
        self.default_timeout = default_timeout

    async def execute(self, spec: RequestSpec, timeout: Optional[float] = None) -> HttpOutcome:
        timeout = timeout or self.default_timeout
        kwargs = {
            "headers": dict(spec.headers),
            "params": spec.query or None,
            "timeout": timeout,
        }
        if spec.body is not None:
            if spec.body_encoding == "form":
                kwargs["data"] = spec.body
            elif spec.body_encoding == "text":
                kwargs["content"] = spec.body
                if spec.content_type and not any(k.lower() == "content-type" for k in kwargs["headers"]):
                    kwargs["headers"]["Content-Type"] = spec.content_type
            else:
                kwargs["json"] = spec.body

        start = time.monotonic()
        try:
            # hard upper bound on the whole exchange; httpx timeouts are per phase
            response = await asyncio.wait_for(self._send(spec, kwargs), timeout=timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            elapsed = (time.monotonic() - start) * 1000
            logger.warning("Upstream %s %s timed out after %.0fms", spec.method, spec.url, elapsed)
            return HttpOutcome(kind="timeout", error=f"Request timed out after {timeout:g}s", elapsed_ms=elapsed)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            elapsed = (time.monotonic() - start) * 1000
            logger.warning("Upstream %s %s failed: %s: %s", spec.method, spec.url, type(e).__name__, e)
            return HttpOutcome(kind="transport_error", error=f"{type(e).__name__}: {e}", elapsed_ms=elapsed)

        elapsed = (time.monotonic() - start) * 1000
        logger.debug("Upstream %s %s -> %s in %.0fms", spec.method, spec.url, response.status_code, elapsed)
        return HttpOutcome(
            kind="success" if response.is_success else "http_error",
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=dict(response.headers),
            body=response.text,
            content_type=response.headers.get("content-type"),
            elapsed_ms=elapsed,
        )

    async def _send(self, spec: RequestSpec, kwargs: dict) -> httpx.Response:
        if self.client is not None:
            return await self.client.request(spec.method, spec.url, **kwargs)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await client.request(spec.method, spec.url, **kwargs)
