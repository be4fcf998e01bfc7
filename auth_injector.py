"""
Adds upstream API credentials to a request spec. Operates on decrypted
auth configurations only.
"""
import base64

from bridge_models import ApiKeyAuth, BasicAuth, BearerAuth
from request_translator import RequestSpec

DEFAULT_API_KEY_HEADER = "X-API-Key"
DEFAULT_API_KEY_PARAM = "api_key"


def _set_header(headers: dict, name: str, value: str) -> dict:
    # header names are case-insensitive; drop any static header this replaces
    merged = {k: v for k, v in headers.items() if k.lower() != name.lower()}
    merged[name] = value
    return merged


def inject_auth(auth, spec: RequestSpec) -> RequestSpec:
    """Return ``spec`` augmented with the credentials described by ``auth``."""
    if isinstance(auth, BearerAuth) and auth.token:
        return spec.model_copy(update={
            "headers": _set_header(spec.headers, "Authorization", f"Bearer {auth.token}"),
        })

    if isinstance(auth, ApiKeyAuth) and auth.key:
        if auth.location == "query":
            name = auth.paramName or DEFAULT_API_KEY_PARAM
            query = [(k, v) for k, v in spec.query if k != name] + [(name, auth.key)]
            return spec.model_copy(update={"query": query})
        name = auth.headerName or auth.paramName or DEFAULT_API_KEY_HEADER
        return spec.model_copy(update={"headers": _set_header(spec.headers, name, auth.key)})

    if isinstance(auth, BasicAuth) and auth.username:
        credentials = base64.b64encode(f"{auth.username}:{auth.password}".encode("utf-8")).decode("ascii")
        return spec.model_copy(update={
            "headers": _set_header(spec.headers, "Authorization", f"Basic {credentials}"),
        })

    return spec
