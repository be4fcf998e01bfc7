"""
Exception hierarchy for the bridge. Each error knows the JSON-RPC code
(and HTTP status) it is reported with, so the dispatcher has a single
place where faults become responses.
"""
from typing import Any, Optional

from mcp_types import (
    INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND,
    RATE_LIMITED, UNAUTHORIZED,
)


class BridgeError(Exception):
    code = INTERNAL_ERROR
    http_status = 200
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.data = data


class InvalidRequestError(BridgeError):
    code = INVALID_REQUEST
    default_message = "Invalid Request"


class MethodNotFoundError(BridgeError):
    code = METHOD_NOT_FOUND
    default_message = "Method not found"


class InvalidParamsError(BridgeError):
    code = INVALID_PARAMS
    default_message = "Invalid params"


class ToolArgumentError(InvalidParamsError):
    """Tool arguments failed validation before any outbound call."""


class InternalError(BridgeError):
    pass


class UnauthorizedError(BridgeError):
    code = UNAUTHORIZED
    http_status = 401
    default_message = "Unauthorized"


class BridgeNotFoundError(BridgeError):
    code = UNAUTHORIZED
    http_status = 404
    default_message = "Bridge not found"


class RateLimitedError(BridgeError):
    code = RATE_LIMITED
    http_status = 429
    default_message = "Rate limit exceeded"


class DecryptionError(Exception):
    """Ciphertext could not be authenticated or decoded."""
