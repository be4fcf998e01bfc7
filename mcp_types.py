from typing import Any, Dict, List, Optional, Union, Literal
from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
RATE_LIMITED = -32000
UNAUTHORIZED = -32001

SERVER_VERSION = "1.0.0"

RequestId = Union[StrictInt, StrictFloat, StrictStr, None]


class JsonRpcRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"]
    id: RequestId = None
    method: StrictStr
    params: Optional[Dict[str, Any]] = None

class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None

class McpTool(BaseModel):
    name: str
    description: str
    inputSchema: Dict[str, Any]

class McpContent(BaseModel):
    type: Literal["text"] = "text"
    text: str

class McpCallToolParams(BaseModel):
    name: StrictStr
    arguments: Optional[Dict[str, Any]] = None

class McpCallToolResult(BaseModel):
    content: List[McpContent]
    isError: bool = False

class McpListToolsResult(BaseModel):
    tools: List[McpTool]

class McpReadResourceParams(BaseModel):
    uri: StrictStr

class McpGetPromptParams(BaseModel):
    name: StrictStr
    arguments: Optional[Dict[str, Any]] = None


def success_response(request_id: Any, result: Any) -> Dict[str, Any]:
    """Create a successful JSON-RPC response"""
    return {"jsonrpc": "2.0", "id": request_id, "result": result}

def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Create an error JSON-RPC response"""
    error = JsonRpcError(code=code, message=message, data=data)
    return {"jsonrpc": "2.0", "id": request_id, "error": error.model_dump(exclude_none=True)}
