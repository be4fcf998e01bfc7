"""
Pydantic models describing a bridge: the REST API it fronts, how to
authenticate against it, who may call it and which endpoints become tools.
"""
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator,
)

PATH_PARAM_RE = re.compile(r"\{([^{}/]+)\}")

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
ParamType = Literal["string", "number", "boolean", "object", "array"]

BODY_METHODS = ("POST", "PUT", "PATCH")

# OpenAPI primitive/format names folded onto the closed parameter type set
TYPE_ALIASES = {
    "integer": "number",
    "int32": "number",
    "int64": "number",
    "float": "number",
    "double": "number",
    "date": "string",
    "date-time": "string",
    "byte": "string",
    "binary": "string",
}


def normalise_type(value: Any) -> Any:
    if isinstance(value, str):
        return TYPE_ALIASES.get(value.lower(), value.lower())
    return value


class EndpointParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ParamType = "string"
    required: bool = False
    description: Optional[str] = None
    defaultValue: Optional[Any] = None
    location: Optional[Literal["path", "query", "body"]] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v):
        return normalise_type(v)


class BodyProperty(BaseModel):
    """One field of a request body. Extra JSON-Schema keywords are kept."""
    model_config = ConfigDict(frozen=True, extra="allow")

    type: str = "string"
    description: Optional[str] = None
    required: bool = False


class RequestBodySchema(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    contentType: str = "application/json"
    body_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    required: bool = False
    properties: Optional[Dict[str, BodyProperty]] = None

    @property
    def encoding(self) -> str:
        content_type = self.contentType.split(";")[0].strip().lower()
        if content_type == "application/x-www-form-urlencoded":
            return "form"
        if content_type.startswith("text/"):
            return "text"
        return "json"


class EndpointDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = ""
    method: HttpMethod
    path: str
    description: Optional[str] = None
    enabled: bool = True
    parameters: List[EndpointParameter] = Field(default_factory=list)
    requestBody: Optional[RequestBodySchema] = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_path_parameters(self):
        names = [p.name for p in self.parameters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate parameter names: {', '.join(duplicates)}")
        missing = [p for p in self.path_parameters if p not in names]
        if missing:
            raise ValueError(
                f"path template {self.path!r} references undeclared parameters: {', '.join(missing)}"
            )
        return self

    @property
    def path_parameters(self) -> List[str]:
        return PATH_PARAM_RE.findall(self.path)

    @property
    def has_body(self) -> bool:
        return self.method in BODY_METHODS


class NoAuth(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["none"] = "none"

class BearerAuth(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["bearer"] = "bearer"
    token: str

class ApiKeyAuth(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["apiKey", "apikey"] = "apiKey"
    key: str = Field(validation_alias=AliasChoices("key", "apiKey"))
    location: Literal["header", "query"] = Field(
        default="header", validation_alias=AliasChoices("location", "keyLocation")
    )
    paramName: Optional[str] = None
    headerName: Optional[str] = None

class BasicAuth(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["basic"] = "basic"
    username: str
    password: str

AuthConfig = Annotated[
    Union[NoAuth, BearerAuth, ApiKeyAuth, BasicAuth], Field(discriminator="type")
]


class AccessPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    public: bool = True
    authRequired: bool = False
    allowedOrigins: Optional[List[str]] = None


class PerformanceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # milliseconds; None falls back to the process default
    timeout: Optional[int] = Field(default=None, gt=0)


class McpResourceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    name: str
    description: str = ""
    mimeType: str = "application/json"
    text: Optional[str] = None
    path: Optional[str] = None


class PromptArgument(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    required: bool = False


class McpPromptConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    arguments: List[PromptArgument] = Field(default_factory=list)
    template: Optional[str] = None


class BridgeConfig(BaseModel):
    """A configured mapping from one REST API to one MCP catalog."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    userId: str
    enabled: bool = True
    baseUrl: str
    headers: Dict[str, str] = Field(default_factory=dict)
    authentication: AuthConfig = Field(default_factory=NoAuth)
    access: AccessPolicy = Field(default_factory=AccessPolicy)
    endpoints: List[EndpointDescriptor] = Field(default_factory=list)
    resources: List[McpResourceConfig] = Field(
        default_factory=list, validation_alias=AliasChoices("resources", "mcpResources")
    )
    prompts: List[McpPromptConfig] = Field(
        default_factory=list, validation_alias=AliasChoices("prompts", "mcpPrompts")
    )
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)

    @model_validator(mode="before")
    @classmethod
    def _flatten_api_config(cls, data):
        # exported bridges nest the REST description under "apiConfig"
        if isinstance(data, dict) and isinstance(data.get("apiConfig"), dict):
            data = dict(data)
            api_config = data.pop("apiConfig")
            for key in ("baseUrl", "headers", "authentication", "endpoints"):
                if key in api_config and key not in data:
                    data[key] = api_config[key]
        return data


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    userId: str
