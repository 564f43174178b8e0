import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator


class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BEARER = "bearer"
    BASIC = "basic"
    OAUTH2 = "oauth2"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


# Methods whose tool arguments are sent as a JSON request body
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}


class ApiParameter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    location: ParameterLocation = Field(
        default=ParameterLocation.QUERY,
        validation_alias=AliasChoices("location", "in"),
    )
    required: bool = False
    type: str = Field(default="string", description="JSON schema primitive type")
    description: Optional[str] = None
    default: Optional[Any] = None
    enum: Optional[List[Any]] = None


class RequestBodySpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field(
        default="application/json",
        validation_alias=AliasChoices("content_type", "contentType"),
    )
    body_schema: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("body_schema", "schema"),
    )


class ApiEndpoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Rows written without ids get one derived from the endpoint itself, so
    # every read of the same row yields the same id
    id: Optional[str] = None
    name: str = Field(..., description="Unique within its API; becomes the tool name suffix")
    description: Optional[str] = None
    method: HttpMethod
    path: str = Field(..., description="Path template with {param} placeholders")
    parameters: List[ApiParameter] = Field(default_factory=list)
    request_body: Optional[RequestBodySpec] = Field(
        default=None,
        validation_alias=AliasChoices("request_body", "requestBody"),
    )
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive"))

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value):
        if isinstance(value, str):
            return value.upper()
        return value

    @model_validator(mode="after")
    def _stable_id(self):
        if not self.id:
            self.id = uuid.uuid5(uuid.NAMESPACE_URL, f"{self.method.value} {self.path} {self.name}").hex
        return self


class RegisteredApiBase(BaseModel):
    name: str
    description: Optional[str] = None
    base_url: str
    auth_type: AuthType = AuthType.NONE
    auth_config: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    endpoints: List[ApiEndpoint] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("auth_config", "headers", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or {}

    @field_validator("endpoints", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []


class RegisteredApiCreate(RegisteredApiBase):
    # When given, endpoints are derived from this OpenAPI document instead
    openapi_spec: Optional[Dict[str, Any]] = Field(default=None, exclude=True)


class RegisteredApiRead(RegisteredApiBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    created_at: Optional[datetime] = None

    def active_endpoints(self) -> List[ApiEndpoint]:
        return [endpoint for endpoint in self.endpoints if endpoint.is_active]
