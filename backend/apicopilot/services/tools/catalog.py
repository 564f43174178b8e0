"""
Tool Catalog Builder - registered API endpoints to AI-callable tools

Derivation is a pure function of the active APIs: one tool per active
endpoint, named "{api name with whitespace runs as _}_{endpoint name}".
"""

import re
from typing import Any, Dict, Iterable, List

from apicopilot.schemas.registered_api import ApiEndpoint, RegisteredApiRead
from apicopilot.services.stores.base import ApiRegistry
from apicopilot.services.tools.schema import ToolSchema

_WHITESPACE_RUN = re.compile(r"\s+")


def tool_name_for(api_name: str, endpoint_name: str) -> str:
    """'My Shop' + 'list_orders' -> 'My_Shop_list_orders'"""
    return f"{_WHITESPACE_RUN.sub('_', api_name)}_{endpoint_name}"


def build_parameters_schema(endpoint: ApiEndpoint) -> Dict[str, Any]:
    """JSON schema for an endpoint's parameters; `required` only when non-empty."""
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param in endpoint.parameters:
        spec: Dict[str, Any] = {"type": param.type}
        if param.description:
            spec["description"] = param.description
        if param.enum:
            spec["enum"] = param.enum
        if param.default is not None:
            spec["default"] = param.default
        properties[param.name] = spec

        if param.required:
            required.append(param.name)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def build_tool(api: RegisteredApiRead, endpoint: ApiEndpoint) -> ToolSchema:
    return ToolSchema(
        name=tool_name_for(api.name, endpoint.name),
        description=(
            f"{api.name}: {endpoint.description or endpoint.name}. "
            f"Endpoint: {endpoint.method.value} {endpoint.path}"
        ),
        parameters=build_parameters_schema(endpoint),
        api_id=api.id,
        endpoint_id=endpoint.id,
    )


def build_tools(apis: Iterable[RegisteredApiRead]) -> List[ToolSchema]:
    """Every active endpoint of every active API, in registration order."""
    return [
        build_tool(api, endpoint)
        for api in apis
        if api.is_active
        for endpoint in api.active_endpoints()
    ]


class ToolCatalogBuilder:
    """Builds a tenant's current tool catalog from the API registry."""

    def __init__(self, registry: ApiRegistry):
        self.registry = registry

    async def build(self, tenant_id: str) -> List[ToolSchema]:
        apis = await self.registry.list_active_apis(tenant_id)
        return build_tools(apis)
