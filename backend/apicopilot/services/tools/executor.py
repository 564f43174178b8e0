"""
Endpoint Invoker - executes model tool calls against registered REST APIs

For each tool call this module:
- Resolves the tool to an active API endpoint (catalog ids first, then the name)
- Binds path, query and header arguments and applies default headers and auth
- Performs the HTTP request and records an API call log in the background
- Truncates large list results before they go back to the model

execute() never raises: every failure becomes a ToolResult with an error.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx

from apicopilot.core.background import BackgroundTaskRunner
from apicopilot.core.config import settings
from apicopilot.core.exceptions import ToolResolutionError
from apicopilot.schemas.registered_api import (
    ApiEndpoint,
    AuthType,
    BODY_METHODS,
    ParameterLocation,
    RegisteredApiRead,
)
from apicopilot.services.stores.base import ApiRegistry, UsageSink
from apicopilot.services.tools.schema import ToolCall, ToolResult, ToolSchema

logger = logging.getLogger(__name__)


@dataclass
class InvocationContext:
    """Who is calling, and the catalog the model was shown."""
    tenant_id: str
    conversation_id: Optional[str] = None
    tools: List[ToolSchema] = field(default_factory=list)

    def find_tool(self, name: str) -> Optional[ToolSchema]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class EndpointInvoker:
    """Resolves tool calls to endpoints and performs the HTTP requests."""

    def __init__(
        self,
        registry: ApiRegistry,
        usage: UsageSink,
        background: BackgroundTaskRunner,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.TOOL_HTTP_TIMEOUT,
        max_items: int = settings.TOOL_RESULT_MAX_ITEMS,
    ):
        self.registry = registry
        self.usage = usage
        self.background = background
        self.timeout = timeout
        self.max_items = max_items
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this invoker created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def execute_many(
        self,
        tool_calls: List[ToolCall],
        context: InvocationContext
    ) -> List[ToolResult]:
        """Execute a batch concurrently; results come back in call order."""
        return list(await asyncio.gather(*(self.execute(tc, context) for tc in tool_calls)))

    async def execute(self, tool_call: ToolCall, context: InvocationContext) -> ToolResult:
        start_time = time.perf_counter()
        log_extra = {"tenant_id": context.tenant_id, "conversation_id": context.conversation_id}

        try:
            api, endpoint = await self.resolve(tool_call.name, context)
            result, duration_ms = await self._invoke(api, endpoint, tool_call.arguments, context, start_time)
            logger.info(f"Tool {tool_call.name} executed in {duration_ms}ms", extra=log_extra)
            return ToolResult(
                tool_call_id=tool_call.id,
                name=tool_call.name,
                result=result,
                duration_ms=duration_ms,
            )

        except Exception as e:
            duration_ms = self._elapsed_ms(start_time)
            logger.error(f"Tool execution error for {tool_call.name}: {e}", extra=log_extra)
            return ToolResult(
                tool_call_id=tool_call.id,
                name=tool_call.name,
                result=None,
                error=str(e) or e.__class__.__name__,
                duration_ms=duration_ms,
            )

    async def resolve(
        self,
        tool_name: str,
        context: InvocationContext
    ) -> Tuple[RegisteredApiRead, ApiEndpoint]:
        """
        Map a tool name to its API and endpoint.

        Tools from the current catalog are resolved by the ids they carry.
        When those ids no longer match the registry, or the tool is not in
        the catalog, the name is split at an underscore into an API fragment
        (underscores read as spaces, matched case-insensitively) and an
        endpoint name, trying the shortest API fragment first.
        """
        descriptor = context.find_tool(tool_name)
        if descriptor is not None and descriptor.api_id:
            api = await self.registry.get_api(context.tenant_id, descriptor.api_id)
            endpoint = None
            if api is not None:
                endpoint = next(
                    (e for e in api.endpoints if e.id == descriptor.endpoint_id and e.is_active),
                    None,
                )
            if endpoint is not None:
                return api, endpoint
            logger.debug(f"Catalog ids for {tool_name} are stale, resolving by name")

        segments = tool_name.split("_")
        if len(segments) < 2:
            raise ToolResolutionError(f"Malformed tool name: {tool_name}")

        first_api: Optional[RegisteredApiRead] = None
        for split_at in range(1, len(segments)):
            api_fragment = "_".join(segments[:split_at])
            endpoint_name = "_".join(segments[split_at:])

            api = await self.registry.find_api(context.tenant_id, api_fragment.replace("_", " "))
            if api is None:
                continue
            first_api = first_api or api

            endpoint = next(
                (e for e in api.endpoints if e.name == endpoint_name and e.is_active),
                None,
            )
            if endpoint is not None:
                return api, endpoint

        if first_api is None:
            raise ToolResolutionError(f"API not found: {segments[0]}")
        raise ToolResolutionError(f"Endpoint not found: {tool_name}")

    async def _invoke(
        self,
        api: RegisteredApiRead,
        endpoint: ApiEndpoint,
        arguments: Dict[str, Any],
        context: InvocationContext,
        start_time: float,
    ) -> Tuple[Any, int]:
        url = self.build_url(api, endpoint, arguments)
        headers = self.build_headers(api, endpoint, arguments)
        method = endpoint.method.value

        client = await self._get_client()
        response = await client.request(
            method,
            url,
            headers=headers,
            json=arguments if endpoint.method in BODY_METHODS else None,
        )

        try:
            payload = self._parse_body(response)
        finally:
            duration_ms = self._elapsed_ms(start_time)
            self.background.spawn(
                self.usage.record_api_call(
                    tenant_id=context.tenant_id,
                    conversation_id=context.conversation_id,
                    api_id=api.id,
                    endpoint_id=endpoint.id,
                    method=method,
                    url=url,
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                ),
                name=f"api-call-log:{endpoint.id}",
            )

        return self.shape_result(payload), duration_ms

    @staticmethod
    def build_url(api: RegisteredApiRead, endpoint: ApiEndpoint, arguments: Dict[str, Any]) -> str:
        """Base URL + path template, with supplied path and query arguments bound."""
        base_url = api.base_url
        path = endpoint.path
        if base_url.endswith("/") and path.startswith("/"):
            base_url = base_url.rstrip("/")
        url = f"{base_url}{path}"

        query_params: Dict[str, str] = {}
        for param in endpoint.parameters:
            value = arguments.get(param.name)
            if value is None:
                continue
            if param.location == ParameterLocation.PATH:
                url = url.replace(f"{{{param.name}}}", quote(_stringify(value), safe=""))
            elif param.location == ParameterLocation.QUERY:
                query_params[param.name] = _stringify(value)

        if query_params:
            url += f"?{urlencode(query_params)}"
        return url

    @staticmethod
    def build_headers(
        api: RegisteredApiRead,
        endpoint: ApiEndpoint,
        arguments: Dict[str, Any]
    ) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", **api.headers}

        for param in endpoint.parameters:
            value = arguments.get(param.name)
            if param.location == ParameterLocation.HEADER and value is not None:
                headers[param.name] = _stringify(value)

        # basic and oauth2 are accepted at registration but not injected here
        auth_config = api.auth_config
        header_name = auth_config.get("headerName") or auth_config.get("header_name")
        if api.auth_type == AuthType.BEARER and auth_config.get("token"):
            headers["Authorization"] = f"Bearer {auth_config['token']}"
        elif api.auth_type == AuthType.API_KEY and auth_config.get("key") and header_name:
            headers[str(header_name)] = str(auth_config["key"])

        return headers

    def shape_result(self, payload: Any) -> Any:
        """Cap list results so a single call cannot flood the model context."""
        if isinstance(payload, list) and len(payload) > self.max_items:
            return {
                "items": payload[:self.max_items],
                "total": len(payload),
                "message": f"Showing first {self.max_items} of {len(payload)} items. Ask for more if needed.",
            }
        return payload

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int(round((time.perf_counter() - start_time) * 1000))
