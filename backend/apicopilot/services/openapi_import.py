"""
OpenAPI import - endpoint definitions from an OpenAPI 3 document

Used when a tenant registers an API from its spec instead of listing the
endpoints by hand.
"""

import logging
from typing import Any, Dict, List, Optional

from apicopilot.schemas.registered_api import ApiEndpoint, ApiParameter, ParameterLocation, RequestBodySpec

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("get", "post", "put", "patch", "delete")
_LOCATIONS = {location.value for location in ParameterLocation}


def _parse_parameter(raw: Dict[str, Any]) -> Optional[ApiParameter]:
    location = raw.get("in", "query")
    if location not in _LOCATIONS:
        # e.g. cookie parameters, which tools cannot bind
        logger.debug(f"Skipping parameter {raw.get('name')} in unsupported location '{location}'")
        return None

    schema = raw.get("schema") or {}
    return ApiParameter(
        name=raw["name"],
        location=location,
        description=raw.get("description"),
        required=bool(raw.get("required", False)),
        type=schema.get("type") or "string",
        default=schema.get("default"),
        enum=schema.get("enum"),
    )


def _parse_request_body(operation: Dict[str, Any]) -> Optional[RequestBodySpec]:
    content = (operation.get("requestBody") or {}).get("content")
    if not content:
        return None
    content_type = next(iter(content))
    return RequestBodySpec(
        content_type=content_type,
        body_schema=(content[content_type] or {}).get("schema") or {},
    )


def parse_openapi_spec(spec: Dict[str, Any]) -> List[ApiEndpoint]:
    """
    One endpoint per (path, method) for the supported methods.

    The name is the operationId, or "{method}_{path with / replaced by _}"
    when the operation has none.
    """
    endpoints: List[ApiEndpoint] = []

    for path, operations in (spec.get("paths") or {}).items():
        for method, operation in (operations or {}).items():
            if method not in SUPPORTED_METHODS:
                continue
            operation = operation or {}

            parameters = [
                parsed for parsed in (_parse_parameter(p) for p in operation.get("parameters") or [])
                if parsed is not None
            ]

            endpoints.append(ApiEndpoint(
                name=operation.get("operationId") or f"{method}_{path.replace('/', '_')}",
                description=operation.get("summary") or operation.get("description"),
                method=method.upper(),
                path=path,
                parameters=parameters,
                request_body=_parse_request_body(operation),
                is_active=True,
            ))

    return endpoints


def server_url(spec: Dict[str, Any]) -> Optional[str]:
    """First declared server URL, usable as the API's base URL."""
    servers = spec.get("servers") or []
    if servers and isinstance(servers[0], dict):
        return servers[0].get("url")
    return None
