"""
Tool Definition Schema - OpenAI Function Calling Format

Pydantic models for the tools derived from registered API endpoints, the
calls a model requests against them, and the results fed back.
"""

import json
from typing import Dict, Any, Optional

from pydantic import BaseModel, Field


class ToolSchema(BaseModel):
    """
    OpenAI-compatible function/tool definition.

    api_id and endpoint_id record where the tool came from; they are never
    sent to a provider.
    """
    name: str = Field(..., description="Unique tool identifier: {api name}_{endpoint name}")
    description: str = Field(..., description="What the endpoint does and which HTTP route it hits")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for the tool's parameters"
    )
    api_id: Optional[str] = Field(default=None, exclude=True)
    endpoint_id: Optional[str] = Field(default=None, exclude=True)

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to OpenAI tools API format"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }


class ToolCall(BaseModel):
    """Represents a single tool call from the LLM"""
    id: str = Field(..., description="Unique identifier for this tool call")
    name: str = Field(..., description="Name of the tool to call")
    arguments: Dict[str, Any] = Field(
        default_factory=dict,
        description="Arguments to pass to the tool"
    )


class ToolResult(BaseModel):
    """Result from tool execution; exactly one of result/error is meaningful."""
    tool_call_id: str
    name: str
    result: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_response_payload(self) -> Any:
        """Payload handed back to the model for this call."""
        if self.success:
            return self.result
        return {"error": self.error}

    def to_message_content(self) -> str:
        """Convert to string for an LLM tool message"""
        return json.dumps(self.to_response_payload(), default=str)
