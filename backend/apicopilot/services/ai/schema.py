"""
Provider-neutral request/response models for language-model generation.
"""

from typing import List, Optional, Literal

from pydantic import BaseModel, Field

from apicopilot.services.tools.schema import ToolSchema, ToolCall, ToolResult


class AIMessage(BaseModel):
    """One role-tagged entry of the conversation sent to a provider."""
    role: Literal["user", "assistant", "system", "tool"]
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None


class GenerateOptions(BaseModel):
    model: Optional[str] = None  # provider default when unset
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    tools: Optional[List[ToolSchema]] = None
    system_prompt: Optional[str] = Field(
        default=None,
        description="Tenant-specific fragment appended to the base instructions",
    )


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class GenerationResult(BaseModel):
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: Literal["stop", "tool_calls"] = "stop"
    provider: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
