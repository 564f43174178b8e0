from datetime import datetime
from typing import Optional, List, Literal

from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from apicopilot.services.tools.schema import ToolCall, ToolResult

MessageRole = Literal["user", "assistant", "system", "tool"]


class TokenCount(BaseModel):
    input: int = 0
    output: int = 0


class MessageCreate(BaseModel):
    role: MessageRole
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None
    tokens: Optional[TokenCount] = None


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: str
    role: MessageRole
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def tokens(self) -> Optional[TokenCount]:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return TokenCount(input=self.input_tokens or 0, output=self.output_tokens or 0)


class ConversationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    session_id: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=10000, description="End-user message")
    session_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("session_id", "sessionId"),
        description="Widget session identifier",
    )
    conversation_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
        description="Existing conversation, or None to resolve by session",
    )
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("user_id", "userId"))


class ChatResult(BaseModel):
    message: MessageRead
    conversation_id: str
    tools_executed: Optional[List[ToolResult]] = None


class WidgetInitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, validation_alias=AliasChoices("session_id", "sessionId"))


class WidgetInitResponse(BaseModel):
    conversation: ConversationRead
    messages: List[MessageRead] = Field(default_factory=list)
