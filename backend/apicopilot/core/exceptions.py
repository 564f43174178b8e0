"""
Exception hierarchy for the API Copilot engine.

Errors that abort a message cycle propagate to the transport layer;
tool-level failures are captured into ToolResult objects instead.
"""

from typing import Optional


class CopilotError(Exception):
    """Base class for all engine errors."""
    pass


class ConversationNotFoundError(CopilotError):
    """Raised when an explicit conversation id does not exist for the tenant."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ToolResolutionError(CopilotError):
    """Raised when a tool name cannot be mapped to an active API endpoint."""
    pass


class AIProviderError(CopilotError):
    """Raised when a provider returns an unusable response."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderNotConfiguredError(CopilotError):
    """Raised when a provider is selected but has no API key or is unknown."""

    def __init__(self, provider: str, reason: Optional[str] = None):
        self.provider = provider
        super().__init__(reason or f"AI provider '{provider}' is not configured")
