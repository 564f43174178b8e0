"""
Base AI Provider

Abstract contract every language-model backend implements. Adapters
translate the provider-neutral AIMessage list into the vendor wire format,
normalize tool calls back into ToolCall objects and let every error
propagate; retrying is the generation service's job.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from apicopilot.core.config import settings
from apicopilot.services.ai.schema import AIMessage, GenerateOptions, GenerationResult


class BaseAIProvider(ABC):
    """Common configuration and prompt handling for provider adapters."""

    name: str = "base"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int,
        temperature: float,
        timeout: Optional[float] = None,
        base_prompt: Optional[str] = None,
    ):
        self.api_key = api_key
        self.default_model = model
        self.default_max_tokens = max_tokens
        self.default_temperature = temperature
        self.timeout = timeout or settings.LLM_REQUEST_TIMEOUT
        self.base_prompt = base_prompt or settings.AGENT_SYSTEM_PROMPT

    @abstractmethod
    async def generate(
        self,
        messages: List[AIMessage],
        options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        """Run one generation pass against the backend."""

    def get_name(self) -> str:
        return self.name

    def build_system_prompt(self, custom_prompt: Optional[str] = None) -> str:
        """Base instructions, followed by the tenant's fragment when given."""
        if custom_prompt:
            return f"{self.base_prompt}\n\n{custom_prompt}"
        return self.base_prompt

    def _resolve(self, options: GenerateOptions) -> tuple[str, float, int]:
        """Model, temperature and max tokens with provider defaults filled in."""
        model = options.model or self.default_model
        temperature = options.temperature if options.temperature is not None else self.default_temperature
        max_tokens = options.max_tokens or self.default_max_tokens
        return model, temperature, max_tokens
