"""
Generation Service - retry with exponential backoff and provider failover

One call to generate() tries the primary provider up to max_retries times,
sleeping retry_delay * 2**attempt between attempts, then does the same with
the fallback provider if one is configured. Every error is treated as
transient; when everything is exhausted the last error is re-raised.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from apicopilot.core.config import Settings, settings as default_settings
from apicopilot.core.exceptions import ProviderNotConfiguredError
from apicopilot.services.ai.base_provider import BaseAIProvider
from apicopilot.services.ai.gemini_provider import GeminiProvider
from apicopilot.services.ai.openai_provider import OpenAIProvider
from apicopilot.services.ai.schema import AIMessage, GenerateOptions, GenerationResult

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

# Closed set of backends selectable by configuration
PROVIDER_REGISTRY = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}


class GenerationService:
    """Primary/fallback orchestration over provider adapters."""

    def __init__(
        self,
        primary: BaseAIProvider,
        fallback: Optional[BaseAIProvider] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.primary = primary
        self.fallback = fallback
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not None

    def get_primary_provider_name(self) -> str:
        return self.primary.get_name()

    async def generate(
        self,
        messages: List[AIMessage],
        options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        last_error: Optional[Exception] = None

        providers = [self.primary] + ([self.fallback] if self.fallback else [])
        for index, provider in enumerate(providers):
            if index > 0:
                logger.info(f"Switching to fallback AI provider {provider.get_name()}")

            for attempt in range(self.max_retries):
                try:
                    logger.debug(f"AI generation attempt {attempt + 1} with {provider.get_name()}")
                    return await provider.generate(messages, options)
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"Provider {provider.get_name()} failed "
                        f"(attempt {attempt + 1}/{self.max_retries}): {e}"
                    )
                    if attempt < self.max_retries - 1:
                        await self._sleep(self.retry_delay * (2 ** attempt))

        logger.error(f"AI generation failed on all providers: {last_error}")
        raise last_error


def create_provider(name: str, config: Settings = default_settings) -> BaseAIProvider:
    """Instantiate a provider adapter from configuration."""
    provider_cls = PROVIDER_REGISTRY.get(name.lower())
    if provider_cls is None:
        raise ProviderNotConfiguredError(name, f"Unknown AI provider '{name}'")

    api_key = config.provider_api_key(name)
    if not api_key:
        raise ProviderNotConfiguredError(name)

    if provider_cls is GeminiProvider:
        return GeminiProvider(
            api_key=api_key,
            model=config.GEMINI_MODEL,
            max_tokens=config.GEMINI_MAX_TOKENS,
            temperature=config.GEMINI_TEMPERATURE,
            timeout=config.LLM_REQUEST_TIMEOUT,
        )
    return OpenAIProvider(
        api_key=api_key,
        model=config.OPENAI_MODEL,
        max_tokens=config.OPENAI_MAX_TOKENS,
        temperature=config.OPENAI_TEMPERATURE,
        timeout=config.LLM_REQUEST_TIMEOUT,
    )


def build_generation_service(config: Settings = default_settings) -> GenerationService:
    """
    Build the generation service from settings.

    The primary provider must be configured; the fallback is attached only
    when it is a different backend and its API key is present.
    """
    primary = create_provider(config.PRIMARY_AI_PROVIDER, config)

    fallback = None
    fallback_name = config.FALLBACK_AI_PROVIDER
    if fallback_name and fallback_name != config.PRIMARY_AI_PROVIDER and config.provider_api_key(fallback_name):
        fallback = create_provider(fallback_name, config)
    elif fallback_name:
        logger.info(f"Fallback AI provider '{fallback_name}' not configured; running without fallback")

    return GenerationService(
        primary=primary,
        fallback=fallback,
        max_retries=config.AI_MAX_RETRIES,
        retry_delay=config.AI_RETRY_DELAY_SECONDS,
    )
