"""
Tests for the generation service: retries, backoff and provider failover.
"""
from unittest.mock import AsyncMock

import pytest

from apicopilot.core.config import Settings
from apicopilot.core.exceptions import ProviderNotConfiguredError
from apicopilot.services.ai.gemini_provider import GeminiProvider
from apicopilot.services.ai.generation_service import (
    GenerationService,
    build_generation_service,
    create_provider,
)
from apicopilot.services.ai.openai_provider import OpenAIProvider
from apicopilot.services.ai.schema import AIMessage, GenerationResult

from conftest import ScriptedProvider

MESSAGES = [AIMessage(role="user", content="hi")]


def _settings(**overrides) -> Settings:
    values = {"GEMINI_API_KEY": None, "OPENAI_API_KEY": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestRetries:

    @pytest.mark.asyncio
    async def test_first_success_needs_no_sleep(self):
        provider = ScriptedProvider([GenerationResult(content="hello")])
        sleep = AsyncMock()

        result = await GenerationService(provider, sleep=sleep).generate(MESSAGES)

        assert result.content == "hello"
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff(self):
        provider = ScriptedProvider([
            RuntimeError("a"),
            RuntimeError("b"),
            GenerationResult(content="third time"),
        ])
        sleep = AsyncMock()

        result = await GenerationService(provider, max_retries=3, retry_delay=1.0, sleep=sleep).generate(MESSAGES)

        assert result.content == "third time"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_primary_raises_last_error(self):
        provider = ScriptedProvider([RuntimeError("a"), RuntimeError("b"), RuntimeError("c")])
        sleep = AsyncMock()

        with pytest.raises(RuntimeError, match="c"):
            await GenerationService(provider, max_retries=3, sleep=sleep).generate(MESSAGES)

        assert len(provider.calls) == 3
        # No sleep after the final attempt
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            GenerationService(ScriptedProvider(), max_retries=0)


class TestFallback:

    @pytest.mark.asyncio
    async def test_fallback_used_after_primary_exhausted(self):
        primary = ScriptedProvider([RuntimeError("p1"), RuntimeError("p2"), RuntimeError("p3")], name="primary")
        fallback = ScriptedProvider([GenerationResult(content="from fallback", provider="fallback")], name="fallback")
        sleep = AsyncMock()

        result = await GenerationService(primary, fallback, max_retries=3, sleep=sleep).generate(MESSAGES)

        assert result.content == "from fallback"
        assert len(primary.calls) == 3
        assert len(fallback.calls) == 1
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fallback_gets_its_own_retries(self):
        primary = ScriptedProvider([RuntimeError("p")] * 3, name="primary")
        fallback = ScriptedProvider([RuntimeError("f1"), RuntimeError("f2"), RuntimeError("f3")], name="fallback")
        sleep = AsyncMock()

        with pytest.raises(RuntimeError, match="f3"):
            await GenerationService(primary, fallback, max_retries=3, sleep=sleep).generate(MESSAGES)

        assert len(primary.calls) == 3
        assert len(fallback.calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_primary_success_never_touches_fallback(self):
        primary = ScriptedProvider([GenerationResult(content="ok")], name="primary")
        fallback = ScriptedProvider(name="fallback")

        service = GenerationService(primary, fallback, sleep=AsyncMock())
        await service.generate(MESSAGES)

        assert service.has_fallback
        assert service.get_primary_provider_name() == "primary"
        assert fallback.calls == []


class TestProviderConfiguration:

    def test_unknown_provider(self):
        with pytest.raises(ProviderNotConfiguredError, match="Unknown AI provider"):
            create_provider("anthropic", _settings())

    def test_missing_key(self):
        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            create_provider("openai", _settings())

        assert exc_info.value.provider == "openai"

    def test_creates_configured_providers(self):
        config = _settings(GEMINI_API_KEY="g-key", OPENAI_API_KEY="o-key", OPENAI_MODEL="gpt-test")

        openai_provider = create_provider("openai", config)
        gemini_provider = create_provider("GEMINI", config)

        assert isinstance(openai_provider, OpenAIProvider)
        assert openai_provider.default_model == "gpt-test"
        assert isinstance(gemini_provider, GeminiProvider)

    def test_build_with_fallback(self):
        config = _settings(GEMINI_API_KEY="g-key", OPENAI_API_KEY="o-key", AI_MAX_RETRIES=2)

        service = build_generation_service(config)

        assert isinstance(service.primary, GeminiProvider)
        assert isinstance(service.fallback, OpenAIProvider)
        assert service.max_retries == 2

    def test_build_without_fallback_key(self):
        service = build_generation_service(_settings(GEMINI_API_KEY="g-key"))

        assert not service.has_fallback

    def test_fallback_equal_to_primary_is_ignored(self):
        config = _settings(PRIMARY_AI_PROVIDER="openai", FALLBACK_AI_PROVIDER="openai", OPENAI_API_KEY="o-key")

        service = build_generation_service(config)

        assert service.get_primary_provider_name() == "openai"
        assert not service.has_fallback

    def test_build_requires_primary_key(self):
        with pytest.raises(ProviderNotConfiguredError):
            build_generation_service(_settings(OPENAI_API_KEY="o-key"))
