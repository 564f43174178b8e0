"""
Tests for the OpenAI and Gemini provider adapters.

Vendor clients are mocked; the adapters' wire formatting and response
normalization are what is under test.
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import types as genai_types

from apicopilot.core.exceptions import AIProviderError
from apicopilot.services.ai.gemini_provider import GeminiProvider, generate_call_id
from apicopilot.services.ai.openai_provider import OpenAIProvider
from apicopilot.services.ai.schema import AIMessage, GenerateOptions
from apicopilot.services.tools.catalog import build_tools
from apicopilot.services.tools.schema import ToolCall, ToolResult, ToolSchema

from conftest import make_api

BASE_PROMPT = "You are a test assistant."

ORDERS_TOOL = ToolSchema(
    name="Orders_get_status",
    description="Orders: Get order status. Endpoint: GET /orders/{id}/status",
    parameters={"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]},
    api_id="api-orders",
    endpoint_id="ep-get-status",
)


def _tool_round_messages():
    call = ToolCall(id="call_1", name="Orders_get_status", arguments={"id": "42"})
    return [
        AIMessage(role="system", content="ignored"),
        AIMessage(role="user", content="status of 42?"),
        AIMessage(role="assistant", content="", tool_calls=[call]),
        AIMessage(role="tool", content="", tool_results=[
            ToolResult(tool_call_id="call_1", name="Orders_get_status", result={"status": "shipped"}),
            ToolResult(tool_call_id="call_2", name="Orders_get_status", error="boom"),
        ]),
    ]


# =============================================================================
# OpenAI
# =============================================================================

def _openai_response(content=None, tool_calls=None, usage=(10, 5, 15), choices=True):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)] if choices else [],
        usage=SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1], total_tokens=usage[2]),
    )


def _openai_provider(response):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    provider = OpenAIProvider(api_key="test", model="gpt-test", max_tokens=100, temperature=0.2, client=client)
    provider.base_prompt = BASE_PROMPT
    return provider, client.chat.completions.create


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_text_reply(self):
        provider, create = _openai_provider(_openai_response(content="Hello!"))

        result = await provider.generate([AIMessage(role="user", content="hi")])

        assert result.content == "Hello!"
        assert result.tool_calls is None
        assert result.finish_reason == "stop"
        assert result.provider == "openai"
        assert (result.usage.input_tokens, result.usage.output_tokens, result.usage.total_tokens) == (10, 5, 15)

        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 100
        assert "tools" not in kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": BASE_PROMPT},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_tool_calls_are_normalized(self):
        raw_call = SimpleNamespace(
            id="call_abc",
            function=SimpleNamespace(name="Orders_get_status", arguments='{"id": "42"}'),
        )
        provider, create = _openai_provider(_openai_response(tool_calls=[raw_call]))

        result = await provider.generate(
            [AIMessage(role="user", content="status?")],
            GenerateOptions(tools=[ORDERS_TOOL], system_prompt="Be brief."),
        )

        assert result.finish_reason == "tool_calls"
        assert result.content == ""
        assert result.tool_calls == [ToolCall(id="call_abc", name="Orders_get_status", arguments={"id": "42"})]

        kwargs = create.await_args.kwargs
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["tools"] == [ORDERS_TOOL.to_openai_format()]
        assert kwargs["messages"][0]["content"] == f"{BASE_PROMPT}\n\nBe brief."

    @pytest.mark.asyncio
    async def test_options_override_defaults(self):
        provider, create = _openai_provider(_openai_response(content="x"))

        await provider.generate([], GenerateOptions(model="gpt-other", temperature=0.0, max_tokens=7))

        kwargs = create.await_args.kwargs
        assert (kwargs["model"], kwargs["temperature"], kwargs["max_tokens"]) == ("gpt-other", 0.0, 7)

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        provider, _ = _openai_provider(_openai_response(choices=False))

        with pytest.raises(AIProviderError, match=r"\[openai\] No response generated"):
            await provider.generate([AIMessage(role="user", content="hi")])

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self):
        provider, create = _openai_provider(None)
        create.side_effect = RuntimeError("rate limited")

        with pytest.raises(RuntimeError, match="rate limited"):
            await provider.generate([AIMessage(role="user", content="hi")])

    def test_tool_round_formatting(self):
        provider, _ = _openai_provider(None)

        formatted = provider._format_messages(_tool_round_messages(), None)

        assert [m["role"] for m in formatted] == ["system", "user", "assistant", "tool", "tool"]
        assistant = formatted[2]
        assert assistant["content"] is None
        assert assistant["tool_calls"] == [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "Orders_get_status", "arguments": json.dumps({"id": "42"})},
        }]
        assert formatted[3] == {"role": "tool", "tool_call_id": "call_1", "content": '{"status": "shipped"}'}
        assert formatted[4] == {"role": "tool", "tool_call_id": "call_2", "content": '{"error": "boom"}'}


# =============================================================================
# Gemini
# =============================================================================

def _gemini_response(parts, prompt_tokens=12, output_tokens=3):
    return genai_types.GenerateContentResponse(
        candidates=[genai_types.Candidate(content=genai_types.Content(role="model", parts=parts))],
        usage_metadata=genai_types.GenerateContentResponseUsageMetadata(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
            total_token_count=prompt_tokens + output_tokens,
        ),
    )


def _gemini_provider(response):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response)
    provider = GeminiProvider(api_key="test", model="gemini-test", max_tokens=100, temperature=0.3, client=client)
    provider.base_prompt = BASE_PROMPT
    return provider, client.aio.models.generate_content


class TestGeminiProvider:

    @pytest.mark.asyncio
    async def test_text_reply(self):
        provider, generate_content = _gemini_provider(
            _gemini_response([genai_types.Part(text="Hello "), genai_types.Part(text="there")])
        )

        result = await provider.generate([AIMessage(role="user", content="hi")])

        assert result.content == "Hello there"
        assert result.tool_calls is None
        assert result.finish_reason == "stop"
        assert result.provider == "gemini"
        assert (result.usage.input_tokens, result.usage.output_tokens, result.usage.total_tokens) == (12, 3, 15)

        kwargs = generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-test"
        config = kwargs["config"]
        assert config.system_instruction == BASE_PROMPT
        assert config.temperature == 0.3
        assert config.max_output_tokens == 100
        assert config.tools is None

    @pytest.mark.asyncio
    async def test_function_calls_get_synthesized_ids(self):
        provider, generate_content = _gemini_provider(_gemini_response([
            genai_types.Part(function_call=genai_types.FunctionCall(name="Orders_get_status", args={"id": "42"})),
        ]))

        result = await provider.generate(
            [AIMessage(role="user", content="status?")],
            GenerateOptions(tools=[ORDERS_TOOL]),
        )

        assert result.finish_reason == "tool_calls"
        call = result.tool_calls[0]
        assert call.name == "Orders_get_status"
        assert call.arguments == {"id": "42"}
        assert call.id.startswith("call_")

        config = generate_content.await_args.kwargs["config"]
        declarations = config.tools[0].function_declarations
        assert [d.name for d in declarations] == ["Orders_get_status"]
        assert config.automatic_function_calling.disable is True

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        provider, _ = _gemini_provider(genai_types.GenerateContentResponse(candidates=[]))

        with pytest.raises(AIProviderError, match=r"\[gemini\] No response generated"):
            await provider.generate([AIMessage(role="user", content="hi")])

    def test_tool_round_conversion(self):
        provider, _ = _gemini_provider(None)

        contents = provider._convert_messages(_tool_round_messages())

        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[0].parts[0].text == "status of 42?"

        function_call = contents[1].parts[0].function_call
        assert function_call.name == "Orders_get_status"
        assert function_call.args == {"id": "42"}

        responses = [p.function_response for p in contents[2].parts]
        assert [r.name for r in responses] == ["Orders_get_status", "Orders_get_status"]
        assert responses[0].response == {"result": {"status": "shipped"}}
        assert responses[1].response == {"result": {"error": "boom"}}

    def test_empty_turns_are_skipped(self):
        provider, _ = _gemini_provider(None)

        contents = provider._convert_messages([
            AIMessage(role="user", content="hi"),
            AIMessage(role="assistant", content=""),
        ])

        assert len(contents) == 1

    def test_call_ids_are_unique(self):
        assert generate_call_id() != generate_call_id()

    def test_non_string_enums_are_declared_as_strings(self):
        provider, _ = _gemini_provider(None)
        api = make_api(endpoints=[{
            "name": "list",
            "method": "GET",
            "path": "/orders",
            "parameters": [
                {"name": "page_size", "in": "query", "type": "integer", "enum": [10, 20, 50], "default": 20},
                {"name": "state", "in": "query", "enum": ["open", "closed"]},
            ],
        }])
        tool = build_tools([api])[0]

        declaration = provider._convert_tools([tool])[0].function_declarations[0]

        page_size = declaration.parameters.properties["page_size"]
        assert page_size.enum == ["10", "20", "50"]
        assert page_size.default == "20"
        assert declaration.parameters.properties["state"].enum == ["open", "closed"]
        assert tool.parameters["properties"]["page_size"]["enum"] == [10, 20, 50]
