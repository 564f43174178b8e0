import asyncio
import logging
import time
import uuid
from typing import List, Optional, Dict, Any

from google import genai
from google.genai import types as genai_types

from apicopilot.core.config import settings
from apicopilot.core.exceptions import AIProviderError
from apicopilot.services.ai.base_provider import BaseAIProvider
from apicopilot.services.ai.schema import AIMessage, GenerateOptions, GenerationResult, TokenUsage
from apicopilot.services.tools.schema import ToolCall, ToolSchema

logger = logging.getLogger(__name__)


def generate_call_id() -> str:
    """Gemini does not id its function calls; synthesize one per call."""
    return f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Adapt a JSON schema to what Gemini's Schema model accepts.

    Gemini enums are string-only: enum values are stringified and the
    property is declared as a string so the model answers with one of them.
    """
    converted = dict(schema)
    if converted.get("enum"):
        converted["enum"] = [str(value) for value in converted["enum"]]
        converted["type"] = "string"
        if converted.get("default") is not None:
            converted["default"] = str(converted["default"])
    if isinstance(converted.get("properties"), dict):
        converted["properties"] = {
            name: to_gemini_schema(prop) for name, prop in converted["properties"].items()
        }
    if isinstance(converted.get("items"), dict):
        converted["items"] = to_gemini_schema(converted["items"])
    return converted


class GeminiProvider(BaseAIProvider):
    """
    Gemini adapter using the google-genai SDK (async via client.aio).

    System content goes into the system_instruction field, assistant turns
    are sent with the "model" role and tool results become function_response
    parts.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[genai.Client] = None,
    ):
        super().__init__(
            api_key=api_key,
            model=model or settings.GEMINI_MODEL,
            max_tokens=max_tokens or settings.GEMINI_MAX_TOKENS,
            temperature=temperature if temperature is not None else settings.GEMINI_TEMPERATURE,
            timeout=timeout,
        )
        self.client = client or genai.Client(api_key=api_key)

    async def generate(
        self,
        messages: List[AIMessage],
        options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        options = options or GenerateOptions()
        model, temperature, max_tokens = self._resolve(options)

        config_kwargs: Dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
            "system_instruction": self.build_system_prompt(options.system_prompt),
        }
        if options.tools:
            config_kwargs["tools"] = self._convert_tools(options.tools)
            # We execute tool calls ourselves
            config_kwargs["automatic_function_calling"] = {"disable": True}

        response = await asyncio.wait_for(
            self.client.aio.models.generate_content(
                model=model,
                contents=self._convert_messages(messages),
                config=genai_types.GenerateContentConfig(**config_kwargs),
            ),
            timeout=self.timeout,
        )

        if not response.candidates:
            raise AIProviderError(self.name, "No response generated")

        candidate = response.candidates[0]
        parts = candidate.content.parts if candidate.content and candidate.content.parts else []

        tool_calls: List[ToolCall] = []
        texts: List[str] = []
        for part in parts:
            if part.function_call:
                tool_calls.append(ToolCall(
                    id=generate_call_id(),
                    name=part.function_call.name,
                    arguments=dict(part.function_call.args or {}),
                ))
            elif part.text:
                texts.append(part.text)

        if tool_calls:
            logger.debug(f"Gemini requested {len(tool_calls)} tool call(s)")

        usage_metadata = response.usage_metadata
        return GenerationResult(
            content="".join(texts),
            tool_calls=tool_calls or None,
            usage=TokenUsage(
                input_tokens=(usage_metadata.prompt_token_count or 0) if usage_metadata else 0,
                output_tokens=(usage_metadata.candidates_token_count or 0) if usage_metadata else 0,
                total_tokens=(usage_metadata.total_token_count or 0) if usage_metadata else 0,
            ),
            finish_reason="tool_calls" if tool_calls else "stop",
            provider=self.name,
        )

    def _convert_messages(self, messages: List[AIMessage]) -> List[genai_types.Content]:
        """
        Convert provider-neutral messages to Gemini contents.

        System messages are dropped (they travel as system_instruction) and
        turns that would carry no parts are skipped since Gemini rejects them.
        """
        contents: List[genai_types.Content] = []

        for message in messages:
            if message.role == "system":
                continue

            parts: List[genai_types.Part] = []
            if message.content:
                parts.append(genai_types.Part(text=message.content))

            for tc in message.tool_calls or []:
                parts.append(genai_types.Part(
                    function_call=genai_types.FunctionCall(name=tc.name, args=tc.arguments)
                ))

            for result in message.tool_results or []:
                parts.append(genai_types.Part(
                    function_response=genai_types.FunctionResponse(
                        name=result.name,
                        response={"result": result.to_response_payload()},
                    )
                ))

            if not parts:
                continue

            contents.append(genai_types.Content(
                role="model" if message.role == "assistant" else "user",
                parts=parts,
            ))

        return contents

    def _convert_tools(self, tools: List[ToolSchema]) -> List[genai_types.Tool]:
        function_declarations = [
            genai_types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=to_gemini_schema(tool.parameters),
            )
            for tool in tools
        ]
        return [genai_types.Tool(function_declarations=function_declarations)]
