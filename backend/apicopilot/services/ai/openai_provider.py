import json
import logging
from typing import List, Optional, Dict, Any

from openai import AsyncOpenAI

from apicopilot.core.config import settings
from apicopilot.core.exceptions import AIProviderError
from apicopilot.services.ai.base_provider import BaseAIProvider
from apicopilot.services.ai.schema import AIMessage, GenerateOptions, GenerationResult, TokenUsage
from apicopilot.services.tools.schema import ToolCall

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseAIProvider):
    """Chat Completions adapter with native function calling."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__(
            api_key=api_key,
            model=model or settings.OPENAI_MODEL,
            max_tokens=max_tokens or settings.OPENAI_MAX_TOKENS,
            temperature=temperature if temperature is not None else settings.OPENAI_TEMPERATURE,
            timeout=timeout,
        )
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=self.timeout)

    async def generate(
        self,
        messages: List[AIMessage],
        options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        options = options or GenerateOptions()
        model, temperature, max_tokens = self._resolve(options)

        request_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": self._format_messages(messages, options.system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if options.tools:
            request_kwargs["tools"] = [tool.to_openai_format() for tool in options.tools]
            request_kwargs["tool_choice"] = "auto"

        response = await self.client.chat.completions.create(**request_kwargs)

        if not response.choices:
            raise AIProviderError(self.name, "No response generated")

        message = response.choices[0].message
        tool_calls = self._extract_tool_calls(message)
        if tool_calls:
            logger.debug(f"OpenAI requested {len(tool_calls)} tool call(s)")
        usage = response.usage

        return GenerationResult(
            content=message.content or "",
            tool_calls=tool_calls or None,
            usage=TokenUsage(
                input_tokens=(usage.prompt_tokens or 0) if usage else 0,
                output_tokens=(usage.completion_tokens or 0) if usage else 0,
                total_tokens=(usage.total_tokens or 0) if usage else 0,
            ),
            finish_reason="tool_calls" if tool_calls else "stop",
            provider=self.name,
        )

    def _format_messages(
        self,
        messages: List[AIMessage],
        custom_prompt: Optional[str]
    ) -> List[Dict[str, Any]]:
        """Prepend the system prompt and map tool results to one `tool` message each."""
        formatted: List[Dict[str, Any]] = [
            {"role": "system", "content": self.build_system_prompt(custom_prompt)}
        ]

        for message in messages:
            if message.role == "system":
                continue

            if message.role == "user":
                formatted.append({"role": "user", "content": message.content})

            elif message.role == "assistant":
                assistant_message: Dict[str, Any] = {
                    "role": "assistant",
                    "content": message.content or None,
                }
                if message.tool_calls:
                    assistant_message["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in message.tool_calls
                    ]
                formatted.append(assistant_message)

            elif message.role == "tool" and message.tool_results:
                for result in message.tool_results:
                    formatted.append({
                        "role": "tool",
                        "tool_call_id": result.tool_call_id,
                        "content": result.to_message_content(),
                    })

        return formatted

    def _extract_tool_calls(self, message) -> List[ToolCall]:
        if not message.tool_calls:
            return []

        return [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=json.loads(tc.function.arguments or "{}"),
            )
            for tc in message.tool_calls
        ]
