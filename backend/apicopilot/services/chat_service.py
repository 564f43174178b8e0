"""
Chat Service - per-message conversation orchestration

process_message() drives one cycle:
1. Resolve the conversation and persist the user message
2. Load recent history and the tenant's tool catalog
3. Generate; while the model asks for tools (up to max_tool_rounds),
   execute them concurrently and generate again with the results
4. Persist the assistant message with the executed calls and results
5. Record usage and title new conversations in the background

Errors before the assistant message is written propagate to the caller;
tool failures are captured in their ToolResult.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import List, Optional

from apicopilot.core.background import BackgroundTaskRunner
from apicopilot.core.config import settings
from apicopilot.schemas.chat import (
    ChatResult,
    ConversationRead,
    MessageCreate,
    MessageRead,
    TokenCount,
)
from apicopilot.services.ai.generation_service import GenerationService, build_generation_service
from apicopilot.services.ai.schema import AIMessage, GenerateOptions
from apicopilot.services.stores.base import ConversationStore, UsageSink
from apicopilot.services.stores.sql import SqlApiRegistry, SqlConversationStore, SqlUsageSink
from apicopilot.services.tools.catalog import ToolCatalogBuilder
from apicopilot.services.tools.executor import EndpointInvoker, InvocationContext
from apicopilot.services.tools.schema import ToolCall, ToolResult

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    'Generate a short title (max 6 words) for a conversation that starts with: "{message}". '
    "Reply with just the title, no quotes or extra text."
)


@dataclass
class ChatContext:
    tenant_id: str
    session_id: str
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    system_prompt: Optional[str] = None


class ChatService:
    """Conversation orchestrator; one instance is shared by all requests."""

    def __init__(
        self,
        generation: GenerationService,
        catalog_builder: ToolCatalogBuilder,
        invoker: EndpointInvoker,
        conversations: ConversationStore,
        usage: UsageSink,
        background: BackgroundTaskRunner,
        history_limit: int = settings.CHAT_HISTORY_LIMIT,
        max_tool_rounds: int = settings.MAX_TOOL_ROUNDS,
        serialize_conversations: bool = settings.SERIALIZE_CONVERSATION_CYCLES,
        title_max_tokens: int = settings.TITLE_MAX_TOKENS,
    ):
        self.generation = generation
        self.catalog_builder = catalog_builder
        self.invoker = invoker
        self.conversations = conversations
        self.usage = usage
        self.background = background
        self.history_limit = history_limit
        self.max_tool_rounds = max_tool_rounds
        self.serialize_conversations = serialize_conversations
        self.title_max_tokens = title_max_tokens
        # Entries disappear once no cycle holds or waits on the lock
        self._conversation_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def process_message(self, content: str, context: ChatContext) -> ChatResult:
        conversation = await self._resolve_conversation(context)

        if not self.serialize_conversations:
            return await self._run_cycle(content, context, conversation)

        lock = self._conversation_locks.get(conversation.id)
        if lock is None:
            lock = asyncio.Lock()
            self._conversation_locks[conversation.id] = lock
        async with lock:
            return await self._run_cycle(content, context, conversation)

    async def _resolve_conversation(self, context: ChatContext) -> ConversationRead:
        if context.conversation_id:
            return await self.conversations.get_by_id(context.tenant_id, context.conversation_id)
        return await self.conversations.get_or_create(
            context.tenant_id, context.session_id, context.user_id
        )

    async def _run_cycle(
        self,
        content: str,
        context: ChatContext,
        conversation: ConversationRead
    ) -> ChatResult:
        log_extra = {"tenant_id": context.tenant_id, "conversation_id": conversation.id}

        await self.conversations.append_message(
            conversation.id, MessageCreate(role="user", content=content)
        )

        history = await self.conversations.get_recent_messages(conversation.id, self.history_limit)
        tools = await self.catalog_builder.build(context.tenant_id)

        ai_messages = self.build_ai_messages(history)
        options = GenerateOptions(tools=tools or None, system_prompt=context.system_prompt)

        result = await self.generation.generate(ai_messages, options)

        invocation = InvocationContext(
            tenant_id=context.tenant_id,
            conversation_id=conversation.id,
            tools=tools,
        )
        executed_calls: List[ToolCall] = []
        executed_results: List[ToolResult] = []
        rounds = 0

        while result.has_tool_calls and rounds < self.max_tool_rounds:
            rounds += 1
            tool_calls = result.tool_calls
            logger.info(f"Executing {len(tool_calls)} tool call(s), round {rounds}", extra=log_extra)

            tool_results = await self.invoker.execute_many(tool_calls, invocation)
            executed_calls.extend(tool_calls)
            executed_results.extend(tool_results)

            ai_messages.append(AIMessage(role="assistant", content=result.content, tool_calls=tool_calls))
            ai_messages.append(AIMessage(role="tool", content="", tool_results=tool_results))

            result = await self.generation.generate(ai_messages, options)

        reply = result.content
        if result.has_tool_calls:
            logger.warning(
                f"Dropping {len(result.tool_calls)} tool call(s) requested after "
                f"{self.max_tool_rounds} tool round(s)",
                extra=log_extra,
            )
            if not reply:
                reply = self._summarize_results(executed_results)

        assistant_message = await self.conversations.append_message(
            conversation.id,
            MessageCreate(
                role="assistant",
                content=reply,
                tool_calls=executed_calls or None,
                tool_results=executed_results or None,
                tokens=TokenCount(
                    input=result.usage.input_tokens,
                    output=result.usage.output_tokens,
                ),
            ),
        )

        self.background.spawn(
            self.usage.record_message_usage(
                tenant_id=context.tenant_id,
                conversation_id=conversation.id,
                session_id=context.session_id,
                user_id=context.user_id,
                tokens=assistant_message.tokens,
            ),
            name=f"usage-log:{conversation.id}",
        )

        if len(history) <= 1 and not conversation.title:
            self.background.spawn(
                self._generate_title(context.tenant_id, conversation.id, content),
                name=f"conversation-title:{conversation.id}",
            )

        return ChatResult(
            message=assistant_message,
            conversation_id=conversation.id,
            tools_executed=executed_results or None,
        )

    @staticmethod
    def build_ai_messages(history: List[MessageRead]) -> List[AIMessage]:
        """
        Convert stored messages into provider-neutral ones.

        An assistant message stored with tool calls is replayed as the
        call turn, the results turn and then its final text, which is the
        order providers expect.
        """
        ai_messages: List[AIMessage] = []
        for message in history:
            if message.role == "assistant" and message.tool_calls:
                ai_messages.append(AIMessage(role="assistant", content="", tool_calls=message.tool_calls))
                if message.tool_results:
                    ai_messages.append(AIMessage(role="tool", content="", tool_results=message.tool_results))
                if message.content:
                    ai_messages.append(AIMessage(role="assistant", content=message.content))
                continue

            ai_messages.append(AIMessage(
                role=message.role,
                content=message.content,
                tool_results=message.tool_results,
            ))
        return ai_messages

    @staticmethod
    def _summarize_results(results: List[ToolResult]) -> str:
        """Fallback reply when the model never produced a final answer."""
        if not results:
            return "I wasn't able to gather enough information to answer your request."

        summaries = []
        for result in results:
            if result.success and result.result is not None:
                data_str = str(result.result)
                if len(data_str) > 100:
                    data_str = data_str[:100] + "..."
                summaries.append(f"- {result.name}: {data_str}")

        if summaries:
            return "Here is what I found:\n" + "\n".join(summaries)

        return "I ran into problems calling the connected APIs. Please try rephrasing your request."

    async def _generate_title(self, tenant_id: str, conversation_id: str, first_message: str) -> None:
        """Best-effort: failures are logged and never reach the user."""
        try:
            result = await self.generation.generate(
                [AIMessage(role="user", content=TITLE_PROMPT.format(message=first_message))],
                GenerateOptions(max_tokens=self.title_max_tokens),
            )
            title = result.content.strip()
            if title:
                await self.conversations.update_title(tenant_id, conversation_id, title)
        except Exception as e:
            logger.error(f"Failed to generate conversation title for {conversation_id}: {e}")


def build_chat_service(
    session_factory,
    http_client,
    background: BackgroundTaskRunner,
) -> ChatService:
    """Wire the orchestrator to the SQL stores and configured providers."""
    registry = SqlApiRegistry(session_factory)
    usage = SqlUsageSink(session_factory)
    return ChatService(
        generation=build_generation_service(settings),
        catalog_builder=ToolCatalogBuilder(registry),
        invoker=EndpointInvoker(registry, usage, background, http_client=http_client),
        conversations=SqlConversationStore(session_factory),
        usage=usage,
        background=background,
    )
