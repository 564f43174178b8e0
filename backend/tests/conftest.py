"""
Shared test fixtures for API Copilot backend tests.

The engine talks to its stores through abstract collaborators, so most tests
run against the in-memory implementations defined here instead of a database.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from apicopilot.core.background import BackgroundTaskRunner  # noqa: E402
from apicopilot.core.exceptions import ConversationNotFoundError  # noqa: E402
from apicopilot.schemas.chat import ConversationRead, MessageCreate, MessageRead, TokenCount  # noqa: E402
from apicopilot.schemas.registered_api import RegisteredApiRead  # noqa: E402
from apicopilot.services.ai.base_provider import BaseAIProvider  # noqa: E402
from apicopilot.services.ai.schema import GenerationResult  # noqa: E402
from apicopilot.services.stores.base import ApiRegistry, ConversationStore, UsageSink  # noqa: E402

TENANT_ID = "tenant-1"


# =============================================================================
# In-memory collaborators
# =============================================================================

class InMemoryApiRegistry(ApiRegistry):

    def __init__(self, apis: Optional[List[RegisteredApiRead]] = None):
        self.apis: List[RegisteredApiRead] = list(apis or [])

    def _active(self, tenant_id: str) -> List[RegisteredApiRead]:
        return [a for a in self.apis if a.tenant_id == tenant_id and a.is_active]

    async def list_active_apis(self, tenant_id: str) -> List[RegisteredApiRead]:
        return self._active(tenant_id)

    async def find_api(self, tenant_id: str, name: str) -> Optional[RegisteredApiRead]:
        return next((a for a in self._active(tenant_id) if a.name.lower() == name.lower()), None)

    async def get_api(self, tenant_id: str, api_id: str) -> Optional[RegisteredApiRead]:
        return next((a for a in self._active(tenant_id) if a.id == api_id), None)


class InMemoryConversationStore(ConversationStore):

    def __init__(self):
        self.conversations: Dict[str, ConversationRead] = {}
        self.messages: Dict[str, List[MessageRead]] = {}
        self._next_conversation = 1
        self._next_message = 1

    async def get_or_create(
        self,
        tenant_id: str,
        session_id: str,
        user_id: Optional[str] = None
    ) -> ConversationRead:
        for conversation in self.conversations.values():
            if conversation.tenant_id == tenant_id and conversation.session_id == session_id:
                return conversation.model_copy()

        conversation = ConversationRead(
            id=f"conv-{self._next_conversation}",
            tenant_id=tenant_id,
            session_id=session_id,
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
        )
        self._next_conversation += 1
        self.conversations[conversation.id] = conversation
        self.messages[conversation.id] = []
        return conversation.model_copy()

    async def get_by_id(self, tenant_id: str, conversation_id: str) -> ConversationRead:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.tenant_id != tenant_id:
            raise ConversationNotFoundError(conversation_id)
        return conversation.model_copy()

    async def append_message(self, conversation_id: str, message: MessageCreate) -> MessageRead:
        stored = MessageRead(
            id=self._next_message,
            conversation_id=conversation_id,
            role=message.role,
            content=message.content,
            tool_calls=message.tool_calls,
            tool_results=message.tool_results,
            input_tokens=message.tokens.input if message.tokens else None,
            output_tokens=message.tokens.output if message.tokens else None,
            created_at=datetime.now(timezone.utc),
        )
        self._next_message += 1
        self.messages[conversation_id].append(stored)

        conversation = self.conversations[conversation_id]
        conversation.message_count += 1
        conversation.last_message_at = stored.created_at
        return stored

    async def get_recent_messages(self, conversation_id: str, limit: int) -> List[MessageRead]:
        return list(self.messages.get(conversation_id, [])[-limit:])

    async def update_title(self, tenant_id: str, conversation_id: str, title: str) -> None:
        conversation = await self.get_by_id(tenant_id, conversation_id)
        self.conversations[conversation.id].title = title


class RecordingUsageSink(UsageSink):

    def __init__(self):
        self.message_usage: List[Dict[str, Any]] = []
        self.api_calls: List[Dict[str, Any]] = []

    async def record_message_usage(
        self,
        tenant_id: str,
        conversation_id: str,
        session_id: Optional[str],
        user_id: Optional[str],
        tokens: Optional[TokenCount],
    ) -> None:
        self.message_usage.append({
            "tenant_id": tenant_id,
            "conversation_id": conversation_id,
            "session_id": session_id,
            "user_id": user_id,
            "tokens": tokens,
        })

    async def record_api_call(self, **kwargs) -> None:
        self.api_calls.append(kwargs)


class ScriptedProvider(BaseAIProvider):
    """
    Provider that replays queued results (or raises queued exceptions).

    Title requests are answered with `title` so background titling never
    consumes the script. Once the script is exhausted it answers "ok".
    """

    def __init__(self, script=None, name: str = "scripted", title: str = "Order status"):
        super().__init__(
            api_key="test-key",
            model="test-model",
            max_tokens=256,
            temperature=0.0,
            base_prompt="You are a test assistant.",
        )
        self.name = name
        self.script = list(script or [])
        self.title = title
        self.calls = []

    async def generate(self, messages, options=None):
        if messages and messages[0].content.startswith("Generate a short title"):
            return GenerationResult(content=self.title, provider=self.name)

        self.calls.append((list(messages), options))
        if not self.script:
            return GenerationResult(content="ok", provider=self.name)

        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


# =============================================================================
# Builders
# =============================================================================

def make_api(
    name: str = "Orders",
    base_url: str = "https://x.test",
    endpoints: Optional[List[Dict[str, Any]]] = None,
    tenant_id: str = TENANT_ID,
    **overrides,
) -> RegisteredApiRead:
    data = {
        "id": f"api-{name.lower().replace(' ', '-')}",
        "tenant_id": tenant_id,
        "name": name,
        "base_url": base_url,
        "endpoints": endpoints if endpoints is not None else [],
    }
    data.update(overrides)
    return RegisteredApiRead.model_validate(data)


def orders_status_endpoint(**overrides) -> Dict[str, Any]:
    endpoint = {
        "id": "ep-get-status",
        "name": "get_status",
        "description": "Get order status",
        "method": "GET",
        "path": "/orders/{id}/status",
        "parameters": [
            {"name": "id", "in": "path", "required": True, "type": "string", "description": "Order id"},
        ],
    }
    endpoint.update(overrides)
    return endpoint


def mock_http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def orders_api() -> RegisteredApiRead:
    return make_api(endpoints=[orders_status_endpoint()])


@pytest.fixture
def registry(orders_api) -> InMemoryApiRegistry:
    return InMemoryApiRegistry([orders_api])


@pytest.fixture
def conversations() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def usage() -> RecordingUsageSink:
    return RecordingUsageSink()


@pytest_asyncio.fixture
async def background():
    runner = BackgroundTaskRunner(drain_timeout=5.0)
    yield runner
    await runner.drain()


@pytest.fixture
def http_requests() -> List[httpx.Request]:
    """Requests captured by the `http_client` fixture."""
    return []


@pytest_asyncio.fixture
async def http_client(http_requests):
    """Answers every request with {"status": "shipped"}."""
    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        return httpx.Response(200, json={"status": "shipped"})

    client = mock_http_client(handler)
    yield client
    await client.aclose()
