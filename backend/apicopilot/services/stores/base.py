"""
Collaborator contracts consumed by the chat engine.

The engine never touches a database directly; it talks to these three
interfaces. sql.py provides the SQLAlchemy implementations used by the
application, and tests substitute in-memory ones.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from apicopilot.schemas.chat import ConversationRead, MessageCreate, MessageRead, TokenCount
from apicopilot.schemas.registered_api import RegisteredApiRead


class ApiRegistry(ABC):
    """Read-only access to a tenant's registered APIs."""

    @abstractmethod
    async def list_active_apis(self, tenant_id: str) -> List[RegisteredApiRead]:
        """All active APIs of the tenant, endpoints included."""

    @abstractmethod
    async def find_api(self, tenant_id: str, name: str) -> Optional[RegisteredApiRead]:
        """Active API whose name matches case-insensitively."""

    @abstractmethod
    async def get_api(self, tenant_id: str, api_id: str) -> Optional[RegisteredApiRead]:
        """Active API by id."""


class ConversationStore(ABC):

    @abstractmethod
    async def get_or_create(
        self,
        tenant_id: str,
        session_id: str,
        user_id: Optional[str] = None
    ) -> ConversationRead:
        """Active conversation for (tenant, session), created when missing."""

    @abstractmethod
    async def get_by_id(self, tenant_id: str, conversation_id: str) -> ConversationRead:
        """Raises ConversationNotFoundError when absent."""

    @abstractmethod
    async def append_message(self, conversation_id: str, message: MessageCreate) -> MessageRead:
        """Persist a message and bump the conversation's count and last-message time."""

    @abstractmethod
    async def get_recent_messages(self, conversation_id: str, limit: int) -> List[MessageRead]:
        """Last `limit` messages in chronological order."""

    @abstractmethod
    async def update_title(self, tenant_id: str, conversation_id: str, title: str) -> None:
        pass


class UsageSink(ABC):
    """Analytics writes; always invoked fire-and-forget."""

    @abstractmethod
    async def record_message_usage(
        self,
        tenant_id: str,
        conversation_id: str,
        session_id: Optional[str],
        user_id: Optional[str],
        tokens: Optional[TokenCount],
    ) -> None:
        pass

    @abstractmethod
    async def record_api_call(
        self,
        tenant_id: str,
        conversation_id: Optional[str],
        api_id: str,
        endpoint_id: str,
        method: str,
        url: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        pass
