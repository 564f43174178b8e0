"""
SQLAlchemy implementations of the engine's stores.

Every operation opens its own session from the factory so that detached
background work (usage logging, titling) never shares a request session.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from apicopilot.core.exceptions import ConversationNotFoundError
from apicopilot.models.analytics import ApiCallLog, UsageLog
from apicopilot.models.conversation import Conversation, Message
from apicopilot.models.registered_api import RegisteredApi
from apicopilot.schemas.chat import ConversationRead, MessageCreate, MessageRead, TokenCount
from apicopilot.schemas.registered_api import RegisteredApiCreate, RegisteredApiRead
from apicopilot.services.openapi_import import parse_openapi_spec, server_url
from apicopilot.services.stores.base import ApiRegistry, ConversationStore, UsageSink

logger = logging.getLogger(__name__)


class SqlApiRegistry(ApiRegistry):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def list_active_apis(self, tenant_id: str) -> List[RegisteredApiRead]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(RegisteredApi)
                .where(RegisteredApi.tenant_id == tenant_id, RegisteredApi.is_active.is_(True))
                .order_by(RegisteredApi.created_at, RegisteredApi.name)
            )
            return [RegisteredApiRead.model_validate(api) for api in result.scalars().all()]

    async def find_api(self, tenant_id: str, name: str) -> Optional[RegisteredApiRead]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(RegisteredApi).where(
                    RegisteredApi.tenant_id == tenant_id,
                    func.lower(RegisteredApi.name) == name.lower(),
                    RegisteredApi.is_active.is_(True),
                )
            )
            api = result.scalars().first()
            return RegisteredApiRead.model_validate(api) if api else None

    async def get_api(self, tenant_id: str, api_id: str) -> Optional[RegisteredApiRead]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(RegisteredApi).where(
                    RegisteredApi.tenant_id == tenant_id,
                    RegisteredApi.id == api_id,
                    RegisteredApi.is_active.is_(True),
                )
            )
            api = result.scalars().first()
            return RegisteredApiRead.model_validate(api) if api else None

    async def create_api(self, tenant_id: str, data: RegisteredApiCreate) -> RegisteredApiRead:
        """Register an API for a tenant (used by the management layer and fixtures)."""
        if data.openapi_spec:
            data = data.model_copy(update={
                "endpoints": parse_openapi_spec(data.openapi_spec),
                "base_url": data.base_url or server_url(data.openapi_spec) or "",
            })
        payload = data.model_dump(mode="json")
        async with self._session_factory() as db:
            api = RegisteredApi(tenant_id=tenant_id, **payload)
            db.add(api)
            await db.commit()
            await db.refresh(api)
            return RegisteredApiRead.model_validate(api)


class SqlConversationStore(ConversationStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def get_or_create(
        self,
        tenant_id: str,
        session_id: str,
        user_id: Optional[str] = None
    ) -> ConversationRead:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Conversation)
                .where(
                    Conversation.tenant_id == tenant_id,
                    Conversation.session_id == session_id,
                    Conversation.is_active.is_(True),
                )
                .order_by(Conversation.created_at.desc())
                .limit(1)
            )
            conversation = result.scalars().first()
            if conversation is None:
                conversation = Conversation(
                    tenant_id=tenant_id,
                    session_id=session_id,
                    user_id=user_id,
                    message_count=0,
                )
                db.add(conversation)
                await db.commit()
                await db.refresh(conversation)
                logger.info(f"Created conversation {conversation.id} for session {session_id}")
            return ConversationRead.model_validate(conversation)

    async def get_by_id(self, tenant_id: str, conversation_id: str) -> ConversationRead:
        async with self._session_factory() as db:
            conversation = await self._load(db, tenant_id, conversation_id)
            return ConversationRead.model_validate(conversation)

    async def append_message(self, conversation_id: str, message: MessageCreate) -> MessageRead:
        async with self._session_factory() as db:
            row = Message(
                conversation_id=conversation_id,
                role=message.role,
                content=message.content,
                tool_calls=[tc.model_dump(mode="json") for tc in message.tool_calls] if message.tool_calls else None,
                tool_results=[tr.model_dump(mode="json") for tr in message.tool_results] if message.tool_results else None,
                input_tokens=message.tokens.input if message.tokens else None,
                output_tokens=message.tokens.output if message.tokens else None,
            )
            db.add(row)
            await db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(
                    message_count=Conversation.message_count + 1,
                    last_message_at=datetime.now(timezone.utc),
                )
            )
            await db.commit()
            await db.refresh(row)
            return MessageRead.model_validate(row)

    async def get_recent_messages(self, conversation_id: str, limit: int) -> List[MessageRead]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())
            rows.reverse()
            return [MessageRead.model_validate(row) for row in rows]

    async def update_title(self, tenant_id: str, conversation_id: str, title: str) -> None:
        async with self._session_factory() as db:
            conversation = await self._load(db, tenant_id, conversation_id)
            conversation.title = title
            await db.commit()

    async def _load(self, db: AsyncSession, tenant_id: str, conversation_id: str) -> Conversation:
        result = await db.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
        )
        conversation = result.scalars().first()
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation


class SqlUsageSink(UsageSink):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def record_message_usage(
        self,
        tenant_id: str,
        conversation_id: str,
        session_id: Optional[str],
        user_id: Optional[str],
        tokens: Optional[TokenCount],
    ) -> None:
        async with self._session_factory() as db:
            db.add(UsageLog(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                session_id=session_id,
                user_id=user_id,
                type="message",
                input_tokens=tokens.input if tokens else 0,
                output_tokens=tokens.output if tokens else 0,
            ))
            await db.commit()

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
        async with self._session_factory() as db:
            db.add(ApiCallLog(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                api_id=api_id,
                endpoint_id=endpoint_id,
                method=method,
                url=url,
                status_code=status_code,
                duration_ms=duration_ms,
            ))
            await db.commit()
