import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from apicopilot.api.deps import get_chat_service, get_tenant_id, get_ws_chat_service
from apicopilot.core.exceptions import ConversationNotFoundError
from apicopilot.schemas.chat import ChatRequest, ChatResult, WidgetInitRequest, WidgetInitResponse
from apicopilot.services.chat_service import ChatContext, ChatService
from apicopilot.services.tools.schema import ToolSchema

logger = logging.getLogger(__name__)

router = APIRouter()

INIT_HISTORY_LIMIT = 50
GENERIC_ERROR = "Failed to process message. Please try again."


class WidgetEventSender:
    """
    Sends the widget event stream. Sockets are independent: several may be
    open on one session and each only receives replies to its own messages.
    """

    async def send_typing_start(self, websocket: WebSocket):
        await websocket.send_json({"type": "typing_start"})

    async def send_typing_stop(self, websocket: WebSocket):
        await websocket.send_json({"type": "typing_stop"})

    async def send_message(self, websocket: WebSocket, result: ChatResult):
        await websocket.send_json({
            "type": "message",
            "message": result.message.model_dump(mode="json"),
            "conversation_id": result.conversation_id,
            "tools_executed": len(result.tools_executed or []),
        })

    async def send_error(self, websocket: WebSocket, error: str):
        await websocket.send_json({"type": "error", "error": error})


ws_events = WidgetEventSender()


@router.post("/message", response_model=ChatResult, status_code=status.HTTP_200_OK)
async def send_message(
    request: ChatRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Send an end-user message and get the assistant's reply.

    - **message**: The user's message (1-10000 characters)
    - **session_id**: Widget session; resolves the conversation when no id is given
    - **conversation_id**: Optional existing conversation
    - **user_id**: Optional end-user identifier
    """
    context = ChatContext(
        tenant_id=tenant_id,
        session_id=request.session_id,
        user_id=request.user_id,
        conversation_id=request.conversation_id,
    )
    try:
        return await service.process_message(request.message, context)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception:
        logger.exception(f"Failed to process message for tenant {tenant_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_ERROR,
        )


@router.post("/init", response_model=WidgetInitResponse)
async def init_widget(
    request: WidgetInitRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: ChatService = Depends(get_chat_service),
):
    """Resolve the session's conversation and return its recent messages."""
    conversation = await service.conversations.get_or_create(tenant_id, request.session_id)
    messages = await service.conversations.get_recent_messages(conversation.id, INIT_HISTORY_LIMIT)
    return WidgetInitResponse(conversation=conversation, messages=messages)


@router.get("/tools", response_model=List[Dict[str, Any]])
async def list_tools(
    tenant_id: str = Depends(get_tenant_id),
    service: ChatService = Depends(get_chat_service),
):
    """The tenant's current tool catalog, in OpenAI tools format."""
    tools: List[ToolSchema] = await service.catalog_builder.build(tenant_id)
    return [tool.to_openai_format() for tool in tools]


@router.websocket("/ws")
async def websocket_chat(
    websocket: WebSocket,
    tenant_id: str = Query(..., min_length=1),
    session_id: str = Query(..., min_length=1),
):
    """
    WebSocket endpoint for the embedded widget.

    Send messages as JSON:
    {"message": "...", "conversation_id": "optional", "user_id": "optional"}

    Per message the server emits:
    - {"type": "typing_start"}
    - {"type": "message", ...} or {"type": "error", "error": "..."}
    - {"type": "typing_stop"}
    """
    service = get_ws_chat_service(websocket)
    if service is None:
        await websocket.close(code=1011, reason="Chat engine is not configured")
        return

    await websocket.accept()

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await ws_events.send_error(websocket, "Expected a JSON object")
                continue

            try:
                request = ChatRequest.model_validate({**data, "session_id": session_id})
            except ValidationError:
                await ws_events.send_error(websocket, "Message is required (max 10000 characters)")
                continue

            await ws_events.send_typing_start(websocket)
            try:
                result = await service.process_message(
                    request.message,
                    ChatContext(
                        tenant_id=tenant_id,
                        session_id=session_id,
                        user_id=request.user_id,
                        conversation_id=request.conversation_id,
                    ),
                )
                await ws_events.send_message(websocket, result)
            except ConversationNotFoundError as e:
                await ws_events.send_error(websocket, str(e))
            except Exception:
                logger.exception(f"WebSocket message failed for session {session_id}")
                await ws_events.send_error(websocket, GENERIC_ERROR)
            finally:
                await ws_events.send_typing_stop(websocket)

    except WebSocketDisconnect:
        logger.debug(f"Widget socket disconnected: {session_id}")
