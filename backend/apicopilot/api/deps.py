from fastapi import Header, HTTPException, Request, WebSocket, status

from apicopilot.services.chat_service import ChatService


async def get_tenant_id(
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", min_length=1)
) -> str:
    """
    Tenant of the calling widget.

    Authentication happens upstream: the gateway validates the widget API key
    and forwards the resolved tenant id in this header.
    """
    return x_tenant_id


def _chat_service_from_state(state) -> ChatService | None:
    return getattr(state, "chat_service", None)


def get_chat_service(request: Request) -> ChatService:
    service = _chat_service_from_state(request.app.state)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat engine is not configured",
        )
    return service


def get_ws_chat_service(websocket: WebSocket) -> ChatService | None:
    return _chat_service_from_state(websocket.app.state)
