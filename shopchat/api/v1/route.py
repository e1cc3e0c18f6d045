import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from shopchat.model.conversation.conversation_response import ConversationResponse, MessageItem
from shopchat.service.chat.validators import is_valid_session_id
from shopchat.service.socket.channel import WebSocketChannel

logger = logging.getLogger(__name__)

api_router = APIRouter()


@api_router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    handler = websocket.app.state.socket_handler
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    await handler.on_connect(channel)

    reason = "client disconnect"
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # binary frames carry no "text" and are rejected as malformed
            await handler.dispatch_raw(channel, message.get("text"))
    except WebSocketDisconnect as exc:
        reason = f"code={exc.code}"
    finally:
        channel.closed = True
        await handler.on_disconnect(channel, reason)


@api_router.get("/conversations/{session_id}", response_model=ConversationResponse)
async def get_conversation(session_id: str, request: Request):
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=422, detail="Session ID không hợp lệ.")

    record = await request.app.state.conversation_store.load_conversation(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Không tìm thấy cuộc trò chuyện.")

    return ConversationResponse(
        session_id=record.session_id,
        message_count=record.message_count,
        messages=[MessageItem(role=t.role, content=t.content) for t in record.turns],
    )


@api_router.get("/stats")
async def socket_stats(request: Request):
    return request.app.state.socket_handler.hub.get_stats()
