import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

from shopchat.model.chat.chat_request import ClientInfo

logger = logging.getLogger(__name__)


class BaseChannel(ABC):
    """One connected client; outbound events are ``(name, payload)`` pairs."""

    id: str
    client_info: ClientInfo

    @abstractmethod
    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        """Send an event; returns False when the client is already gone."""


class WebSocketChannel(BaseChannel):
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid.uuid4().hex
        client = websocket.client
        self.client_info = ClientInfo(
            user_agent=websocket.headers.get("user-agent"),
            ip_address=client.host if client else None,
        )
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        if self.closed:
            logger.debug("dropping %s for closed channel=%s", event, self.id)
            return False
        try:
            async with self._send_lock:
                await self.websocket.send_json({"event": event, "data": data})
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self.closed = True
            logger.info("channel=%s gone while sending %s: %s", self.id, event, exc)
            return False
