"""Event dispatch for chat channels.

Inbound frames are ``{"event": name, "data": payload}``. ``sendMessage``
turns are queued per channel and run one at a time by that channel's
worker, so ``ping``, typing and room events are answered while a turn is
still in flight. Closing a channel does not cancel a turn that already
started; queued turns still run and their replies are dropped.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import shopchat.config.config as configs
from shopchat.model.chat.chat_response import ErrorEvent, iso_now
from shopchat.service.chat.chat import PipelineOrchestrator
from shopchat.service.socket.channel import BaseChannel
from shopchat.service.socket.hub import ChannelHub

logger = logging.getLogger(__name__)

_STOP = object()


def _room_id(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        data = data.get("roomId")
    if isinstance(data, str) and data.strip():
        return data.strip()
    return None


class ChatSocketHandler:
    def __init__(self, orchestrator: PipelineOrchestrator, hub: Optional[ChannelHub] = None):
        self.orchestrator = orchestrator
        self.hub = hub or ChannelHub()
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}

    async def on_connect(self, channel: BaseChannel) -> None:
        self.hub.add(channel)
        logger.info("channel connected id=%s ip=%s total=%s", channel.id, channel.client_info.ip_address, self.hub.count)

        # one slot above the turn limit is kept for the stop marker
        queue: asyncio.Queue = asyncio.Queue(maxsize=configs.MAX_QUEUED_MESSAGES + 1)
        self._queues[channel.id] = queue
        self._workers[channel.id] = asyncio.create_task(self._run_worker(channel, queue))

        await channel.emit(
            "welcome",
            {
                "message": "Connected to shopchat",
                "socketId": channel.id,
                "timestamp": iso_now(),
                "serverInfo": {"version": configs.SERVER_VERSION, "environment": configs.APP_ENV},
            },
        )
        await self.hub.broadcast("userCount", {"count": self.hub.count}, exclude=channel)

    async def on_disconnect(self, channel: BaseChannel, reason: str = "") -> None:
        self.hub.remove(channel)
        queue = self._queues.pop(channel.id, None)
        if queue is not None:
            queue.put_nowait(_STOP)
        logger.info("channel disconnected id=%s reason=%s total=%s", channel.id, reason, self.hub.count)
        await self.hub.broadcast("userCount", {"count": self.hub.count})

    async def _run_worker(self, channel: BaseChannel, queue: asyncio.Queue) -> None:
        try:
            while True:
                data = await queue.get()
                if data is _STOP:
                    break
                await self.orchestrator.handle_send_message(channel, data)
        finally:
            self._workers.pop(channel.id, None)

    async def dispatch_raw(self, channel: BaseChannel, raw: Optional[str]) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            frame = None
        await self.dispatch(channel, frame)

    async def dispatch(self, channel: BaseChannel, frame: Any) -> None:
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self._error(channel, "VALIDATION_ERROR", "Khung dữ liệu không hợp lệ.")
            return

        event = frame["event"]
        data = frame.get("data")

        if event == "sendMessage":
            queue = self._queues.get(channel.id)
            if queue is None:
                logger.warning("sendMessage on unregistered channel=%s", channel.id)
                return
            if queue.qsize() >= configs.MAX_QUEUED_MESSAGES:
                logger.warning("channel=%s has %s queued turns, dropping sendMessage", channel.id, queue.qsize())
                await self._error(channel, "TOO_MANY_MESSAGES", "Bạn gửi quá nhiều tin nhắn. Vui lòng chờ phản hồi.")
                return
            queue.put_nowait(data)
        elif event == "ping":
            await channel.emit("pong", {"timestamp": iso_now()})
        elif event == "joinRoom":
            await self._join_room(channel, data)
        elif event == "leaveRoom":
            await self._leave_room(channel, data)
        elif event in ("typing", "stopTyping"):
            await self._typing(channel, event, data)
        else:
            await self._error(channel, "VALIDATION_ERROR", f"Sự kiện không được hỗ trợ: {event}")

    async def _join_room(self, channel: BaseChannel, data: Any) -> None:
        room_id = _room_id(data)
        if room_id is None:
            await self._error(channel, "INVALID_ROOM", "Room ID không hợp lệ.")
            return
        self.hub.join(channel, room_id)
        logger.debug("channel=%s joined room=%s", channel.id, room_id)
        await channel.emit("roomJoined", {"roomId": room_id, "timestamp": iso_now()})

    async def _leave_room(self, channel: BaseChannel, data: Any) -> None:
        room_id = _room_id(data)
        if room_id is None:
            return
        self.hub.leave(channel, room_id)
        await channel.emit("roomLeft", {"roomId": room_id, "timestamp": iso_now()})

    async def _typing(self, channel: BaseChannel, event: str, data: Any) -> None:
        if not isinstance(data, dict) or not data.get("sessionId"):
            return
        outbound = "userTyping" if event == "typing" else "userStoppedTyping"
        await self.hub.broadcast(
            outbound,
            {"sessionId": data["sessionId"], "socketId": channel.id, "timestamp": iso_now()},
            exclude=channel,
        )

    async def _error(self, channel: BaseChannel, error_type: str, message: str) -> None:
        await channel.emit("error", ErrorEvent(type=error_type, message=message).payload())

    async def shutdown(self) -> None:
        await self.hub.broadcast(
            "serverShutdown",
            {"message": "Server đang bảo trì. Vui lòng kết nối lại sau.", "timestamp": iso_now()},
        )
        for queue in self._queues.values():
            queue.put_nowait(_STOP)
        self._queues.clear()
        workers = list(self._workers.values())
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        await self.orchestrator.wait_for_background()
