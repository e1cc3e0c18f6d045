import logging
from typing import Any, Dict, List, Optional, Set

from shopchat.model.chat.chat_response import iso_now
from shopchat.service.socket.channel import BaseChannel

logger = logging.getLogger(__name__)


class ChannelHub:
    """Connected channels and the rooms they joined."""

    def __init__(self):
        self._channels: Dict[str, BaseChannel] = {}
        self._rooms: Dict[str, Set[str]] = {}

    @property
    def count(self) -> int:
        return len(self._channels)

    def add(self, channel: BaseChannel) -> None:
        self._channels[channel.id] = channel

    def remove(self, channel: BaseChannel) -> None:
        self._channels.pop(channel.id, None)
        for room in list(self._rooms):
            self._leave(channel.id, room)

    def join(self, channel: BaseChannel, room_id: str) -> None:
        self._rooms.setdefault(room_id, set()).add(channel.id)

    def leave(self, channel: BaseChannel, room_id: str) -> bool:
        return self._leave(channel.id, room_id)

    def _leave(self, channel_id: str, room_id: str) -> bool:
        members = self._rooms.get(room_id)
        if not members or channel_id not in members:
            return False
        members.discard(channel_id)
        if not members:
            del self._rooms[room_id]
        return True

    def rooms_of(self, channel: BaseChannel) -> List[str]:
        return sorted(room for room, members in self._rooms.items() if channel.id in members)

    async def broadcast(self, event: str, data: Dict[str, Any], exclude: Optional[BaseChannel] = None) -> None:
        for channel in list(self._channels.values()):
            if exclude is not None and channel.id == exclude.id:
                continue
            await channel.emit(event, data)

    def get_stats(self) -> Dict[str, Any]:
        rooms = {room: len(members) for room, members in self._rooms.items()}
        return {
            "connectedClients": self.count,
            "totalRooms": len(rooms),
            "rooms": rooms,
            "timestamp": iso_now(),
        }
