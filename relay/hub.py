"""Socket bookkeeping for the development relay: who is connected, who joined what"""
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from domain.constants import EVENT_ONLINE_USERS
from realtime.transport import encode_frame

logger = logging.getLogger(__name__)


class RelayHub:
    """Tracks sockets per user and channel membership, and fans out frames"""

    def __init__(self) -> None:
        self.user_sockets: dict[str, list[WebSocket]] = defaultdict(list)
        self.socket_users: dict[WebSocket, str] = {}
        self.channels: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        """Accept and track a socket, then announce the new online set"""
        await websocket.accept()
        self.user_sockets[user_id].append(websocket)
        self.socket_users[websocket] = user_id
        logger.info("User %s connected. Total sockets: %d", user_id, self.get_connection_count())
        await self.broadcast_online_users()

    async def disconnect(self, websocket: WebSocket) -> None:
        user_id = self._forget(websocket)
        if user_id is not None:
            logger.info("User %s disconnected. Total sockets: %d", user_id, self.get_connection_count())
            await self.broadcast_online_users()

    def join(self, channel: str, websocket: WebSocket) -> None:
        self.channels[channel].add(websocket)

    def leave(self, channel: str, websocket: WebSocket) -> None:
        members = self.channels.get(channel)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.channels[channel]

    def online_user_ids(self) -> list[str]:
        return sorted(self.user_sockets)

    def get_connection_count(self) -> int:
        return len(self.socket_users)

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Send one frame; a dead socket is dropped and False returned"""
        try:
            await websocket.send_text(encode_frame(event, data))
        except Exception as e:
            logger.warning("Error sending %s to client: %s", event, e)
            self._forget(websocket)
            return False
        return True

    async def send_to_user(self, user_id: str, event: str, data: Any) -> None:
        for websocket in list(self.user_sockets.get(user_id, [])):
            await self.send(websocket, event, data)

    async def broadcast(self, event: str, data: Any) -> None:
        for websocket in list(self.socket_users):
            await self.send(websocket, event, data)

    async def broadcast_channel(self, channel: str, event: str, data: Any, exclude_user: str | None = None) -> None:
        """Send to every socket in channel except those belonging to exclude_user"""
        for websocket in list(self.channels.get(channel, ())):
            if exclude_user is not None and self.socket_users.get(websocket) == exclude_user:
                continue
            await self.send(websocket, event, data)

    async def broadcast_online_users(self) -> None:
        await self.broadcast(EVENT_ONLINE_USERS, self.online_user_ids())

    def _forget(self, websocket: WebSocket) -> str | None:
        user_id = self.socket_users.pop(websocket, None)
        if user_id is None:
            return None
        sockets = self.user_sockets.get(user_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self.user_sockets.pop(user_id, None)
        for channel in list(self.channels):
            self.leave(channel, websocket)
        return user_id
