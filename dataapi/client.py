"""Async client for the dashboard's REST Data API (chat endpoints only)"""
import asyncio
import logging
from typing import Any, TypeVar

import aiohttp

from domain.errors import DataAPIError, MalformedEventError
from domain.models import Conversation, Identity, Room
from domain.payloads import ConversationPayload, RoomPayload, UserPayload, WireModel, parse_payload

logger = logging.getLogger(__name__)

WireModelT = TypeVar("WireModelT", bound=WireModel)


class ChatAPI:
    """Bearer-authenticated JSON calls against the Data API

    Every failure (transport error, timeout, non-2xx status, unexpected
    body) is raised as DataAPIError.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 20.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        logger.debug("Data API %s %s", method, url)
        try:
            async with self._get_session().request(method, url, json=payload, headers=headers) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if response.status >= 400:
                    detail = body.get("message") if isinstance(body, dict) else None
                    raise DataAPIError(f"{method} {path} failed: {detail or response.reason}", status=response.status)
        except aiohttp.ClientError as e:
            raise DataAPIError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise DataAPIError(f"{method} {path} timed out") from e
        return body if isinstance(body, dict) else {}

    async def list_conversations(self) -> list[Conversation]:
        body = await self.request("GET", "/chat/conversations")
        return [p.to_conversation() for p in _parse_many(ConversationPayload, body.get("conversations"))]

    async def list_rooms(self) -> list[Room]:
        body = await self.request("GET", "/chat/rooms")
        rooms = body.get("chatRooms") or body.get("rooms")
        return [p.to_room() for p in _parse_many(RoomPayload, rooms)]

    async def conversation_with(self, user_id: str) -> Conversation:
        """Fetch the conversation with user_id, created server-side on first contact"""
        body = await self.request("GET", f"/chat/conversations/{user_id}")
        return _parse_one(ConversationPayload, body.get("conversation")).to_conversation()

    async def get_room(self, room_id: str) -> Room:
        body = await self.request("GET", f"/chat/rooms/{room_id}")
        return _parse_one(RoomPayload, body.get("chatRoom")).to_room()

    async def create_room(self, name: str, description: str = "") -> Room:
        body = await self.request("POST", "/chat/rooms", {"name": name, "description": description})
        return _parse_one(RoomPayload, body.get("chatRoom")).to_room()

    async def join_room(self, room_id: str) -> None:
        await self.request("POST", f"/chat/rooms/{room_id}/join")

    async def leave_room(self, room_id: str) -> None:
        await self.request("POST", f"/chat/rooms/{room_id}/leave")

    async def list_users(self) -> list[Identity]:
        return await self._users("/get-all-users")

    async def list_clients(self) -> list[Identity]:
        return await self._users("/get-clients")

    async def list_admins(self) -> list[Identity]:
        return await self._users("/get-admin")

    async def _users(self, path: str) -> list[Identity]:
        body = await self.request("GET", path)
        return [p.to_identity() for p in _parse_many(UserPayload, body.get("users"))]


def _parse_one(model: type[WireModelT], data: Any) -> WireModelT:
    if data is None:
        raise DataAPIError(f"Response is missing a {model.__name__}")
    try:
        return parse_payload(model, data)
    except MalformedEventError as e:
        raise DataAPIError(str(e)) from e


def _parse_many(model: type[WireModelT], data: Any) -> list[WireModelT]:
    if not data:
        return []
    if not isinstance(data, list):
        raise DataAPIError(f"Expected a list of {model.__name__}")
    return [_parse_one(model, item) for item in data]
