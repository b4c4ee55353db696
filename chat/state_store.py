"""Authoritative in-memory state for the open chat and the sidebar summaries"""
import asyncio
import dataclasses
import logging
from typing import Callable

from dataapi.client import ChatAPI
from domain.errors import ChatError, DataAPIError
from domain.models import ChatKind, ChatTarget, Conversation, DeliveryState, Identity, Message, Room

logger = logging.getLogger(__name__)

ActiveChat = Conversation | Room
StoreListener = Callable[["ChatStateStore"], None]


class ChatStateStore:
    """Single writer for chat state

    Holds exactly one active chat (conversation or room) with its ordered
    message log, plus the summary lists used for the sidebar. Every message
    mutation goes through a method here; other components never touch the
    MessageLog directly.
    """

    def __init__(self, api: ChatAPI) -> None:
        self.api = api
        self.identity: Identity | None = None
        self.conversations: list[Conversation] = []
        self.rooms: list[Room] = []
        self.directory: list[Identity] = []
        self.directory_loaded = False
        self._active: ActiveChat | None = None
        self._listeners: list[StoreListener] = []

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def current(self) -> ActiveChat | None:
        return self._active

    @property
    def active_target(self) -> ChatTarget | None:
        return self._active.target if self._active is not None else None

    @property
    def active_chat_id(self) -> str | None:
        return self._active.id if self._active is not None else None

    # Selection

    async def select(self, target: ChatTarget) -> ActiveChat:
        """Fetch the chat behind target and make it the active one"""
        if target.kind is ChatKind.ROOM:
            chat: ActiveChat = await self.api.get_room(target.id)
        else:
            summary = self._find(self.conversations, target.id)
            if summary is None:
                raise ChatError(f"Unknown conversation {target.id}")
            peer = summary.peer(self.identity.id) if self.identity else None
            if peer is None:
                raise ChatError(f"Conversation {target.id} has no peer")
            chat = await self.api.conversation_with(peer.id)
        return self.activate(chat)

    def activate(self, chat: ActiveChat) -> ActiveChat:
        """Make chat the active one, superseding whatever was open"""
        self._active = chat
        logger.info("Active chat is now %s %s", chat.target.kind.value, chat.id)
        self._notify()
        return chat

    def clear_selection(self) -> None:
        if self._active is not None:
            self._active = None
            self._notify()

    def reset(self) -> None:
        """Forget everything (logout)"""
        self.identity = None
        self.conversations = []
        self.rooms = []
        self.directory = []
        self.directory_loaded = False
        self._active = None
        self._notify()

    # Message mutations

    def add_pending(self, message: Message) -> bool:
        """Append an optimistic placeholder to the active chat"""
        chat = self._active_for(message.target)
        if chat is None or not chat.messages.append(message):
            return False
        self._notify()
        return True

    def reconcile(self, target: ChatTarget, message: Message, temp_id: str | None = None) -> bool:
        """Merge a server-confirmed message into the active chat and summaries"""
        changed = False
        if target.kind is ChatKind.PRIVATE:
            summary = self._find(self.conversations, target.id)
            if summary is not None:
                summary.last_message = message
                changed = True
        chat = self._active_for(target)
        if chat is not None and chat.messages.reconcile(temp_id, message):
            changed = True
        if changed:
            self._notify()
        return changed

    def discard_pending(self, target: ChatTarget, temp_id: str) -> Message | None:
        chat = self._active_for(target)
        removed = chat.messages.remove(temp_id) if chat is not None else None
        if removed is not None:
            self._notify()
        return removed

    def get_message(self, target: ChatTarget, key: str) -> Message | None:
        chat = self._active_for(target)
        return chat.messages.get(key) if chat is not None else None

    def set_delivery_state(self, target: ChatTarget, temp_id: str, state: DeliveryState) -> Message | None:
        """Move a placeholder between pending and failed"""
        chat = self._active_for(target)
        message = chat.messages.get(temp_id) if chat is not None else None
        if message is None or message.id is not None:
            return None
        updated = dataclasses.replace(message, delivery_state=state)
        chat.messages.replace(temp_id, updated)
        self._notify()
        return updated

    # Server pushes

    def update_from_server(self, patch: ActiveChat) -> bool:
        """Replace the sidebar summary with the same id; the open chat is untouched"""
        summaries: list = self.rooms if isinstance(patch, Room) else self.conversations
        for index, existing in enumerate(summaries):
            if existing.id == patch.id:
                summaries[index] = patch
                self._notify()
                return True
        return False

    # Data API backed operations

    async def refresh(self) -> None:
        """Reload conversation and room summaries; failures leave an empty list"""
        conversations, rooms = await asyncio.gather(
            self.api.list_conversations(),
            self.api.list_rooms(),
            return_exceptions=True,
        )
        if isinstance(conversations, BaseException):
            logger.error("Failed to load conversations: %s", conversations)
            self.conversations = []
        else:
            self.conversations = conversations
        if isinstance(rooms, BaseException):
            logger.error("Failed to load rooms: %s", rooms)
            self.rooms = []
        else:
            self.rooms = rooms
        self._notify()

    async def load_directory(self) -> list[Identity]:
        """Load the user directory, falling back to clients + admins"""
        try:
            users = await self.api.list_users()
        except DataAPIError as e:
            logger.warning("All-users lookup failed, falling back: %s", e)
            users = []
        if not users:
            clients, admins = await asyncio.gather(
                self.api.list_clients(),
                self.api.list_admins(),
                return_exceptions=True,
            )
            for result in (clients, admins):
                if isinstance(result, BaseException):
                    logger.error("Failed to load user data: %s", result)
                else:
                    users.extend(result)
        self.directory = users
        self.directory_loaded = True
        self._notify()
        return users

    async def start_conversation(self, user_id: str) -> Conversation:
        if self.identity is None:
            raise ChatError("User not authenticated")
        if not user_id or user_id == self.identity.id:
            raise ValueError("Invalid target user")
        if not self.directory_loaded:
            await self.load_directory()
        conversation = await self.api.conversation_with(user_id)
        self.activate(conversation)
        await self.refresh()
        return conversation

    async def create_room(self, name: str, description: str = "") -> ActiveChat:
        if not name.strip():
            raise ValueError("Room name is required")
        room = await self.api.create_room(name.strip(), description.strip())
        await self.refresh()
        return await self.select(room.target)

    async def join_room(self, room_id: str) -> None:
        """Join via the Data API; membership shows up only after the refresh"""
        await self.api.join_room(room_id)
        await self.refresh()
        if isinstance(self._active, Room) and self._active.id == room_id:
            await self.select(ChatTarget.room(room_id))

    async def leave_room(self, room_id: str) -> None:
        await self.api.leave_room(room_id)
        await self.refresh()
        if isinstance(self._active, Room) and self._active.id == room_id:
            self.clear_selection()

    def _active_for(self, target: ChatTarget) -> ActiveChat | None:
        if self._active is not None and self._active.target == target:
            return self._active
        return None

    @staticmethod
    def _find(summaries: list, chat_id: str):
        return next((s for s in summaries if s.id == chat_id), None)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Chat state listener failed")
