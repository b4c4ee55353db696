"""Domain models for the chat client"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from .constants import FIELD_CONVERSATION_ID, FIELD_ROOM_ID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"


class ChatKind(str, Enum):
    """Private 1:1 conversation or group room"""
    PRIVATE = "private"
    ROOM = "room"

    @property
    def id_field(self) -> str:
        """Wire field carrying the chat id for this kind"""
        return FIELD_CONVERSATION_ID if self is ChatKind.PRIVATE else FIELD_ROOM_ID


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass(frozen=True)
class Identity:
    """The logged-in user (or any directory entry), immutable for a session"""
    id: str
    email: str = ""
    display_name: str = ""
    role: Role = Role.CLIENT

    @property
    def chat_path(self) -> str:
        """Deep link to the chat surface for this user's dashboard"""
        return "/admin/chat" if self.role is Role.ADMIN else "/client/chat"


@dataclass(frozen=True)
class ChatTarget:
    """Addresses one conversation or room"""
    kind: ChatKind
    id: str

    @classmethod
    def private(cls, conversation_id: str) -> "ChatTarget":
        return cls(ChatKind.PRIVATE, conversation_id)

    @classmethod
    def room(cls, room_id: str) -> "ChatTarget":
        return cls(ChatKind.ROOM, room_id)

    @property
    def is_room(self) -> bool:
        return self.kind is ChatKind.ROOM

    def payload(self, **extra) -> dict:
        """Build an outbound payload keyed by conversationId or roomId"""
        return {self.kind.id_field: self.id, **extra}


@dataclass
class Message:
    """A chat message, either server-confirmed (id) or a local placeholder (temp_id)

    Exactly one of conversation_id / room_id is set.
    """
    content: str
    sender_id: str
    sender_name: str = ""
    id: str | None = None
    temp_id: str | None = None
    conversation_id: str | None = None
    room_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    delivery_state: DeliveryState = DeliveryState.SENT

    def __post_init__(self) -> None:
        if (self.conversation_id is None) == (self.room_id is None):
            raise ValueError("Message needs exactly one of conversation_id or room_id")
        if not self.id and not self.temp_id:
            raise ValueError("Message needs an id or a temp_id")

    @property
    def key(self) -> str:
        return self.id or self.temp_id  # type: ignore[return-value]

    @property
    def target(self) -> ChatTarget:
        if self.conversation_id is not None:
            return ChatTarget.private(self.conversation_id)
        return ChatTarget.room(self.room_id)  # type: ignore[arg-type]

    @property
    def is_pending(self) -> bool:
        return self.delivery_state is DeliveryState.PENDING


class MessageLog:
    """Ordered message sequence keyed by id or temp_id

    Append order is arrival order. A placeholder is reconciled by replacing it
    in place with the confirmed message, so a logical message never shows
    up twice.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._entries: OrderedDict[str, Message] = OrderedDict()
        for message in messages or []:
            self.append(message)

    def append(self, message: Message) -> bool:
        """Append a message; returns False if its key is already present"""
        if message.key in self._entries:
            return False
        self._entries[message.key] = message
        return True

    def replace(self, key: str, message: Message) -> bool:
        """Swap the entry at key for message, keeping its position"""
        if key not in self._entries:
            return False
        if key == message.key:
            self._entries[key] = message
            return True
        self._entries = OrderedDict(
            (message.key, message) if k == key else (k, m)
            for k, m in self._entries.items()
        )
        return True

    def reconcile(self, temp_id: str | None, message: Message) -> bool:
        """Merge a server-confirmed message, consuming its placeholder if any

        Returns True when the log changed.
        """
        if message.key in self._entries:
            # Duplicate delivery: the confirmed copy is already here
            return self.remove(temp_id) is not None if temp_id else False
        if temp_id and temp_id in self._entries:
            return self.replace(temp_id, message)
        return self.append(message)

    def remove(self, key: str) -> Message | None:
        return self._entries.pop(key, None)

    def get(self, key: str) -> Message | None:
        return self._entries.get(key)

    def pending(self) -> list[Message]:
        return [m for m in self._entries.values() if m.is_pending]

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"MessageLog({len(self)} messages)"


def _unique(participants: list[Identity]) -> list[Identity]:
    seen: set[str] = set()
    unique: list[Identity] = []
    for participant in participants:
        if participant.id not in seen:
            seen.add(participant.id)
            unique.append(participant)
    return unique


@dataclass
class Conversation:
    """Private 1:1 chat; the id is server-assigned and opaque"""
    id: str
    participants: list[Identity] = field(default_factory=list)
    messages: MessageLog = field(default_factory=MessageLog)
    last_message: Message | None = None

    def __post_init__(self) -> None:
        self.participants = _unique(self.participants)

    @property
    def target(self) -> ChatTarget:
        return ChatTarget.private(self.id)

    def peer(self, own_id: str) -> Identity | None:
        """The participant that is not own_id"""
        return next((p for p in self.participants if p.id != own_id), None)


@dataclass
class Room:
    """Group chat; membership changes only through the server"""
    id: str
    name: str = ""
    description: str = ""
    participants: list[Identity] = field(default_factory=list)
    messages: MessageLog = field(default_factory=MessageLog)

    def __post_init__(self) -> None:
        self.participants = _unique(self.participants)

    @property
    def target(self) -> ChatTarget:
        return ChatTarget.room(self.id)

    def has_participant(self, user_id: str) -> bool:
        return any(p.id == user_id for p in self.participants)


@dataclass
class Notification:
    """Inbox entry raised for a message from someone else"""
    id: str
    chat_id: str
    sender_name: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    read: bool = False


@dataclass
class NotificationPreferences:
    """Persisted as one JSON blob; keys match the dashboard's localStorage format"""
    sound_enabled: bool = True
    browser_notifications_enabled: bool = False
    permission_prompted: bool = False

    def to_dict(self) -> dict:
        return {
            "soundEnabled": self.sound_enabled,
            "browserNotificationsEnabled": self.browser_notifications_enabled,
            "permissionPrompted": self.permission_prompted,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationPreferences":
        return cls(
            sound_enabled=bool(data.get("soundEnabled", True)),
            browser_notifications_enabled=bool(data.get("browserNotificationsEnabled", False)),
            permission_prompted=bool(data.get("permissionPrompted", False)),
        )


@dataclass
class SocketEvent:
    """Event: a frame received from the server"""
    type: str = ""
    payload: Any = None
