"""Pydantic schemas for socket and Data API payloads

Server entities carry Mongo-style `_id` keys and camelCase field names;
these models accept both `_id` and `id` and convert into the dataclasses in
domain.models.
"""
from datetime import datetime
from typing import Any, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from .errors import MalformedEventError
from .models import ChatTarget, Conversation, DeliveryState, Identity, Message, MessageLog, Role, Room, utcnow

WireModelT = TypeVar("WireModelT", bound="WireModel")


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserPayload(WireModel):
    """A user reference: either a bare id string or a user object"""
    id: str = Field(validation_alias=AliasChoices("_id", "id", "userId"))
    email: str = ""
    display_name: str = Field(default="", validation_alias=AliasChoices("userName", "displayName", "name"))
    role: Role = Role.CLIENT

    @model_validator(mode="before")
    @classmethod
    def accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data

    @field_validator("role", mode="before")
    @classmethod
    def default_unknown_role(cls, value: Any) -> Any:
        return value if value in (Role.ADMIN.value, Role.CLIENT.value) else Role.CLIENT.value

    def to_identity(self) -> Identity:
        return Identity(id=self.id, email=self.email, display_name=self.display_name, role=self.role)


class MessagePayload(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    content: str
    sender: UserPayload
    timestamp: datetime | None = Field(default=None, validation_alias=AliasChoices("timestamp", "createdAt"))

    def to_message(self, target: ChatTarget) -> Message:
        return Message(
            id=self.id,
            content=self.content,
            sender_id=self.sender.id,
            sender_name=self.sender.display_name,
            conversation_id=None if target.is_room else target.id,
            room_id=target.id if target.is_room else None,
            timestamp=self.timestamp or utcnow(),
            delivery_state=DeliveryState.SENT,
        )


class PrivateMessagePayload(WireModel):
    """receive-private-message"""
    conversation_id: str = Field(alias="conversationId")
    message: MessagePayload
    temp_id: str | None = Field(default=None, alias="tempId")

    @property
    def target(self) -> ChatTarget:
        return ChatTarget.private(self.conversation_id)


class RoomMessagePayload(WireModel):
    """receive-room-message"""
    room_id: str = Field(alias="roomId")
    message: MessagePayload
    temp_id: str | None = Field(default=None, alias="tempId")

    @property
    def target(self) -> ChatTarget:
        return ChatTarget.room(self.room_id)


class TypingPayload(WireModel):
    """user-typing / user-stopped-typing"""
    conversation_id: str | None = Field(default=None, alias="conversationId")
    room_id: str | None = Field(default=None, alias="roomId")
    user_id: str = Field(alias="userId")
    user_name: str = Field(default="", alias="userName")

    @model_validator(mode="after")
    def require_chat_id(self) -> "TypingPayload":
        if not self.conversation_id and not self.room_id:
            raise ValueError("typing payload needs conversationId or roomId")
        return self

    @property
    def chat_id(self) -> str:
        return self.conversation_id or self.room_id  # type: ignore[return-value]


class ErrorPayload(WireModel):
    message: str = "Socket error occurred"


class ConversationPayload(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    participants: list[UserPayload] = Field(default_factory=list)
    messages: list[MessagePayload] = Field(default_factory=list)
    last_message: MessagePayload | None = Field(default=None, alias="lastMessage")

    def to_conversation(self) -> Conversation:
        target = ChatTarget.private(self.id)
        return Conversation(
            id=self.id,
            participants=[p.to_identity() for p in self.participants],
            messages=MessageLog([m.to_message(target) for m in self.messages]),
            last_message=self.last_message.to_message(target) if self.last_message else None,
        )


class RoomPayload(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    description: str = ""
    participants: list[UserPayload] = Field(default_factory=list)
    messages: list[MessagePayload] = Field(default_factory=list)

    def to_room(self) -> Room:
        target = ChatTarget.room(self.id)
        return Room(
            id=self.id,
            name=self.name,
            description=self.description,
            participants=[p.to_identity() for p in self.participants],
            messages=MessageLog([m.to_message(target) for m in self.messages]),
        )


online_users_adapter = TypeAdapter(list[str])


def parse_payload(model: type[WireModelT], data: Any) -> WireModelT:
    """Validate data against model, raising MalformedEventError on failure"""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedEventError(f"Invalid {model.__name__}: {e.error_count()} error(s)") from e


def parse_online_users(data: Any) -> list[str]:
    try:
        return online_users_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedEventError("Invalid online-users snapshot") from e
