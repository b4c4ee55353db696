"""Event consuming and handling for inbound socket events"""
import asyncio
import logging

from chat.message_channel import MessageChannel
from chat.state_store import ChatStateStore
from domain.constants import (
    EVENT_CONVERSATION_UPDATED,
    EVENT_ERROR,
    EVENT_ONLINE_USERS,
    EVENT_RECEIVE_PRIVATE_MESSAGE,
    EVENT_RECEIVE_ROOM_MESSAGE,
    EVENT_ROOM_UPDATED,
    EVENT_USER_STOPPED_TYPING,
    EVENT_USER_TYPING,
)
from domain.errors import MalformedEventError
from domain.models import Notification
from domain.payloads import (
    ConversationPayload,
    ErrorPayload,
    PrivateMessagePayload,
    RoomMessagePayload,
    RoomPayload,
    TypingPayload,
    parse_online_users,
    parse_payload,
)
from notifications.bridge import NotificationBridge
from realtime.connection_manager import ConnectionManager
from realtime.presence import PresenceTracker

logger = logging.getLogger(__name__)


class EventConsumer:
    """Consumes socket events from the queue and routes them, one at a time"""

    def __init__(
        self,
        queue: asyncio.Queue[dict],
        connection: ConnectionManager,
        channel: MessageChannel,
        store: ChatStateStore,
        presence: PresenceTracker,
        notifications: NotificationBridge | None = None,
    ) -> None:
        self.queue = queue
        self.connection = connection
        self.channel = channel
        self.store = store
        self.presence = presence
        self.notifications = notifications

    async def consume(self) -> None:
        """Continuously consume and process events"""
        while True:
            event = await self.queue.get()
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Error handling %s event", event.get("type"))
            finally:
                self.queue.task_done()

    async def handle_event(self, event: dict) -> None:
        """Route event to appropriate handler; malformed payloads are dropped"""
        event_type: str = event.get("type", "")
        payload = event.get("payload")

        try:
            if event_type == EVENT_RECEIVE_PRIVATE_MESSAGE:
                self.handle_private_message(payload)
            elif event_type == EVENT_RECEIVE_ROOM_MESSAGE:
                self.handle_room_message(payload)
            elif event_type == EVENT_CONVERSATION_UPDATED:
                self.handle_conversation_updated(payload)
            elif event_type == EVENT_ROOM_UPDATED:
                self.handle_room_updated(payload)
            elif event_type == EVENT_ONLINE_USERS:
                self.handle_online_users(payload)
            elif event_type == EVENT_USER_TYPING:
                self.handle_user_typing(payload)
            elif event_type == EVENT_USER_STOPPED_TYPING:
                self.handle_user_stopped_typing(payload)
            elif event_type == EVENT_ERROR:
                self.handle_error(payload)
            else:
                logger.debug("Ignoring unknown event %s", event_type)
        except MalformedEventError as e:
            logger.warning("Dropping malformed %s event: %s", event_type, e)

    def handle_private_message(self, payload) -> None:
        data = parse_payload(PrivateMessagePayload, payload)
        message = data.message.to_message(data.target)
        self.channel.receive(data.target, message, data.temp_id)
        self._notify_incoming(data.conversation_id, message)

    def handle_room_message(self, payload) -> None:
        data = parse_payload(RoomMessagePayload, payload)
        message = data.message.to_message(data.target)
        self.channel.receive(data.target, message, data.temp_id)
        self._notify_incoming(data.room_id, message)

    def handle_conversation_updated(self, payload) -> None:
        self.store.update_from_server(parse_payload(ConversationPayload, payload).to_conversation())

    def handle_room_updated(self, payload) -> None:
        self.store.update_from_server(parse_payload(RoomPayload, payload).to_room())

    def handle_online_users(self, payload) -> None:
        self.presence.replace_online_users(parse_online_users(payload))

    def handle_user_typing(self, payload) -> None:
        data = parse_payload(TypingPayload, payload)
        self.presence.user_typing(data.chat_id, data.user_id, data.user_name)

    def handle_user_stopped_typing(self, payload) -> None:
        data = parse_payload(TypingPayload, payload)
        self.presence.user_stopped_typing(data.chat_id, data.user_id)

    def handle_error(self, payload) -> None:
        self.connection.report_error(parse_payload(ErrorPayload, payload or {}).message)

    def _notify_incoming(self, chat_id: str, message) -> None:
        # Own echoes never raise a notification
        identity = self.connection.identity
        if self.notifications is None or (identity is not None and message.sender_id == identity.id):
            return
        self.notifications.notify(
            Notification(
                id=message.key,
                chat_id=chat_id,
                sender_name=message.sender_name or "Unknown",
                content=message.content,
                created_at=message.timestamp,
            )
        )
