"""Sending and receiving chat messages with optimistic local echo"""
import asyncio
import logging
import secrets
import time
from typing import Any

from domain.constants import (
    ERROR_NOT_CONNECTED,
    EVENT_JOIN_CONVERSATION,
    EVENT_JOIN_ROOM,
    EVENT_LEAVE_CONVERSATION,
    EVENT_LEAVE_ROOM,
    EVENT_MARK_MESSAGES_READ,
    EVENT_SEND_PRIVATE_MESSAGE,
    EVENT_SEND_ROOM_MESSAGE,
    EVENT_TYPING_START,
    EVENT_TYPING_STOP,
    FIELD_TEMP_ID,
    TYPING_IDLE_SECONDS,
)
from domain.errors import NotConnectedError, SendFailedError, UnknownMessageError
from domain.models import ChatTarget, DeliveryState, Message
from realtime.clock import Clock, LoopClock, TimerHandle
from realtime.connection_manager import ConnectionManager
from realtime.expiry import ExpiryScheduler
from .state_store import ChatStateStore

logger = logging.getLogger(__name__)


def new_temp_id() -> str:
    """Locally unique placeholder id: epoch millis plus a random suffix"""
    return f"temp-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class MessageChannel:
    """Emits chat events through the connection and reconciles echoes

    A sent message is shown immediately as a pending placeholder keyed by
    its temp id. The server echo carrying the same temp id replaces it. If
    no echo arrives within send_timeout the placeholder is marked failed
    so the UI can offer retry() or discard().
    """

    def __init__(
        self,
        connection: ConnectionManager,
        store: ChatStateStore,
        *,
        clock: Clock | None = None,
        send_timeout: float = 15.0,
        typing_idle: float = TYPING_IDLE_SECONDS,
    ) -> None:
        self.connection = connection
        self.store = store
        self.clock = clock or LoopClock()
        self.send_timeout = send_timeout
        self.typing_idle = typing_idle
        self._in_flight: dict[str, ChatTarget] = {}
        self._timeouts: ExpiryScheduler[str] = ExpiryScheduler(self.clock, self._on_send_timeout)
        self._typing_timers: dict[ChatTarget, TimerHandle] = {}
        self._background: set[asyncio.Task] = set()

    async def send(self, target: ChatTarget, content: str) -> Message:
        """Optimistically add a placeholder and emit it; returns the placeholder

        Raises NotConnectedError (nothing added) or SendFailedError
        (placeholder removed), both carrying content for the input field.
        """
        if not content.strip():
            raise ValueError("Message content is empty")
        identity = self.connection.identity
        if identity is None or not self.connection.is_connected:
            logger.warning("Cannot send message - socket not connected")
            raise NotConnectedError(ERROR_NOT_CONNECTED, content=content)

        temp_id = new_temp_id()
        placeholder = Message(
            temp_id=temp_id,
            content=content,
            sender_id=identity.id,
            sender_name=identity.display_name,
            conversation_id=None if target.is_room else target.id,
            room_id=target.id if target.is_room else None,
            delivery_state=DeliveryState.PENDING,
        )
        self.store.add_pending(placeholder)
        try:
            await self._emit_message(target, content, temp_id)
        except (NotConnectedError, SendFailedError) as e:
            self.store.discard_pending(target, temp_id)
            e.content = content
            raise
        self._track(temp_id, target)
        return placeholder

    async def retry(self, target: ChatTarget, temp_id: str) -> Message:
        """Re-emit a failed placeholder under the same temp id"""
        message = self.store.get_message(target, temp_id)
        if message is None or message.id is not None:
            raise UnknownMessageError(f"No unconfirmed message {temp_id}")
        if not self.connection.is_connected:
            raise NotConnectedError(ERROR_NOT_CONNECTED, content=message.content)
        pending = self.store.set_delivery_state(target, temp_id, DeliveryState.PENDING)
        try:
            await self._emit_message(target, message.content, temp_id)
        except (NotConnectedError, SendFailedError) as e:
            self.store.set_delivery_state(target, temp_id, DeliveryState.FAILED)
            e.content = message.content
            raise
        self._track(temp_id, target)
        return pending or message

    def discard(self, target: ChatTarget, temp_id: str) -> Message | None:
        """Drop a placeholder the user gave up on"""
        self._untrack(temp_id)
        return self.store.discard_pending(target, temp_id)

    def receive(self, target: ChatTarget, message: Message, temp_id: str | None = None) -> bool:
        """Merge an inbound message, consuming the matching placeholder"""
        if temp_id:
            self._untrack(temp_id)
        return self.store.reconcile(target, message, temp_id)

    @property
    def in_flight(self) -> dict[str, ChatTarget]:
        return dict(self._in_flight)

    async def typing(self, target: ChatTarget) -> None:
        """Signal a keystroke: typing-start now, typing-stop after typing_idle of quiet"""
        self._cancel_typing_timer(target)
        await self._emit_quietly(EVENT_TYPING_START, target.payload())
        self._typing_timers[target] = self.clock.call_later(self.typing_idle, self._typing_went_idle, target)

    async def stop_typing(self, target: ChatTarget) -> None:
        self._cancel_typing_timer(target)
        await self._emit_quietly(EVENT_TYPING_STOP, target.payload())

    async def mark_read(self, target: ChatTarget) -> bool:
        return await self._emit_quietly(EVENT_MARK_MESSAGES_READ, target.payload())

    async def join(self, target: ChatTarget) -> bool:
        event = EVENT_JOIN_ROOM if target.is_room else EVENT_JOIN_CONVERSATION
        return await self._emit_quietly(event, target.payload())

    async def leave(self, target: ChatTarget) -> bool:
        event = EVENT_LEAVE_ROOM if target.is_room else EVENT_LEAVE_CONVERSATION
        return await self._emit_quietly(event, target.payload())

    def reset(self) -> None:
        self._in_flight.clear()
        self._timeouts.clear()
        for target in list(self._typing_timers):
            self._cancel_typing_timer(target)

    async def _emit_message(self, target: ChatTarget, content: str, temp_id: str) -> None:
        event = EVENT_SEND_ROOM_MESSAGE if target.is_room else EVENT_SEND_PRIVATE_MESSAGE
        logger.debug("Sending %s to %s", event, target.id)
        await self.connection.emit(event, target.payload(content=content, **{FIELD_TEMP_ID: temp_id}))

    async def _emit_quietly(self, event: str, data: Any) -> bool:
        """Emit a best-effort event; skipped while disconnected"""
        if not self.connection.is_connected:
            return False
        try:
            await self.connection.emit(event, data)
        except (NotConnectedError, SendFailedError) as e:
            logger.warning("Could not emit %s: %s", event, e)
            return False
        return True

    def _track(self, temp_id: str, target: ChatTarget) -> None:
        self._in_flight[temp_id] = target
        self._timeouts.arm(temp_id, self.send_timeout)

    def _untrack(self, temp_id: str) -> None:
        self._in_flight.pop(temp_id, None)
        self._timeouts.cancel(temp_id)

    def _on_send_timeout(self, temp_id: str) -> None:
        target = self._in_flight.pop(temp_id, None)
        if target is None:
            return
        logger.warning("No server echo for %s after %.1fs, marking failed", temp_id, self.send_timeout)
        self.store.set_delivery_state(target, temp_id, DeliveryState.FAILED)

    def _cancel_typing_timer(self, target: ChatTarget) -> None:
        timer = self._typing_timers.pop(target, None)
        if timer is not None:
            timer.cancel()

    def _typing_went_idle(self, target: ChatTarget) -> None:
        self._typing_timers.pop(target, None)
        task = asyncio.create_task(self._emit_quietly(EVENT_TYPING_STOP, target.payload()))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
