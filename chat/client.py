"""Process-wide chat service: wires the connection, stores and notifications together"""
import asyncio
import contextlib
import functools
import logging

from dataapi.client import ChatAPI
from domain.errors import ChatError
from domain.models import ChatTarget, ConnectionState, Conversation, Identity, Message
from domain.settings import ChatSettings
from events.consumer import EventConsumer
from events.publisher import EventPublisher
from notifications.bridge import DeepLinkHandler, NotificationBridge, NotificationPlatform, SoundSink
from realtime.clock import Clock, LoopClock, TimerHandle
from realtime.connection_manager import ConnectionManager
from realtime.presence import PresenceTracker
from realtime.reconnect import BackoffPolicy
from realtime.transport import TransportFactory, open_websocket
from storage.client_storage import ClientStorage
from .message_channel import MessageChannel
from .state_store import ActiveChat, ChatStateStore

logger = logging.getLogger(__name__)


class ChatClient:
    """The single chat service object a UI talks to

    Usage:
        async with ChatClient(settings) as chat:
            await chat.login(identity, token)
            await chat.select(ChatTarget.room("r1"))
            await chat.send("hello")
    """

    def __init__(
        self,
        settings: ChatSettings | None = None,
        *,
        clock: Clock | None = None,
        transport_factory: TransportFactory | None = None,
        api: ChatAPI | None = None,
        storage: ClientStorage | None = None,
        platform: NotificationPlatform | None = None,
        sound_sink: SoundSink | None = None,
        on_deep_link: DeepLinkHandler | None = None,
    ) -> None:
        self.settings = settings or ChatSettings()
        self.clock = clock or LoopClock()
        self.queue: asyncio.Queue[dict] = asyncio.Queue()
        self.publisher = EventPublisher(self.queue)
        self.storage = storage or ClientStorage(self.settings.storage_path)
        self.api = api or ChatAPI(self.settings.api_base_url, timeout=self.settings.connect_timeout)
        self.connection = ConnectionManager(
            transport_factory or functools.partial(open_websocket, timeout=self.settings.connect_timeout),
            self.publisher,
            url=self.settings.server_url,
            clock=self.clock,
            policy=BackoffPolicy(
                base_delay=self.settings.reconnect_base_delay,
                max_delay=self.settings.reconnect_max_delay,
                max_attempts=self.settings.max_reconnect_attempts,
            ),
        )
        self.store = ChatStateStore(self.api)
        self.presence = PresenceTracker(
            self.clock,
            typing_expiry=self.settings.typing_expiry,
            active_chat=lambda: self.store.active_chat_id,
        )
        self.channel = MessageChannel(
            self.connection,
            self.store,
            clock=self.clock,
            send_timeout=self.settings.send_timeout,
            typing_idle=self.settings.typing_idle,
        )
        self.notifications = NotificationBridge(
            self.storage,
            platform,
            clock=self.clock,
            sound_sink=sound_sink,
            on_deep_link=on_deep_link,
            preview_length=self.settings.notification_preview_length,
            auto_close=self.settings.notification_auto_close,
        )
        self.consumer = EventConsumer(
            self.queue, self.connection, self.channel, self.store, self.presence, self.notifications
        )
        self.initial_load_done = False
        self._consumer_task: asyncio.Task | None = None
        self._last_state = self.connection.state
        self._refresh_timer: TimerHandle | None = None
        self._refresh_task: asyncio.Task | None = None
        self._rejoin_task: asyncio.Task | None = None
        self.connection.subscribe(self._on_connection_change)

    async def __aenter__(self) -> "ChatClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Open storage, load notification preferences and start consuming events"""
        await self.storage.init()
        await self.notifications.initialize()
        self._consumer_task = asyncio.create_task(self.consumer.consume())
        logger.info("Chat client started")

    async def close(self) -> None:
        await self.logout()
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        await self.api.close()
        await self.storage.close()
        logger.info("Chat client closed")

    # Session

    async def login(self, identity: Identity, token: str) -> None:
        """Connect as identity and load the sidebar summaries"""
        if self.connection.identity is not None and self.connection.identity != identity:
            await self.logout()
        self.initial_load_done = False
        self.api.token = token
        self.store.identity = identity
        self.presence.identity_id = identity.id
        self.notifications.identity = identity
        await self.connection.connect(identity, token)
        await self.store.refresh()
        self.initial_load_done = True

    async def logout(self) -> None:
        self._cancel_refresh()
        self._cancel_rejoin()
        self.channel.reset()
        await self.connection.disconnect()
        self.connection.identity = None
        self.presence.reset()
        self.presence.identity_id = None
        self.store.reset()
        self.notifications.identity = None
        self.api.token = None
        self.initial_load_done = False

    # Chat operations

    async def select(self, target: ChatTarget) -> ActiveChat:
        """Open a chat: leave the previous socket channel, join the new one and mark it read

        The previous channel is only left once the new chat has loaded, so a
        failed fetch keeps the old chat live.
        """
        previous = self.store.active_target
        chat = await self.store.select(target)
        if previous is not None and previous != target:
            await self.channel.leave(previous)
        await self.channel.join(target)
        await self.channel.mark_read(target)
        return chat

    async def send(self, content: str) -> Message:
        return await self.channel.send(self._require_active(), content)

    async def typing(self) -> None:
        await self.channel.typing(self._require_active())

    async def start_conversation(self, user_id: str) -> Conversation:
        conversation = await self.store.start_conversation(user_id)
        await self.channel.join(conversation.target)
        return conversation

    async def create_room(self, name: str, description: str = "") -> ActiveChat:
        room = await self.store.create_room(name, description)
        await self.channel.join(room.target)
        return room

    async def join_room(self, room_id: str) -> None:
        await self.store.join_room(room_id)

    async def leave_room(self, room_id: str) -> None:
        await self.channel.leave(ChatTarget.room(room_id))
        await self.store.leave_room(room_id)

    async def reconnect(self) -> None:
        await self.connection.reconnect()

    def typing_indicator(self) -> str | None:
        chat_id = self.store.active_chat_id
        return self.presence.typing_indicator(chat_id) if chat_id else None

    def _require_active(self) -> ChatTarget:
        target = self.store.active_target
        if target is None:
            raise ChatError("No chat selected")
        return target

    # Reconnect refresh

    def _on_connection_change(self, connection: ConnectionManager) -> None:
        previous, self._last_state = self._last_state, connection.state
        if connection.state is ConnectionState.CONNECTED and previous is not ConnectionState.CONNECTED:
            # The first connect of a login is followed by its own load
            if self.initial_load_done:
                self._rejoin_active()
                self._schedule_refresh()
        elif connection.state is ConnectionState.DISCONNECTED:
            self.presence.reset()

    def _rejoin_active(self) -> None:
        """Channel membership belongs to the socket, so a new socket joins again"""
        target = self.store.active_target
        if target is None:
            return
        self._cancel_rejoin()
        self._rejoin_task = asyncio.create_task(self._rejoin(target))

    async def _rejoin(self, target: ChatTarget) -> None:
        logger.info("Rejoining %s %s after reconnect", target.kind.value, target.id)
        await self.channel.join(target)
        await self.channel.mark_read(target)
        self._rejoin_task = None

    def _cancel_rejoin(self) -> None:
        if self._rejoin_task is not None:
            self._rejoin_task.cancel()
            self._rejoin_task = None

    def _schedule_refresh(self) -> None:
        self._cancel_refresh()
        self._refresh_timer = self.clock.call_later(self.settings.refresh_debounce, self._fire_refresh)

    def _fire_refresh(self) -> None:
        self._refresh_timer = None
        self._refresh_task = asyncio.create_task(self._refresh_after_reconnect())

    async def _refresh_after_reconnect(self) -> None:
        logger.info("Socket reconnected, refreshing chat data")
        await self.store.refresh()
        self._refresh_task = None

    def _cancel_refresh(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
