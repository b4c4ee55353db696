"""Pytest configuration and shared fixtures for all tests"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from chat.message_channel import MessageChannel
from chat.state_store import ChatStateStore
from dataapi.client import ChatAPI
from domain.models import Identity, Role
from events.publisher import EventPublisher
from notifications.bridge import NotificationBridge
from realtime.clock import ManualClock
from realtime.connection_manager import ConnectionManager
from realtime.presence import PresenceTracker
from realtime.reconnect import DisconnectReason
from realtime.transport import TransportClosed, TransportError, encode_frame
from storage.client_storage import ClientStorage

pytest_plugins = ("pytest_asyncio",)


class FakeTransport:
    """In-memory transport: records sends, replays pushed frames"""

    def __init__(self, url: str, token: str) -> None:
        self.url = url
        self.token = token
        self.sent: list[tuple[str, object]] = []
        self.closed = False
        self.fail_sends = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, event, data) -> None:
        if self.fail_sends:
            raise TransportError("write failed")
        self.sent.append((event, data))

    async def receive(self) -> str:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, event: str, data) -> None:
        self._inbound.put_nowait(encode_frame(event, data))

    def push_raw(self, raw: str) -> None:
        self._inbound.put_nowait(raw)

    def drop(self, reason: DisconnectReason = DisconnectReason.TRANSPORT_CLOSE, code: int | None = 1006) -> None:
        self._inbound.put_nowait(TransportClosed(reason, code))

    def events(self, name: str) -> list:
        return [data for event, data in self.sent if event == name]


class FakeTransportFactory:
    """Transport factory that hands out FakeTransports and can be told to fail"""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.failures: list[Exception] = []
        self.attempts = 0

    async def __call__(self, url: str, token: str) -> FakeTransport:
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        transport = FakeTransport(url, token)
        self.transports.append(transport)
        return transport

    @property
    def calls(self) -> int:
        return len(self.transports)

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let pending tasks (receive loops, consumer) run"""
    return _settle


@pytest.fixture
def clock():
    """Create a manually advanced clock"""
    return ManualClock()


@pytest.fixture
async def event_queue():
    """Create a new event queue for each test"""
    return asyncio.Queue()


@pytest.fixture
async def event_publisher(event_queue):
    """Create an EventPublisher instance for testing"""
    return EventPublisher(event_queue)


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def alice():
    return Identity(id="u-alice", email="alice@example.com", display_name="Alice", role=Role.CLIENT)


@pytest.fixture
def bob():
    return Identity(id="u-bob", email="bob@example.com", display_name="Bob", role=Role.ADMIN)


@pytest.fixture
async def connection(transport_factory, event_publisher, clock):
    """Create a ConnectionManager over fake transports and a manual clock"""
    manager = ConnectionManager(transport_factory, event_publisher, url="ws://test/ws", clock=clock)
    yield manager
    await manager.disconnect()


@pytest.fixture
async def connected(connection, alice, settle):
    """A ConnectionManager already connected as alice"""
    await connection.connect(alice, "token-alice")
    await settle()
    return connection


@pytest.fixture
def mock_api():
    """Create a ChatAPI mock whose list calls return empty collections"""
    api = AsyncMock(spec=ChatAPI)
    api.list_conversations.return_value = []
    api.list_rooms.return_value = []
    api.list_users.return_value = []
    api.list_clients.return_value = []
    api.list_admins.return_value = []
    return api


@pytest.fixture
def store(mock_api, alice):
    state = ChatStateStore(mock_api)
    state.identity = alice
    return state


@pytest.fixture
def channel(connection, store, clock):
    return MessageChannel(connection, store, clock=clock)


@pytest.fixture
def presence(clock, alice):
    return PresenceTracker(clock, identity_id=alice.id)


@pytest.fixture
async def client_storage():
    """Create an in-memory client storage for testing"""
    storage = ClientStorage(":memory:")
    await storage.init()
    yield storage
    await storage.close()


class FakeNotification:
    def __init__(self, title: str, body: str, tag: str, on_click) -> None:
        self.title = title
        self.body = body
        self.tag = tag
        self.on_click = on_click
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakePlatform:
    """Notification platform that records what it was asked to show"""

    def __init__(self, permission: str = "granted", grant: str = "granted") -> None:
        self.permission = permission
        self.grant = grant
        self.requests = 0
        self.shown: list[FakeNotification] = []

    async def request_permission(self) -> str:
        self.requests += 1
        self.permission = self.grant
        return self.grant

    def show(self, title, *, body, tag, on_click) -> FakeNotification:
        notification = FakeNotification(title, body, tag, on_click)
        self.shown.append(notification)
        return notification


@pytest.fixture
def platform_factory():
    """Build a FakePlatform with a given starting permission"""
    return FakePlatform


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def bridge(client_storage, platform, clock):
    return NotificationBridge(client_storage, platform, clock=clock)


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket for testing"""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws
