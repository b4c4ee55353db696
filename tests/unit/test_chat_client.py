"""Unit tests for the ChatClient facade"""
import pytest

from chat.client import ChatClient
from domain.errors import ChatError, DataAPIError
from domain.models import ChatTarget, ConnectionState, Room
from domain.settings import ChatSettings
from realtime.reconnect import DisconnectReason
from realtime.transport import TransportError
from storage.client_storage import ClientStorage


@pytest.fixture
async def chat(clock, transport_factory, mock_api, platform):
    client = ChatClient(
        ChatSettings(),
        clock=clock,
        transport_factory=transport_factory,
        api=mock_api,
        storage=ClientStorage(":memory:"),
        platform=platform,
    )
    await client.start()
    yield client
    await client.close()


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatClientSession:
    """Test login, logout and reconnect refresh"""

    async def test_login_connects_and_loads(self, chat, alice, transport_factory, mock_api, settle):
        """Test that login opens the socket and loads summaries"""
        await chat.login(alice, "tok")
        await settle()

        assert chat.connection.is_connected
        assert transport_factory.latest.token == "tok"
        assert mock_api.token == "tok"
        mock_api.list_conversations.assert_awaited()
        assert chat.initial_load_done

    async def test_logout_clears_state(self, chat, alice, transport_factory, settle):
        """Test that logout tears everything down"""
        await chat.login(alice, "tok")
        chat.store.activate(Room(id="r1"))
        chat.presence.replace_online_users(["x"])

        await chat.logout()

        assert transport_factory.latest.closed
        assert chat.store.current() is None
        assert chat.presence.online_users == frozenset()
        assert chat.connection.state is ConnectionState.DISCONNECTED

    async def test_reconnect_refreshes_after_debounce(self, chat, alice, transport_factory, mock_api, clock, settle):
        """Test that summaries reload once, 0.5s after a reconnect"""
        await chat.login(alice, "tok")
        await settle()
        loads = mock_api.list_rooms.await_count

        transport_factory.latest.drop(DisconnectReason.TRANSPORT_ERROR)
        await settle()
        clock.advance(1)
        await settle()
        assert chat.connection.is_connected
        assert mock_api.list_rooms.await_count == loads

        clock.advance(0.5)
        await settle()
        assert mock_api.list_rooms.await_count == loads + 1

    async def test_reconnect_rejoins_open_chat(self, chat, alice, mock_api, transport_factory, clock, settle):
        """Test that the open chat is joined again on the new socket after a drop"""
        await chat.login(alice, "tok")
        await settle()
        mock_api.get_room.return_value = Room(id="r1")
        await chat.select(ChatTarget.room("r1"))

        transport_factory.latest.drop(DisconnectReason.TRANSPORT_CLOSE)
        await settle()
        clock.advance(1)
        await settle()

        second = transport_factory.latest
        assert transport_factory.calls == 2
        assert second.events("join-room") == [{"roomId": "r1"}]
        assert second.events("mark-messages-read") == [{"roomId": "r1"}]

    async def test_manual_reconnect_after_failure(self, chat, alice, mock_api, transport_factory, clock, settle):
        """Test that reconnect() after giving up rejoins and refreshes summaries"""
        await chat.login(alice, "tok")
        await settle()
        mock_api.get_room.return_value = Room(id="r1")
        await chat.select(ChatTarget.room("r1"))
        transport_factory.failures = [TransportError("refused") for _ in range(10)]

        transport_factory.latest.drop(DisconnectReason.TRANSPORT_ERROR)
        await settle()
        for delay in (1, 2, 4, 8, 16):
            clock.advance(delay)
            await settle()
        clock.advance(120)
        await settle()
        assert chat.connection.state is ConnectionState.FAILED

        transport_factory.failures.clear()
        loads = mock_api.list_rooms.await_count
        await chat.reconnect()
        await settle()

        assert chat.connection.is_connected
        assert transport_factory.latest.events("join-room") == [{"roomId": "r1"}]
        clock.advance(0.5)
        await settle()
        assert mock_api.list_rooms.await_count == loads + 1

    async def test_login_does_not_schedule_refresh(self, chat, alice, mock_api, clock, settle):
        """Test that the first connect of a login loads once"""
        await chat.login(alice, "tok")
        await settle()
        loads = mock_api.list_rooms.await_count

        clock.advance(1)
        await settle()

        assert mock_api.list_rooms.await_count == loads


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatClientOperations:
    """Test chat selection and sending"""

    async def test_select_joins_and_marks_read(self, chat, alice, mock_api, transport_factory, settle):
        """Test the socket events emitted when opening and switching chats"""
        await chat.login(alice, "tok")
        await settle()
        mock_api.get_room.side_effect = lambda room_id: Room(id=room_id)

        await chat.select(ChatTarget.room("r1"))
        await chat.select(ChatTarget.room("r2"))

        assert [event for event, _ in transport_factory.latest.sent] == [
            "join-room",
            "mark-messages-read",
            "leave-room",
            "join-room",
            "mark-messages-read",
        ]
        assert chat.store.active_chat_id == "r2"

    async def test_failed_select_keeps_previous_chat(self, chat, alice, mock_api, transport_factory, settle):
        """Test that a failed fetch neither changes the active chat nor leaves it"""
        await chat.login(alice, "tok")
        await settle()
        mock_api.get_room.return_value = Room(id="r1")
        await chat.select(ChatTarget.room("r1"))
        mock_api.get_room.side_effect = DataAPIError("boom", status=500)

        with pytest.raises(DataAPIError):
            await chat.select(ChatTarget.room("r2"))

        assert chat.store.active_chat_id == "r1"
        assert transport_factory.latest.events("leave-room") == []
        assert transport_factory.latest.events("join-room") == [{"roomId": "r1"}]

    async def test_send_requires_selection(self, chat, alice, settle):
        """Test that send needs an open chat"""
        await chat.login(alice, "tok")
        with pytest.raises(ChatError):
            await chat.send("hello")

    async def test_inbound_message_reaches_store(self, chat, alice, bob, mock_api, transport_factory, settle):
        """Test the full receive path from socket frame to the open chat"""
        await chat.login(alice, "tok")
        await settle()
        mock_api.get_room.return_value = Room(id="r1")
        await chat.select(ChatTarget.room("r1"))

        placeholder = await chat.send("hello")
        transport_factory.latest.push("receive-room-message", {
            "roomId": "r1",
            "tempId": placeholder.temp_id,
            "message": {"_id": "m1", "content": "hello", "sender": {"_id": alice.id, "userName": "Alice"}},
        })
        transport_factory.latest.push("user-typing", {"roomId": "r1", "userId": bob.id, "userName": "Bob"})
        await settle()

        assert chat.store.current().messages.keys() == ["m1"]
        assert chat.typing_indicator() == "Bob is typing..."
