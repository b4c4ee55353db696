"""Unit tests for the Data API client against an in-process aiohttp server"""
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from dataapi.client import ChatAPI
from domain.errors import DataAPIError


def build_app(seen: list) -> web.Application:
    async def record(request: web.Request) -> None:
        seen.append((request.method, request.path, request.headers.get("Authorization")))

    async def conversations(request):
        await record(request)
        return web.json_response({"conversations": [
            {"_id": "c1", "participants": [{"_id": "a", "userName": "Ann"}, {"_id": "b"}]}
        ]})

    async def rooms(request):
        await record(request)
        return web.json_response({"chatRooms": [{"_id": "r1", "name": "General"}]})

    async def room(request):
        await record(request)
        if request.match_info["room_id"] == "missing":
            return web.json_response({"message": "Chat room not found"}, status=404)
        return web.json_response({"chatRoom": {"_id": request.match_info["room_id"], "name": "General"}})

    async def create_room(request):
        await record(request)
        body = await request.json()
        return web.json_response({"chatRoom": {"_id": "r2", "name": body["name"], "description": body["description"]}})

    async def join(request):
        await record(request)
        return web.json_response({"success": True})

    async def conversation_with(request):
        await record(request)
        return web.json_response({"conversation": {"_id": "c9", "participants": ["a", request.match_info["user_id"]]}})

    async def all_users(request):
        await record(request)
        return web.json_response({"message": "boom"}, status=500)

    async def clients(request):
        await record(request)
        return web.json_response({"users": [{"_id": "u1", "email": "u1@example.com", "role": "client"}]})

    async def not_json(request):
        await record(request)
        return web.Response(text="<html>", status=502)

    app = web.Application()
    app.router.add_get("/api/chat/conversations", conversations)
    app.router.add_get("/api/chat/conversations/{user_id}", conversation_with)
    app.router.add_get("/api/chat/rooms", rooms)
    app.router.add_post("/api/chat/rooms", create_room)
    app.router.add_get("/api/chat/rooms/{room_id}", room)
    app.router.add_post("/api/chat/rooms/{room_id}/join", join)
    app.router.add_get("/api/get-all-users", all_users)
    app.router.add_get("/api/get-clients", clients)
    app.router.add_get("/api/get-admin", not_json)
    return app


@pytest.fixture
def seen():
    return []


@pytest.fixture
async def api(seen):
    server = TestServer(build_app(seen))
    await server.start_server()
    client = ChatAPI(str(server.make_url("/api")), token="tok-123")
    yield client
    await client.close()
    await server.close()


@pytest.mark.unit
@pytest.mark.asyncio
class TestChatAPI:
    """Test Data API calls and error mapping"""

    async def test_bearer_token_sent(self, api, seen):
        """Test the Authorization header"""
        await api.list_rooms()
        assert seen == [("GET", "/api/chat/rooms", "Bearer tok-123")]

    async def test_list_conversations(self, api):
        """Test conversation summaries are parsed"""
        conversations = await api.list_conversations()
        assert conversations[0].id == "c1"
        assert conversations[0].participants[0].display_name == "Ann"

    async def test_list_rooms_accepts_chat_rooms_key(self, api):
        """Test that the chatRooms key is understood"""
        rooms = await api.list_rooms()
        assert [r.name for r in rooms] == ["General"]

    async def test_get_room_not_found(self, api):
        """Test that a 404 raises DataAPIError with status and message"""
        with pytest.raises(DataAPIError) as excinfo:
            await api.get_room("missing")
        assert excinfo.value.status == 404
        assert "Chat room not found" in str(excinfo.value)

    async def test_create_room(self, api, seen):
        """Test POST body and parsed result"""
        room = await api.create_room("Ops", "on-call")
        assert room.id == "r2"
        assert room.description == "on-call"
        assert seen[-1][:2] == ("POST", "/api/chat/rooms")

    async def test_join_room(self, api, seen):
        """Test the join endpoint"""
        await api.join_room("r1")
        assert seen[-1][:2] == ("POST", "/api/chat/rooms/r1/join")

    async def test_conversation_with_bare_participant_ids(self, api):
        """Test that participants may be bare ids"""
        conversation = await api.conversation_with("b")
        assert [p.id for p in conversation.participants] == ["a", "b"]

    async def test_users(self, api):
        """Test user listing and server errors"""
        with pytest.raises(DataAPIError) as excinfo:
            await api.list_users()
        assert excinfo.value.status == 500
        clients = await api.list_clients()
        assert clients[0].email == "u1@example.com"

    async def test_non_json_error(self, api):
        """Test that an HTML error page still maps to DataAPIError"""
        with pytest.raises(DataAPIError) as excinfo:
            await api.list_admins()
        assert excinfo.value.status == 502

    async def test_unreachable_server(self):
        """Test that connection failures map to DataAPIError"""
        api = ChatAPI("http://127.0.0.1:1/api")
        with pytest.raises(DataAPIError):
            await api.list_rooms()
        await api.close()
