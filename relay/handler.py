"""Relay socket handling: authenticate, then route client events to channel members"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import WebSocket, WebSocketDisconnect

from domain.constants import (
    EVENT_ERROR,
    EVENT_JOIN_CONVERSATION,
    EVENT_JOIN_ROOM,
    EVENT_LEAVE_CONVERSATION,
    EVENT_LEAVE_ROOM,
    EVENT_MARK_MESSAGES_READ,
    EVENT_RECEIVE_PRIVATE_MESSAGE,
    EVENT_RECEIVE_ROOM_MESSAGE,
    EVENT_SEND_PRIVATE_MESSAGE,
    EVENT_SEND_ROOM_MESSAGE,
    EVENT_TYPING_START,
    EVENT_TYPING_STOP,
    EVENT_USER_STOPPED_TYPING,
    EVENT_USER_TYPING,
    FIELD_CONVERSATION_ID,
    FIELD_ROOM_ID,
    FIELD_TEMP_ID,
)
from domain.errors import MalformedEventError
from realtime.transport import decode_frame
from .hub import RelayHub
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayUser:
    id: str
    name: str


def extract_token(websocket: WebSocket) -> str:
    """Bearer token from the handshake header, else the `token` query parameter"""
    header = websocket.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return websocket.query_params.get("token", "").strip()


def channel_for(data: dict) -> tuple[str, str] | None:
    """(wire field, channel key) for a payload addressed to a conversation or room"""
    if data.get(FIELD_CONVERSATION_ID):
        return FIELD_CONVERSATION_ID, f"conversation:{data[FIELD_CONVERSATION_ID]}"
    if data.get(FIELD_ROOM_ID):
        return FIELD_ROOM_ID, f"room:{data[FIELD_ROOM_ID]}"
    return None


def build_message(user: RelayUser, content: str) -> dict:
    return {
        "_id": uuid.uuid4().hex,
        "content": content,
        "sender": {"_id": user.id, "userName": user.name},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def handle_client_event(
    hub: RelayHub,
    rate_limiter: RateLimiter,
    websocket: WebSocket,
    user: RelayUser,
    raw: str,
) -> None:
    """Process one inbound frame from an authenticated socket"""
    try:
        event, data = decode_frame(raw)
    except MalformedEventError as e:
        logger.warning("Invalid frame received from %s: %s", user.id, e)
        await hub.send(websocket, EVENT_ERROR, {"message": "Invalid frame format"})
        return
    addressed = channel_for(data) if isinstance(data, dict) else None
    if addressed is None:
        await hub.send(websocket, EVENT_ERROR, {"message": f"{event} needs a conversationId or roomId"})
        return
    field, channel = addressed

    if event in (EVENT_SEND_PRIVATE_MESSAGE, EVENT_SEND_ROOM_MESSAGE):
        content = str(data.get("content", "")).strip()
        if not content:
            return
        refusal = rate_limiter.check(user.id)
        if refusal is not None:
            await hub.send(websocket, EVENT_ERROR, {"message": refusal})
            return
        outbound = EVENT_RECEIVE_ROOM_MESSAGE if event == EVENT_SEND_ROOM_MESSAGE else EVENT_RECEIVE_PRIVATE_MESSAGE
        delivery = {field: data[field], "message": build_message(user, content)}
        # Only the sender gets its tempId back
        await hub.send_to_user(user.id, outbound, {**delivery, FIELD_TEMP_ID: data.get(FIELD_TEMP_ID)})
        await hub.broadcast_channel(channel, outbound, delivery, exclude_user=user.id)
    elif event in (EVENT_JOIN_CONVERSATION, EVENT_JOIN_ROOM):
        hub.join(channel, websocket)
    elif event in (EVENT_LEAVE_CONVERSATION, EVENT_LEAVE_ROOM):
        hub.leave(channel, websocket)
    elif event in (EVENT_TYPING_START, EVENT_TYPING_STOP):
        outbound = EVENT_USER_TYPING if event == EVENT_TYPING_START else EVENT_USER_STOPPED_TYPING
        signal = {field: data[field], "userId": user.id, "userName": user.name}
        await hub.broadcast_channel(channel, outbound, signal, exclude_user=user.id)
    elif event == EVENT_MARK_MESSAGES_READ:
        logger.debug("User %s read %s", user.id, channel)
    else:
        await hub.send(websocket, EVENT_ERROR, {"message": f"Unknown event {event}"})


async def handle_relay_connection(websocket: WebSocket, hub: RelayHub, rate_limiter: RateLimiter) -> None:
    """Handle one socket; the dev token is the user id, `name` the display name"""
    token = extract_token(websocket)
    if not token:
        # Reject at handshake with a policy-violation close
        await websocket.close(code=1008, reason="Authentication token required")
        return
    user = RelayUser(id=token, name=websocket.query_params.get("name", "").strip() or token)

    await hub.connect(user.id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await handle_client_event(hub, rate_limiter, websocket, user, raw)
    except WebSocketDisconnect:
        logger.info("Client %s disconnected", user.id)
    except Exception:
        logger.exception("WebSocket error for %s", user.id)
    finally:
        await hub.disconnect(websocket)
