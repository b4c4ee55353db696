"""Domain constants and type aliases"""
from typing import Literal

# Type aliases for socket events
OutboundEvent = Literal[
    "send-private-message",
    "send-room-message",
    "join-conversation",
    "leave-conversation",
    "join-room",
    "leave-room",
    "mark-messages-read",
    "typing-start",
    "typing-stop",
]
InboundEvent = Literal[
    "receive-private-message",
    "receive-room-message",
    "conversation-updated",
    "room-updated",
    "online-users",
    "user-typing",
    "user-stopped-typing",
    "error",
]
Permission = Literal["default", "granted", "denied"]

# Outbound event constants (client -> server)
EVENT_SEND_PRIVATE_MESSAGE: OutboundEvent = "send-private-message"
EVENT_SEND_ROOM_MESSAGE: OutboundEvent = "send-room-message"
EVENT_JOIN_CONVERSATION: OutboundEvent = "join-conversation"
EVENT_LEAVE_CONVERSATION: OutboundEvent = "leave-conversation"
EVENT_JOIN_ROOM: OutboundEvent = "join-room"
EVENT_LEAVE_ROOM: OutboundEvent = "leave-room"
EVENT_MARK_MESSAGES_READ: OutboundEvent = "mark-messages-read"
EVENT_TYPING_START: OutboundEvent = "typing-start"
EVENT_TYPING_STOP: OutboundEvent = "typing-stop"

# Inbound event constants (server -> client)
EVENT_RECEIVE_PRIVATE_MESSAGE: InboundEvent = "receive-private-message"
EVENT_RECEIVE_ROOM_MESSAGE: InboundEvent = "receive-room-message"
EVENT_CONVERSATION_UPDATED: InboundEvent = "conversation-updated"
EVENT_ROOM_UPDATED: InboundEvent = "room-updated"
EVENT_ONLINE_USERS: InboundEvent = "online-users"
EVENT_USER_TYPING: InboundEvent = "user-typing"
EVENT_USER_STOPPED_TYPING: InboundEvent = "user-stopped-typing"
EVENT_ERROR: InboundEvent = "error"

# Wire field names
FIELD_CONVERSATION_ID = "conversationId"
FIELD_ROOM_ID = "roomId"
FIELD_TEMP_ID = "tempId"

# Reconnection policy
RECONNECT_BASE_DELAY_SECONDS = 1.0
RECONNECT_MAX_DELAY_SECONDS = 30.0
MAX_RECONNECT_ATTEMPTS = 5

# Typing indicator
TYPING_EXPIRY_SECONDS = 3.0
TYPING_IDLE_SECONDS = 1.0

# Notifications
NOTIFICATION_PREVIEW_LENGTH = 100
NOTIFICATION_AUTO_CLOSE_SECONDS = 5.0
NOTIFICATION_PREFERENCES_KEY = "notificationPreferences"
PERMISSION_DEFAULT: Permission = "default"
PERMISSION_GRANTED: Permission = "granted"
PERMISSION_DENIED: Permission = "denied"

# Connection error messages surfaced to the UI
ERROR_NO_TOKEN = "No authentication token available"
ERROR_NO_IDENTITY = "No identity available"
ERROR_SERVER_DISCONNECT = "Disconnected by server"
ERROR_RECONNECT_FAILED = "Failed to reconnect after multiple attempts"
ERROR_NOT_CONNECTED = "Socket not connected. Please check your connection."
