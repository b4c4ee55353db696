"""Runtime configuration for the chat client"""
import logging
import os
from dataclasses import dataclass, fields

from .constants import (
    MAX_RECONNECT_ATTEMPTS,
    NOTIFICATION_AUTO_CLOSE_SECONDS,
    NOTIFICATION_PREVIEW_LENGTH,
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_DELAY_SECONDS,
    TYPING_EXPIRY_SECONDS,
    TYPING_IDLE_SECONDS,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENV_PREFIX = "CHAT_"


@dataclass
class ChatSettings:
    """All tunables of the chat core

    Every field can be overridden with an upper-cased CHAT_-prefixed
    environment variable, e.g. CHAT_SERVER_URL or CHAT_SEND_TIMEOUT.
    """
    server_url: str = "ws://localhost:8765/ws"
    api_base_url: str = "http://localhost:8765/api"
    storage_path: str = "chat_client.db"
    reconnect_base_delay: float = RECONNECT_BASE_DELAY_SECONDS
    reconnect_max_delay: float = RECONNECT_MAX_DELAY_SECONDS
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    connect_timeout: float = 20.0
    typing_expiry: float = TYPING_EXPIRY_SECONDS
    typing_idle: float = TYPING_IDLE_SECONDS
    send_timeout: float = 15.0
    refresh_debounce: float = 0.5
    notification_preview_length: int = NOTIFICATION_PREVIEW_LENGTH
    notification_auto_close: float = NOTIFICATION_AUTO_CLOSE_SECONDS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ChatSettings":
        """Build settings from environment variables, falling back to defaults"""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in (int, "int"):
                overrides[f.name] = int(raw)
            elif f.type in (float, "float"):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)


def configure_logging(level: str = "INFO") -> None:
    """Apply the process-wide logging format"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
