"""Online presence and typing indicators"""
import logging
from typing import Callable

from domain.constants import TYPING_EXPIRY_SECONDS
from .clock import Clock, LoopClock
from .expiry import ExpiryScheduler

logger = logging.getLogger(__name__)


def format_typing_indicator(names: list[str]) -> str | None:
    """Render the typing line shown under the message list"""
    if not names:
        return None
    if len(names) == 1:
        return f"{names[0]} is typing..."
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing..."
    return f"{names[0]}, {names[1]}, and others are typing..."


class PresenceTracker:
    """Tracks who is online and who is typing where

    The online set is a snapshot replaced by every `online-users` push.
    Typing entries expire `typing_expiry` seconds after the last typing
    signal for that (chat, user) pair unless a stop signal clears them first.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        *,
        identity_id: str | None = None,
        typing_expiry: float = TYPING_EXPIRY_SECONDS,
        active_chat: Callable[[], str | None] | None = None,
    ) -> None:
        self.clock = clock or LoopClock()
        self.identity_id = identity_id
        self.typing_expiry = typing_expiry
        self.active_chat = active_chat
        self._online: frozenset[str] = frozenset()
        self._typing: dict[str, dict[str, str]] = {}
        self._expiry: ExpiryScheduler[tuple[str, str]] = ExpiryScheduler(self.clock, self._expire)

    @property
    def online_users(self) -> frozenset[str]:
        return self._online

    def replace_online_users(self, user_ids: list[str]) -> None:
        self._online = frozenset(user_ids)
        logger.debug("Online users updated: %d online", len(self._online))

    def is_user_online(self, user_id: str) -> bool:
        return user_id in self._online

    def user_typing(self, chat_id: str, user_id: str, display_name: str) -> bool:
        """Record a typing signal; returns False when it is ignored"""
        if user_id == self.identity_id:
            return False
        if self.active_chat is not None and self.active_chat() != chat_id:
            return False
        self._typing.setdefault(chat_id, {})[user_id] = display_name
        self._expiry.arm((chat_id, user_id), self.typing_expiry)
        return True

    def user_stopped_typing(self, chat_id: str, user_id: str) -> None:
        self._expiry.cancel((chat_id, user_id))
        self._drop(chat_id, user_id)

    def typing_users_in(self, chat_id: str) -> list[str]:
        return list(self._typing.get(chat_id, {}).values())

    def typing_indicator(self, chat_id: str) -> str | None:
        return format_typing_indicator(self.typing_users_in(chat_id))

    def reset(self) -> None:
        self._online = frozenset()
        self._typing.clear()
        self._expiry.clear()

    def _expire(self, key: tuple[str, str]) -> None:
        self._drop(*key)

    def _drop(self, chat_id: str, user_id: str) -> None:
        typists = self._typing.get(chat_id)
        if typists is None:
            return
        typists.pop(user_id, None)
        if not typists:
            del self._typing[chat_id]
