"""Audible cue and platform notification for newly arrived messages"""
import logging
from typing import Callable, Protocol

from domain.constants import (
    NOTIFICATION_AUTO_CLOSE_SECONDS,
    NOTIFICATION_PREFERENCES_KEY,
    NOTIFICATION_PREVIEW_LENGTH,
    PERMISSION_DEFAULT,
    PERMISSION_GRANTED,
    Permission,
)
from domain.models import Identity, Notification, NotificationPreferences
from realtime.clock import Clock, LoopClock
from storage.client_storage import ClientStorage
from .sound import render_notification_cue

logger = logging.getLogger(__name__)

SoundSink = Callable[[bytes], None]
DeepLinkHandler = Callable[[str], None]


class PlatformNotification(Protocol):
    def close(self) -> None: ...


class NotificationPlatform(Protocol):
    """Desktop/browser notification service"""

    @property
    def permission(self) -> Permission: ...

    async def request_permission(self) -> Permission: ...

    def show(self, title: str, *, body: str, tag: str, on_click: Callable[[], None]) -> PlatformNotification: ...


class LoggedNotification:
    def __init__(self, tag: str, on_click: Callable[[], None]) -> None:
        self.tag = tag
        self.on_click = on_click
        self.closed = False

    def click(self) -> None:
        self.on_click()

    def close(self) -> None:
        self.closed = True


class LogNotificationPlatform:
    """Platform for headless processes: notifications are written to the log"""

    permission: Permission = PERMISSION_GRANTED

    async def request_permission(self) -> Permission:
        return self.permission

    def show(self, title: str, *, body: str, tag: str, on_click: Callable[[], None]) -> LoggedNotification:
        logger.info("%s: %s", title, body)
        return LoggedNotification(tag, on_click)


def preview(content: str, limit: int = NOTIFICATION_PREVIEW_LENGTH) -> str:
    return content[:limit] + "..." if len(content) > limit else content


class NotificationBridge:
    """Notification inbox plus the sound / platform side effects

    Preferences are loaded from and saved to ClientStorage. Permission is
    requested automatically at most once, and only while the platform
    reports "default"; after that only toggle_browser_notifications() asks.
    """

    def __init__(
        self,
        storage: ClientStorage,
        platform: NotificationPlatform | None = None,
        *,
        clock: Clock | None = None,
        sound_sink: SoundSink | None = None,
        on_deep_link: DeepLinkHandler | None = None,
        preview_length: int = NOTIFICATION_PREVIEW_LENGTH,
        auto_close: float = NOTIFICATION_AUTO_CLOSE_SECONDS,
    ) -> None:
        self.storage = storage
        self.platform = platform or LogNotificationPlatform()
        self.clock = clock or LoopClock()
        self.sound_sink = sound_sink
        self.on_deep_link = on_deep_link
        self.preview_length = preview_length
        self.auto_close = auto_close
        self.identity: Identity | None = None
        self.preferences = NotificationPreferences()
        self.notifications: list[Notification] = []

    async def initialize(self) -> None:
        saved = await self.storage.get_json(NOTIFICATION_PREFERENCES_KEY)
        if isinstance(saved, dict):
            self.preferences = NotificationPreferences.from_dict(saved)
        permission = self.platform.permission
        if permission == PERMISSION_GRANTED and saved is None:
            self.preferences.browser_notifications_enabled = True
        elif permission == PERMISSION_DEFAULT and not self.preferences.permission_prompted:
            self.preferences.browser_notifications_enabled = await self._request_permission()
            self.preferences.permission_prompted = True
        await self._save()

    # Preferences

    @property
    def sound_enabled(self) -> bool:
        return self.preferences.sound_enabled

    @property
    def browser_notifications_enabled(self) -> bool:
        return self.preferences.browser_notifications_enabled

    async def toggle_sound(self) -> bool:
        self.preferences.sound_enabled = not self.preferences.sound_enabled
        await self._save()
        return self.preferences.sound_enabled

    async def toggle_browser_notifications(self) -> bool:
        if not self.preferences.browser_notifications_enabled and self.platform.permission != PERMISSION_GRANTED:
            enabled = await self._request_permission()
        else:
            enabled = not self.preferences.browser_notifications_enabled
        self.preferences.browser_notifications_enabled = enabled
        await self._save()
        return enabled

    # Inbox

    def notify(self, notification: Notification) -> None:
        """Record a notification and, if it is unread, play the cue and raise it"""
        self.notifications.insert(0, notification)
        if notification.read:
            return
        if self.preferences.sound_enabled:
            self.play_sound()
        self.show_platform_notification(notification)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def unread(self) -> list[Notification]:
        return [n for n in self.notifications if not n.read]

    def for_chat(self, chat_id: str) -> list[Notification]:
        return [n for n in self.notifications if n.chat_id == chat_id]

    def mark_read(self, notification_id: str) -> None:
        for n in self.notifications:
            if n.id == notification_id:
                n.read = True

    def mark_all_read(self) -> None:
        for n in self.notifications:
            n.read = True

    def clear(self) -> None:
        self.notifications.clear()

    # Side effects

    def play_sound(self) -> None:
        if self.sound_sink is None:
            return
        try:
            self.sound_sink(render_notification_cue())
        except Exception:
            logger.exception("Error playing notification sound")

    def show_platform_notification(self, notification: Notification) -> PlatformNotification | None:
        if not self.preferences.browser_notifications_enabled or self.platform.permission != PERMISSION_GRANTED:
            return None
        handle: PlatformNotification | None = None

        def open_chat() -> None:
            if self.on_deep_link is not None:
                self.on_deep_link(self.identity.chat_path if self.identity else "/client/chat")
            if handle is not None:
                handle.close()

        try:
            handle = self.platform.show(
                f"New message from {notification.sender_name}",
                body=preview(notification.content, self.preview_length),
                tag=f"chat_{notification.chat_id}",
                on_click=open_chat,
            )
        except Exception:
            logger.exception("Error showing platform notification")
            return None
        self.clock.call_later(self.auto_close, handle.close)
        return handle

    async def _request_permission(self) -> bool:
        try:
            return await self.platform.request_permission() == PERMISSION_GRANTED
        except Exception:
            logger.exception("Error requesting notification permission")
            return False

    async def _save(self) -> None:
        await self.storage.set_json(NOTIFICATION_PREFERENCES_KEY, self.preferences.to_dict())
