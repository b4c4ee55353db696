"""Single persistent socket connection with exponential-backoff reconnection"""
import asyncio
import contextlib
import logging
from typing import Any, Callable

from domain.constants import ERROR_NO_IDENTITY, ERROR_NO_TOKEN, ERROR_NOT_CONNECTED
from domain.errors import MalformedEventError, NotConnectedError, SendFailedError
from domain.models import ConnectionState, Identity, SocketEvent
from events.publisher import EventPublisher
from .clock import Clock, LoopClock, TimerHandle
from .reconnect import (
    BackoffPolicy,
    DisconnectReason,
    ReconnectState,
    Transition,
    connect_failed,
    connected,
    connection_lost,
    start_connecting,
    with_error,
)
from .transport import Transport, TransportClosed, TransportError, TransportFactory, decode_frame

logger = logging.getLogger(__name__)

StateListener = Callable[["ConnectionManager"], None]


class ConnectionManager:
    """Owns the one live transport for the logged-in identity

    Connection problems never propagate out of this class: they are logged
    and exposed through `last_error` / `is_connected`, and listeners
    registered with subscribe() are told about every state change.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        publisher: EventPublisher | None = None,
        *,
        url: str,
        clock: Clock | None = None,
        policy: BackoffPolicy | None = None,
    ) -> None:
        self.transport_factory = transport_factory
        self.publisher = publisher
        self.url = url
        self.clock = clock or LoopClock()
        self.policy = policy or BackoffPolicy()
        self.identity: Identity | None = None
        self._token: str | None = None
        self._fsm = ReconnectState()
        self._transport: Transport | None = None
        self._receive_task: asyncio.Task | None = None
        self._reconnect_timer: TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._fsm.state

    @property
    def is_connected(self) -> bool:
        return self._fsm.state is ConnectionState.CONNECTED and self._transport is not None

    @property
    def last_error(self) -> str | None:
        return self._fsm.error

    @property
    def reconnect_attempts(self) -> int:
        return self._fsm.attempts

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_timer is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener; returns an unsubscribe callable"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def connect(self, identity: Identity | None, token: str | None) -> None:
        """Connect as identity, replacing any existing connection"""
        async with self._lock:
            self.identity = identity
            self._token = token
            await self._teardown()
            self._set(ReconnectState())
            await self._open_if_credentials()

    async def reconnect(self) -> None:
        """Manual retry: resets the attempt counter and error, then connects"""
        async with self._lock:
            await self._teardown()
            self._set(ReconnectState())
            await self._open_if_credentials()

    async def disconnect(self) -> None:
        """Tear down the connection; safe to call repeatedly"""
        async with self._lock:
            await self._teardown()
            self._set(ReconnectState())

    async def emit(self, event: str, data: Any) -> None:
        """Send one event; fails fast instead of queuing while disconnected"""
        transport = self._transport
        if transport is None or not self.is_connected:
            raise NotConnectedError(ERROR_NOT_CONNECTED)
        try:
            await transport.send(event, data)
        except TransportError as e:
            logger.warning("Failed to emit %s: %s", event, e)
            raise SendFailedError(str(e)) from e

    def report_error(self, message: str) -> None:
        """Record an error pushed by the server without changing the connection"""
        logger.error("Socket error: %s", message)
        self._set(with_error(self._fsm, message))

    async def _open_if_credentials(self) -> None:
        if self.identity is None:
            logger.error("No identity available for socket connection")
            self._set(with_error(self._fsm, ERROR_NO_IDENTITY))
            return
        if not self._token:
            logger.error("No auth token available for socket connection")
            self._set(with_error(self._fsm, ERROR_NO_TOKEN))
            return
        await self._open()

    async def _open(self) -> None:
        self._set(start_connecting(self._fsm))
        logger.info("Connecting socket for user %s", self.identity.email or self.identity.id)
        try:
            transport = await self.transport_factory(self.url, self._token)
        except TransportError as e:
            logger.error("Socket connection error: %s", e)
            self._apply(connect_failed(self._fsm, str(e), self.policy))
            return
        self._transport = transport
        self._set(connected(self._fsm))
        logger.info("Socket connected successfully")
        self._receive_task = asyncio.create_task(self._receive_loop(transport))

    async def _receive_loop(self, transport: Transport) -> None:
        try:
            while True:
                raw = await transport.receive()
                await self._dispatch(raw)
        except TransportClosed as e:
            reason = e.reason
        except TransportError as e:
            logger.error("Socket receive failed: %s", e)
            reason = DisconnectReason.TRANSPORT_ERROR
        if transport is not self._transport:
            return
        self._transport = None
        self._receive_task = None
        logger.info("Socket disconnected: %s", reason.value)
        self._apply(connection_lost(self._fsm, reason, self.policy))

    async def _dispatch(self, raw: str) -> None:
        try:
            event, data = decode_frame(raw)
        except MalformedEventError as e:
            logger.warning("Dropping malformed frame: %s", e)
            return
        if self.publisher is not None:
            await self.publisher.publish(SocketEvent(type=event, payload=data))

    def _apply(self, transition: Transition) -> None:
        self._set(transition.state)
        if transition.retry_in is not None:
            logger.info(
                "Attempting reconnection in %dms (attempt %d/%d)",
                transition.retry_in * 1000,
                transition.state.attempts,
                self.policy.max_attempts,
            )
            self._cancel_reconnect()
            self._reconnect_timer = self.clock.call_later(transition.retry_in, self._fire_reconnect)
        elif transition.state.state is ConnectionState.FAILED:
            logger.error("Max reconnection attempts reached")

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        self._reconnect_task = asyncio.create_task(self._reconnect_now())

    async def _reconnect_now(self) -> None:
        async with self._lock:
            self._reconnect_task = None
            if self._transport is not None or self.identity is None or not self._token:
                return
            await self._open()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _teardown(self) -> None:
        self._cancel_reconnect()
        transport, self._transport = self._transport, None
        task, self._receive_task = self._receive_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if transport is not None:
            logger.info("Disconnecting socket")
            try:
                await transport.close()
            except (TransportError, OSError) as e:
                logger.warning("Error closing socket: %s", e)

    def _set(self, state: ReconnectState) -> None:
        if state == self._fsm:
            return
        self._fsm = state
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Connection state listener failed")
