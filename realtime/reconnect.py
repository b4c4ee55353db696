"""Reconnection state machine

Pure transition functions over an immutable ReconnectState, so the backoff
and attempt-count rules can be tested without a transport.
"""
from dataclasses import dataclass
from enum import Enum

from domain.constants import (
    ERROR_RECONNECT_FAILED,
    ERROR_SERVER_DISCONNECT,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_DELAY_SECONDS,
)
from domain.models import ConnectionState


class DisconnectReason(str, Enum):
    CLIENT = "io client disconnect"
    SERVER = "io server disconnect"
    TRANSPORT_CLOSE = "transport close"
    TRANSPORT_ERROR = "transport error"

    @property
    def should_reconnect(self) -> bool:
        """Only network-level losses are retried; a server close is deliberate"""
        return self in (DisconnectReason.TRANSPORT_CLOSE, DisconnectReason.TRANSPORT_ERROR)


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay: float = RECONNECT_BASE_DELAY_SECONDS
    max_delay: float = RECONNECT_MAX_DELAY_SECONDS
    max_attempts: int = MAX_RECONNECT_ATTEMPTS

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect attempt number `attempt` (0-based)"""
        return min(self.base_delay * 2 ** attempt, self.max_delay)


@dataclass(frozen=True)
class ReconnectState:
    state: ConnectionState = ConnectionState.DISCONNECTED
    attempts: int = 0
    error: str | None = None


@dataclass(frozen=True)
class Transition:
    state: ReconnectState
    retry_in: float | None = None


def start_connecting(current: ReconnectState) -> ReconnectState:
    state = ConnectionState.RECONNECTING if current.attempts else ConnectionState.CONNECTING
    return ReconnectState(state, current.attempts, None)


def connected(current: ReconnectState) -> ReconnectState:
    return ReconnectState(ConnectionState.CONNECTED, 0, None)


def connection_lost(
    current: ReconnectState,
    reason: DisconnectReason,
    policy: BackoffPolicy,
    error: str | None = None,
) -> Transition:
    """Decide what follows a lost (or never established) connection"""
    if reason is DisconnectReason.CLIENT:
        return Transition(ReconnectState())
    if reason is DisconnectReason.SERVER:
        return Transition(ReconnectState(ConnectionState.DISCONNECTED, current.attempts, ERROR_SERVER_DISCONNECT))
    if current.attempts >= policy.max_attempts:
        return Transition(ReconnectState(ConnectionState.FAILED, current.attempts, ERROR_RECONNECT_FAILED))
    return Transition(
        ReconnectState(ConnectionState.RECONNECTING, current.attempts + 1, error or current.error),
        retry_in=policy.delay_for(current.attempts),
    )


def connect_failed(current: ReconnectState, error: str, policy: BackoffPolicy) -> Transition:
    return connection_lost(current, DisconnectReason.TRANSPORT_ERROR, policy, error)


def with_error(current: ReconnectState, error: str | None) -> ReconnectState:
    return ReconnectState(current.state, current.attempts, error)
