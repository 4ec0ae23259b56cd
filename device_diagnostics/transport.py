"""Message-bus transport contract and an in-process implementation.

The suite only ever talks to the bus through ``publish`` and ``subscribe``.
``LoopbackBus`` delivers synchronously on the caller's thread, which keeps the
single-actor model intact: a handler runs inside the ``publish`` call that
triggered it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from .clock import Clock

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class Transport(Protocol):
    @property
    def connected(self) -> bool:
        ...

    def publish(self, topic: str, type_name: str, payload: Any) -> bool:
        """Send one message. Returns False if it could not be sent."""
        ...

    def subscribe(self, topic: str, type_name: str, handler: Handler) -> Unsubscribe:
        ...


class ConnectionEvent(StrEnum):
    CONNECTION = "connection"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True, slots=True)
class PublishedMessage:
    topic: str
    type_name: str
    payload: Any


class LoopbackBus:
    """In-process bus with the same contract as a bridge connection.

    Publishing while disconnected fails with ``False``.  Subscriptions survive
    a reconnect.  Every successful publish is also kept in ``published`` so
    callers can inspect what went out.
    """

    def __init__(self) -> None:
        self._url: str | None = None
        self._connected = False
        self._handlers: dict[tuple[str, str], list[Handler]] = defaultdict(list)
        self._listeners: dict[ConnectionEvent, list[Callable[[str | None], None]]] = defaultdict(list)
        self.published: list[PublishedMessage] = []
        self._fail_next_connect: str | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def url(self) -> str | None:
        return self._url

    def on(self, event: ConnectionEvent, listener: Callable[[str | None], None]) -> None:
        self._listeners[ConnectionEvent(event)].append(listener)

    def fail_next_connect(self, reason: str) -> None:
        """Make the next ``connect`` fail with ``reason`` (simulates an unreachable bridge)."""
        self._fail_next_connect = reason

    def connect(self, url: str) -> bool:
        if self._connected:
            return True
        self._url = url
        if self._fail_next_connect is not None:
            reason, self._fail_next_connect = self._fail_next_connect, None
            logger.warning("Error connecting to %s: %s", url, reason)
            self._emit(ConnectionEvent.ERROR, reason)
            return False
        self._connected = True
        logger.info("Connected to %s", url)
        self._emit(ConnectionEvent.CONNECTION, None)
        return True

    def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        logger.info("Connection to %s closed", self._url)
        self._emit(ConnectionEvent.CLOSE, None)

    def publish(self, topic: str, type_name: str, payload: Any) -> bool:
        if not self._connected:
            logger.warning("Bus not connected; cannot publish on %s", topic)
            return False
        self.published.append(PublishedMessage(topic, type_name, payload))
        for handler in list(self._handlers.get((topic, type_name), ())):
            handler(payload)
        return True

    def subscribe(self, topic: str, type_name: str, handler: Handler) -> Unsubscribe:
        key = (topic, type_name)
        self._handlers[key].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self._handlers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, topic: str, type_name: str) -> int:
        return len(self._handlers.get((topic, type_name), ()))

    def _emit(self, event: ConnectionEvent, detail: str | None) -> None:
        for listener in list(self._listeners.get(event, ())):
            listener(detail)


class Connectable(Protocol):
    @property
    def connected(self) -> bool:
        ...

    def connect(self, url: str) -> bool:
        ...

    def close(self) -> None:
        ...


class ReconnectSupervisor:
    """Caller-driven reconnect: drop the connection, re-open it after a fixed delay.

    Nothing happens on its own; the owner calls ``update()`` every frame.
    """

    def __init__(self, bus: Connectable, *, url: str, clock: Clock, delay_s: float = 0.5) -> None:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        self._bus = bus
        self._url = url
        self._clock = clock
        self._delay_s = float(delay_s)
        self._due_at_s: float | None = None

    @property
    def pending(self) -> bool:
        return self._due_at_s is not None

    def connect(self) -> bool:
        return self._bus.connect(self._url)

    def request_reconnect(self) -> None:
        if self._bus.connected:
            self._bus.close()
        self._due_at_s = self._clock.now() + self._delay_s

    def update(self) -> None:
        if self._due_at_s is None or self._clock.now() < self._due_at_s:
            return
        self._due_at_s = None
        self._bus.connect(self._url)
