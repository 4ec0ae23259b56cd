from __future__ import annotations

import logging
from concurrent.futures import Future
from collections.abc import Callable
from typing import Any

from .transport import Transport, Unsubscribe

logger = logging.getLogger(__name__)

CONFIRMATION_SUFFIX = "_confirmed"


class ConfirmationPending(RuntimeError):
    pass


def confirmation_payload(test_key: str) -> str:
    return f"{test_key}{CONFIRMATION_SUFFIX}"


def _message_text(message: Any) -> Any:
    # std_msgs/String arrives as {"data": "..."}; bare strings are accepted too.
    if isinstance(message, dict):
        return message.get("data")
    return message


class ConfirmationGateway:
    """Single-shot wait for an external acknowledgment on a bus topic.

    ``await_confirmation`` subscribes and returns a future that resolves when
    a message equal to the expected payload arrives, or when
    ``manual_continue`` is called.  ``cancel`` tears the subscription down and
    abandons the future: it is never resolved afterwards.

    ``on_confirmed`` runs synchronously right after the future resolves, on the
    thread that delivered the message, so anything it raises propagates to the
    publisher (or to the ``manual_continue`` caller).
    """

    def __init__(self, transport: Transport, *, type_name: str = "std_msgs/String") -> None:
        self._transport = transport
        self._type_name = type_name
        self._future: Future[None] | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._expected: str | None = None
        self._on_confirmed: Callable[[], None] | None = None

    @property
    def pending(self) -> bool:
        return self._future is not None

    @property
    def expected_payload(self) -> str | None:
        return self._expected

    def await_confirmation(
        self,
        topic: str,
        expected_payload: str,
        *,
        on_confirmed: Callable[[], None] | None = None,
    ) -> Future[None]:
        if self._future is not None:
            raise ConfirmationPending(f"already waiting for {self._expected!r}")
        future: Future[None] = Future()
        self._future = future
        self._expected = expected_payload
        self._on_confirmed = on_confirmed

        def on_message(message: Any) -> None:
            # Only the wait that installed this handler may resolve.
            if self._future is not future:
                return
            if _message_text(message) != expected_payload:
                logger.debug("Ignoring confirmation %r while waiting for %r", message, expected_payload)
                return
            logger.info("Received confirmation %r", expected_payload)
            self._resolve()

        self._unsubscribe = self._transport.subscribe(topic, self._type_name, on_message)
        logger.info("Waiting for %r on %s", expected_payload, topic)
        return future

    def manual_continue(self) -> bool:
        """Resolve the pending wait without a bus message. Returns False if none was pending."""
        if self._future is None:
            return False
        logger.info("Manual continue while waiting for %r", self._expected)
        self._resolve()
        return True

    def cancel(self) -> None:
        if self._future is None:
            return
        logger.debug("Abandoning wait for %r", self._expected)
        self._teardown()

    def _resolve(self) -> None:
        future = self._future
        callback = self._on_confirmed
        self._teardown()
        assert future is not None
        future.set_result(None)
        if callback is not None:
            callback()

    def _teardown(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._future = None
        self._expected = None
        self._on_confirmed = None
