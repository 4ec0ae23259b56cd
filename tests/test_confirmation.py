from __future__ import annotations

import pytest

from device_diagnostics.confirmation import (
    ConfirmationGateway,
    ConfirmationPending,
    confirmation_payload,
)
from device_diagnostics.transport import LoopbackBus

TOPIC = "/test_confirmation"
TYPE = "std_msgs/String"


def _bus() -> LoopbackBus:
    bus = LoopbackBus()
    assert bus.connect("ws://localhost:9090") is True
    return bus


def test_payload_naming() -> None:
    assert confirmation_payload("displayDefect") == "displayDefect_confirmed"


def test_matching_message_resolves_and_unsubscribes() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    future = gateway.await_confirmation(TOPIC, "displayDefect_confirmed")
    assert gateway.pending is True
    assert gateway.expected_payload == "displayDefect_confirmed"
    assert bus.subscriber_count(TOPIC, TYPE) == 1

    bus.publish(TOPIC, TYPE, {"data": "something_else"})
    assert not future.done()

    bus.publish(TOPIC, TYPE, {"data": "displayDefect_confirmed"})
    assert future.done()
    assert future.result() is None
    assert gateway.pending is False
    assert bus.subscriber_count(TOPIC, TYPE) == 0


def test_bare_string_payload_is_accepted() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    future = gateway.await_confirmation(TOPIC, "x_confirmed")
    bus.publish(TOPIC, TYPE, "x_confirmed")
    assert future.done()


def test_double_await_is_rejected() -> None:
    gateway = ConfirmationGateway(_bus())
    gateway.await_confirmation(TOPIC, "a_confirmed")
    with pytest.raises(ConfirmationPending):
        gateway.await_confirmation(TOPIC, "b_confirmed")


def test_manual_continue_resolves_once() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    assert gateway.manual_continue() is False

    future = gateway.await_confirmation(TOPIC, "a_confirmed")
    calls: list[int] = []
    future.add_done_callback(lambda _f: calls.append(1))

    assert gateway.manual_continue() is True
    assert future.done()
    # A late bus message after manual continue has no effect.
    bus.publish(TOPIC, TYPE, {"data": "a_confirmed"})
    assert calls == [1]
    assert gateway.manual_continue() is False


def test_cancel_abandons_future() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    future = gateway.await_confirmation(TOPIC, "a_confirmed")
    gateway.cancel()
    assert gateway.pending is False
    assert bus.subscriber_count(TOPIC, TYPE) == 0

    bus.publish(TOPIC, TYPE, {"data": "a_confirmed"})
    assert not future.done()

    # A fresh wait works after cancel.
    nxt = gateway.await_confirmation(TOPIC, "b_confirmed")
    bus.publish(TOPIC, TYPE, {"data": "b_confirmed"})
    assert nxt.done()
    assert not future.done()


def test_custom_type_name() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus, type_name="custom/Ack")
    future = gateway.await_confirmation(TOPIC, "a_confirmed")
    bus.publish(TOPIC, TYPE, {"data": "a_confirmed"})
    assert not future.done()
    bus.publish(TOPIC, "custom/Ack", {"data": "a_confirmed"})
    assert future.done()


def test_on_confirmed_runs_after_resolution_and_its_errors_propagate() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    calls: list[bool] = []

    def on_confirmed() -> None:
        calls.append(future.done())
        raise KeyError("handler broke")

    future = gateway.await_confirmation(TOPIC, "a_confirmed", on_confirmed=on_confirmed)
    with pytest.raises(KeyError):
        bus.publish(TOPIC, TYPE, {"data": "a_confirmed"})
    assert calls == [True]
    assert gateway.pending is False

    future = gateway.await_confirmation(TOPIC, "b_confirmed", on_confirmed=on_confirmed)
    with pytest.raises(KeyError):
        gateway.manual_continue()
    assert calls == [True, True]


def test_on_confirmed_is_not_called_after_cancel() -> None:
    bus = _bus()
    gateway = ConfirmationGateway(bus)
    calls: list[str] = []
    gateway.await_confirmation(TOPIC, "a_confirmed", on_confirmed=lambda: calls.append("a"))
    gateway.cancel()
    bus.publish(TOPIC, TYPE, {"data": "a_confirmed"})
    assert gateway.manual_continue() is False
    assert calls == []
