"""Tests for StatusPublisher."""

from __future__ import annotations

import logging

import pytest

from connwatch.publisher import StatusPublisher
from connwatch.types import ConnectionMode, ConnectionState, ConnectionStatus


class TestStatusPublisher:
    """Tests for subscription and delivery."""

    def test_current_defaults_to_initial_state(self) -> None:
        initial = ConnectionState(max_attempts=3)
        assert StatusPublisher(initial).current() is initial
        assert StatusPublisher().current() == ConnectionState()

    def test_publish_updates_current_and_notifies_in_order(self) -> None:
        publisher = StatusPublisher()
        order: list[str] = []
        publisher.subscribe(lambda state: order.append("first"))
        publisher.subscribe(lambda state: order.append("second"))
        state = ConnectionState(status=ConnectionStatus.AVAILABLE)

        publisher.publish(state)

        assert publisher.current() is state
        assert order == ["first", "second"]

    def test_unsubscribe_is_idempotent(self) -> None:
        publisher = StatusPublisher()
        seen: list[ConnectionState] = []
        unsubscribe = publisher.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        publisher.publish(ConnectionState())

        assert seen == []
        assert publisher.subscriber_count == 0

    def test_same_listener_subscribed_twice_is_called_twice(self) -> None:
        publisher = StatusPublisher()
        seen: list[ConnectionState] = []
        publisher.subscribe(seen.append)
        publisher.subscribe(seen.append)

        publisher.publish(ConnectionState())

        assert len(seen) == 2

    def test_failing_listener_is_logged_and_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        publisher = StatusPublisher()
        seen: list[ConnectionState] = []

        def broken(state: ConnectionState) -> None:
            raise RuntimeError("badge render failed")

        publisher.subscribe(broken)
        publisher.subscribe(seen.append)

        with caplog.at_level(logging.WARNING, logger="connwatch.publisher"):
            publisher.publish(ConnectionState())

        assert len(seen) == 1
        assert "badge render failed" in caplog.text

    def test_listener_may_unsubscribe_during_delivery(self) -> None:
        publisher = StatusPublisher()
        calls: list[int] = []
        handle: dict[str, object] = {}

        def once(state: ConnectionState) -> None:
            calls.append(1)
            handle["unsubscribe"]()  # type: ignore[operator]

        handle["unsubscribe"] = publisher.subscribe(once)

        publisher.publish(ConnectionState())
        publisher.publish(ConnectionState())

        assert calls == [1]

    def test_publish_from_listener_is_delivered_in_order(self) -> None:
        """States published during delivery reach every listener after the current one."""
        publisher = StatusPublisher()
        exhausted = ConnectionState(status=ConnectionStatus.EXHAUSTED)
        switched = ConnectionState(mode=ConnectionMode.FALLBACK, status=ConnectionStatus.EXHAUSTED)
        first: list[ConnectionState] = []
        last: list[ConnectionState] = []
        current_after_switch: list[ConnectionState] = []

        def switch(state: ConnectionState) -> None:
            if state is exhausted:
                publisher.publish(switched)
                current_after_switch.append(publisher.current())

        publisher.subscribe(first.append)
        publisher.subscribe(switch)
        publisher.subscribe(last.append)

        publisher.publish(exhausted)

        assert first == [exhausted, switched]
        assert last == [exhausted, switched]
        assert current_after_switch == [switched]
        assert publisher.current() is switched

    def test_raising_listener_does_not_stall_later_publishes(self) -> None:
        publisher = StatusPublisher()
        seen: list[ConnectionStatus] = []

        def broken(state: ConnectionState) -> None:
            raise RuntimeError("render failed")

        publisher.subscribe(broken)
        publisher.subscribe(lambda state: seen.append(state.status))

        publisher.publish(ConnectionState(status=ConnectionStatus.CHECKING))
        publisher.publish(ConnectionState(status=ConnectionStatus.AVAILABLE))

        assert seen == [ConnectionStatus.CHECKING, ConnectionStatus.AVAILABLE]

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(TypeError, match="callable"):
            StatusPublisher().subscribe("not a function")  # type: ignore[arg-type]

    def test_clear_drops_all_listeners(self) -> None:
        publisher = StatusPublisher()
        publisher.subscribe(lambda state: None)
        publisher.subscribe(lambda state: None)

        publisher.clear()

        assert publisher.subscriber_count == 0
