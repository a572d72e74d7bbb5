"""ObserverSet and DisposableSubscription tests."""

from __future__ import annotations

import logging

import pytest

from kernel_transport.observers import DisposableSubscription, ObserverSet


class TestNotification:
    """Every observer sees every item."""

    @pytest.mark.parametrize("count", [0, 1, 3, 10])
    def test_n_observers_get_n_notifications(self, count: int):
        observers: ObserverSet[str] = ObserverSet()
        received: list[tuple[int, str]] = []
        for i in range(count):
            observers.subscribe(lambda item, i=i: received.append((i, item)))

        delivered = observers.notify("x")

        assert delivered == count
        assert sorted(received) == [(i, "x") for i in range(count)]

    def test_most_recent_observer_first(self):
        observers: ObserverSet[str] = ObserverSet()
        order: list[str] = []
        observers.subscribe(lambda _: order.append("first"))
        observers.subscribe(lambda _: order.append("second"))

        observers.notify("x")

        assert order == ["second", "first"]

    def test_same_callable_registered_twice(self):
        observers: ObserverSet[str] = ObserverSet()
        received: list[str] = []
        first = observers.subscribe(received.append)
        observers.subscribe(received.append)

        observers.notify("a")
        first.dispose()
        observers.notify("b")

        assert received == ["a", "a", "b"]

    def test_raising_observer_does_not_stop_delivery(self, caplog: pytest.LogCaptureFixture):
        observers: ObserverSet[str] = ObserverSet("test")
        received: list[str] = []
        observers.subscribe(received.append)

        def broken(_: str) -> None:
            raise RuntimeError("boom")

        observers.subscribe(broken)

        with caplog.at_level(logging.WARNING, logger="kernel_transport.observers"):
            observers.notify("x")

        assert received == ["x"]
        assert "boom" in caplog.text


class TestDisposal:
    """Disposal semantics."""

    def test_dispose_removes_registration(self):
        observers: ObserverSet[str] = ObserverSet()
        received: list[str] = []
        subscription = observers.subscribe(received.append)

        subscription.dispose()
        observers.notify("x")

        assert received == []
        assert len(observers) == 0
        assert subscription.disposed

    def test_dispose_twice_is_noop(self):
        observers: ObserverSet[str] = ObserverSet()
        keep: list[str] = []
        observers.subscribe(keep.append)
        subscription = observers.subscribe(lambda _: None)

        subscription.dispose()
        subscription.dispose()

        assert len(observers) == 1

    def test_dispose_inside_own_callback(self):
        observers: ObserverSet[str] = ObserverSet()
        received: list[str] = []
        others: list[str] = []
        observers.subscribe(others.append)

        subscription: DisposableSubscription | None = None

        def once(item: str) -> None:
            received.append(item)
            assert subscription is not None
            subscription.dispose()

        subscription = observers.subscribe(once)

        observers.notify("a")
        observers.notify("b")

        assert received == ["a"]
        assert others == ["a", "b"]

    def test_dispose_other_observer_during_notification(self):
        observers: ObserverSet[str] = ObserverSet()
        received: list[str] = []
        victim = observers.subscribe(received.append)
        observers.subscribe(lambda _: victim.dispose())

        # The disposer runs first (most recent), so the victim is skipped
        observers.notify("a")

        assert received == []

    def test_context_manager_disposes(self):
        observers: ObserverSet[str] = ObserverSet()
        received: list[str] = []

        with observers.subscribe(received.append):
            observers.notify("inside")
        observers.notify("outside")

        assert received == ["inside"]
