"""Observer registrations with disposable handles.

Registrations are stored by identity, so subscribing the same callable twice
yields two independent registrations. Notification iterates over a snapshot,
so disposing from inside a callback never disturbs the iteration. A
registration disposed mid-notification receives nothing further, not even the
current item if it had not been reached yet.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

__all__ = ["DisposableSubscription", "ObserverSet"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Registration(Generic[T]):
    __slots__ = ("callback",)

    def __init__(self, callback: Callable[[T], None]) -> None:
        self.callback = callback


class DisposableSubscription:
    """Handle returned by ``subscribe``; ``dispose()`` removes the registration."""

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose: Callable[[], None] | None = on_dispose

    @property
    def disposed(self) -> bool:
        return self._on_dispose is None

    def dispose(self) -> None:
        """Remove the registration. Calling it again is a no-op."""
        on_dispose, self._on_dispose = self._on_dispose, None
        if on_dispose is not None:
            on_dispose()

    def __enter__(self) -> "DisposableSubscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class ObserverSet(Generic[T]):
    """Ordered set of observers.

    Observers are notified from the most recently registered to the earliest.
    Callers should only rely on every observer seeing every item.
    """

    def __init__(self, name: str = "observers") -> None:
        self._name = name
        self._registrations: list[_Registration[T]] = []

    def __len__(self) -> int:
        return len(self._registrations)

    def subscribe(self, callback: Callable[[T], None]) -> DisposableSubscription:
        registration = _Registration(callback)
        self._registrations.append(registration)
        return DisposableSubscription(lambda: self._remove(registration))

    def _remove(self, registration: _Registration[T]) -> None:
        for i, existing in enumerate(self._registrations):
            if existing is registration:
                del self._registrations[i]
                return

    def notify(self, item: T) -> int:
        """Deliver ``item`` to every registered observer.

        An observer that raises is logged and does not prevent delivery to the
        remaining observers.

        Returns:
            Number of observers notified
        """
        snapshot = list(reversed(self._registrations))
        delivered = 0
        for registration in snapshot:
            # Skip registrations disposed by an earlier callback for this item
            if not any(r is registration for r in self._registrations):
                continue
            try:
                registration.callback(item)
            except Exception as e:
                logger.warning(f"{self._name}: observer raised {e!r}", exc_info=True)
            delivered += 1
        return delivered
