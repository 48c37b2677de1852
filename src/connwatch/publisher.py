"""Publish-subscribe fan-out of connection state snapshots.

Observers (a status badge, a request router, a CLI printer) subscribe with a
callable that receives each new ``ConnectionState``.  Delivery is synchronous
and follows subscription order.  A state published from inside a listener is
queued and delivered after the current one, so every listener sees every
state in the order the states were published.  A listener that raises is
logged and skipped; it never prevents delivery to the listeners after it.

Usage:
    publisher = StatusPublisher(ConnectionState())
    unsubscribe = publisher.subscribe(lambda state: print(state.status))
    ...
    unsubscribe()
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable

from connwatch.logging import get_logger
from connwatch.types import ConnectionState

logger = get_logger(__name__)

Listener = Callable[[ConnectionState], object]
Unsubscribe = Callable[[], None]


class StatusPublisher:
    """Holds the latest published state and notifies subscribers.

    Thread-safety contract:
        ``current()``, ``subscribe()`` and the returned unsubscribe handles may
        be called from any thread.  ``publish()`` snapshots the listener list
        under ``_lock`` and calls listeners outside it, so a listener may
        unsubscribe itself or publish again during delivery.
    """

    def __init__(self, initial: ConnectionState | None = None) -> None:
        self._state = initial or ConnectionState()
        self._listeners: dict[int, Listener] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()
        self._pending: deque[ConnectionState] = deque()
        self._delivering = False

    def current(self) -> ConnectionState:
        """Return the latest published state (an immutable snapshot)."""
        with self._lock:
            return self._state

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register a listener for future state changes.

        Args:
            listener: Callable receiving each published ``ConnectionState``.

        Returns:
            A handle that removes the listener. Calling it more than once is harmless.
        """
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        with self._lock:
            token = next(self._ids)
            self._listeners[token] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def publish(self, state: ConnectionState) -> None:
        """Record ``state`` as current and deliver it to every listener.

        When called while a delivery is already running (a listener reacting
        to a state by changing it), ``state`` is queued and this call returns
        at once.  The outermost call drains the queue in FIFO order.
        """
        with self._lock:
            self._state = state
            self._pending.append(state)
            if self._delivering:
                return
            self._delivering = True

        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._delivering = False
                        return
                    next_state = self._pending.popleft()
                    # dicts preserve insertion order, which is subscription order
                    listeners = list(self._listeners.values())
                self._deliver(next_state, listeners)
        except BaseException:
            with self._lock:
                self._pending.clear()
                self._delivering = False
            raise

    def _deliver(self, state: ConnectionState, listeners: list[Listener]) -> None:
        for listener in listeners:
            try:
                listener(state)
            except Exception as e:
                # INTENTIONAL BROAD CATCH: one faulty observer must not starve the rest.
                logger.warning(
                    "[PUBLISHER] Listener %r raised %s: %s",
                    listener,
                    type(e).__name__,
                    e,
                )

    def clear(self) -> None:
        """Drop all listeners."""
        with self._lock:
            self._listeners.clear()
