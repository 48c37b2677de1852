"""Choose between the live data source and the fallback substitute.

Callers that talk to the monitored dependency hold a live client and a
local substitute (for example an in-memory mock of the task API).  The
selector reads the mode from the published connection state, so switching
``ConnectionController.set_mode`` redirects every caller on its next request.

Usage:
    selector = SourceSelector(controller.publisher, live=api_client, fallback=mock_client)
    tasks = selector.select().list_tasks()
"""

from __future__ import annotations

from typing import Generic, TypeVar

from connwatch.controller import ConnectionController
from connwatch.publisher import StatusPublisher
from connwatch.types import ConnectionMode, ConnectionState

T = TypeVar("T")


class SourceSelector(Generic[T]):
    """Routes callers to the live source or the fallback source by mode."""

    def __init__(
        self,
        status: StatusPublisher | ConnectionController,
        *,
        live: T,
        fallback: T,
    ) -> None:
        """Initialize the selector.

        Args:
            status: Publisher (or controller) whose current state decides the route.
            live: Source used in LIVE mode.
            fallback: Source used in FALLBACK mode.
        """
        self._status = status
        self.live = live
        self.fallback = fallback

    def _current(self) -> ConnectionState:
        if isinstance(self._status, ConnectionController):
            return self._status.snapshot()
        return self._status.current()

    @property
    def using_fallback(self) -> bool:
        return self._current().mode == ConnectionMode.FALLBACK

    def select(self) -> T:
        """Return the source matching the current mode."""
        return self.fallback if self.using_fallback else self.live
