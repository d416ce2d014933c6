"""Single-owner event delivery for device adapters.

Device adapters report what happened (started, result, ended, error) through
exactly one subscriber: the turn-taking coordinator. Events are always
delivered on the event loop, never inline with the command that caused them,
so a handler never re-enters itself.

Each start of a device bumps a session counter. Events tagged with an older
session (a worker finishing after ``stop()``) are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")


class EventSource(Generic[E]):
    def __init__(self) -> None:
        self._handler: Callable[[E], None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._session = 0

    def subscribe(self, handler: Callable[[E], None]) -> None:
        """Register the one and only event handler."""
        if self._handler is not None:
            raise RuntimeError(f"{type(self).__name__} already has a subscriber")
        self._handler = handler

    def _bind_loop(self) -> None:
        self._loop = asyncio.get_running_loop()

    def _next_session(self) -> int:
        self._session += 1
        return self._session

    def _emit(self, event: E, session: int | None = None) -> None:
        """Queue an event for delivery on the loop."""
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(self._dispatch, event, self._session if session is None else session)

    def _dispatch(self, event: E, session: int) -> None:
        if session != self._session:
            logger.debug(f"{type(self).__name__}: dropping stale {event!r} (session {session} != {self._session})")
            return
        self._on_event(event)
        if self._handler is None:
            logger.debug(f"{type(self).__name__}: no subscriber for {event!r}")
            return
        self._handler(event)

    def _on_event(self, event: E) -> None:
        """Hook for adapters to update their own state before the subscriber runs."""
