# =============================================================================
# Live Client -- Listener Registries
# =============================================================================
#
# Multi-consumer fan-out.  Broadcasts iterate a snapshot of the listeners,
# so consumers may add or remove themselves (or each other) mid-dispatch.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable, Generic, TypeVar

from ._logging import logger

T = TypeVar("T")

Listener = Callable[[T], Any]


class ListenerRegistry(Generic[T]):
    """Insertion-ordered set of callbacks for one event class.

    Listeners may be plain functions or coroutine functions.  Coroutines
    are scheduled as tasks on the running loop and their failures are
    logged; a listener raising never stops the broadcast.

    Args:
        name: Label used in log messages, e.g. ``"private_message"``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: dict[Listener[T], None] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, listener: object) -> bool:
        return listener in self._listeners

    def add(self, listener: Listener[T]) -> Listener[T]:
        """Register *listener*.  Idempotent; usable as a decorator."""
        self._listeners[listener] = None
        return listener

    def remove(self, listener: Listener[T]) -> None:
        """Unregister *listener*.  No-op if it is not registered."""
        self._listeners.pop(listener, None)

    def clear(self) -> None:
        self._listeners.clear()

    def broadcast(self, item: T) -> int:
        """Invoke every listener registered when the broadcast started.

        Returns the number of listeners invoked.
        """
        snapshot = tuple(self._listeners)
        for listener in snapshot:
            try:
                result = listener(item)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                logger.error("Listener error on '%s': %s", self.name, exc)
        return len(snapshot)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async listener error on '%s': %s", self.name, exc)

    async def drain(self) -> None:
        """Wait for async listeners scheduled by earlier broadcasts."""
        while self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


class Observable(Generic[T]):
    """A read-only value that notifies subscribers when it changes."""

    def __init__(self, name: str, initial: T) -> None:
        self._value = initial
        self._changes: ListenerRegistry[T] = ListenerRegistry(name)

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, listener: Listener[T]) -> Listener[T]:
        return self._changes.add(listener)

    def unsubscribe(self, listener: Listener[T]) -> None:
        self._changes.remove(listener)

    def _set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        self._changes.broadcast(value)

    def __repr__(self) -> str:
        return f"Observable({self._changes.name}={self._value!r})"
