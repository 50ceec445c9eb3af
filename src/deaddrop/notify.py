"""
Typed publish/subscribe channels for service notifications.

Publishing is fire-and-forget: subscribers cannot acknowledge, and a
failing subscriber never affects the publisher or its siblings.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotificationChannel(Generic[T]):
    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Callable[[T], Any]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """Add a subscriber. Returns a cleanup function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass
        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, payload: T) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(payload)
            except Exception:
                logger.exception(f"Subscriber for '{self.name}' failed")
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable: Any) -> None:
        async def _run() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception(f"Async subscriber for '{self.name}' failed")

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def __repr__(self) -> str:
        return f"NotificationChannel(name={self.name!r}, subscribers={len(self._subscribers)})"
