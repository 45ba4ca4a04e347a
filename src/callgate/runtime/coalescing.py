"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/coalescing.py.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class RequestCoalescer(Generic[T]):
    """
    Deduplicate identical in-flight requests.

    The shared task is owned by the coalescer, not by the caller that started
    it: cancelling any one caller (the initiator included) never cancels the
    task other callers are waiting on.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """
        Run ``factory`` once per key among concurrent callers.

        Returns the value and whether it was shared from another caller's
        in-flight task.
        """
        existing = self._tasks.get(key)
        if existing is not None:
            return await asyncio.shield(existing), True

        # No await between lookup and registration, so one task per key.
        task: asyncio.Task[T] = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task), False

    def _forget(self, key: str, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            # Mark the outcome as retrieved when every caller has gone away.
            task.exception()
