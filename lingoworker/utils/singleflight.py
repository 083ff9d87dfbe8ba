"""Run an async initializer at most once and share its outcome."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Shares one in-flight run of ``fn`` among all concurrent callers.

    With ``cache_failure=True`` a failed run is remembered like a successful one,
    so ``fn`` is invoked at most once for the lifetime of the object. Otherwise a
    failure clears the slot and the next caller starts a fresh run.
    """

    def __init__(self, fn: Callable[[], Awaitable[T]], *, cache_failure: bool = True):
        self._fn = fn
        self._cache_failure = cache_failure
        self._task: asyncio.Task[T] | None = None
        self.calls = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def succeeded(self) -> bool:
        task = self._task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    def _finished(self, task: asyncio.Task[T]) -> None:
        if self._cache_failure or task is not self._task:
            return
        if task.cancelled() or task.exception() is not None:
            self._task = None

    async def _invoke(self) -> T:
        self.calls += 1
        return await self._fn()

    async def run(self) -> T:
        if self._task is None:
            self._task = asyncio.ensure_future(self._invoke())
            self._task.add_done_callback(self._finished)
        # Shielded so one cancelled caller does not cancel the shared run.
        return await asyncio.shield(self._task)
