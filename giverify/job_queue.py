"""Single-flight job queue.

Jobs run strictly one at a time in arrival order. Each submitted identifier
gets its own future; the queue settles it once that job finishes, then moves
on to the next entry. There is no deduplication: the same identifier queued
twice runs twice.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


def next_state(state: QueueState, pending: int) -> QueueState:
    """Transition taken after an enqueue or after a drain step."""
    if pending > 0:
        return QueueState.DRAINING
    if state is QueueState.DRAINING:
        logger.debug("Queue drained, going idle")
    return QueueState.IDLE


@dataclass
class QueueEntry(Generic[T]):
    product_id: str
    future: "asyncio.Future[T]"


class SingleFlightQueue(Generic[T]):
    def __init__(self, job: Callable[[str], Awaitable[T]]) -> None:
        self._job = job
        self._pending: Deque[QueueEntry[T]] = deque()
        self._state = QueueState.IDLE
        self._drain_task: Optional[asyncio.Task[None]] = None
        self._close_error: Optional[Callable[[str], Exception]] = None

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, product_id: str) -> "asyncio.Future[T]":
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._pending.append(QueueEntry(product_id, future))
        logger.info("Queued product_id=%s pending=%s state=%s", product_id, len(self._pending), self._state.value)
        if self._state is QueueState.IDLE:
            self._state = next_state(self._state, len(self._pending))
            self._drain_task = asyncio.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while self._state is QueueState.DRAINING:
            entry = self._pending.popleft()
            logger.info("Processing product_id=%s remaining=%s", entry.product_id, len(self._pending))
            await self._run(entry)
            self._state = next_state(self._state, len(self._pending))

    async def _run(self, entry: QueueEntry[T]) -> None:
        try:
            result = await self._job(entry.product_id)
        except asyncio.CancelledError:
            if not entry.future.done():
                if self._close_error is not None:
                    entry.future.set_exception(self._close_error(entry.product_id))
                else:
                    entry.future.cancel()
            raise
        except Exception as exc:
            if not entry.future.done():
                entry.future.set_exception(exc)
            return
        if not entry.future.done():
            entry.future.set_result(result)

    async def close(self, error: Callable[[str], Exception]) -> None:
        """Stop draining and fail the running entry and every entry still queued."""
        self._close_error = error
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        while self._pending:
            entry = self._pending.popleft()
            if not entry.future.done():
                entry.future.set_exception(error(entry.product_id))
        self._state = QueueState.IDLE
