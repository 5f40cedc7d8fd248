"""Concurrency-bounded FIFO admission queue.

At most ``max_concurrent`` tasks run at once; the rest wait in arrival
order. Every settlement frees a slot and admits the next waiting task,
whether the task succeeded, failed or was cancelled.
"""

import asyncio
import itertools
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from zfetch.errors import AbortError
from zfetch.metrics import ClientMetrics
from zfetch.signals import CancelSignal


logger = structlog.get_logger()

T = TypeVar("T")

_task_ids = itertools.count(1)


class TaskState(str, Enum):
    """Lifecycle of a queued task.

    - QUEUED: Waiting for a slot
    - RUNNING: Holding a slot
    - SETTLED: Finished, aborted while queued, or abandoned by its caller
    """

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SETTLED = "SETTLED"


@dataclass(eq=False)
class QueueTask(Generic[T]):
    """Deferred unit of work plus its admission future.

    Attributes:
        work: Coroutine factory run once a slot is granted.
        admission: Resolved when the task is admitted, or failed with
            ``AbortError`` if its signal fires while it waits.
        signal: Optional cancellation signal checked before admission.
        state: Current lifecycle state.
        task_id: Sequence number, for logs.
    """

    work: Callable[[], Awaitable[T]]
    admission: asyncio.Future[None]
    signal: CancelSignal | None = None
    state: TaskState = TaskState.QUEUED
    task_id: int = field(default_factory=lambda: next(_task_ids))
    detach: Callable[[], None] | None = None


class ConcurrencyQueue:
    """Bounds the number of simultaneously running tasks.

    ``max_concurrent=None`` turns the queue into a pass-through. All state
    is touched only from the event loop thread, at admission and
    settlement.
    """

    def __init__(self, max_concurrent: int | None = None) -> None:
        """Initialize the queue.

        Args:
            max_concurrent: Slot count, or None for unbounded.

        Raises:
            ValueError: If max_concurrent is less than 1.
        """
        if max_concurrent is not None and max_concurrent < 1:
            msg = f"max_concurrent must be >= 1 or None, got {max_concurrent}"
            raise ValueError(msg)
        self._max_concurrent = max_concurrent
        self._active = 0
        self._waiting: deque[QueueTask[Any]] = deque()
        self._metrics = ClientMetrics.get_instance()
        self._log = logger.bind(component="queue")

    @property
    def max_concurrent(self) -> int | None:
        """Get the slot count (None when unbounded)."""
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """Get the number of running tasks."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Get the number of waiting tasks."""
        return len(self._waiting)

    def _has_capacity(self) -> bool:
        return self._max_concurrent is None or self._active < self._max_concurrent

    async def submit(
        self,
        work: Callable[[], Awaitable[T]],
        signal: CancelSignal | None = None,
    ) -> T:
        """Run ``work`` once a slot is free.

        Args:
            work: Coroutine factory to run.
            signal: If it fires while the task waits, the task leaves the
                queue without taking a slot.

        Returns:
            Whatever ``work`` returns.

        Raises:
            AbortError: If the signal fired before the task was admitted.
        """
        if signal is not None and signal.fired:
            raise AbortError(signal.reason)

        task: QueueTask[T] = QueueTask(
            work=work,
            admission=asyncio.get_running_loop().create_future(),
            signal=signal,
        )

        if self._has_capacity() and not self._waiting:
            self._admit(task)
        else:
            self._enqueue(task)

        try:
            await task.admission
        except asyncio.CancelledError:
            if task.state is TaskState.RUNNING:
                # Admitted but abandoned before resuming: give the slot back.
                self._release(task)
            elif task.state is TaskState.QUEUED:
                self._waiting.remove(task)
                self._detach(task)
                task.state = TaskState.SETTLED
            raise

        try:
            return await task.work()
        finally:
            self._release(task)

    def _enqueue(self, task: QueueTask[Any]) -> None:
        self._waiting.append(task)
        if task.signal is not None:
            task.detach = task.signal.add_listener(
                lambda _signal: self._abort_waiting(task)
            )
        self._log.debug(
            "queue_wait",
            task_id=task.task_id,
            position=len(self._waiting),
            active=self._active,
        )

    def _detach(self, task: QueueTask[Any]) -> None:
        if task.detach is not None:
            task.detach()
            task.detach = None

    def _admit(self, task: QueueTask[Any]) -> None:
        self._detach(task)
        task.state = TaskState.RUNNING
        self._active += 1
        self._metrics.record_active(self._active)
        task.admission.set_result(None)
        self._log.debug("queue_admit", task_id=task.task_id, active=self._active)

    def _abort_waiting(self, task: QueueTask[Any]) -> None:
        if task.state is not TaskState.QUEUED:
            return
        self._waiting.remove(task)
        self._settle_aborted(task)

    def _settle_aborted(self, task: QueueTask[Any]) -> None:
        task.state = TaskState.SETTLED
        self._detach(task)
        reason = task.signal.reason if task.signal is not None else None
        if not task.admission.done():
            task.admission.set_exception(AbortError(reason))
        self._log.debug("queue_abort", task_id=task.task_id, reason=str(reason))

    def _release(self, task: QueueTask[Any]) -> None:
        task.state = TaskState.SETTLED
        self._active -= 1
        self._drain()

    def _drain(self) -> None:
        while self._waiting and self._has_capacity():
            task = self._waiting.popleft()
            if task.signal is not None and task.signal.fired:
                self._settle_aborted(task)
                continue
            self._admit(task)
