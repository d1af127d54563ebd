"""Concurrent dispatch of tasks across a bounded pool of workers."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from .config import TaskDescriptor
from .persist import PersistError, ResultPersister
from .transport import (
    CommandError,
    ExecResult,
    HostConnectionError,
    RemoteExecutor,
    SessionError,
)

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How a single task ended."""

    CONNECTION_FAILED = "connection failed"
    SESSION_FAILED = "session failed"
    COMMAND_FAILED = "command failed"
    SUCCESS = "success"


@dataclass(frozen=True)
class ResultMessage:
    """What a worker reports for one finished task."""

    host: str
    elapsed: float
    outcome: Outcome
    persisted: bool
    error: str = ""

    @property
    def command_ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def narrative(self) -> str:
        return f"{self.elapsed:.2f}s {self.host} {self.command_ok} {self.persisted}"


@dataclass
class Tally:
    """Aggregate counts for a run."""

    total: int
    succeeded: int = 0
    failed: int = 0
    elapsed: float = 0.0

    @property
    def unaccounted(self) -> int:
        """Hosts whose worker never reported a status."""
        return self.total - self.succeeded - self.failed

    def summary(self) -> str:
        return (
            f"total={self.total} succeeded={self.succeeded} failed={self.failed} "
            f"unaccounted={self.unaccounted} {self.elapsed:.2f}s overall elapsed"
        )


# Type alias for result callback
ResultCallback = Callable[[ResultMessage], None]

# Marks the end of the message stream
_CLOSED = object()


def classify(result: ExecResult) -> Outcome:
    """Map an executor result onto exactly one outcome."""
    error = result.error
    if error is None:
        return Outcome.SUCCESS
    if isinstance(error, HostConnectionError):
        return Outcome.CONNECTION_FAILED
    if isinstance(error, SessionError):
        return Outcome.SESSION_FAILED
    if isinstance(error, CommandError):
        return Outcome.COMMAND_FAILED
    # Unknown RemoteError subclasses still count against the command
    return Outcome.COMMAND_FAILED


class WorkerPool:
    """Runs tasks on a fixed number of workers and collects their results.

    Workers claim tasks from a queue filled once up front. Each task yields
    one ResultMessage, printed (or handed to ``on_result``) by a single
    aggregator, and one status, counted after every worker has finished.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        persister: ResultPersister,
        concurrency: int = 50,
        on_result: ResultCallback | None = None,
        rng: random.Random | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.executor = executor
        self.persister = persister
        self.concurrency = concurrency
        self.on_result = on_result or _print_result
        self.rng = rng or random.Random()
        self.results: list[ResultMessage] = []

    def jitter(self, budget_ms: int) -> float | None:
        """Pick a connect timeout in seconds from ``[0, budget_ms)``."""
        if budget_ms <= 0:
            return None
        return self.rng.random() * budget_ms / 1000

    async def run(self, tasks: Sequence[TaskDescriptor]) -> Tally:
        """Run every task once and return the aggregate tally."""
        start = time.monotonic()
        total = len(tasks)
        self.results = []

        queue: asyncio.Queue[TaskDescriptor] = asyncio.Queue(maxsize=max(total, 1))
        for task in tasks:
            queue.put_nowait(task)
        # Nothing is enqueued past this point

        messages: asyncio.Queue = asyncio.Queue()
        statuses: asyncio.Queue[bool] = asyncio.Queue()

        if total == 0:
            return Tally(total=0, elapsed=time.monotonic() - start)

        worker_count = min(self.concurrency, total)
        logger.info("Dispatching %d hosts to %d workers", total, worker_count)

        aggregator = asyncio.create_task(self._aggregate(messages), name="aggregator")
        workers = [
            asyncio.create_task(
                self._worker(queue, messages, statuses), name=f"worker-{i}"
            )
            for i in range(worker_count)
        ]

        try:
            # Join barrier
            await asyncio.gather(*workers)
        finally:
            # Close the message stream only once no worker can emit again
            messages.put_nowait(_CLOSED)
            await aggregator

        tally = _count_statuses(statuses, total)
        tally.elapsed = time.monotonic() - start
        if tally.unaccounted:
            logger.error("%d hosts never reported a status", tally.unaccounted)
        return tally

    async def _worker(
        self,
        queue: asyncio.Queue[TaskDescriptor],
        messages: asyncio.Queue,
        statuses: asyncio.Queue[bool],
    ) -> None:
        name = asyncio.current_task().get_name()
        while True:
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                logger.debug("%s: queue drained", name)
                return

            try:
                message = await self._process(task)
            except Exception:
                logger.exception("%s crashed while processing %s", name, task.host)
                continue

            messages.put_nowait(message)
            statuses.put_nowait(message.command_ok)

    async def _process(self, task: TaskDescriptor) -> ResultMessage:
        timeout = self.jitter(task.connect_timeout_ms)
        logger.debug(
            "Running %r on %s (connect timeout %s)", task.command, task.target, timeout
        )

        start = time.monotonic()
        result = await self.executor.execute(task, timeout)
        elapsed = time.monotonic() - start

        outcome = classify(result)
        if outcome is not Outcome.SUCCESS:
            logger.debug("%s: %s: %s", task.host, outcome.value, result.error)

        # Output is kept whatever the command outcome was
        try:
            persisted = await asyncio.to_thread(
                self.persister.persist, task.host, result.output
            )
        except PersistError as e:
            logger.warning("%s", e)
            persisted = False

        return ResultMessage(
            host=task.host,
            elapsed=elapsed,
            outcome=outcome,
            persisted=bool(persisted),
            error=str(result.error or ""),
        )

    async def _aggregate(self, messages: asyncio.Queue) -> None:
        """Deliver messages as they arrive until the stream is closed."""
        while True:
            message = await messages.get()
            if message is _CLOSED:
                return
            self.results.append(message)
            try:
                self.on_result(message)
            except Exception:
                logger.exception("Result callback failed for %s", message.host)


def _count_statuses(statuses: asyncio.Queue[bool], total: int) -> Tally:
    tally = Tally(total=total)
    while not statuses.empty():
        if statuses.get_nowait():
            tally.succeeded += 1
        else:
            tally.failed += 1
    return tally


def _print_result(message: ResultMessage) -> None:
    print(message.narrative)
