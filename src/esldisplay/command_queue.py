"""Per-device command serialization."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TypeVar

from .exceptions import TaskCancelledError, TaskTimeoutError, UnsupportedCommandError
from .models.command import CommandRecord
from .models.enums import CommandKind
from .models.settings import EslSettings

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]

_DEFAULT_TIMEOUT: Any = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_text(err: BaseException) -> str:
    return str(err) or type(err).__name__


@dataclass
class CommandHandle(Generic[T]):
    """Returned by ``enqueue``; lets callers observe or await a command."""

    record: CommandRecord
    background: bool
    _outcome: asyncio.Future = field(repr=False)

    @property
    def id(self) -> str:
        return self.record.id

    def done(self) -> bool:
        return self._outcome.done()

    async def wait(self) -> T | CommandRecord:
        """Wait for the command to finish.

        Blocking handles return the task's result or raise its error.
        Background handles never raise; they return the terminal record.
        """
        return await asyncio.shield(self._outcome)


@dataclass
class _Job:
    record: CommandRecord
    task: TaskFactory
    timeout: float | None
    handle: CommandHandle


class _DeviceWorker:
    """FIFO of jobs for one device id, drained by a single asyncio task."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        self.jobs: deque[_Job] = deque()
        self.task: asyncio.Task | None = None


class DeviceCommandQueue:
    """Runs commands one at a time per device id.

    Commands for the same device execute strictly in enqueue order; commands
    for different devices run concurrently. Create one instance at startup and
    share it:

        async with DeviceCommandQueue() as queue:
            queue.submit(device_id, CommandKind.CLEAR_IMAGE, clear_task)
            result = await queue.run(device_id, CommandKind.FLASH, flash_task)
    """

    def __init__(
            self,
            settings: EslSettings | None = None,
            cancel_on_timeout: bool = False,
            clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize queue.

        Args:
            settings: Timeouts and retention (default: EslSettings())
            cancel_on_timeout: Cancel a timed out task instead of letting it
                run on unobserved (default: False)
            clock: Source of timestamps for records
        """
        self.settings = settings or EslSettings()
        self.cancel_on_timeout = cancel_on_timeout
        self._clock = clock

        self._workers: dict[str, _DeviceWorker] = {}
        self._records: dict[str, CommandRecord] = {}
        self._ids = itertools.count(1)
        self._purge_task: asyncio.Task | None = None
        self._closed = False

    async def __aenter__(self) -> DeviceCommandQueue:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def start(self) -> None:
        """Start the periodic purge of old terminal records."""
        if self._closed:
            raise RuntimeError("Queue is closed")
        if self._purge_task is None:
            self._purge_task = asyncio.get_running_loop().create_task(self._purge_loop())

    async def close(self) -> None:
        """Stop purging and cancel all device workers.

        Commands still pending or processing are marked failed.
        """
        self._closed = True
        tasks = []
        for worker in self._workers.values():
            for job in worker.jobs:
                job.handle._outcome.cancel()
            if worker.task is not None:
                tasks.append(worker.task)
        if self._purge_task is not None:
            tasks.append(self._purge_task)
            self._purge_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()

        now = self._clock()
        for record in self._records.values():
            if not record.is_terminal:
                err = TaskCancelledError(f"{record.kind.value} cancelled: queue closed")
                record.mark_failed(now, _error_text(err))
                _LOGGER.debug("Cancelled %s (msg: %s) on close", record.kind.value, record.id)

    def enqueue(
            self,
            device_id: str,
            kind: CommandKind | str,
            task: TaskFactory[T],
            *,
            background: bool = True,
            timeout: float | None = _DEFAULT_TIMEOUT,
    ) -> CommandHandle[T]:
        """Append ``task`` to the device's queue.

        Args:
            device_id: Device the command targets
            kind: Command kind
            task: Zero-argument coroutine function doing the work
            background: Swallow failures after recording them (default: True)
            timeout: Hard timeout in seconds. Defaults to the kind's timeout
                in background mode and to none in blocking mode.

        Raises:
            UnsupportedCommandError: If ``kind`` is unknown
            RuntimeError: If the queue is closed
        """
        if self._closed:
            raise RuntimeError("Queue is closed")
        try:
            kind = CommandKind(kind)
        except ValueError as e:
            raise UnsupportedCommandError(f"Unknown command kind: {kind}") from e

        if timeout is _DEFAULT_TIMEOUT:
            timeout = self.settings.timeout_for(kind) if background else None

        loop = asyncio.get_running_loop()
        record = CommandRecord(
            id=f"msg_{next(self._ids)}_{int(time.time() * 1000)}",
            device_id=device_id,
            kind=kind,
            enqueued_at=self._clock(),
        )
        self._records[record.id] = record
        handle: CommandHandle[T] = CommandHandle(record, background, loop.create_future())
        job = _Job(record=record, task=task, timeout=timeout, handle=handle)

        worker = self._workers.get(device_id)
        if worker is None:
            worker = _DeviceWorker(device_id)
            self._workers[device_id] = worker
            worker.jobs.append(job)
            worker.task = loop.create_task(self._drain(worker))
        else:
            worker.jobs.append(job)

        _LOGGER.info(
            "Enqueued %s for device %s (msg: %s, position %d)",
            kind.value,
            device_id,
            record.id,
            len(worker.jobs),
        )
        return handle

    def submit(
            self,
            device_id: str,
            kind: CommandKind | str,
            task: TaskFactory[Any],
            *,
            timeout: float | None = _DEFAULT_TIMEOUT,
    ) -> CommandHandle[Any]:
        """Fire-and-forget enqueue. Failures are only recorded."""
        return self.enqueue(device_id, kind, task, background=True, timeout=timeout)

    async def run(
            self,
            device_id: str,
            kind: CommandKind | str,
            task: TaskFactory[T],
            *,
            timeout: float | None = None,
    ) -> T:
        """Enqueue and wait; returns the task's result or raises its error."""
        handle = self.enqueue(device_id, kind, task, background=False, timeout=timeout)
        return await handle.wait()

    async def _drain(self, worker: _DeviceWorker) -> None:
        try:
            while worker.jobs:
                await self._execute(worker.jobs.popleft())
        finally:
            # Only clear the slot this worker owns
            if self._workers.get(worker.device_id) is worker:
                del self._workers[worker.device_id]
                _LOGGER.debug("Queue for device %s drained", worker.device_id)

    async def _execute(self, job: _Job) -> None:
        record = job.record
        outcome = job.handle._outcome
        record.mark_processing(self._clock())
        _LOGGER.info("Starting %s for device %s", record.kind.value, record.device_id)

        try:
            inner = asyncio.ensure_future(job.task())
        except Exception as e:
            self._fail(job, e)
            return

        try:
            result = await self._wait_with_timeout(inner, job.timeout)
        except TaskTimeoutError as e:
            self._fail(job, e)
            self._orphan(inner, record)
            return
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # Queue is shutting down
                inner.cancel()
                if not outcome.done():
                    outcome.cancel()
                raise
            # The task cancelled itself; keep draining
            self._fail(job, TaskCancelledError(f"{record.kind.value} was cancelled"))
            return
        except Exception as e:
            self._fail(job, e)
            return

        record.mark_completed(self._clock())
        _LOGGER.info("Completed %s for device %s", record.kind.value, record.device_id)
        if not outcome.done():
            outcome.set_result(record if job.handle.background else result)

    @staticmethod
    async def _wait_with_timeout(inner: asyncio.Future, timeout: float | None) -> Any:
        if timeout is None:
            return await inner
        done, _ = await asyncio.wait({inner}, timeout=timeout)
        if not done:
            raise TaskTimeoutError(f"Task timeout after {timeout:g} seconds")
        return inner.result()

    def _fail(self, job: _Job, err: Exception) -> None:
        record = job.record
        outcome = job.handle._outcome
        record.mark_failed(self._clock(), _error_text(err))

        if job.handle.background:
            _LOGGER.error(
                "Failed %s for device %s: %s", record.kind.value, record.device_id, record.error
            )
            if not outcome.done():
                outcome.set_result(record)
        else:
            _LOGGER.debug(
                "Failed %s for device %s: %s", record.kind.value, record.device_id, record.error
            )
            if not outcome.done():
                outcome.set_exception(err)

    def _orphan(self, inner: asyncio.Future, record: CommandRecord) -> None:
        """Stop waiting on a timed out task; its eventual outcome is discarded."""
        if self.cancel_on_timeout:
            inner.cancel()

        def _discard(fut: asyncio.Future) -> None:
            if fut.cancelled():
                _LOGGER.debug("Timed out %s (msg: %s) was cancelled", record.kind.value, record.id)
            elif fut.exception() is not None:
                _LOGGER.warning(
                    "Timed out %s (msg: %s) failed later: %s",
                    record.kind.value,
                    record.id,
                    fut.exception(),
                )
            else:
                _LOGGER.warning(
                    "Timed out %s (msg: %s) finished late; result discarded",
                    record.kind.value,
                    record.id,
                )

        inner.add_done_callback(_discard)

    def get(self, record_id: str) -> CommandRecord | None:
        return self._records.get(record_id)

    def records_for(self, device_id: str) -> list[CommandRecord]:
        """All retained records for a device, oldest first."""
        records = [r for r in self._records.values() if r.device_id == device_id]
        return sorted(records, key=lambda r: r.enqueued_at)

    def pending_devices(self) -> list[str]:
        """Device ids with queued or running commands."""
        return list(self._workers)

    def purge(self, older_than: float | None = None) -> int:
        """Drop terminal records completed more than ``older_than`` seconds ago.

        Returns:
            Number of records removed
        """
        retention = self.settings.retention if older_than is None else older_than
        cutoff = self._clock() - timedelta(seconds=retention)
        stale = [
            record_id
            for record_id, record in self._records.items()
            if record.is_terminal
            and record.completed_at is not None
            and record.completed_at < cutoff
        ]
        for record_id in stale:
            del self._records[record_id]
        if stale:
            _LOGGER.debug("Purged %d finished commands", len(stale))
        return len(stale)

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.purge_interval)
            self.purge()
