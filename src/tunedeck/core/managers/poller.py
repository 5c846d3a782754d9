"""PollerSupervisor: owns one polling task per in-flight job.

Responsibilities:
1. Keep exactly one PollHandle per polled, non-terminal job (re-arming replaces).
2. Tick: fetch the remote status, reduce it, write it to the registry.
3. Retire a handle as soon as its job is terminal, without re-arming.
4. Absorb transport errors; give up only on fatal errors or a configured cap.
   Any other fetch error fails the job at once.
5. Cancel every handle on teardown and wait until no task is left.

Ticks of one job run inside a single sequential loop, so two ticks of the
same job can never overlap; ticks of different jobs interleave freely.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Set

from tunedeck.core.config import PollerConfig
from tunedeck.core.exceptions import InvalidTransitionError, TransportError, UnknownJobError
from tunedeck.core.interfaces.job_registry import JobRegistryPort
from tunedeck.core.interfaces.job_service import JobServicePort
from tunedeck.core.logging_config import job_id_var
from tunedeck.core.managers.observers import ObserverGroup
from tunedeck.core.managers.status_reducer import as_patch, reduce, result_conflict
from tunedeck.core.models.job import Job, JobStatus, StatusPayload
from tunedeck.core.settings import logger

SleepFn = Callable[[float], Awaitable[None]]

CONNECTION_LOST = "connection lost"
INVALID_TRANSITION = "invalid transition"
UNEXPECTED_ERROR = "unexpected error"


class PollHandle:
    """The live polling task bound to one job.

    Attributes:
        in_flight: True while the tick's status request is outstanding
        cancelled: Set once the handle is cancelled or retired; a response
            arriving afterwards is discarded
        consecutive_failures: Transport failures since the last successful tick
    """

    def __init__(self, job_id: str, interval: float):
        self.job_id = job_id
        self.interval = interval
        self.task: Optional[asyncio.Task] = None
        self.in_flight = False
        self.cancelled = False
        self.consecutive_failures = 0

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


class PollerSupervisor:
    """Starts, ticks and tears down the polling tasks of remote jobs.

    `sleep` is injected so tests can drive ticks without real timers.
    """

    def __init__(
        self,
        service: JobServicePort,
        registry: JobRegistryPort,
        config: PollerConfig,
        observers: Optional[ObserverGroup] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._service = service
        self._registry = registry
        self.config = config
        self._observers = observers or ObserverGroup()
        self._sleep = sleep
        self._handles: Dict[str, PollHandle] = {}
        # every task not finished yet, including cancelled ones still unwinding
        self._tasks: Set[asyncio.Task] = set()
        self._shutdown = False

    # ---------------- Handle table -----------------
    def start_polling(self, job_id: str, interval: Optional[float] = None) -> Optional[PollHandle]:
        """Arm (or re-arm) polling for a job; returns the new handle.

        Returns None without scheduling anything when the supervisor is shut
        down or the job is already terminal.
        """
        if self._shutdown:
            logger.debug(f"[poll:start] supervisor stopped; ignoring job_id={job_id}")
            return None

        job = self._registry.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        if job.is_in_terminal_state():
            logger.debug(f"[poll:start] job already terminal job_id={job_id} status={job.status}")
            return None

        existing = self._handles.pop(job_id, None)
        if existing is not None:
            logger.debug(f"[poll:start] replacing existing handle job_id={job_id}")
            existing.cancel()

        handle = PollHandle(job_id, interval if interval is not None else self.config.poll_interval)
        handle.task = asyncio.create_task(self._poll_loop(handle), name=f"poll:{job_id}")
        self._handles[job_id] = handle
        self._tasks.add(handle.task)
        handle.task.add_done_callback(partial(self._on_task_done, handle))
        logger.debug(f"[poll:start] scheduled poll loop job_id={job_id} interval={handle.interval}")
        return handle

    def stop(self, job_id: str) -> None:
        """Cancel polling for one job; no-op when it is not polled."""
        handle = self._handles.pop(job_id, None)
        if handle is not None:
            logger.debug(f"[poll:stop] cancelling handle job_id={job_id}")
            handle.cancel()

    async def stop_all(self) -> None:
        """Cancel every handle and wait for the tasks to finish. Idempotent."""
        self._shutdown = True
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            logger.debug(f"[poll:stop_all] waiting for {len(pending)} poll task(s)")
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = {t for t in self._tasks if not t.done()}

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    def is_polling(self, job_id: str) -> bool:
        return job_id in self._handles

    def is_in_flight(self, job_id: str) -> bool:
        handle = self._handles.get(job_id)
        return bool(handle and handle.in_flight)

    def active_job_ids(self) -> List[str]:
        return list(self._handles)

    def pending_tasks(self) -> int:
        """Number of poll tasks that have not finished (cancelled ones included)."""
        return sum(1 for t in self._tasks if not t.done())

    def _retire(self, handle: PollHandle) -> None:
        # called from inside the handle's own task: mark it, do not cancel it
        handle.cancelled = True
        if self._handles.get(handle.job_id) is handle:
            del self._handles[handle.job_id]

    def _on_task_done(self, handle: PollHandle, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._handles.get(handle.job_id) is handle:
            del self._handles[handle.job_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[poll:loop] poll task crashed job_id={handle.job_id} error={exc!r}"
            )

    # ---------------- Polling -----------------
    async def _poll_loop(self, handle: PollHandle) -> None:
        """Sleep, tick, repeat until the job is terminal or the handle is cancelled."""
        job_id_var.set(handle.job_id)
        while not handle.cancelled:
            await self._sleep(handle.interval)
            if handle.cancelled:
                return
            if await self._tick(handle):
                return

    async def _tick(self, handle: PollHandle) -> bool:
        """Run one tick. Returns True when this handle must stop polling."""
        job_id = handle.job_id
        handle.in_flight = True
        try:
            payload = await self._service.fetch_status(job_id)
        except TransportError as exc:
            handle.in_flight = False
            if handle.cancelled:
                return True
            return await self._handle_transport_error(handle, exc)
        except Exception as exc:
            handle.in_flight = False
            if handle.cancelled:
                return True
            return await self._handle_unexpected_error(handle, exc)
        finally:
            handle.in_flight = False

        if handle.cancelled:
            logger.debug(f"[poll:tick] discarding response for cancelled handle job_id={job_id}")
            return True
        handle.consecutive_failures = 0

        previous = self._registry.get(job_id)
        if previous is None:
            logger.warning(f"[poll:tick] job disappeared from registry job_id={job_id}")
            self._retire(handle)
            return True

        if result_conflict(previous, payload):
            self._observers.result_conflict(job_id, previous.result, payload.result)

        try:
            job = reduce(previous, payload)
        except InvalidTransitionError as exc:
            logger.warning(f"[poll:tick] rejected payload job_id={job_id} error={exc}")
            self._observers.poll_error(job_id, exc)
            await self._fail_locally(handle, previous, INVALID_TRANSITION, str(exc))
            return True

        return await self._commit(handle, previous, job)

    async def _commit(self, handle: PollHandle, previous: Job, job: Job) -> bool:
        """Write a reduced job back; retire the handle in the same step if terminal."""
        stored = self._registry.update(job.id, as_patch(job))
        terminal = stored.is_in_terminal_state()
        if terminal:
            self._retire(handle)
            logger.debug(f"[poll:tick] terminal state reached job_id={job.id} status={stored.status}")

        if stored.status != previous.status:
            await self._observers.status_changed(stored, previous.status, stored.status)
        if terminal:
            await self._observers.job_completed(stored)
        return terminal

    async def _handle_transport_error(self, handle: PollHandle, exc: TransportError) -> bool:
        handle.consecutive_failures += 1
        logger.debug(
            f"[poll:tick] fetch error job_id={handle.job_id} failures={handle.consecutive_failures} "
            f"status={exc.status} fatal={exc.fatal} err={exc}"
        )
        self._observers.poll_error(handle.job_id, exc)

        cap = self.config.max_consecutive_failures
        if not exc.fatal and (cap is None or handle.consecutive_failures < cap):
            return False

        previous = self._registry.get(handle.job_id)
        if previous is None:
            self._retire(handle)
            return True
        logger.warning(
            f"[poll:tick] giving up job_id={handle.job_id} failures={handle.consecutive_failures} fatal={exc.fatal}"
        )
        await self._fail_locally(handle, previous, CONNECTION_LOST, str(exc))
        return True

    async def _handle_unexpected_error(self, handle: PollHandle, exc: Exception) -> bool:
        # any non-transport fetch failure fails the job
        logger.error(f"[poll:tick] unexpected error job_id={handle.job_id} error={exc!r}")
        self._observers.poll_error(handle.job_id, exc)
        previous = self._registry.get(handle.job_id)
        if previous is None:
            self._retire(handle)
            return True
        await self._fail_locally(handle, previous, UNEXPECTED_ERROR, repr(exc))
        return True

    async def _fail_locally(self, handle: PollHandle, previous: Job, reason: str, detail: str) -> None:
        """Mark a job failed with a synthetic result, going through the reducer."""
        if previous.is_in_terminal_state():
            self._retire(handle)
            return
        payload = StatusPayload(
            status=JobStatus.failed,
            logs=previous.logs,
            result={
                "error": reason,
                "detail": detail,
                "consecutive_failures": handle.consecutive_failures,
            },
        )
        await self._commit(handle, previous, reduce(previous, payload))
