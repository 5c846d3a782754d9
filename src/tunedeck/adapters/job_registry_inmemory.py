"""In-memory implementation of JobRegistryPort.

All methods are synchronous: with a single asyncio event loop nothing can
interleave inside a call, so every create/update is atomic to its callers.
Jobs are stored and handed out as deep copies.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional

from tunedeck.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    RegistryReentrancyError,
    UnknownJobError,
)
from tunedeck.core.interfaces.job_registry import JobRegistryPort, Snapshot, Subscriber
from tunedeck.core.models.job import Job, JobPatch, JobStatus, is_allowed_transition
from tunedeck.core.settings import logger


class InMemoryJobRegistry(JobRegistryPort):
    def __init__(self) -> None:
        # dicts keep insertion order, which is the display order
        self._jobs: Dict[str, Job] = {}
        self._subscribers: List[Subscriber] = []
        self._notifying = False

    def create(self, job: Job) -> str:
        self._guard_reentrancy("create")
        if job.id in self._jobs:
            raise DuplicateJobError(job.id)
        stored = job.model_copy(
            update={"status": JobStatus.pending, "logs": [], "result": None},
            deep=True,
        )
        self._jobs[job.id] = stored
        self._notify()
        return stored.id

    def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def update(self, job_id: str, patch: JobPatch) -> Job:
        self._guard_reentrancy("update")
        current = self._jobs.get(job_id)
        if current is None:
            raise UnknownJobError(job_id)
        changes = {name: value for name, value in patch.changes().items() if value is not None}
        new_status = changes.get("status")
        if new_status is not None and not is_allowed_transition(current.status, new_status):
            raise InvalidTransitionError(job_id, current.status, new_status)
        # logs only grow and a stored result is final, whoever writes
        if len(changes.get("logs", current.logs)) < len(current.logs):
            del changes["logs"]
        if current.result is not None:
            changes.pop("result", None)
        # build the whole new record before swapping it in
        stored = current.model_copy(update=changes, deep=True)
        stored.touch()
        self._jobs[job_id] = stored
        self._notify()
        return stored.model_copy(deep=True)

    def list(self) -> Snapshot:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._jobs)

    def _guard_reentrancy(self, operation: str) -> None:
        if self._notifying:
            raise RegistryReentrancyError(f"registry {operation} called from a subscriber callback")

    def _notify(self) -> None:
        if not self._subscribers:
            return
        self._notifying = True
        try:
            for callback in list(self._subscribers):
                try:
                    callback(self.list())
                except Exception as exc:
                    logger.error(
                        f"[registry:notify] subscriber failed subscriber={getattr(callback, '__name__', callback)} error={exc}"
                    )
        finally:
            self._notifying = False
