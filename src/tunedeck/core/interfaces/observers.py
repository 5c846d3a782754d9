"""Observer protocols for job lifecycle events and polling errors.

Observers decouple side effects (logging, notifications shown by a UI) from
the polling core. Their exceptions are logged and never stop a poll loop.
"""

from typing import Any, Dict, Optional, Protocol

from tunedeck.core.models.job import Job, JobStatus


class JobStateObserver(Protocol):
    """Observer protocol for job state transitions.

    - on_job_created: after a submitted job is registered as pending
    - on_status_changed: after a tick changed the job's status
    - on_job_completed: after the job reached completed or failed
    """

    async def on_job_created(self, job: Job) -> None:
        ...

    async def on_status_changed(
        self,
        job: Job,
        old_status: Optional[JobStatus],
        new_status: JobStatus,
    ) -> None:
        ...

    async def on_job_completed(self, job: Job) -> None:
        ...


class PollErrorObserver(Protocol):
    """Receives errors that polling recovers from instead of raising."""

    def on_poll_error(self, job_id: str, exc: Exception) -> None:
        """A tick failed (transport error or rejected payload)."""
        ...

    def on_result_conflict(
        self,
        job_id: str,
        stored: Dict[str, Any],
        incoming: Dict[str, Any],
    ) -> None:
        """A payload carried a result that differs from the one already stored."""
        ...
