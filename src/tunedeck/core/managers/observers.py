"""Observer implementations for job lifecycle events and polling errors.

- LoggingJobObserver: logs transitions and recovered polling errors
- ObserverGroup: fans events out to observers, isolating their failures
"""

import logging
from typing import Any, Dict, Iterable, Optional

from tunedeck.core.interfaces.observers import JobStateObserver, PollErrorObserver
from tunedeck.core.models.job import Job, JobStatus
from tunedeck.core.settings import logger


class LoggingJobObserver:
    """Turns job events into log lines; implements both observer protocols.

    Completion lines double as the user-facing notification in headless use.
    """

    def __init__(self, name: str = "tunedeck.jobs"):
        self._log = logging.getLogger(name)

    async def on_job_created(self, job: Job) -> None:
        self._log.info(
            "Fine-tuning job started job_id=%s model=%s dataset=%s",
            job.id,
            job.metadata.model_id,
            job.metadata.dataset,
        )

    async def on_status_changed(
        self,
        job: Job,
        old_status: Optional[JobStatus],
        new_status: JobStatus,
    ) -> None:
        self._log.debug("Job status changed job_id=%s old=%s new=%s", job.id, old_status, new_status)

    async def on_job_completed(self, job: Job) -> None:
        if job.status == JobStatus.completed:
            self._log.info("Fine-tuning job %s completed successfully", job.id)
        else:
            self._log.warning("Fine-tuning job %s failed result=%s", job.id, job.result)

    def on_poll_error(self, job_id: str, exc: Exception) -> None:
        self._log.warning("Polling job %s failed: %s", job_id, exc)

    def on_result_conflict(
        self,
        job_id: str,
        stored: Dict[str, Any],
        incoming: Dict[str, Any],
    ) -> None:
        self._log.warning(
            "Ignoring conflicting result for job %s stored=%s incoming=%s", job_id, stored, incoming
        )


class ObserverGroup:
    """Dispatches events to every registered observer.

    An observer raising is logged and skipped; it never aborts a tick.
    """

    def __init__(
        self,
        job_observers: Optional[Iterable[JobStateObserver]] = None,
        error_observers: Optional[Iterable[PollErrorObserver]] = None,
    ):
        self._job_observers = list(job_observers or [])
        self._error_observers = list(error_observers or [])

    async def job_created(self, job: Job) -> None:
        for observer in self._job_observers:
            try:
                await observer.on_job_created(job)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_job_created failed observer={type(observer).__name__} "
                    f"job_id={job.id} error={exc}"
                )

    async def status_changed(
        self, job: Job, old_status: Optional[JobStatus], new_status: JobStatus
    ) -> None:
        for observer in self._job_observers:
            try:
                await observer.on_status_changed(job, old_status, new_status)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_status_changed failed observer={type(observer).__name__} "
                    f"job_id={job.id} error={exc}"
                )

    async def job_completed(self, job: Job) -> None:
        for observer in self._job_observers:
            try:
                await observer.on_job_completed(job)
            except Exception as exc:
                logger.error(
                    f"[observer:error] on_job_completed failed observer={type(observer).__name__} "
                    f"job_id={job.id} error={exc}"
                )

    def poll_error(self, job_id: str, exc: Exception) -> None:
        for observer in self._error_observers:
            try:
                observer.on_poll_error(job_id, exc)
            except Exception as observer_exc:
                logger.error(
                    f"[observer:error] on_poll_error failed observer={type(observer).__name__} "
                    f"job_id={job_id} error={observer_exc}"
                )

    def result_conflict(
        self, job_id: str, stored: Dict[str, Any], incoming: Dict[str, Any]
    ) -> None:
        for observer in self._error_observers:
            try:
                observer.on_result_conflict(job_id, stored, incoming)
            except Exception as observer_exc:
                logger.error(
                    f"[observer:error] on_result_conflict failed observer={type(observer).__name__} "
                    f"job_id={job_id} error={observer_exc}"
                )
