"""ControlPanel: the only entry points a presentation layer may call.

Mutations: upload_dataset, start_fine_tuning, send_query.
Reads: list_models, jobs, get_job, subscribe.
Lifecycle: shutdown (also via `async with`), which tears down every poll task.

Errors other than polling transport errors propagate to the caller so the UI
can show them as failure notifications.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from tunedeck.core.config import RetryConfig
from tunedeck.core.exceptions import PanelClosedError, TransportError
from tunedeck.core.interfaces.job_registry import JobRegistryPort, Subscriber
from tunedeck.core.interfaces.job_service import JobServicePort, ProgressCallback
from tunedeck.core.interfaces.retry import RetryPort
from tunedeck.core.managers.observers import ObserverGroup
from tunedeck.core.managers.poller import PollerSupervisor
from tunedeck.core.managers.query_dispatch import QueryDispatcher
from tunedeck.core.models.job import Job, JobMetadata, JobPatch, JobStatus
from tunedeck.core.models.requests import (
    FineTuneConfig,
    GenerationConfig,
    ModelInfo,
    QueryRequest,
    QueryResponse,
    UploadedFile,
)
from tunedeck.core.settings import logger

PANEL_CLOSED = "panel closed"


class ControlPanel:
    def __init__(
        self,
        service: JobServicePort,
        registry: JobRegistryPort,
        poller: PollerSupervisor,
        observers: Optional[ObserverGroup] = None,
        retry_port: Optional[RetryPort] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._service = service
        self._registry = registry
        self._poller = poller
        self._observers = observers or ObserverGroup()
        self._retry = retry_port
        self._retry_config = retry_config or RetryConfig()
        self._queries = QueryDispatcher(service)
        self._closed = False

    async def __aenter__(self) -> "ControlPanel":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False

    @property
    def poller(self) -> PollerSupervisor:
        return self._poller

    # ---------------- Mutations -----------------
    async def upload_dataset(
        self,
        filename: str,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadedFile:
        logger.info(f"[panel:upload] uploading dataset filename={filename} size={len(content)}")
        uploaded = await self._service.upload_file(filename, content, on_progress=on_progress)
        logger.info(f"[panel:upload] dataset uploaded filename={filename} file_id={uploaded.file_id}")
        return uploaded

    async def start_fine_tuning(
        self,
        file_id: str,
        config: FineTuneConfig,
        dataset: Optional[str] = None,
    ) -> Job:
        """Submit a job, register it as pending and start polling it.

        Raises PanelClosedError once the panel or its poller has shut down, so
        no remote job is created that nothing would poll.
        """
        if self._closed or self._poller.is_shut_down:
            raise PanelClosedError("Control panel is shut down; no new jobs are accepted")
        config = config.with_default_repo_name(dataset)
        logger.info(f"[panel:submit] submitting fine-tuning model_id={config.model_id} file_id={file_id}")
        submitted = await self._service.submit_job(file_id, config.model_dump())

        metadata = JobMetadata(model_id=config.model_id, dataset=dataset, file_id=file_id)
        self._registry.create(Job(id=submitted.job_id, metadata=metadata))
        if self._poller.start_polling(submitted.job_id) is None:
            # shut down while the submission was in flight
            self._registry.update(
                submitted.job_id,
                JobPatch(status=JobStatus.failed, result={"error": PANEL_CLOSED, "detail": "job was never polled"}),
            )
            raise PanelClosedError(
                f"Control panel shut down while submitting; job {submitted.job_id} is not tracked",
                job_id=submitted.job_id,
            )
        job = self._registry.get(submitted.job_id)
        logger.info(f"[panel:submit] job started job_id={submitted.job_id}")
        await self._observers.job_created(job)
        return job

    async def send_query(
        self,
        model_id: str,
        input: str,
        generation_config: Optional[GenerationConfig] = None,
    ) -> QueryResponse:
        request = QueryRequest(
            model_id=model_id,
            input=input,
            generation_config=generation_config or GenerationConfig(),
        )
        return await self._queries.dispatch(request)

    # ---------------- Reads -----------------
    async def list_models(self) -> List[ModelInfo]:
        """Fetch the model catalog, retrying transient transport errors."""
        if self._retry is None:
            return await self._service.list_models()
        return await self._retry.execute(
            self._service.list_models,
            attempts=self._retry_config.attempts,
            wait_initial=self._retry_config.wait_initial,
            wait_max=self._retry_config.wait_max,
            exception_types=(TransportError,),
        )

    def jobs(self) -> List[Job]:
        return self._registry.list()

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._registry.get(job_id)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._registry.subscribe(callback)

    def completed_models(self) -> List[Dict[str, Any]]:
        """Completed jobs as query targets; a fine-tuned model is addressed by its job id."""
        return [
            {"id": job.id, "base_model": job.metadata.model_id, "result": job.result}
            for job in self._registry.list()
            if job.status == JobStatus.completed
        ]

    # ---------------- Lifecycle -----------------
    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"[panel:shutdown] stopping {len(self._poller.active_job_ids())} poll handle(s)")
        await self._poller.stop_all()
