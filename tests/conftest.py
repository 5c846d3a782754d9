"""Shared fakes for the job-tracking tests.

FakeJobService replays scripted status payloads per job id; ManualClock
replaces the poller's sleep so each tick happens exactly when a test says so.
"""

import asyncio
from collections import deque
from typing import Any, Dict, List, Optional

import pytest

from tunedeck.adapters.job_registry_inmemory import InMemoryJobRegistry
from tunedeck.core.config import PollerConfig
from tunedeck.core.exceptions import TransportError
from tunedeck.core.interfaces.job_service import JobServicePort
from tunedeck.core.managers.observers import ObserverGroup
from tunedeck.core.managers.poller import PollerSupervisor
from tunedeck.core.models.job import Job, JobMetadata, StatusPayload
from tunedeck.core.models.requests import (
    ModelInfo,
    QueryRequest,
    QueryResponse,
    SubmittedJob,
    UploadedFile,
)


async def settle(rounds: int = 10) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class Gate:
    """A scripted status step that blocks until the test opens it."""

    def __init__(self, payload: StatusPayload):
        self.payload = payload
        self.entered = asyncio.Event()
        self._open = asyncio.Event()

    def open(self) -> None:
        self._open.set()

    async def wait(self) -> StatusPayload:
        self.entered.set()
        await self._open.wait()
        return self.payload


class FakeJobService(JobServicePort):
    """In-process job service.

    `script(job_id, *steps)`: each fetch_status pops the next step; the last
    step repeats. A step is a StatusPayload, a dict, an Exception to raise or
    a Gate to wait on.
    """

    def __init__(self):
        self.scripts: Dict[str, List[Any]] = {}
        self.fetch_calls: List[str] = []
        self.submitted: List[tuple] = []
        self.queries: List[QueryRequest] = []
        self.uploads: List[tuple] = []
        self.job_ids = deque()
        self.submit_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None
        self.models_errors: List[Exception] = []
        self.models_calls = 0
        self.entered = False
        self.exited = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.exited = True
        return False

    def script(self, job_id: str, *steps: Any) -> None:
        self.scripts[job_id] = list(steps)

    def fetch_count(self, job_id: str) -> int:
        return self.fetch_calls.count(job_id)

    async def upload_file(self, filename, content, on_progress=None) -> UploadedFile:
        if self.upload_error:
            raise self.upload_error
        self.uploads.append((filename, content))
        if on_progress:
            on_progress(0)
            on_progress(100)
        return UploadedFile(file_id=f"file-{len(self.uploads)}", filename=filename)

    async def submit_job(self, file_id, config) -> SubmittedJob:
        if self.submit_error:
            raise self.submit_error
        self.submitted.append((file_id, config))
        job_id = self.job_ids.popleft() if self.job_ids else f"job-{len(self.submitted)}"
        return SubmittedJob(job_id=job_id)

    async def fetch_status(self, job_id) -> StatusPayload:
        self.fetch_calls.append(job_id)
        steps = self.scripts.get(job_id)
        if not steps:
            raise TransportError("no scripted status", status=503)
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Gate):
            return await step.wait()
        if isinstance(step, Exception):
            raise step
        if isinstance(step, dict):
            return StatusPayload.model_validate(step)
        return step

    async def query(self, request: QueryRequest) -> QueryResponse:
        self.queries.append(request)
        return QueryResponse(response=f"echo: {request.input}", tokens=3)

    async def list_models(self) -> List[ModelInfo]:
        self.models_calls += 1
        if self.models_errors:
            raise self.models_errors.pop(0)
        return [ModelInfo(id="gpt2"), ModelInfo(id="distilgpt2")]

    async def close(self) -> None:
        return None


class ManualClock:
    """Sleep replacement; every sleeping poll loop wakes up on `advance()`."""

    def __init__(self):
        self._waiters: List[asyncio.Future] = []
        self.delays: List[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    @property
    def sleeping(self) -> int:
        return sum(1 for f in self._waiters if not f.done())

    async def advance(self) -> None:
        await settle()
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
        await settle()


class RecordingObserver:
    """Collects every observer callback for assertions."""

    def __init__(self):
        self.events: List[tuple] = []
        self.poll_errors: List[tuple] = []
        self.conflicts: List[tuple] = []

    async def on_job_created(self, job):
        self.events.append(("created", job.id, job.status))

    async def on_status_changed(self, job, old_status, new_status):
        self.events.append(("changed", job.id, old_status, new_status))

    async def on_job_completed(self, job):
        self.events.append(("completed", job.id, job.status))

    def on_poll_error(self, job_id, exc):
        self.poll_errors.append((job_id, exc))

    def on_result_conflict(self, job_id, stored, incoming):
        self.conflicts.append((job_id, stored, incoming))


def make_job(job_id: str, model_id: str = "gpt2") -> Job:
    return Job(id=job_id, metadata=JobMetadata(model_id=model_id, dataset="train.jsonl", file_id="file-1"))


@pytest.fixture
def registry():
    return InMemoryJobRegistry()


@pytest.fixture
def service():
    return FakeJobService()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def poller_config():
    return PollerConfig(poll_interval=5.0)


@pytest.fixture
async def poller(service, registry, poller_config, clock, recorder):
    supervisor = PollerSupervisor(
        service,
        registry,
        poller_config,
        observers=ObserverGroup(job_observers=[recorder], error_observers=[recorder]),
        sleep=clock.sleep,
    )
    yield supervisor
    await supervisor.stop_all()
