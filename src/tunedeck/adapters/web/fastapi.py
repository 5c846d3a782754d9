# tunedeck/adapters/web/fastapi.py
from contextlib import asynccontextmanager
from typing import Callable, List

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse

from tunedeck.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    JobTrackingError,
    PanelClosedError,
    RegistryReentrancyError,
    TransportError,
    UnknownJobError,
    UploadError,
)
from tunedeck.core.interfaces.job_service import JobServicePort
from tunedeck.core.managers.control_panel import ControlPanel
from tunedeck.core.models.job import Job
from tunedeck.core.models.requests import (
    FineTuneRequest,
    ModelInfo,
    QueryRequest,
    QueryResponse,
    UploadedFile,
)
from tunedeck.core.settings import logger

_ERROR_STATUS = {
    UnknownJobError: 404,
    DuplicateJobError: 409,
    InvalidTransitionError: 409,
    RegistryReentrancyError: 500,
    PanelClosedError: 503,
    UploadError: 502,
    TransportError: 502,
}


def status_for(exc: JobTrackingError) -> int:
    for error_type, status in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


# Note: this is a driver adapter. It depends on the core (ControlPanel) but the
# core does not depend on it; rendering lives in the browser.
def create_app(
    service: JobServicePort,
    panel_factory: Callable[[JobServicePort], ControlPanel],
):
    """Create the FastAPI app.

    The composition root passes the job service and a factory that assembles
    the ControlPanel around the opened client. The lifespan owns teardown:
    every poll task is cancelled before the client session closes.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with service as client:
            panel = panel_factory(client)
            app.state.panel = panel
            try:
                yield
            finally:
                await panel.shutdown()

    app = FastAPI(title="tunedeck", lifespan=lifespan)

    def panel_of(request: Request) -> ControlPanel:
        return request.app.state.panel

    @app.exception_handler(JobTrackingError)
    async def handle_core_error(request: Request, exc: JobTrackingError):
        status = status_for(exc)
        logger.warning(f"[api:error] {request.method} {request.url.path} status={status} error={exc.message}")
        return JSONResponse(status_code=status, content={"detail": exc.message})

    @app.get("/health")
    async def health(request: Request):
        panel = panel_of(request)
        return {"status": "ok", "polling": panel.poller.active_job_ids()}

    @app.get("/models", response_model=List[ModelInfo])
    async def list_models(request: Request):
        return await panel_of(request).list_models()

    @app.post("/upload", response_model=UploadedFile)
    async def upload(request: Request, file: UploadFile = File(...)):
        content = await file.read()
        filename = file.filename or "dataset"

        def report(percent: int) -> None:
            logger.debug(f"[api:upload] filename={filename} progress={percent}%")

        return await panel_of(request).upload_dataset(filename, content, on_progress=report)

    @app.post("/finetune", response_model=Job, status_code=201)
    async def finetune(request: Request, body: FineTuneRequest):
        return await panel_of(request).start_fine_tuning(body.file_id, body.config, dataset=body.dataset)

    @app.get("/jobs", response_model=List[Job])
    async def list_jobs(request: Request):
        return panel_of(request).jobs()

    @app.get("/jobs/{job_id}", response_model=Job)
    async def get_job(request: Request, job_id: str):
        job = panel_of(request).get_job(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    @app.get("/finetuned")
    async def finetuned_models(request: Request):
        return panel_of(request).completed_models()

    @app.post("/query", response_model=QueryResponse)
    async def query(request: Request, body: QueryRequest):
        return await panel_of(request).send_query(body.model_id, body.input, body.generation_config)

    return app
