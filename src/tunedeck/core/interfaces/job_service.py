# tunedeck/core/interfaces/job_service.py
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from tunedeck.core.models.job import StatusPayload
from tunedeck.core.models.requests import (
    ModelInfo,
    QueryRequest,
    QueryResponse,
    SubmittedJob,
    UploadedFile,
)

ProgressCallback = Callable[[int], None]


class JobServicePort(ABC):
    """Client for the remote job-execution service.

    Every call is asynchronous and fallible. Transport failures are raised as
    TransportError, upload failures as UploadError.
    """

    @abstractmethod
    async def __aenter__(self) -> "JobServicePort":
        """Async context manager entry method"""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit method"""
        pass

    @abstractmethod
    async def upload_file(
        self,
        filename: str,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadedFile:
        """Upload a dataset file; `on_progress` receives percent values 0..100."""
        pass

    @abstractmethod
    async def submit_job(self, file_id: str, config: Dict[str, Any]) -> SubmittedJob:
        """Submit a fine-tuning job and return the id the service assigned."""
        pass

    @abstractmethod
    async def fetch_status(self, job_id: str) -> StatusPayload:
        """Return the current status snapshot of a job."""
        pass

    @abstractmethod
    async def query(self, request: QueryRequest) -> QueryResponse:
        """Run one inference request against a model."""
        pass

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """Return the models available for fine-tuning and querying."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying session"""
        pass
