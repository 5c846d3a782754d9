from typing import Optional


class JobTrackingError(Exception):
    """Base exception for the job-tracking core."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        self.message = message
        self.job_id = job_id
        super().__init__(message)


# Transport-level failures

class TransportError(JobTrackingError):
    """Raised when the remote job service cannot be reached or answers with an error.

    Attributes:
        status: HTTP status code from the service (None for network failures)
        url: Requested URL
        fatal: True when retrying cannot help (auth failures, unknown job)
    """

    FATAL_STATUSES = frozenset({401, 403, 404, 410})

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
        fatal: Optional[bool] = None,
        job_id: Optional[str] = None,
    ):
        self.status = status
        self.url = url
        self.fatal = fatal if fatal is not None else status in self.FATAL_STATUSES
        super().__init__(message, job_id=job_id)


class UploadError(JobTrackingError):
    """Raised when a dataset upload fails. Never retried."""

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.filename = filename
        self.status = status
        super().__init__(message)


# Contract violations inside the core

class DuplicateJobError(JobTrackingError):
    def __init__(self, job_id: str):
        super().__init__(f"Job already exists: {job_id}", job_id=job_id)


class UnknownJobError(JobTrackingError):
    def __init__(self, job_id: str):
        super().__init__(f"Unknown job: {job_id}", job_id=job_id)


class InvalidTransitionError(JobTrackingError):
    """Raised when a status change would move a job backwards or out of a terminal state."""

    def __init__(self, job_id: str, old_status: str, new_status: str):
        self.old_status = old_status
        self.new_status = new_status
        message = f"Job {job_id} cannot move from {old_status} to {new_status}"
        super().__init__(message, job_id=job_id)


class RegistryReentrancyError(JobTrackingError):
    """Raised when a registry subscriber tries to mutate the registry while being notified."""


class PanelClosedError(JobTrackingError):
    """Raised when a job is submitted after the control panel stopped polling."""
