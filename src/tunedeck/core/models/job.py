from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class JobStatus(StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})

# Position along pending -> running -> {completed, failed}
_STATUS_RANK = {
    JobStatus.pending: 0,
    JobStatus.running: 1,
    JobStatus.completed: 2,
    JobStatus.failed: 2,
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_allowed_transition(old: JobStatus, new: JobStatus) -> bool:
    """Return True if a job may move from `old` to `new`.

    Moves are forward-only along pending -> running -> {completed, failed};
    skipping `running` counts as forward. Repeating the current status is
    allowed, including re-reporting the same terminal status. A terminal
    status never changes into anything else.
    """
    if old == new:
        return True
    if is_terminal(old):
        return False
    return _STATUS_RANK[new] > _STATUS_RANK[old]


class JobMetadata(BaseModel):
    """Caller-supplied descriptive fields, fixed at creation."""

    model_id: str
    dataset: Optional[str] = None  # display name of the uploaded dataset
    file_id: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True, "protected_namespaces": ()}


class Job(BaseModel):
    """Last observed state of one remotely executed job.

    Notes:
    - `id` is assigned by the remote service at submission time.
    - `logs` always holds the longest snapshot seen so far.
    - `result` is written at most once.
    - `created` and `updated` are local timestamps kept by the registry.
    """

    id: str
    status: JobStatus = JobStatus.pending
    logs: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    metadata: JobMetadata

    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated: Optional[datetime] = None

    def touch(self) -> None:
        self.updated = datetime.now(timezone.utc)

    def is_in_terminal_state(self) -> bool:
        return is_terminal(self.status)


class JobPatch(BaseModel):
    """Partial job update; only explicitly set fields are applied."""

    status: Optional[JobStatus] = None
    logs: Optional[List[str]] = None
    result: Optional[Dict[str, Any]] = None

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class StatusPayload(BaseModel):
    """Body of GET /jobs/{job_id} on the remote service.

    The service returns the full accumulated log on every call.
    """

    status: JobStatus
    logs: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None

    model_config = {"extra": "ignore"}

    @field_validator("logs", mode="before")
    @classmethod
    def _none_logs_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value
