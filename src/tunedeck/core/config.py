"""Configuration models for core components.

Frozen pydantic models built once by the composition root and injected into
the managers, so tests can pass tight intervals without touching settings.
"""

from typing import Optional
from pydantic import BaseModel, Field


class PollerConfig(BaseModel):
    """Configuration for PollerSupervisor behavior.

    Attributes:
        poll_interval: Seconds between two status requests for the same job
        max_consecutive_failures: Failed ticks in a row after which the job is
            marked failed with a "connection lost" result (None = retry forever)
    """

    poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Interval in seconds between remote job status requests",
    )

    max_consecutive_failures: Optional[int] = Field(
        default=None,
        ge=1,
        description="Failed ticks in a row before giving up on a job (None for unbounded retry)",
    )

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_app_settings(cls, settings) -> "PollerConfig":
        return cls(
            poll_interval=settings.TUNEDECK_POLL_INTERVAL,
            max_consecutive_failures=settings.TUNEDECK_MAX_CONSECUTIVE_FAILURES,
        )


class RetryConfig(BaseModel):
    """Backoff policy for one-off catalog reads (never used for ticks, uploads or queries)."""

    attempts: int = Field(default=3, ge=1, le=10)
    wait_initial: float = Field(default=0.2, gt=0)
    wait_max: float = Field(default=2.0, gt=0)

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @classmethod
    def from_app_settings(cls, settings) -> "RetryConfig":
        return cls(attempts=settings.TUNEDECK_MODELS_RETRY_ATTEMPTS)
