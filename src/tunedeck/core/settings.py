from typing import Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich import print

from tunedeck.adapters.logging_adapter import LoggingAdapter
from tunedeck.core.interfaces.logging import LoggingPort


# using pydantic_settings to manage environment variables
# and do automatic type casting in a central place
class TunedeckSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )
    TUNEDECK_LOG_LEVEL: str = "INFO"
    TUNEDECK_SERVICE_URL: HttpUrl = HttpUrl("http://localhost:8000")
    # seconds between status requests for one job
    TUNEDECK_POLL_INTERVAL: float = Field(default=5.0, gt=0)
    # unset = keep polling an unreachable service forever
    TUNEDECK_MAX_CONSECUTIVE_FAILURES: Optional[int] = Field(default=None, ge=1)
    TUNEDECK_REQUEST_TIMEOUT: float = 10.0
    TUNEDECK_UPLOAD_TIMEOUT: float = 300.0
    TUNEDECK_MODELS_RETRY_ATTEMPTS: int = 3
    TUNEDECK_API_HOST: str = "0.0.0.0"
    TUNEDECK_API_PORT: int = 3000

    @field_validator("TUNEDECK_MAX_CONSECUTIVE_FAILURES", mode="before")
    @classmethod
    def empty_means_unbounded(cls, value):
        if isinstance(value, str) and value.strip() in ("", "0", "none", "None"):
            return None
        return value

    @property
    def service_base_url(self) -> str:
        return str(self.TUNEDECK_SERVICE_URL).rstrip("/")

    def print_settings(self, logger: LoggingPort):
        """Prints the settings for debugging purposes"""
        logger.info("tunedeck settings:")
        print(self)


class _DelegatingLogger(LoggingPort):
    """Module-level logger whose target can be swapped by the composition root.

    Modules import `logger` once; `set_logger` retargets it without
    invalidating those imports.
    """

    def __init__(self, target: LoggingPort):
        self._target = target

    def info(self, msg: str, *args):
        self._target.info(msg, *args)

    def warning(self, msg: str, *args):
        self._target.warning(msg, *args)

    def error(self, msg: str, *args):
        self._target.error(msg, *args)

    def debug(self, msg: str, *args):
        self._target.debug(msg, *args)


app_settings = TunedeckSettings()

logger = _DelegatingLogger(LoggingAdapter("tunedeck", app_settings.TUNEDECK_LOG_LEVEL))


def set_logger(new_logger: LoggingPort) -> None:
    logger._target = new_logger
