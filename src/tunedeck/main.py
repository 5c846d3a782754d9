# main.py
import uvicorn

from tunedeck.adapters.aiohttp_job_service import AioHttpJobServiceAdapter
from tunedeck.adapters.job_registry_inmemory import InMemoryJobRegistry
from tunedeck.adapters.logging_adapter import LoggingAdapter
from tunedeck.adapters.retry_tenacity import TenacityRetryAdapter
from tunedeck.adapters.web.fastapi import create_app
from tunedeck.core.config import PollerConfig, RetryConfig
from tunedeck.core.interfaces.job_service import JobServicePort
from tunedeck.core.logging_config import configure_logging
from tunedeck.core.managers.control_panel import ControlPanel
from tunedeck.core.managers.observers import LoggingJobObserver, ObserverGroup
from tunedeck.core.managers.poller import PollerSupervisor
from tunedeck.core.settings import app_settings, logger, set_logger


# main lives at the outermost layer (not in core)
# Instantiates all the concrete adapters
# Wires dependencies together
# Starts the application

def build_app():
    service = AioHttpJobServiceAdapter(
        app_settings.service_base_url,
        request_timeout=app_settings.TUNEDECK_REQUEST_TIMEOUT,
        upload_timeout=app_settings.TUNEDECK_UPLOAD_TIMEOUT,
    )
    registry = InMemoryJobRegistry()
    job_log = LoggingJobObserver()
    observers = ObserverGroup(job_observers=[job_log], error_observers=[job_log])
    retry_config = RetryConfig.from_app_settings(app_settings)

    def panel_factory(client: JobServicePort) -> ControlPanel:
        poller = PollerSupervisor(
            client,
            registry,
            PollerConfig.from_app_settings(app_settings),
            observers=observers,
        )
        return ControlPanel(
            client,
            registry,
            poller,
            observers=observers,
            retry_port=TenacityRetryAdapter(
                attempts=retry_config.attempts,
                wait_initial=retry_config.wait_initial,
                wait_max=retry_config.wait_max,
            ),
            retry_config=retry_config,
        )

    return create_app(service=service, panel_factory=panel_factory)


def main():
    # Central logging configuration BEFORE injecting the adapter so uvicorn adopts level/format
    configure_logging(app_settings.TUNEDECK_LOG_LEVEL)
    set_logger(LoggingAdapter("tunedeck", app_settings.TUNEDECK_LOG_LEVEL))
    app_settings.print_settings(logger)

    uvicorn.run(
        build_app(),
        host=app_settings.TUNEDECK_API_HOST,
        port=app_settings.TUNEDECK_API_PORT,
        log_config=None,
        log_level=str(app_settings.TUNEDECK_LOG_LEVEL).lower(),
    )


if __name__ == "__main__":
    main()
