"""Entrypoint for the call scoring service."""

from __future__ import annotations

from callscore.common.config import LoggingConfig, ServiceConfig
from callscore.common.structured_logging import configure_logging

_logging_config = LoggingConfig()

# Configure logging BEFORE importing the app so uvicorn starts with it.
configure_logging(
    _logging_config.level,
    json_logs=_logging_config.json_logs,
    service_name=_logging_config.service_name,
)


def main() -> None:
    """Run the service under uvicorn."""
    import uvicorn

    from callscore.pipeline.app import app

    service_config = ServiceConfig()
    uvicorn.run(
        app,
        host=service_config.host,
        port=service_config.port,
        log_config=None,  # keep the structlog configuration
    )


if __name__ == "__main__":
    main()
