import logging
import logging.config
import sys
from typing import Any, Dict, List

import sentry_sdk
import structlog

from vitalwatch.core.config import Settings, settings as default_settings


def _init_sentry(config: Settings) -> None:
    if not config.SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=1.0 if config.ENVIRONMENT == "local" else 0.1,
    )


def setup_logging(config: Settings | None = None) -> None:
    """
    Configure structured logging for the service.
    - Local/dev: pretty console output.
    - Everything else: one JSON object per line.
    - Sentry is initialised when a DSN is configured.
    """
    config = config or default_settings
    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    _init_sentry(config)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer_processor = (
        structlog.dev.ConsoleRenderer()
        if config.ENVIRONMENT in ["local", "dev"]
        else structlog.processors.JSONRenderer()
    )

    # Route uvicorn and library loggers through the same formatter
    passthrough = {"handlers": ["default"], "level": "INFO", "propagate": False}
    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": renderer_processor,
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "level": config.LOG_LEVEL,
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
        },
        "loggers": {
            "": {
                "handlers": ["default"],
                "level": config.LOG_LEVEL,
                "propagate": True,
            },
            "uvicorn": dict(passthrough),
            "uvicorn.error": dict(passthrough),
            "uvicorn.access": dict(passthrough),
            # Motor/pymongo are chatty at INFO during server selection
            "pymongo": {**passthrough, "level": "WARNING"},
        },
    }

    logging.config.dictConfig(logging_config)
