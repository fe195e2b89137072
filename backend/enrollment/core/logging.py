"""
Structured logging configuration using structlog.

Outputs JSON in production, pretty-printed in development. Request context
(request_id, method, path) is merged from contextvars, so webhook and
sweeper log lines can be correlated with the triggering call. Processor
credentials and the admin key never reach the log stream.
"""

import logging
import sys
from typing import Any

import structlog
from enrollment.core.config import get_settings

SECRET_KEYS = frozenset({"authorization", "access_token", "mp_access_token", "x_admin_key", "admin_api_key"})
REDACTED = "***"


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in event_dict.keys() & SECRET_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def _add_service(environment: str):
    def processor(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", "enrollment")
        event_dict.setdefault("env", environment)
        return event_dict
    return processor


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]

    if settings.ENVIRONMENT == "production":
        # Reconciliation failures are only visible here; keep tracebacks machine-readable
        shared_processors += [
            _add_service(settings.ENVIRONMENT),
            structlog.processors.format_exc_info,
        ]
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    # Replace handlers so a reload under uvicorn does not double every line
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
