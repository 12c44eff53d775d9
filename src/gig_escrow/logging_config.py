"""Structured logging configuration using structlog.

JSON output in staging/production, colored console output in development.
Every entry carries the request_id bound by RequestIDMiddleware so a webhook
delivery can be traced from acknowledgment through reconciliation.

Provider credentials never reach the output: `redact_secrets` masks any
event key that names a secret, and signatures are shortened with
`signature_prefix` before they are logged.

Usage:
    from gig_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger()
    logger.info("reconciliation.funded", application_id="abc-123", provider="payfast")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

SIGNATURE_PREFIX_LENGTH = 12

_SECRET_KEYS = ("passphrase", "secret", "merchant_key", "authorization", "password")


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: mask values whose key names a credential."""
    for key in list(event_dict):
        lowered = key.lower()
        if any(marker in lowered for marker in _SECRET_KEYS) and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def signature_prefix(signature: str | None) -> str:
    """Shorten a signature for log output; full signatures are never logged."""
    if not signature:
        return ""
    return signature[:SIGNATURE_PREFIX_LENGTH] + "..."


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Install the structlog pipeline on the stdlib root logger.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: JSON lines for staging/production, console renderer otherwise.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
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

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # sqlalchemy.engine echoes bound parameters
    for noisy_logger in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
