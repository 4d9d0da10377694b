from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict

import structlog


def configure_logging(service_name: str) -> None:
    # stdout is reserved for the MCP stdio transport.
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    logger = structlog.get_logger(service=service_name)
    logger.info("logging_configured")


def log_event(logger: structlog.BoundLogger, event_type: str, payload: Dict[str, Any]) -> None:
    logger.info(event_type, **payload)


def get_logger(service_name: str) -> structlog.BoundLogger:
    return structlog.get_logger(service=service_name)


def tool_call_context(tool_name: str):
    """Bind the tool name onto every log line emitted while a call runs, including
    lines logged from worker threads started inside the block."""
    return structlog.contextvars.bound_contextvars(tool=tool_name)
