# treeshop/logging_config.py
import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from treeshop.config import get_settings


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog + standard logging.
    Logs go to stdout; JSON in deployed environments, console renderer locally.
    """
    s = get_settings()
    level = (level or s.log_level).upper()
    json_logs = s.log_json if json_logs is None else json_logs

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None):
    return structlog.get_logger(name or "treeshop")


@contextmanager
def bind_context(
    lead_id: Optional[str] = None,
    proposal_id: Optional[str] = None,
    work_order_id: Optional[str] = None,
) -> Iterator[None]:
    """Bind entity ids into every log line emitted inside the block."""
    values = {
        k: v
        for k, v in {
            "lead_id": lead_id,
            "proposal_id": proposal_id,
            "work_order_id": work_order_id,
        }.items()
        if v is not None
    }
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


# Global logger you can import anywhere
logger = get_logger("treeshop")
