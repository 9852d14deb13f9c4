from __future__ import annotations

import logging
import sys

import structlog


def setup_logging() -> structlog.BoundLogger:
    """Set up structured logging for the repo_snapshot package.

    Log lines are JSON objects written to stderr; stdout only carries the
    report.

    Returns:
        A structlog logger instance configured for the repo_snapshot package.
    """
    logging.basicConfig(
        level=logging.INFO,
        handlers=[logging.StreamHandler(sys.stderr)],
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("repo_snapshot")


logger = setup_logging()
