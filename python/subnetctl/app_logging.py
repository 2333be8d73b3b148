from __future__ import annotations

import logging
import os
import sys

import structlog


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Pretty console for interactive use, JSON for pipelines.
    Env overrides:
      SUBNETCTL_LOG_FORMAT=pretty|json
      SUBNETCTL_LOG_LEVEL=DEBUG|INFO|...
    """
    level = (level or os.environ.get("SUBNETCTL_LOG_LEVEL", "INFO")).upper()
    fmt = fmt or os.environ.get("SUBNETCTL_LOG_FORMAT", "pretty")

    # stdlib baseline so httpx logs show up too
    logging.basicConfig(stream=sys.stderr, level=level, format="%(message)s", force=True)

    common = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        processors = common + [structlog.processors.JSONRenderer()]
    else:
        processors = common + [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event=28)]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# Module-level default until configure_logging() is called
structlog.configure_once(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer(colors=False),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)
