"""
Main — Ariste's entry point.

Configures logging once and hands control to the Click command group. All
wiring of configuration, tools, client, loop and orchestrator happens in
``ariste.agent``; this file only starts things.
"""

from __future__ import annotations

import logging
import os

import structlog

_logging_configured = False


def configure_logging() -> None:
    """Configure structlog and standard-library logging for Ariste entry points.

    The level comes from ``ARISTE_LOG_LEVEL`` (default WARNING). Safe to call
    more than once; later calls are no-ops.
    """
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    level_name = os.environ.get("ARISTE_LOG_LEVEL", "WARNING").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING

    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def main() -> None:
    configure_logging()
    from ariste.cli.app import cli

    cli(obj={})


if __name__ == "__main__":
    main()
