"""
Structured logging for CERT-HUB.

All logging goes through structlog. Standard-library records (Django, web3)
are routed through the same processor chain so every line has one format.
"""

import logging
import sys

import structlog

_configured = False


def configure_logging(level="INFO", json_output=False):
    # type: (str, bool) -> None
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once, later calls are ignored.

    :param level: Root log level name
    :param json_output: Render JSON lines instead of the console renderer
    """
    global _configured
    if _configured:
        return

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # web3 and urllib3 are chatty at DEBUG
    for name in ("web3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
