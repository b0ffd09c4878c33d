"""
Audit Logging Setup
===================
structlog configuration for services embedding the audit pipeline.

Usage:
    from audit_rest.log_config import configure_logging

    configure_logging(service_name="crm-api")
"""

import logging
import sys
import structlog


class _BelowLevel(logging.Filter):
    """Pass records strictly below ``level``."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def configure_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
    errors_to_stderr: bool = True,
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog on top of the stdlib root logger.

    Args:
        service_name: Bound to every record as ``service``
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console rendering otherwise
        errors_to_stderr: Route ERROR and above to stderr, the rest to stdout

    Returns:
        Logger bound to the service name
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if errors_to_stderr:
        stdout_handler.addFilter(_BelowLevel(logging.ERROR))
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.ERROR)
        stderr_handler.setFormatter(formatter)
        root_logger.addHandler(stderr_handler)

    structlog.contextvars.bind_contextvars(service=service_name)

    logger = structlog.get_logger("audit_rest")
    logger.info("logging_configured", service=service_name, level=level.upper())
    return logger

