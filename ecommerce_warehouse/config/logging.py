"""
Logging Configuration for the E-Commerce Warehouse Pipeline

Provides structured logging for batch runs.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from ecommerce_warehouse.config.settings import get_settings


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for the pipeline.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level = log_level or settings.monitoring.log_level

    # Convert string level to logging constant
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Common processors for all logging
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Configure structlog
    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Choose renderer based on environment
    if settings.monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        # Human-readable console output
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    formatter = ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.monitoring.log_file:
        file_handler = logging.FileHandler(settings.monitoring.log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(ProcessorFormatter(
            processor=JSONRenderer(),
            foreign_pre_chain=shared_processors,
        ))
        root_logger.addHandler(file_handler)

    log = structlog.get_logger(__name__)
    log.info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )
