"""Logging configuration."""
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import structlog

from paper_trader.core.config import engine_config, logging_config


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_logs: Optional[bool] = None,
):
    """Configure structured logging.

    Args:
        log_level: Overrides LOG_LEVEL
        log_file: Overrides LOG_FILE
        json_logs: Render JSON instead of console lines; defaults to JSON
            outside the development environment
    """
    level = getattr(logging, (log_level or logging_config.log_level).upper())
    log_path = Path(log_file or logging_config.log_file)
    if json_logs is None:
        json_logs = engine_config.system.environment != "development"

    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer() if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # One file handler per path across repeated calls
    target = os.path.abspath(log_path)
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            handler.setLevel(level)
            return

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)
