"""
Logging configuration for the security gate.

This module provides:
- Centralized logging setup driven by gate settings
- Rotating application log plus a dedicated error log
- A helper for logging with request context (identity, request id, path)
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

from stockgate.managers.config.config_manager import config_manager
from stockgate.managers.config.config_models import GateSettings

DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
)
SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(settings: Optional[GateSettings] = None) -> bool:
    """Setup logging handlers and levels. Returns False if setup failed."""
    try:
        app_settings = settings or config_manager.app_settings
        log_level = getattr(logging, app_settings.log_level.upper(), logging.INFO)

        logs_dir = Path(app_settings.app_log_dir or "logs")
        logs_dir.mkdir(parents=True, exist_ok=True)

        # Clear any existing handlers
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

        detailed_formatter = logging.Formatter(DETAILED_FORMAT)
        simple_formatter = logging.Formatter(SIMPLE_FORMAT)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(detailed_formatter)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(simple_formatter)

        error_handler = logging.FileHandler(logs_dir / "errors.log")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)

        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)
        root_logger.addHandler(error_handler)

        setup_specific_loggers(log_level)

        logging.info(f"Logging configured successfully with level: {app_settings.log_level}")
        return True

    except Exception as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)
        return False


def setup_specific_loggers(log_level: int) -> None:
    """Configure specific loggers for different modules."""
    logging.getLogger("stockgate").setLevel(log_level)
    logging.getLogger("fastapi").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # Reduce noise from HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    exc_info: Any = None,
    **context: Any,
) -> None:
    """Log a message with request context attached as record attributes.

    The context is also appended to the message so plain formatters show it.
    """
    if context:
        details = " ".join(f"{key}={value}" for key, value in context.items())
        message = f"{message} [{details}]"
    logger.log(level, message, exc_info=exc_info, extra=context)
