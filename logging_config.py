"""
Centralized logging configuration for the Catfecito payments backend.

This module provides request-aware logging: every log message carries the
thread name and the id of the HTTP request being served, so the lines
belonging to one webhook delivery or one checkout can be grepped together.

Features:
    - Automatic thread name and request id in all log messages
    - Console output (always enabled)
    - Rotating file logs (optional, for production)
    - Separate error log for ERROR/CRITICAL messages
    - Helper functions for getting loggers with consistent naming

Log Format:
    2025-12-03 10:15:30 [INFO    ] [MainThread] [-] catfecito.app - Starting application
    2025-12-03 10:15:31 [INFO    ] [Thread-3] [a1b2c3d4] catfecito.services.payment_service - Preference created

Usage:
    # At application startup
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)
    logger.info("This message includes request context automatically")
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from flask import g, has_request_context


APP_LOGGER_NAME = "catfecito"


# =============================================================================
# REQUEST CONTEXT FILTER
# =============================================================================

class RequestContextFilter(logging.Filter):
    """
    Logging filter that adds thread and request context to all log records.

    This filter adds two attributes to each log record:
        - thread_name: Name of the current thread
        - request_id: Id assigned to the current HTTP request, or "-"
          outside a request (startup, shutdown)
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Add context to the log record.

        Args:
            record: The log record to modify

        Returns:
            Always True (we never filter out messages, just add context)
        """
        record.thread_name = threading.current_thread().name
        record.request_id = "-"
        if has_request_context():
            record.request_id = getattr(g, "request_id", "-")
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure application logging with request context.

    This sets up:
    1. Console handler (always enabled) - for immediate feedback
    2. Rotating file handler (optional) - for persistent logs
    3. Error file handler (optional) - for ERROR/CRITICAL only
    4. Request context filter - adds thread name and request id

    Args:
        app_name: Name of the root logger (default: "catfecito")
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs relative to this file)
        enable_file_logging: Whether to write to log files (default: True)

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False  # Prevent duplicate logs to root logger

    # Remove any existing handlers (allows re-configuration)
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] [%(thread_name)s] [%(request_id)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    context_filter = RequestContextFilter()

    # ---------------------------------------------------------------------
    # Console Handler (always enabled)
    # ---------------------------------------------------------------------
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    logger.addHandler(console_handler)

    # ---------------------------------------------------------------------
    # File Handlers (optional)
    # ---------------------------------------------------------------------
    if enable_file_logging:
        if log_dir is None:
            log_dir = Path(__file__).parent / "logs"

        log_dir.mkdir(parents=True, exist_ok=True)

        # Main application log (all levels)
        app_log_file = log_dir / f"{app_name}.log"
        file_handler = RotatingFileHandler(
            filename=app_log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB per file
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        logger.addHandler(file_handler)

        # Error log (ERROR and CRITICAL only)
        error_log_file = log_dir / f"{app_name}_error.log"
        error_handler = RotatingFileHandler(
            filename=error_log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        error_handler.addFilter(context_filter)
        logger.addHandler(error_handler)

        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger with the application namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance with request context support

    Example:
        # In services/payment_service.py
        logger = get_logger(__name__)
        # Logger name: "catfecito.services.payment_service"
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


class OrderLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the order id and exposes it as record.order_id."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[order {self.extra['order_id']}] {msg}", kwargs


def get_order_logger(order_id) -> OrderLoggerAdapter:
    """
    Get a logger for a specific order.

    All orders share the "catfecito.order" logger; the adapter tags each
    record, so filtering on "[order 42]" finds every payment event of
    order 42.

    Example:
        order_logger = get_order_logger(42)
        order_logger.info("Payment approved")
        # "[order 42] Payment approved" on logger "catfecito.order"
    """
    return OrderLoggerAdapter(get_logger("order"), {"order_id": order_id})
