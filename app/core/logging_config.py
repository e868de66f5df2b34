"""Centralized logging configuration for the application."""
from __future__ import annotations

import logging
import logging.handlers
import os
import time

from app.core.config import settings


def setup_logging() -> None:
    """Configure application and uvicorn loggers with sane defaults."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    formatter = logging.Formatter(
        "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.Formatter.converter = time.gmtime

    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(settings.LOG_DIR, "app.log"),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [file_handler, stream_handler]

    # Import pipeline logger kept at the configured level even when a
    # library lowers the root level.
    import_logger = logging.getLogger("app.domain.smart_import")
    import_logger.setLevel(log_level)
    import_logger.propagate = True

    # httpx logs every request line at INFO, including the vision endpoint.
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)


__all__ = ["setup_logging"]
