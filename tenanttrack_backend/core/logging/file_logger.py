"""
Queue-based file logging with rotation.

Handlers run on a listener thread so request handlers never block on disk.
"""

import logging
import os
import queue
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler

from .structured_logger import build_formatter

EXTERNAL_LOGGER_LEVELS = {
    "sqlalchemy": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiosmtplib": logging.WARNING,
    "asyncmy": logging.INFO,
    "uvicorn": logging.INFO,
    "fastapi": logging.INFO,
}


class FileLogger:
    """Owns the log queue, its listener thread and the rotating file handler."""

    def __init__(
        self,
        log_file_path: str = "logs/app.log",
        max_bytes: int = 50 * 1024 * 1024,
        backup_count: int = 5,
        log_level: str = "INFO",
        use_json_format: bool = True,
    ):
        self.log_file_path = log_file_path
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.level = getattr(logging, log_level.upper())
        self.use_json_format = use_json_format
        self._log_queue: queue.Queue = queue.Queue()
        self._listener: QueueListener | None = None
        self._queue_handler: QueueHandler | None = None

        directory = os.path.dirname(log_file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def build_handlers(self) -> list[logging.Handler]:
        file_handler = RotatingFileHandler(
            self.log_file_path, maxBytes=self.max_bytes, backupCount=self.backup_count
        )
        file_handler.setLevel(self.level)
        file_handler.setFormatter(build_formatter(self.use_json_format))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.level)
        console_handler.setFormatter(build_formatter(self.use_json_format, colored=True))

        return [console_handler, file_handler]

    def start(self) -> None:
        self._listener = QueueListener(
            self._log_queue, *self.build_handlers(), respect_handler_level=True
        )
        self._listener.start()

    @property
    def queue_handler(self) -> QueueHandler:
        if self._queue_handler is None:
            self._queue_handler = QueueHandler(self._log_queue)
            self._queue_handler.setLevel(self.level)
        return self._queue_handler

    def stop(self) -> None:
        """Flush pending records and stop the listener thread."""
        if self._listener:
            self._listener.stop()
            self._listener = None


def route_loggers_to(handler: logging.Handler) -> None:
    """Send root, library and warnings output through a single handler."""
    for logger_name, level in EXTERNAL_LOGGER_LEVELS.items():
        ext_logger = logging.getLogger(logger_name)
        ext_logger.handlers.clear()
        ext_logger.addHandler(handler)
        ext_logger.propagate = False
        ext_logger.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    warnings_logger.handlers.clear()
    warnings_logger.addHandler(handler)
    warnings_logger.propagate = False
    warnings_logger.setLevel(logging.WARNING)
