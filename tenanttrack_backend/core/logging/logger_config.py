"""
Central logging configuration for TenantTrack.
"""

import logging

from .file_logger import FileLogger, route_loggers_to
from .middleware import RequestContextFilter
from .structured_logger import setup_structured_logging

APP_LOGGER_NAME = "tenanttrack_backend"


class LoggingConfig:
    """Holds the process-wide logging state so setup is idempotent."""

    def __init__(self):
        self.file_logger: FileLogger | None = None
        self._is_configured = False

    def setup(
        self,
        log_to_file: bool = True,
        log_level: str = "INFO",
        log_file_path: str = "logs/app.log",
        use_json_format: bool = True,
        max_bytes: int = 50 * 1024 * 1024,
        backup_count: int = 5,
    ) -> logging.Logger:
        """
        Configure handlers for the application and its libraries.

        Args:
            log_to_file: Whether to also write a rotating log file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file_path: Path to the log file
            use_json_format: Whether to emit JSON lines
            max_bytes: Maximum file size before rotation
            backup_count: Number of rotated files to keep

        Returns:
            The application logger
        """
        if self._is_configured:
            return get_logger()

        context_filter = RequestContextFilter()

        if log_to_file:
            self.file_logger = FileLogger(
                log_file_path=log_file_path,
                max_bytes=max_bytes,
                backup_count=backup_count,
                log_level=log_level,
                use_json_format=use_json_format,
            )
            self.file_logger.start()
            queue_handler = self.file_logger.queue_handler
            queue_handler.addFilter(context_filter)
            route_loggers_to(queue_handler)
        else:
            logger = setup_structured_logging(log_level, use_json_format)
            for handler in logger.handlers:
                handler.addFilter(context_filter)

        self._is_configured = True
        return get_logger()

    def shutdown(self) -> None:
        if self.file_logger:
            self.file_logger.stop()
            self.file_logger = None
        self._is_configured = False


_logging_config = LoggingConfig()


def setup_logging(
    log_to_file: bool = True,
    log_level: str = "INFO",
    log_file_path: str = "logs/app.log",
    use_json_format: bool = True,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Set up logging once per process; later calls return the app logger."""
    return _logging_config.setup(
        log_to_file=log_to_file,
        log_level=log_level,
        log_file_path=log_file_path,
        use_json_format=use_json_format,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger under the application namespace.

    Args:
        name: Optional child name, e.g. ``"payments.services"``
    """
    if name:
        return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
    return logging.getLogger(APP_LOGGER_NAME)


def shutdown_logging() -> None:
    _logging_config.shutdown()
