"""Logging infrastructure for the TenantTrack backend."""

from .file_logger import FileLogger
from .logger_config import get_logger, setup_logging, shutdown_logging
from .middleware import (
    RequestContextFilter,
    RequestIdMiddleware,
    get_principal_id,
    get_transaction_id,
    set_principal_id,
    set_transaction_id,
)
from .structured_logger import StructuredFormatter

__all__ = [
    "FileLogger",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    "RequestContextFilter",
    "RequestIdMiddleware",
    "StructuredFormatter",
    "get_principal_id",
    "get_transaction_id",
    "set_principal_id",
    "set_transaction_id",
]
