"""
Structured JSON logging for TenantTrack.
"""

import logging
import sys
import traceback
from datetime import datetime
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from .middleware import get_principal_id, get_transaction_id

LOG_FORMAT = "%(timestamp)s %(level)s %(transaction_id)s %(message)s"

SERVICE_METADATA = {"name": "tenanttrack-backend", "version": "1.0.0"}


class StructuredFormatter(JsonFormatter):
    """JSON formatter adding correlation ids and source location to every record."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now().astimezone().isoformat()
        log_record["transaction_id"] = getattr(
            record, "transaction_id", get_transaction_id()
        )
        log_record["principal_id"] = getattr(record, "principal_id", get_principal_id())

        log_record["level"] = record.levelname
        log_record["logger_name"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno
        log_record["service"] = SERVICE_METADATA

        if record.exc_info and record.exc_info[0] is not None:
            log_record["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        for field in ["msg", "args", "created", "msecs", "relativeCreated", "pathname"]:
            log_record.pop(field, None)


def build_formatter(use_json_format: bool, colored: bool = False) -> logging.Formatter:
    if use_json_format:
        return StructuredFormatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    if colored:
        return logging.Formatter(
            "\033[1;32m%(asctime)s\033[0m | "
            "\033[1;34m%(levelname)s\033[0m | "
            "%(transaction_id)s | "
            "\033[1;33m%(filename)s:%(lineno)d\033[0m | %(message)s"
        )
    return logging.Formatter(
        "%(asctime)s | %(levelname)s | %(transaction_id)s | "
        "%(filename)s:%(lineno)d | %(message)s"
    )


def setup_structured_logging(
    log_level: str = "INFO", use_json_format: bool = True
) -> logging.Logger:
    """Console-only logging, used when file logging is disabled."""
    logger = logging.getLogger("tenanttrack_backend")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(build_formatter(use_json_format, colored=True))
    logger.addHandler(console_handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)

    return logger
