"""
Structured JSON logging for product-ingest

Every module logs through a child of the "product-ingest" logger, so one
call to setup_logger() configures the whole pipeline. Batch events pass
batch_id (and chunk_index, attempt, ...) through `extra`, which
python-json-logger writes out as top-level JSON keys.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger

DEFAULT_LOGGER_NAME = "product-ingest"

JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(message)s"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s [%(threadName)s] - %(message)s"


class PipelineJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for pipeline events

    Adds: timestamp, level, logger, source location and the worker thread
    that handled the batch.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.module}:{record.funcName}"
        log_record["thread"] = record.threadName


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: str | None = None,
    json_format: bool | None = None,
) -> logging.Logger:
    """
    Configure a logger with a single stderr handler

    Args:
        name: Logger name
        level: Level name; defaults to LOG_LEVEL, then INFO
        json_format: JSON or plain text; defaults to LOG_FORMAT != "text"

    Returns:
        Configured logger instance
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "json").lower() != "text"

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(PipelineJsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Get a pipeline logger.

    Child loggers ("product-ingest.batch") share the root pipeline logger's
    handler; any other name is configured on first use.
    """
    root_name = name.split(".", 1)[0] if name.startswith(DEFAULT_LOGGER_NAME) else name
    root = logging.getLogger(root_name)
    if not root.handlers:
        setup_logger(root_name)
    return logging.getLogger(name)


@contextmanager
def log_operation(operation_name: str, logger: logging.Logger | None = None, **extra_fields):
    """
    Log the start and outcome of an operation with its duration

    Usage:
        with log_operation("Validating batch", logger=logger, batch_id="123"):
            ...
    """
    logger = logger or get_logger()
    started = time.monotonic()
    logger.info(f"Starting: {operation_name}", extra={"operation": operation_name, **extra_fields})

    try:
        yield
    except Exception as e:
        logger.error(
            f"Failed: {operation_name}",
            exc_info=True,
            extra={
                "operation": operation_name,
                "duration_seconds": round(time.monotonic() - started, 3),
                "status": "error",
                "error_type": type(e).__name__,
                **extra_fields,
            },
        )
        raise

    logger.info(
        f"Completed: {operation_name}",
        extra={
            "operation": operation_name,
            "duration_seconds": round(time.monotonic() - started, 3),
            "status": "success",
            **extra_fields,
        },
    )
