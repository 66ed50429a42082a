import json
import logging
import sys
import traceback
from typing import Optional

import loguru
from fastapi import Request
from fastapi import Response
from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<bold><white>{message}</white></bold> | <dim>{extra}</dim> {stacktrace}"
)


# Loggers configuration runs at the start of the application -- src/svcreq_api/__init__.py
def configure_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_serialize: bool = False,
):
    """
    Configure loguru logger with a stdout sink and an optional file sink.

    Args:
        log_level: Minimum level for both sinks
        log_file: Path of a rotating log file (disabled when None)
        log_serialize: Write the file sink as JSON lines
    """
    # Suppress verbose driver/server logging
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.remove()  # remove the default logger

    # Add stdout handler (always enabled for console output)
    logger.add(
        sink=sys.stdout,
        level=log_level,
        diagnose=False,
        format=LOG_FORMAT,
        filter=process_log_record,
    )

    if log_file:
        try:
            logger.add(
                sink=log_file,
                level=log_level,
                rotation="10 MB",
                retention="14 days",
                serialize=log_serialize,
                enqueue=True,
                diagnose=False,
            )
            logger.info("File logging enabled", log_file=log_file, serialize=log_serialize)
        except Exception as e:
            # Continue with stdout only
            logger.warning("Failed to initialize file logging: {error}", error=str(e), log_file=log_file)


def process_log_record(record: "loguru.Record") -> "loguru.Record":
    r"""
    Inject transformed metadata into each log record before they are passed to the formatter.

    1. Serialize the "extra" field to JSON so that it renders on one line.
    2. For error logs, add a traceback with \r instead of \n so that log shippers do not
       split the traceback into multiple log events.
    """
    extra = record["extra"]

    # serialize "extra" field to JSON
    if extra:
        record["extra"] = json.dumps(extra, default=str)

    # add stacktrace to log record
    record["stacktrace"] = ""
    if record["exception"]:
        err = record["exception"]
        stacktrace = get_formatted_stacktrace(err, replace_newline_character_with_carriage_return=True)
        record["stacktrace"] = stacktrace

    return record


def get_formatted_stacktrace(loguru_record_exception, replace_newline_character_with_carriage_return: bool) -> str:
    """Get the formatted stacktrace for the current exception."""
    exc_type, exc_value, exc_traceback = loguru_record_exception
    stacktrace_: list[str] = traceback.format_exception(exc_type, exc_value, exc_traceback)
    stacktrace: str = "".join(stacktrace_)
    if replace_newline_character_with_carriage_return:
        stacktrace = stacktrace.replace("\n", "\r")
    return stacktrace


def log_request_info(request: Request):
    """Log the request info."""
    request_info = {
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params.items()),
        "path_params": dict(request.path_params.items()),
        "actor_id": request.headers.get("X-User-Id"),
        "actor_role": request.headers.get("X-User-Role"),
        "client": str(request.client),
    }
    logger.debug("Request received", http_request=request_info)


def log_response_info(response: Response):
    """Log the response info."""
    response_info = {
        "status_code": response.status_code,
        "headers": dict(response.headers.items()),
    }
    logger.debug("Response sent", http_response=response_info)
