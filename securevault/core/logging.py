"""
Logging Configuration
loguru sinks for console and file output, with credentials scrubbed from messages
"""

import logging
import re
import sys
from typing import Any, Dict, Optional

from loguru import logger as loguru_logger

from securevault.core.config import settings

DEV_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Bearer tokens, compact JWTs and token form fields must never reach a sink
_SECRET_PATTERNS = (
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"), "[REDACTED]"),
    (re.compile(r"\b((?:id_token|access_token|client_secret|code)=)[^&\s]+"), r"\1[REDACTED]"),
)

# stdlib loggers routed through loguru
_INTERCEPTED = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


def redact(message: str) -> str:
    """Mask credentials in a log message"""
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _patch_record(record: Dict[str, Any]) -> None:
    record["message"] = redact(record["message"])
    record["extra"].setdefault("name", record["name"])
    record["extra"]["service"] = settings.APP_NAME
    record["extra"]["environment"] = settings.ENVIRONMENT


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure loguru sinks and route stdlib logging into them

    Debug mode logs colored text to stdout; otherwise every record is
    serialized as JSON. LOG_FILE adds a rotating JSON file sink.
    """
    level = (log_level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE

    loguru_logger.remove()
    loguru_logger.configure(patcher=_patch_record)

    if settings.DEBUG:
        loguru_logger.add(sys.stdout, format=DEV_FORMAT, level="DEBUG", colorize=True)
    else:
        loguru_logger.add(sys.stdout, level=level, serialize=True)

    if log_file:
        loguru_logger.add(
            log_file,
            rotation="100 MB",
            retention="7 days",
            compression="zip",
            level=level,
            serialize=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _INTERCEPTED:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False

    # SQL echo is controlled by DEBUG on the engine, not here
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Logger bound to a module name"""
    return loguru_logger.bind(name=name)
