"""Logging setup for kdbx-sync.

Everything logs under the ``kdbx_sync`` namespace. Both handlers pass records
through :class:`SecretRedactingFilter`, so OAuth codes and passphrases that end
up in a logged URL never reach the console or the log file.
"""

import logging
import logging.handlers
import re
import time
from pathlib import Path
from typing import Iterable, Optional

LOGGER_NAME = "kdbx_sync"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Client libraries that log request details below WARNING
NOISY_LOGGERS = ("googleapiclient.discovery_cache", "urllib3", "msal", "botocore", "boto3")

_SECRET_PARAMS = re.compile(
    r"((?:pass|code|access_token|refresh_token|client_secret)=)[^&\s'\"]+"
)


class SecretRedactingFilter(logging.Filter):
    """Mask the values of secret-bearing query parameters."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PARAMS.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    log_to_console: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """Configure the ``kdbx_sync`` logger.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to a rotating log file (optional)
        log_to_console: Whether to log to the console
        max_file_size: Maximum size of the log file before rotation
        backup_count: Number of rotated files to keep
        quiet_loggers: Third-party loggers raised to at least WARNING

    Returns:
        Configured logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    redactor = SecretRedactingFilter()

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(redactor)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)  # the file keeps everything the logger lets through
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


class TimedOperation:
    """Log the start, completion or failure and the duration of a block.

    ``duration`` is set when the block exits, whether or not it raised.
    Exceptions are never suppressed.
    """

    def __init__(self, logger: logging.Logger, operation_name: str, log_level: str = "INFO"):
        """Initialize timed operation.

        Args:
            logger: Logger to use
            operation_name: Name shown in the log lines
            log_level: Level for the start and completion lines
        """
        self.logger = logger
        self.operation_name = operation_name
        self.log_level = getattr(logging, log_level.upper())
        self.duration = 0.0
        self._started: Optional[float] = None

    def __enter__(self) -> "TimedOperation":
        self._started = time.monotonic()
        self.logger.log(self.log_level, f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._started is None:
            return False
        self.duration = time.monotonic() - self._started
        if exc_type is None:
            self.logger.log(self.log_level, f"Completed {self.operation_name} in {self.duration:.2f}s")
        else:
            self.logger.error(f"Failed {self.operation_name} after {self.duration:.2f}s: {exc_val}")
        return False
