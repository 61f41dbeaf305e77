"""
Logging configuration for the Hyper-V lab SDK.

This module sets up console and file output, text or JSON formatting, and
a per-run correlation id so every progress line of one deploy or drop can be
traced back to that run.
"""

import logging
import logging.handlers
import json
import sys
import uuid
from typing import Any, Optional
from datetime import datetime, timezone
from pathlib import Path
import contextvars

from .config import LoggingConfig
from .exceptions import ConfigurationError


# Context variable for correlation ID tracking
correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id', default=None
)

_STANDARD_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName',
    'message', 'asctime', 'correlation_id',
}


class CorrelationFilter(logging.Filter):
    """Logging filter that adds the current run's correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record."""
        correlation_id = correlation_id_var.get()
        record.correlation_id = correlation_id or "-"
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, carrying any ``extra`` fields passed by the
    caller (vm ids, switch names, durations).
    """

    def __init__(self, include_caller_info: bool = True):
        super().__init__()
        self.include_caller_info = include_caller_info

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', '-')
        }

        if self.include_caller_info:
            log_entry.update({
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            })

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_KEYS and not key.startswith('_'):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console progress output."""

    def __init__(self, include_caller_info: bool = False):
        format_string = '%(asctime)s [%(levelname)s]'

        if include_caller_info:
            format_string += ' %(name)s [%(module)s:%(funcName)s:%(lineno)d]'

        format_string += ' %(message)s'

        super().__init__(fmt=format_string, datefmt='%Y-%m-%d %H:%M:%S')


def setup_logging(config: LoggingConfig) -> None:
    """
    Set up logging for the lab SDK.

    Configures the root logger level, formatters, handlers, and filters
    according to the provided configuration.

    Args:
        config: Logging configuration

    Raises:
        ConfigurationError: If logging configuration is invalid
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level))

    if config.format == "json":
        formatter: logging.Formatter = JSONFormatter(
            include_caller_info=config.include_caller_info
        )
    else:
        formatter = TextFormatter(
            include_caller_info=config.include_caller_info
        )

    handlers = []

    if config.output in ["console", "both"]:
        console_handler = logging.StreamHandler(sys.stdout)
        handlers.append(console_handler)

    if config.output in ["file", "both"]:
        if not config.file_path:
            raise ConfigurationError(
                "file_path is required when output includes 'file'",
                config_key="file_path"
            )

        log_path = Path(config.file_path)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=config.file_path,
                maxBytes=_parse_size(config.max_file_size),
                backupCount=config.backup_count,
                encoding='utf-8'
            )
        except OSError as e:
            raise ConfigurationError(
                f"Failed to open log file: {e}",
                config_key="file_path",
                config_value=config.file_path
            ) from e
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(CorrelationFilter())
        root_logger.addHandler(handler)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={'log_level': config.level, 'log_format': config.format, 'log_output': config.output}
    )


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID for run tracing.

    Args:
        correlation_id: Correlation ID to set (generates a short id if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex[:8]

    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id_var.get()


def clear_correlation_id() -> None:
    """Clear current correlation ID."""
    correlation_id_var.set(None)


def _parse_size(size_str: str) -> int:
    """
    Parse size string to bytes.

    Args:
        size_str: Size string (e.g., "100MB", "1GB")

    Returns:
        Size in bytes

    Raises:
        ConfigurationError: If size format is invalid
    """
    size_str = size_str.upper().strip()

    # Longest suffixes first so "MB" is not read as "B"
    size_units = [
        ('TB', 1024 ** 4),
        ('GB', 1024 ** 3),
        ('MB', 1024 ** 2),
        ('KB', 1024),
        ('B', 1),
    ]

    for unit, multiplier in size_units:
        if size_str.endswith(unit):
            try:
                value = float(size_str[:-len(unit)])
                return int(value * multiplier)
            except ValueError:
                break

    try:
        return int(size_str)
    except ValueError:
        raise ConfigurationError(
            f"Invalid size format: {size_str}. Expected formats: 100MB, 1GB, etc.",
            config_key="max_file_size",
            config_value=size_str
        )


class LoggingContextManager:
    """
    Context manager scoping one operation to a correlation ID.

    Logs the start, completion (with duration) or failure of the operation
    and restores the previous correlation ID on exit.
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        operation: Optional[str] = None
    ):
        self.correlation_id = correlation_id or uuid.uuid4().hex[:8]
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[datetime] = None
        self.previous_correlation_id: Optional[str] = None

    def __enter__(self) -> str:
        """Enter logging context."""
        self.previous_correlation_id = get_correlation_id()
        set_correlation_id(self.correlation_id)
        self.start_time = datetime.now(timezone.utc)

        if self.logger and self.operation:
            self.logger.debug(
                f"Starting {self.operation}",
                extra={'operation': self.operation}
            )

        return self.correlation_id

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit logging context."""
        if self.logger and self.operation and self.start_time:
            duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()

            if exc_type is None:
                self.logger.debug(
                    f"Completed {self.operation}",
                    extra={
                        'operation': self.operation,
                        'duration_seconds': duration,
                        'success': True
                    }
                )
            else:
                self.logger.error(
                    f"Failed {self.operation}: {exc_val}",
                    extra={
                        'operation': self.operation,
                        'duration_seconds': duration,
                        'success': False,
                        'error_type': exc_type.__name__
                    }
                )

        if self.previous_correlation_id:
            set_correlation_id(self.previous_correlation_id)
        else:
            clear_correlation_id()


def logging_context(
    correlation_id: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
    operation: Optional[str] = None
) -> LoggingContextManager:
    """
    Create a logging context manager.

    Args:
        correlation_id: Optional correlation ID (generated if None)
        logger: Optional logger for operation logging
        operation: Optional operation name for logging

    Returns:
        LoggingContextManager instance
    """
    return LoggingContextManager(correlation_id, logger, operation)
