"""Structured logging utilities."""
import logging
import sys
import json
import uuid
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from contextvars import ContextVar

# Correlation id shared by every log line emitted during one optimization run
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

LOGGER_NAME = "prompt_engine"

_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
])


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        corr_id = correlation_id.get()
        if corr_id:
            log_data["correlation_id"] = corr_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends keyword context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            k: v for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS
        }
        corr_id = correlation_id.get()
        if corr_id:
            extras["correlation_id"] = corr_id[:8]
        if not extras:
            return base
        context = " ".join(f"{k}={v}" for k, v in extras.items())
        return f"{base} | {context}"


class ContextLogger:
    """Logger that accepts structured context as keyword arguments.

    ``logger.info("Iteration complete", iteration=2, score=0.71)`` attaches
    ``iteration`` and ``score`` to the record so the JSON formatter emits them
    as top-level fields.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self._context: Dict[str, Any] = dict(context or {})

    def bind(self, **kwargs) -> "ContextLogger":
        """Return a child logger carrying additional fixed context."""
        merged = dict(self._context)
        merged.update(kwargs)
        return ContextLogger(self.logger, merged)

    def set_context(self, **kwargs):
        self._context.update(kwargs)

    def clear_context(self):
        self._context.clear()

    def _log(self, level: int, message: str, kwargs: Dict[str, Any]):
        exc_info = kwargs.pop('exc_info', None)
        extra = dict(self._context)
        extra.update(kwargs)
        # Report the call site of debug(), info() and the other level methods
        self.logger.log(level, message, extra=extra, exc_info=exc_info, stacklevel=3)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs):
        kwargs.setdefault('exc_info', True)
        self._log(logging.ERROR, message, kwargs)


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    log_file: Optional[str] = None
) -> ContextLogger:
    """
    Configure the engine's root logger and return a ContextLogger for it.

    Args:
        level: Log level name (defaults to OptimizationConfig.LOG_LEVEL)
        format_type: "json" for structured output, "text" for human-readable
        log_file: Optional file path for an additional file handler

    Returns:
        ContextLogger wrapping the engine logger
    """
    from config.optimization_config import OptimizationConfig

    level = level or OptimizationConfig.LOG_LEVEL
    format_type = format_type or OptimizationConfig.LOG_FORMAT

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    # stderr keeps the tqdm bar on stdout readable
    console_handler = logging.StreamHandler(sys.stderr)

    if format_type == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = TextFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return ContextLogger(logger)


def get_logger(component: str) -> ContextLogger:
    """
    Get a ContextLogger for one component of the engine.

    The engine logger is configured on first use; later calls reuse its handlers.
    """
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        setup_logging()
    return ContextLogger(logging.getLogger(f"{LOGGER_NAME}.{component}"))


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation id for the current context."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()
