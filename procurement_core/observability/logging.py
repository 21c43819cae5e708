# ==== STRUCTURED LOGGING WITH LOGURU ==== #

"""
Structured logging with loguru for the procurement core.

This module provides JSON structured logging, per-business context binding,
optional file rotation and OpenTelemetry trace correlation for the resolver,
loader and ledger components.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger
from opentelemetry.instrumentation.logging import LoggingInstrumentor


def init_logging(level: str = "INFO", log_dir: str | None = None) -> None:
    """Initialize structured logging with loguru.

    Console output is always JSON. When ``log_dir`` is given, rotating and
    compressed file sinks are added, with a separate error sink.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Optional directory for rotating log files
    """
    logger.remove()

    logger.add(
        sys.stdout,
        format="{message}",
        serialize=True,
        level=level.upper(),
        enqueue=True,
        colorize=False,
        backtrace=True,
        diagnose=False,
    )

    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            logs_dir / "procurement_{time:YYYY-MM-DD}.log",
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            serialize=True,
            level="DEBUG",
            enqueue=True,
            backtrace=True,
        )

        # Ledger failures are kept longer than the general log
        logger.add(
            logs_dir / "procurement_errors_{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            serialize=True,
            level="ERROR",
            enqueue=True,
            backtrace=True,
        )

    # Intercept standard logging to route through loguru
    class InterceptHandler(logging.Handler):
        def emit(self, record):
            try:
                level = logger.level(record.levelname).name
            except ValueError:
                level = record.levelno

            frame, depth = logging.currentframe(), 2
            while frame.f_code.co_filename == logging.__file__:
                frame = frame.f_back
                depth += 1

            logger.opt(depth=depth, exception=record.exc_info).log(
                level, record.getMessage()
            )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Reduce noise from third-party libraries
    logging.getLogger("redis").setLevel(logging.WARNING)

    try:
        LoggingInstrumentor().instrument(set_logging_format=False)
    except Exception as e:
        logger.warning(f"Failed to setup OpenTelemetry logging: {e}")

    logger.info("Structured logging initialized", level=level)


class ContextualLogger:
    """Logger using loguru with automatic context injection.

    Every call binds the logger name, the caller's keyword fields and, when a
    span is recording, the OpenTelemetry trace and span ids.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logger.bind(logger_name=name)

    def _add_context(self, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
        context = {"logger_name": self.name}

        if extra:
            context.update(extra)

        try:
            from opentelemetry import trace
            span = trace.get_current_span()
            if span and span.is_recording():
                span_context = span.get_span_context()
                if span_context.is_valid:
                    context['trace_id'] = format(span_context.trace_id, '032x')
                    context['span_id'] = format(span_context.span_id, '016x')
        except Exception:
            pass

        return context

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message with context."""
        self.logger.bind(**self._add_context(kwargs)).debug(msg)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log info message with context."""
        self.logger.bind(**self._add_context(kwargs)).info(msg)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log warning message with context."""
        self.logger.bind(**self._add_context(kwargs)).warning(msg)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log error message with context."""
        self.logger.bind(**self._add_context(kwargs)).error(msg)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with full traceback and context."""
        self.logger.bind(**self._add_context(kwargs)).exception(msg)


# ==== LOGGING UTILITIES ==== #

def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(name)


def log_business_event(event_type: str, business_id: str, **context: Any) -> None:
    """Log a business event (repair, posting, summary rebuild).

    Args:
        event_type: Type of business event
        business_id: Business the event belongs to
        **context: Additional business context
    """
    logger.bind(
        event_type=event_type,
        business_id=business_id,
        business_event=True,
        **context
    ).info(f"Business event: {event_type}")
