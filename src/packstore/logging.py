"""
Structured logging for packstore.

Provides:
- Context variables for request_id, client, operation (using contextvars)
- JSONFormatter for machine-readable logs to file
- ContextRichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- log_context() context manager for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "packstore"

# Context variables for structured logging
_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_client_var: ContextVar[str | None] = ContextVar("client", default=None)
_operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "request_id": _request_id_var,
    "client": _client_var,
    "operation": _operation_var,
}


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return _request_id_var.get()


def get_client() -> str | None:
    """Get the current client address from context."""
    return _client_var.get()


def get_operation() -> str | None:
    """Get the current pack operation from context."""
    return _operation_var.get()


@contextmanager
def log_context(
    request_id: str | None = None,
    client: str | None = None,
    operation: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Only the given fields are replaced; the rest keep their outer values.

    Args:
        request_id: Request ID to set in context.
        client: Client address to set in context.
        operation: Operation name (register, fetch, reconcile, ...).

    Yields:
        None. Context variables are set for the duration of the context.
    """
    values = {"request_id": request_id, "client": client, "operation": operation}
    tokens = [
        (_CONTEXT_VARS[name], _CONTEXT_VARS[name].set(value))
        for name, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _context_fields() -> dict[str, str]:
    """Currently set context variables, by name."""
    fields: dict[str, str] = {}
    for name, var in _CONTEXT_VARS.items():
        value = var.get()
        if value:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    One object per line: timestamp, level, logger, message, the active
    context fields at top level, then call-site fields under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        extra = getattr(record, "extra", None)
        if extra:
            log_obj["extra"] = extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that prefixes console lines with the active context."""

    _STYLES = {"request_id": "dim", "client": "cyan", "operation": "magenta"}

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        fields = _context_fields()
        if not fields:
            return level_text

        if "request_id" in fields:
            # Tail of the uuid7 is the random part
            fields["request_id"] = fields["request_id"][-8:]
        prefix = Text(" ").join(
            Text(value, style=self._STYLES[name]) for name, value in fields.items()
        )
        return Text.assemble(level_text, " ", prefix)


class ContextLogger:
    """Logger wrapper that takes structured fields as keyword arguments.

    logger.info("Registered pack", hash=h, size=n) stores hash and size
    under the record's ``extra`` payload. Context variables are read by the
    handlers at format time, not copied here.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **fields: Any,
    ) -> None:
        extra = dict(fields.pop("extra", {}))
        extra.update(fields)
        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the global rich console."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    # uvicorn's access log duplicates our per-request lines
    for noisy_logger in ["uvicorn.access", "httpx", "httpcore", "asyncio", "multipart"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return ContextLogger(logging.getLogger(name))
