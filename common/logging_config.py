# common/logging_config.py
# -*- coding: utf-8 -*-
"""
Centralized logging configuration for the stack bootstrapper.

Console output uses a human-readable format with a level symbol and an
optional prefix. JSON-structured output is available for log files and for
runs inside containers, where the log collector parses each line.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from stackstrap.config_models import SYMBOLS_DEFAULT

SIMPLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER = "{log_prefix}%(asctime)s - %(levelname)s - %(symbol)s %(name)s - %(message)s"
SIMPLE_LOG_FORMAT_NO_PREFIX = (
    "%(asctime)s - %(levelname)s - %(symbol)s %(name)s - %(message)s"
)

# LogRecord attributes that are not user-supplied "extra" fields.
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "symbol", "taskName"}


class SymbolFormatter(logging.Formatter):
    """
    A formatter that adds a `symbol` attribute based on the record's level.
    """

    def __init__(
        self, fmt=None, datefmt=None, style="%", validate=True, symbols=None
    ):
        super().__init__(fmt, datefmt, style, validate)
        self.symbols = symbols or SYMBOLS_DEFAULT

    def format(self, record):
        if record.levelno == logging.DEBUG:
            record.symbol = self.symbols.get("debug", "🐛")
        elif record.levelno == logging.INFO:
            record.symbol = self.symbols.get("info", "ℹ️")
        elif record.levelno == logging.WARNING:
            record.symbol = self.symbols.get("warning", "⚠️")
        elif record.levelno == logging.ERROR:
            record.symbol = self.symbols.get("error", "❌")
        elif record.levelno == logging.CRITICAL:
            record.symbol = self.symbols.get("critical", "🔥")
        else:
            record.symbol = ""

        return super().format(record)


class JSONFormatter(logging.Formatter):
    """
    Formats log records as one JSON object per line.

    Each entry carries timestamp, level, service, logger, message and the
    source location, plus any `extra=` fields given to the logging call.
    """

    def __init__(self, service_name: str = "stackstrap"):
        super().__init__()
        self.service_name = service_name
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "hostname": self.hostname,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def _resolve_level(log_level: Union[int, str, None]) -> int:
    if isinstance(log_level, int):
        return log_level
    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")
    numeric_level = getattr(logging, str(log_level).upper(), None)
    return numeric_level if isinstance(numeric_level, int) else logging.INFO


def setup_logging(
    log_level: Union[int, str, None] = logging.INFO,
    log_file: Optional[str] = None,
    log_to_console: bool = True,
    log_prefix: Optional[str] = None,
    json_console: bool = False,
    symbols: Optional[Dict[str, str]] = None,
    service_name: str = "stackstrap",
) -> None:
    """
    Configures the root logger.

    Parameters:
    log_level: int or str
        Level as a logging constant or name. None reads LOG_LEVEL from the
        environment, defaulting to INFO.
    log_file: Optional[str]
        Path of a log file; file output is always JSON-structured.
    log_to_console: bool
        Whether to log to stdout.
    log_prefix: Optional[str]
        Prefix for console lines, e.g. "[STACKSTRAP]".
    json_console: bool
        Emit JSON on the console too. Also enabled when running under
        Kubernetes (KUBERNETES_SERVICE_HOST is set).
    symbols: Optional[Dict[str, str]]
        Level symbols for the console formatter.
    service_name: str
        Service name recorded in JSON entries.
    """
    numeric_level = _resolve_level(log_level)
    handlers: List[logging.Handler] = []
    json_formatter = JSONFormatter(service_name)

    if log_file:
        try:
            log_file_path = Path(log_file)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode="a")
            file_handler.setFormatter(json_formatter)
            handlers.append(file_handler)
        except OSError as e:
            print(
                f"Warning: Could not create file handler for log file {log_file}: {e}",
                file=sys.stderr,
            )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        if json_console or os.environ.get("KUBERNETES_SERVICE_HOST"):
            console_handler.setFormatter(json_formatter)
        else:
            actual_prefix = (
                (log_prefix.strip() + " ")
                if log_prefix and log_prefix.strip()
                else ""
            )
            final_format_str = (
                SIMPLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER.format(
                    log_prefix=actual_prefix
                )
                if actual_prefix
                else SIMPLE_LOG_FORMAT_NO_PREFIX
            )
            console_handler.setFormatter(
                SymbolFormatter(
                    fmt=final_format_str,
                    datefmt="%Y-%m-%d %H:%M:%S",
                    symbols=symbols,
                )
            )
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    for handler in handlers:
        root_logger.addHandler(handler)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(numeric_level),
            "file_enabled": bool(log_file),
            "console_enabled": log_to_console,
        },
    )
