#!/usr/bin/env python3
"""
Structured Logging Module
=========================
Provides the logging sink contract used by the trade pipeline, plus a
structured logger for machine-readable trade records:
- ``TradeLogger`` protocol (debug / info / warning / error)
- Structured JSON logging with size-based rotation
- Rich console output
- Correlation IDs for tracing a single trade through its log lines
"""

import json
import logging
import logging.handlers
import sys
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from rich.console import Console
from rich.logging import RichHandler


class TradeLogger(Protocol):
    """
    Sink for pipeline progress and diagnostics.

    Any ``logging.Logger``, ``utils.SecureLogger`` or ``StructuredLogger``
    fits. Messages use ``%``-style args, as with the stdlib.
    """

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_correlation_id: bool = True):
        super().__init__()
        self.include_correlation_id = include_correlation_id
        self._correlation_id = threading.local()

    def set_correlation_id(self, cid: str):
        """Set the correlation ID for the current thread."""
        self._correlation_id.value = cid

    def get_correlation_id(self) -> Optional[str]:
        """Get the correlation ID for the current thread."""
        return getattr(self._correlation_id, 'value', None)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'source': {
                'file': record.filename,
                'line': record.lineno,
                'function': record.funcName
            }
        }

        if self.include_correlation_id:
            log_data['correlation_id'] = self.get_correlation_id()

        # Add extra fields
        if hasattr(record, 'extra'):
            log_data['extra'] = record.extra

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Structured logger with JSON file rotation.

    Satisfies ``TradeLogger``, so it can be handed straight to a trader.

    Usage:
        logger = StructuredLogger('pump_trader', 'logs/trades.log')
        logger.info('Starting trade', extra={'mint': mint})
        logger.log_trade('buy', mint, signature=sig, success=True)
    """

    def __init__(
        self,
        name: str,
        log_file: Optional[str] = None,
        log_level: str = 'INFO',
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        use_rich_console: bool = True,
        json_format_console: bool = False
    ):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.propagate = False
        self.logger.handlers = []  # Clear existing handlers

        self._json_formatter = JSONFormatter()

        # Console handler
        if use_rich_console and not json_format_console:
            console_handler = RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                show_time=True,
                show_path=False
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            if json_format_console:
                console_handler.setFormatter(self._json_formatter)
            else:
                console_handler.setFormatter(
                    logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
                )
        console_handler.setLevel(logging.DEBUG)
        self.logger.addHandler(console_handler)

        # File handler with rotation
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(self._json_formatter)
            self.logger.addHandler(file_handler)

    def _log(self, level: str, message: str, args=(), extra: Optional[Dict[str, Any]] = None, **kwargs):
        """Internal log method."""
        log_extra = {'extra': extra} if extra else {}
        getattr(self.logger, level)(message, *args, extra=log_extra, **kwargs)

    def debug(self, message: str, *args, extra: Optional[Dict[str, Any]] = None):
        self._log('debug', message, args, extra)

    def info(self, message: str, *args, extra: Optional[Dict[str, Any]] = None):
        self._log('info', message, args, extra)

    def warning(self, message: str, *args, extra: Optional[Dict[str, Any]] = None):
        self._log('warning', message, args, extra)

    def error(self, message: str, *args, extra: Optional[Dict[str, Any]] = None, exc_info: bool = False):
        self._log('error', message, args, extra, exc_info=exc_info)

    def set_correlation_id(self, cid: str):
        """Set correlation ID for the current thread."""
        self._json_formatter.set_correlation_id(cid)

    def generate_correlation_id(self) -> str:
        """Generate and set a new correlation ID."""
        cid = str(uuid.uuid4())[:8]
        self.set_correlation_id(cid)
        return cid

    def log_trade(
        self,
        action: str,
        mint: str,
        signature: Optional[str],
        success: bool,
        failure_kind: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        """Log a trade outcome with all relevant details."""
        log_data = {
            'action': action,
            'mint': mint,
            'signature': signature,
            'success': success,
            'failure_kind': failure_kind,
        }
        if extra:
            log_data.update(extra)

        level = 'info' if success else 'error'
        self._log(level, f"Trade {action}: {'success' if success else 'failed'}", extra=log_data)
