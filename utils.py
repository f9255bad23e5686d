"""
Utility Module

Helper functions, logging setup and formatting utilities shared by the
PumpPortal trading pipeline and the CLI.

- Exception types raised inside the pipeline
- Secure logging that redacts registered secrets and credential assignments
- Default console sink (info to stdout, warnings and errors to stderr)
- SOL / lamport conversion and display helpers
- Mint address validation
"""

import os
import re
import sys
import math
import logging
from typing import Iterable, List, Optional

from rich.logging import RichHandler
from rich.console import Console
from solders.pubkey import Pubkey


LAMPORTS_PER_SOL = 1_000_000_000
SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"


class TradeError(Exception):
    """Base exception for failures inside a trade pipeline."""
    pass


class InvalidAddressError(TradeError):
    """The token mint is not a valid base58 public key."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"Invalid token mint address: {address} - {reason}")
        self.address = address
        self.reason = reason


class EmptyResponseError(TradeError):
    """The trade builder answered with an empty body."""
    pass


class TransactionError(TradeError):
    """The transaction landed but failed on chain."""

    def __init__(self, signature: str, chain_error):
        super().__init__(f"Transaction failed: {chain_error}")
        self.signature = signature
        self.chain_error = chain_error


class SecureLogger:
    """
    Logger wrapper that sanitizes sensitive data from log messages.

    Known secrets (for example the base58 secret key the CLI just loaded) can
    be registered with ``register_secret``; they are replaced verbatim. Base58
    secret keys cannot be told apart from transaction signatures by shape, so
    only registered values and explicit ``key=value`` assignments are redacted.
    """

    SENSITIVE_PATTERNS = [
        (r'password["\']?\s*[:=]\s*["\']?[^\s"\',]+', 'password=[REDACTED]'),
        (r'private[_-]?key["\']?\s*[:=]\s*["\']?[^\s"\',]+', 'private_key=[REDACTED]'),
        (r'secret[_-]?key["\']?\s*[:=]\s*["\']?[^\s"\',]+', 'secret_key=[REDACTED]'),
        (r'api[_-]?key["\']?\s*[:=]\s*["\']?[^\s"\',]+', 'api_key=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger, secrets: Optional[Iterable[str]] = None):
        self._logger = logger
        self._secrets: List[str] = [s for s in (secrets or []) if s]

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def register_secret(self, value: str):
        """Redact ``value`` from every future message."""
        if value and value not in self._secrets:
            self._secrets.append(value)

    def _sanitize(self, msg, args=()) -> str:
        """Render the message with its args, then remove sensitive data."""
        if not isinstance(msg, str):
            msg = str(msg)
        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = " ".join([msg] + [str(a) for a in args])

        sanitized = msg
        for secret in self._secrets:
            sanitized = sanitized.replace(secret, "[SECRET_REDACTED]")
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg, *args, **kwargs):
        self._logger.debug(self._sanitize(msg, args), **kwargs)

    def info(self, msg, *args, **kwargs):
        self._logger.info(self._sanitize(msg, args), **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._logger.warning(self._sanitize(msg, args), **kwargs)

    def error(self, msg, *args, **kwargs):
        self._logger.error(self._sanitize(msg, args), **kwargs)

    def exception(self, msg, *args, **kwargs):
        self._logger.exception(self._sanitize(msg, args), **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._logger.critical(self._sanitize(msg, args), **kwargs)


def _below_warning(record: logging.LogRecord) -> bool:
    return record.levelno < logging.WARNING


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    name: str = "pump_trader",
) -> SecureLogger:
    """
    Setup the console sink, with an optional plain-text log file.

    Info goes to stdout, warnings and errors to stderr. Debug is discarded
    unless ``log_level`` is DEBUG.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    # Remove existing handlers
    logger.handlers = []

    stdout_handler = RichHandler(
        console=Console(file=sys.stdout),
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(_below_warning)
    stdout_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(stdout_handler)

    stderr_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(stderr_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    return SecureLogger(logger)


_default_logger: Optional[SecureLogger] = None


def get_default_logger() -> SecureLogger:
    """Sink used by traders that were not given one."""
    global _default_logger
    if _default_logger is None:
        _default_logger = setup_logging()
    return _default_logger


# Amount and formatting utilities

def sol_to_lamports(sol_amount: float) -> int:
    """Convert SOL to lamports, flooring any fractional lamport."""
    if sol_amount < 0:
        raise ValueError(f"SOL amount cannot be negative, got {sol_amount}")
    return math.floor(sol_amount * 1e9)


def format_sol(lamports: int) -> str:
    """Format a lamport amount as SOL with appropriate precision."""
    sol = lamports / LAMPORTS_PER_SOL
    if sol == 0:
        return "0 SOL"
    elif sol < 0.001:
        return f"{sol:.9f} SOL"
    elif sol < 1:
        return f"{sol:.6f} SOL"
    else:
        return f"{sol:,.4f} SOL"


def format_mint(mint: str, length: int = 8) -> str:
    """Shorten a mint address for log lines."""
    return f"{str(mint)[:length]}..."


def solscan_url(signature: str) -> str:
    return SOLSCAN_TX_URL.format(signature=signature)


# Validation utilities

def normalize_mint(mint: str) -> str:
    """
    Parse a token mint and return its canonical base58 form.

    Raises:
        InvalidAddressError: if ``mint`` is not a 32 byte base58 public key
    """
    if not isinstance(mint, str):
        raise InvalidAddressError(str(mint), f"expected str, got {type(mint).__name__}")
    try:
        return str(Pubkey.from_string(mint))
    except ValueError as e:
        raise InvalidAddressError(mint, str(e)) from e


def is_valid_mint(mint: str) -> bool:
    try:
        normalize_mint(mint)
        return True
    except InvalidAddressError:
        return False
