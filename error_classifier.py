"""
Trade Failure Classification
============================
Turns whatever went wrong inside a buy/sell pipeline into a ``TradeFailure``
and reports it through the trader's logging sink.

The classification is heuristic: it matches substrings of PumpPortal error
bodies, RPC error messages and program logs. Upstream wording can change at
any time, so the ``kind`` is a diagnostic hint only. The original exception is
always kept on ``TradeFailure.error``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

import requests

from logging_utils import TradeLogger
from utils import (
    EmptyResponseError,
    InvalidAddressError,
    TransactionError,
    format_mint,
)


MIGRATED_MARKERS = ("bonding curve", "migrated", "does not exist")
EXHAUSTED_MARKERS = ("NotEnoughTokensToBuy", "Not enough tokens")
# Anchor assertion output printed next to the failing constraint
ASSERTION_MARKERS = ("Left:", "Right:")


class FailureKind(str, Enum):
    INVALID_ADDRESS = "InvalidAddress"
    EMPTY_RESPONSE = "EmptyResponse"
    TOKEN_MIGRATED_OR_UNKNOWN = "TokenMigratedOrUnknown"
    INVALID_REQUEST_PARAMETERS = "InvalidRequestParameters"
    REMOTE_BUILD_ERROR = "RemoteBuildError"
    BONDING_CURVE_EXHAUSTED = "BondingCurveExhausted"
    EXECUTION_FAILED_ON_CHAIN = "ExecutionFailedOnChain"
    TRANSPORT_OR_SDK_ERROR = "TransportOrSdkError"


@dataclass
class TradeFailure:
    """Why a trade did not complete."""
    kind: FailureKind
    message: str
    status_code: Optional[int] = None
    detail: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def from_remote(self) -> bool:
        """True when the trade builder answered with an HTTP error."""
        return self.status_code is not None


def _contains_any(text: Optional[str], markers: Iterable[str]) -> bool:
    return bool(text) and any(marker in text for marker in markers)


def response_text(response) -> Optional[str]:
    """Decode an HTTP error body, which PumpPortal sends as raw bytes."""
    content = getattr(response, "content", None)
    if not content:
        return None
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return str(content)


def extract_logs(error: BaseException) -> List[str]:
    """
    Collect program log lines attached to an RPC error.

    Preflight failures from solana-py carry them on
    ``RPCException.args[0].data.logs``; other clients expose ``error.logs``.
    """
    logs = getattr(error, "logs", None)
    if logs is None and error.args:
        data = getattr(error.args[0], "data", None)
        logs = getattr(data, "logs", None)
    if isinstance(logs, (list, tuple)):
        return [str(line) for line in logs]
    return []


def classify_failure(error: BaseException, action: str) -> TradeFailure:
    """Map an exception raised by a ``buy`` or ``sell`` pipeline to a failure kind."""
    if isinstance(error, InvalidAddressError):
        return TradeFailure(FailureKind.INVALID_ADDRESS, str(error), detail=error.reason, error=error)

    if isinstance(error, EmptyResponseError):
        return TradeFailure(FailureKind.EMPTY_RESPONSE, str(error), error=error)

    if isinstance(error, TransactionError):
        return TradeFailure(
            FailureKind.EXECUTION_FAILED_ON_CHAIN,
            str(error),
            detail=str(error.chain_error),
            error=error,
        )

    # Only the builder call goes through requests; RPC HTTP errors come from httpx.
    # requests.Response is falsy for 4xx/5xx, so compare against None
    response = error.response if isinstance(error, requests.HTTPError) else None
    if response is not None:
        status = getattr(response, "status_code", None)
        detail = response_text(response)
        if _contains_any(detail, MIGRATED_MARKERS):
            kind = FailureKind.TOKEN_MIGRATED_OR_UNKNOWN
        elif status == 400:
            kind = FailureKind.INVALID_REQUEST_PARAMETERS
        else:
            kind = FailureKind.REMOTE_BUILD_ERROR
        return TradeFailure(kind, f"PumpPortal API error: {status}", status_code=status, detail=detail, error=error)

    message = str(error) or repr(error)
    logs = extract_logs(error)

    if action == "buy" and (
        _contains_any(message, EXHAUSTED_MARKERS)
        or any(_contains_any(line, EXHAUSTED_MARKERS) for line in logs)
    ):
        kind = FailureKind.BONDING_CURVE_EXHAUSTED
    elif _contains_any(message, MIGRATED_MARKERS) or any(_contains_any(line, MIGRATED_MARKERS) for line in logs):
        kind = FailureKind.TOKEN_MIGRATED_OR_UNKNOWN
    else:
        kind = FailureKind.TRANSPORT_OR_SDK_ERROR

    return TradeFailure(kind, message, logs=logs, error=error)


def _report_migrated(logger: TradeLogger, mint: str):
    logger.warning(
        "Token %s has migrated or does not exist on pump.fun bonding curve",
        format_mint(mint),
    )


def _report_exhausted(logger: TradeLogger, mint: str):
    logger.error("BONDING CURVE ERROR")
    logger.error("Token %s bonding curve has insufficient tokens", format_mint(mint))
    logger.error("Possible reasons:")
    logger.error("  1. Token bonding curve is almost empty (most tokens sold)")
    logger.error("  2. Token has migrated/launched (bonding curve completed)")
    logger.error("  3. Amount requested is too large for available tokens")


def _report_logs(logger: TradeLogger, logs: List[str]):
    logger.error("Transaction Logs:")
    for line in logs:
        if _contains_any(line, EXHAUSTED_MARKERS) or _contains_any(line, ASSERTION_MARKERS):
            logger.error("  %s", line)
        else:
            logger.debug("  %s", line)


def report_failure(failure: TradeFailure, logger: TradeLogger, action: str, mint: str):
    """Write the diagnostic lines for ``failure`` to ``logger``."""
    kind = failure.kind

    if kind is FailureKind.INVALID_ADDRESS:
        logger.error("Invalid token mint address: %s - %s", format_mint(mint), failure.detail)
        return

    if kind is FailureKind.EMPTY_RESPONSE:
        logger.error("Empty response from PumpPortal API")
        return

    if kind is FailureKind.EXECUTION_FAILED_ON_CHAIN:
        logger.error("Transaction failed: %s", failure.detail)
        return

    if failure.from_remote:
        logger.error("PumpPortal API error: %s", failure.status_code)
        if failure.detail:
            logger.error("Error details: %s", failure.detail)
        if kind is FailureKind.TOKEN_MIGRATED_OR_UNKNOWN:
            _report_migrated(logger, mint)
        elif kind is FailureKind.INVALID_REQUEST_PARAMETERS:
            logger.warning("Invalid token or request parameters for %s", format_mint(mint))
        return

    logger.error("PumpPortal %s error: %s", action, failure.message)

    if kind is FailureKind.BONDING_CURVE_EXHAUSTED:
        _report_exhausted(logger, mint)
    elif kind is FailureKind.TOKEN_MIGRATED_OR_UNKNOWN:
        _report_migrated(logger, mint)

    # Sell failures only get the generic line above
    if action == "buy" and failure.logs:
        _report_logs(logger, failure.logs)
