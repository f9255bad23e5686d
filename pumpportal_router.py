#!/usr/bin/env python3
"""
PumpPortal Trade Integration
============================
Buys and sells pump.fun bonding-curve tokens through the PumpPortal
"trade-local" API. PumpPortal builds an unsigned transaction; it is signed
here with the caller's keypair, sent through the caller's RPC client and
awaited until confirmed.

API Docs: https://pumpportal.fun/local-trading-api/trading-api

Amount units differ between the two sides:
- ``buy`` takes SOL (e.g. ``0.01``) and converts to lamports itself.
- ``sell`` takes the raw token amount, already scaled by the token's
  decimals. It is sent unchanged.

Neither operation raises. Failures are logged through the injected sink and
reported as ``None`` (or, from ``execute_buy``/``execute_sell``, as a
``TradeOutcome`` carrying the classified ``TradeFailure``).
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional, Union
from urllib.parse import urlencode

import requests
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Finalized
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from config import Config
from error_classifier import TradeFailure, classify_failure, report_failure
from logging_utils import TradeLogger
from utils import (
    EmptyResponseError,
    TransactionError,
    format_mint,
    get_default_logger,
    normalize_mint,
    sol_to_lamports,
    solscan_url,
)

PUMPPORTAL_API = "https://pumpportal.fun/api/trade-local"
PUMP_POOL = "pump"
REQUEST_TIMEOUT_SECONDS = 10
MAX_SEND_RETRIES = 3

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass(frozen=True)
class TradeRequest:
    """Trade intent sent to PumpPortal."""
    public_key: str
    action: str
    mint: str
    amount: str
    denominated_in_sol: str
    slippage: float
    priority_fee: float
    pool: str = PUMP_POOL

    def to_payload(self) -> Dict[str, Union[str, float]]:
        """Field names as PumpPortal expects them."""
        return {
            "publicKey": self.public_key,
            "action": self.action,
            "mint": self.mint,
            "amount": self.amount,
            "denominatedInSol": self.denominated_in_sol,
            "slippage": self.slippage,
            "priorityFee": self.priority_fee,
            "pool": self.pool,
        }


@dataclass
class TradeOutcome:
    """Result of one buy or sell call."""
    signature: Optional[str] = None
    failure: Optional[TradeFailure] = None

    @property
    def success(self) -> bool:
        return self.signature is not None


class PumpPortalTrader:
    """
    PumpPortal buy/sell pipeline bound to one RPC client and one keypair.

    Each call builds, signs and submits exactly one transaction. Nothing is
    cached between calls, so concurrent calls are independent apart from
    sharing the logger and HTTP session.
    """

    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        logger: Optional[TradeLogger] = None,
        session: Optional[requests.Session] = None,
        api_url: str = PUMPPORTAL_API,
        pool: str = PUMP_POOL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_send_retries: int = MAX_SEND_RETRIES,
        skip_preflight: bool = False,
    ):
        """
        Args:
            client: Solana async RPC client used to submit and confirm
            keypair: Signer; its public key is the trader identity
            logger: Sink for progress and diagnostics (default: console)
            session: HTTP session for the builder API
            api_url: PumpPortal trade-local endpoint
            pool: Venue tag sent with every request
            timeout: Builder request timeout in seconds
            max_send_retries: Retries the RPC node performs on submission
            skip_preflight: Skip the node's simulation before submission
        """
        self.client = client
        self.keypair = keypair
        self.logger = logger or get_default_logger()
        self.session = session or requests.Session()
        self.api_url = api_url
        self.pool = pool
        self.timeout = timeout
        self.max_send_retries = max_send_retries
        self.skip_preflight = skip_preflight

    @classmethod
    def from_config(
        cls,
        client: AsyncClient,
        keypair: Keypair,
        config: Config,
        logger: Optional[TradeLogger] = None,
        session: Optional[requests.Session] = None,
    ) -> "PumpPortalTrader":
        return cls(
            client,
            keypair,
            logger=logger,
            session=session,
            api_url=config.pumpportal_url,
            pool=config.pool,
            timeout=config.request_timeout_seconds,
            max_send_retries=config.max_send_retries,
            skip_preflight=config.skip_preflight,
        )

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def close(self):
        self.session.close()

    def _build_request(self, action: str, mint: str, amount: str, denominated_in_sol: str,
                       slippage: float, priority_fee: float) -> TradeRequest:
        return TradeRequest(
            public_key=self.public_key,
            action=action,
            mint=mint,
            amount=amount,
            denominated_in_sol=denominated_in_sol,
            slippage=slippage,
            priority_fee=priority_fee,
            pool=self.pool,
        )

    async def _fetch_transaction(self, body: Union[Dict, str]) -> bytes:
        """
        POST the trade request and return the unsigned transaction bytes.

        ``timeout`` bounds the whole call, not just each socket read. A
        request abandoned on timeout may still finish on its worker thread;
        its response is discarded.
        """
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.session.post,
                    self.api_url,
                    data=body,
                    headers=FORM_HEADERS,
                    timeout=self.timeout,
                ),
                self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"PumpPortal API did not respond within {self.timeout}s") from e
        response.raise_for_status()

        content = response.content
        if not content:
            raise EmptyResponseError("Empty response from PumpPortal API")

        self.logger.info("Received transaction from PumpPortal API (%d bytes)", len(content))
        return content

    async def _sign_and_submit(self, raw_transaction: bytes) -> str:
        """Sign the builder's transaction, send it and wait for confirmation."""
        unsigned = VersionedTransaction.from_bytes(raw_transaction)
        signed = VersionedTransaction(unsigned.message, [self.keypair])

        self.logger.info("Sending PumpPortal transaction...")
        sent = await self.client.send_raw_transaction(
            bytes(signed),
            opts=TxOpts(skip_preflight=self.skip_preflight, max_retries=self.max_send_retries),
        )
        signature = sent.value
        self.logger.info("Transaction sent: %s", signature)

        latest = await self.client.get_latest_blockhash(Finalized)
        confirmation = await self.client.confirm_transaction(
            signature,
            Confirmed,
            last_valid_block_height=latest.value.last_valid_block_height,
        )

        status = confirmation.value[0] if confirmation.value else None
        if status is not None and status.err is not None:
            raise TransactionError(str(signature), status.err)

        return str(signature)

    def _fail(self, error: Exception, action: str, token_mint: str) -> TradeOutcome:
        failure = classify_failure(error, action)
        report_failure(failure, self.logger, action, token_mint)
        return TradeOutcome(failure=failure)

    async def execute_buy(self, token_mint: str, sol_amount: float,
                          slippage_percent: float = 5, priority_fee: float = 0.005) -> TradeOutcome:
        """Buy ``sol_amount`` SOL worth of ``token_mint``; see ``buy``."""
        self.logger.info("Using PumpPortal API to buy %s SOL worth of %s", sol_amount, format_mint(token_mint))
        try:
            mint = normalize_mint(token_mint)
            request = self._build_request(
                "buy",
                mint,
                str(sol_to_lamports(sol_amount)),
                "true",
                slippage_percent,
                priority_fee,
            )
            payload = request.to_payload()
            self.logger.debug("PumpPortal API request: %s", payload)

            raw_transaction = await self._fetch_transaction(payload)
            signature = await self._sign_and_submit(raw_transaction)
        except Exception as e:
            return self._fail(e, "buy", token_mint)

        self.logger.info("BUY SUCCESSFUL via PumpPortal: %s", signature)
        self.logger.info("Transaction: %s", solscan_url(signature))
        return TradeOutcome(signature=signature)

    async def execute_sell(self, token_mint: str, token_amount: int,
                           slippage_percent: float = 5, priority_fee: float = 0.005) -> TradeOutcome:
        """Sell ``token_amount`` raw units of ``token_mint``; see ``sell``."""
        self.logger.info("Using PumpPortal API to sell %s tokens of %s", token_amount, format_mint(token_mint))
        try:
            mint = normalize_mint(token_mint)
            request = self._build_request(
                "sell",
                mint,
                str(token_amount),
                "false",
                slippage_percent,
                priority_fee,
            )
            body = urlencode(request.to_payload())
            self.logger.debug("PumpPortal API request: %s", body)

            raw_transaction = await self._fetch_transaction(body)
            signature = await self._sign_and_submit(raw_transaction)
        except Exception as e:
            return self._fail(e, "sell", token_mint)

        self.logger.info("SELL SUCCESSFUL via PumpPortal: %s", signature)
        self.logger.info("Transaction: %s", solscan_url(signature))
        return TradeOutcome(signature=signature)

    async def buy(self, token_mint: str, sol_amount: float,
                  slippage_percent: float = 5, priority_fee: float = 0.005) -> Optional[str]:
        """
        Buy a pump.fun token with SOL.

        Args:
            token_mint: Token mint address (base58)
            sol_amount: Amount of SOL to spend, in SOL. Converted to lamports
                here; do not pass lamports.
            slippage_percent: Max slippage
            priority_fee: Priority fee in SOL

        Returns:
            Transaction signature, or None if the trade did not complete
        """
        outcome = await self.execute_buy(token_mint, sol_amount, slippage_percent, priority_fee)
        return outcome.signature

    async def sell(self, token_mint: str, token_amount: int,
                   slippage_percent: float = 5, priority_fee: float = 0.005) -> Optional[str]:
        """
        Sell a pump.fun token for SOL.

        Args:
            token_mint: Token mint address (base58)
            token_amount: Raw token amount, already multiplied by
                ``10 ** decimals``. Sent as-is.
            slippage_percent: Max slippage
            priority_fee: Priority fee in SOL

        Returns:
            Transaction signature, or None if the trade did not complete
        """
        outcome = await self.execute_sell(token_mint, token_amount, slippage_percent, priority_fee)
        return outcome.signature


async def buy(
    connection: AsyncClient,
    credential: Keypair,
    token_mint: str,
    sol_amount: float,
    slippage_percent: float = 5,
    priority_fee: float = 0.005,
    logger: Optional[TradeLogger] = None,
) -> Optional[str]:
    """One-shot ``PumpPortalTrader.buy``. ``sol_amount`` is in SOL."""
    trader = PumpPortalTrader(connection, credential, logger=logger)
    try:
        return await trader.buy(token_mint, sol_amount, slippage_percent, priority_fee)
    finally:
        trader.close()


async def sell(
    connection: AsyncClient,
    credential: Keypair,
    token_mint: str,
    token_amount: int,
    slippage_percent: float = 5,
    priority_fee: float = 0.005,
    logger: Optional[TradeLogger] = None,
) -> Optional[str]:
    """One-shot ``PumpPortalTrader.sell``. ``token_amount`` is in raw token units."""
    trader = PumpPortalTrader(connection, credential, logger=logger)
    try:
        return await trader.sell(token_mint, token_amount, slippage_percent, priority_fee)
    finally:
        trader.close()
