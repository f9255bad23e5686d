#!/usr/bin/env python3
"""
PumpPortal Trader CLI
=====================

Command line front end for one-off pump.fun trades:
- Import a Solana secret key into an encrypted keystore
- Show the trading wallet address
- Write a starter config file
- Buy a token with SOL
- Sell a raw token amount for SOL

Usage:
    python trade_cli.py import-key
    python trade_cli.py address
    python trade_cli.py init-config --rpc-url https://my-rpc.example.com
    python trade_cli.py buy <MINT> 0.01 --slippage 5 --priority-fee 0.005
    python trade_cli.py sell <MINT> 1500000000

The secret key is read from the PRIVATE_KEY environment variable when set,
otherwise from the keystore (password prompted).
"""

import sys
import asyncio
import argparse
import getpass
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich import box
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from config import Config, ConfigManager
from logging_utils import StructuredLogger, TradeLogger
from pumpportal_router import PumpPortalTrader, TradeOutcome
from utils import (
    SecureLogger,
    format_sol,
    is_valid_mint,
    setup_logging,
    sol_to_lamports,
    solscan_url,
)
from wallet import SecureKeyManager, load_keypair, resolve_secret

console = Console()


def print_banner():
    """Print the CLI banner."""
    banner = """
    PumpPortal Trader
    ═════════════════
    pump.fun bonding-curve trades via PumpPortal
    """
    console.print(Panel(banner, style="bold cyan", box=box.DOUBLE))


def get_password(prompt: str = "Enter keystore password: ") -> str:
    """Securely get password from user."""
    console.print(f"[yellow]{prompt}[/yellow]")
    return getpass.getpass("> ")


def load_config(args: argparse.Namespace) -> Config:
    """Config file, then environment, then command line flags."""
    config = ConfigManager(Path(args.config)).load_config().with_env_overrides()
    if args.rpc_url:
        config.rpc_url = args.rpc_url
    if args.key_file:
        config.key_file = args.key_file
    return config


def load_trading_keypair(config: Config) -> Optional[Keypair]:
    secret = resolve_secret(config, get_password)
    if not secret:
        return None
    try:
        return load_keypair(secret)
    except ValueError as e:
        console.print(f"[red]Invalid secret key: {e}[/red]")
        return None


def import_key_command(args: argparse.Namespace, config: Config) -> int:
    """Handle import-key command - encrypt a secret key into the keystore."""
    print_banner()

    manager = SecureKeyManager(config.key_file)
    if manager.exists() and not args.force:
        console.print(f"[red]Keystore already exists at {manager.key_file} (use --force)[/red]")
        return 1

    console.print("[yellow]Enter base58 secret key:[/yellow]")
    secret = getpass.getpass("> ")

    password = get_password("Create encryption password: ")
    if len(password) < 8:
        console.print("[red]Password must be at least 8 characters[/red]")
        return 1
    confirm = get_password("Confirm password: ")
    if password != confirm:
        console.print("[red]Passwords don't match![/red]")
        return 1

    if not manager.encrypt_and_save(secret, password):
        console.print("[red]Failed to save keystore[/red]")
        return 1

    console.print(f"\n[green]✓ Key saved to: {manager.key_file}[/green]")
    console.print(f"[dim]  Address: {manager.public_key()}[/dim]")
    return 0


def address_command(args: argparse.Namespace, config: Config) -> int:
    """Handle address command - print the trading wallet address."""
    manager = SecureKeyManager(config.key_file)
    address = manager.public_key()
    if address is None:
        keypair = load_trading_keypair(config)
        if keypair is None:
            return 1
        address = str(keypair.pubkey())

    console.print(address)
    return 0


def init_config_command(args: argparse.Namespace, config: Config) -> int:
    """Handle init-config command - write the effective settings to the config file."""
    manager = ConfigManager(Path(args.config))
    if manager.exists() and not args.force:
        console.print(f"[red]Config already exists at {manager.config_path} (use --force)[/red]")
        return 1

    manager.save_config(config)
    console.print(f"[green]✓ Config written to: {manager.config_path}[/green]")
    return 0


def build_logger(args: argparse.Namespace, config: Config) -> TradeLogger:
    if args.json_log:
        logger = StructuredLogger('pump_trader', args.json_log, log_level=config.log_level)
        logger.generate_correlation_id()
        return logger
    return setup_logging(config.log_level, config.log_file)


async def execute_trade(args: argparse.Namespace, config: Config, keypair: Keypair,
                        logger: TradeLogger) -> TradeOutcome:
    slippage = args.slippage if args.slippage is not None else config.slippage_percent
    priority_fee = args.priority_fee if args.priority_fee is not None else config.priority_fee

    async with AsyncClient(config.rpc_url) as client:
        trader = PumpPortalTrader.from_config(client, keypair, config, logger=logger)
        try:
            if args.command == 'buy':
                return await trader.execute_buy(args.mint, args.amount, slippage, priority_fee)
            return await trader.execute_sell(args.mint, args.amount, slippage, priority_fee)
        finally:
            trader.close()


def trade_command(args: argparse.Namespace, config: Config) -> int:
    """Handle buy and sell commands."""
    if not is_valid_mint(args.mint):
        console.print(f"[red]Invalid token mint address: {args.mint}[/red]")
        return 1
    if args.amount < 0:
        console.print("[red]Amount cannot be negative[/red]")
        return 1

    keypair = load_trading_keypair(config)
    if keypair is None:
        return 1

    logger = build_logger(args, config)
    if isinstance(logger, SecureLogger):
        logger.register_secret(str(keypair))

    console.print(f"[dim]RPC: {config.rpc_url}[/dim]")
    console.print(f"[dim]Wallet: {keypair.pubkey()}[/dim]")
    if args.command == 'buy':
        console.print(f"[dim]Spend: {format_sol(sol_to_lamports(args.amount))}[/dim]")

    try:
        outcome = asyncio.run(execute_trade(args, config, keypair, logger))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; the transaction may still land[/yellow]")
        return 1

    if isinstance(logger, StructuredLogger):
        logger.log_trade(
            args.command,
            args.mint,
            signature=outcome.signature,
            success=outcome.success,
            failure_kind=outcome.failure.kind.value if outcome.failure else None,
            extra={'amount': args.amount},
        )

    if outcome.success:
        console.print(f"[green]✓ {args.command.upper()} confirmed: {outcome.signature}[/green]")
        console.print(f"[dim]  {solscan_url(outcome.signature)}[/dim]")
        return 0

    console.print(f"[red]✗ {args.command.upper()} failed ({outcome.failure.kind.value})[/red]")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="PumpPortal Trader CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Store a secret key encrypted on disk
  python trade_cli.py import-key

  # Buy 0.01 SOL worth of a token
  python trade_cli.py buy <MINT> 0.01

  # Sell 1500 tokens of a 6-decimal token
  python trade_cli.py sell <MINT> 1500000000
        """
    )

    # Global options
    parser.add_argument('--config', default='./pump_trader.yaml', help='Path to YAML config')
    parser.add_argument('--rpc-url', help='Solana RPC URL (overrides config and RPC_URL)')
    parser.add_argument('--key-file', help='Path to encrypted keystore')
    parser.add_argument('--json-log', help='Write structured JSON trade logs to this file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    import_parser = subparsers.add_parser('import-key', help='Encrypt a secret key into the keystore')
    import_parser.add_argument('--force', action='store_true', help='Overwrite an existing keystore')

    subparsers.add_parser('address', help='Show the trading wallet address')

    init_parser = subparsers.add_parser('init-config', help='Write the current settings to the config file')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing config file')

    buy_parser = subparsers.add_parser('buy', help='Buy a token with SOL')
    buy_parser.add_argument('mint', help='Token mint address')
    buy_parser.add_argument('amount', type=float, help='SOL to spend (in SOL, not lamports)')

    sell_parser = subparsers.add_parser('sell', help='Sell a token for SOL')
    sell_parser.add_argument('mint', help='Token mint address')
    sell_parser.add_argument('amount', type=int, help='Raw token amount (already scaled by decimals)')

    for trade_parser in (buy_parser, sell_parser):
        trade_parser.add_argument('--slippage', type=float, help='Max slippage percent')
        trade_parser.add_argument('--priority-fee', type=float, help='Priority fee in SOL')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    config = load_config(args)

    if args.command == 'import-key':
        return import_key_command(args, config)
    elif args.command == 'address':
        return address_command(args, config)
    elif args.command == 'init-config':
        return init_config_command(args, config)
    return trade_command(args, config)


if __name__ == '__main__':
    sys.exit(main())
