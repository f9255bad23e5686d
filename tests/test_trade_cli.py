"""
Tests for the command line front end.
"""

import os
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import AsyncMock, Mock, patch

from solders.keypair import Keypair

sys.path.insert(0, str(Path(__file__).parent.parent))

import trade_cli
from config import ConfigManager
from error_classifier import FailureKind, TradeFailure
from pumpportal_router import TradeOutcome
from utils import SecureLogger
from wallet import SecureKeyManager

MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class TestParser(unittest.TestCase):

    def test_buy_amount_is_sol_float(self):
        args = trade_cli.build_parser().parse_args(["buy", MINT, "0.01", "--slippage", "10"])

        self.assertEqual(args.command, "buy")
        self.assertEqual(args.amount, 0.01)
        self.assertEqual(args.slippage, 10.0)
        self.assertIsNone(args.priority_fee)

    def test_sell_amount_is_raw_integer(self):
        args = trade_cli.build_parser().parse_args(["sell", MINT, "1500000000"])

        self.assertEqual(args.amount, 1_500_000_000)
        self.assertIsInstance(args.amount, int)

    def test_no_command_prints_help(self):
        with patch.object(trade_cli.argparse.ArgumentParser, "print_help") as print_help:
            self.assertEqual(trade_cli.main([]), 1)
        print_help.assert_called_once()


class TestCommands(unittest.TestCase):

    def setUp(self):
        self.tmp = TemporaryDirectory()
        self.key_file = str(Path(self.tmp.name) / "wallet.enc")
        self.config_file = str(Path(self.tmp.name) / "pump_trader.yaml")
        self.keypair = Keypair()

    def tearDown(self):
        self.tmp.cleanup()

    def run_cli(self, *argv):
        return trade_cli.main(["--config", self.config_file, "--key-file", self.key_file, *argv])

    def test_address_from_keystore(self):
        SecureKeyManager(self.key_file).encrypt_and_save(str(self.keypair), "password123")

        with patch.object(trade_cli.console, "print") as printed:
            self.assertEqual(self.run_cli("address"), 0)

        printed.assert_called_with(str(self.keypair.pubkey()))

    def test_address_without_any_key_fails(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(self.run_cli("address"), 1)

    @patch("trade_cli.setup_logging")
    @patch("trade_cli.execute_trade", new_callable=AsyncMock)
    def test_buy_success_exit_code(self, execute_trade, setup_logging):
        setup_logging.return_value = Mock(spec=SecureLogger)
        execute_trade.return_value = TradeOutcome(signature="5sig")

        with patch.dict(os.environ, {"PRIVATE_KEY": str(self.keypair)}):
            self.assertEqual(self.run_cli("buy", MINT, "0.01"), 0)

        args, config, keypair, logger = execute_trade.call_args.args
        self.assertEqual(args.amount, 0.01)
        self.assertEqual(keypair.pubkey(), self.keypair.pubkey())
        logger.register_secret.assert_called_once_with(str(self.keypair))

    @patch("trade_cli.setup_logging")
    @patch("trade_cli.execute_trade", new_callable=AsyncMock)
    def test_sell_failure_exit_code(self, execute_trade, setup_logging):
        execute_trade.return_value = TradeOutcome(
            failure=TradeFailure(FailureKind.INVALID_REQUEST_PARAMETERS, "PumpPortal API error: 400", status_code=400)
        )

        with patch.dict(os.environ, {"PRIVATE_KEY": str(self.keypair)}):
            self.assertEqual(self.run_cli("sell", MINT, "1000"), 1)

    @patch("trade_cli.execute_trade", new_callable=AsyncMock)
    @patch("trade_cli.load_trading_keypair")
    def test_invalid_mint_rejected_before_key_prompt(self, load_trading_keypair, execute_trade):
        self.assertEqual(self.run_cli("buy", "not-a-mint", "0.01"), 1)

        load_trading_keypair.assert_not_called()
        execute_trade.assert_not_awaited()

    @patch("trade_cli.execute_trade", new_callable=AsyncMock)
    def test_negative_amount_rejected(self, execute_trade):
        self.assertEqual(self.run_cli("buy", MINT, "-0.5"), 1)
        execute_trade.assert_not_awaited()

    @patch("trade_cli.setup_logging")
    @patch("trade_cli.execute_trade", new_callable=AsyncMock)
    def test_buy_shows_sol_to_spend(self, execute_trade, setup_logging):
        setup_logging.return_value = Mock(spec=SecureLogger)
        execute_trade.return_value = TradeOutcome(signature="5sig")

        with patch.dict(os.environ, {"PRIVATE_KEY": str(self.keypair)}):
            with patch.object(trade_cli.console, "print") as printed:
                self.run_cli("buy", MINT, "0.01")

        printed.assert_any_call("[dim]Spend: 0.010000 SOL[/dim]")

    def test_init_config_writes_effective_settings(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(self.run_cli("--rpc-url", "https://rpc.example.com", "init-config"), 0)

        saved = ConfigManager(Path(self.config_file)).load_config()
        self.assertEqual(saved.rpc_url, "https://rpc.example.com")
        self.assertEqual(saved.key_file, self.key_file)

    def test_init_config_keeps_existing_file(self):
        Path(self.config_file).write_text("slippage_percent: 9.0\n")

        self.assertEqual(self.run_cli("init-config"), 1)
        self.assertEqual(Path(self.config_file).read_text(), "slippage_percent: 9.0\n")

        self.assertEqual(self.run_cli("init-config", "--force"), 0)
        self.assertEqual(ConfigManager(Path(self.config_file)).load_config().slippage_percent, 9.0)

    def test_rpc_url_flag_overrides_environment(self):
        args = trade_cli.build_parser().parse_args(
            ["--config", self.config_file, "--rpc-url", "https://flag.example.com", "address"]
        )
        with patch.dict(os.environ, {"RPC_URL": "https://env.example.com"}):
            config = trade_cli.load_config(args)

        self.assertEqual(config.rpc_url, "https://flag.example.com")


if __name__ == "__main__":
    unittest.main()
