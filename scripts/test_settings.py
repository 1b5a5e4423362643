from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from arbscan.bot_runtime.assets import read_asset_list
from arbscan.bot_runtime.settings import AppSettings, to_bool, to_float, to_int, to_list
from arbscan.trading.errors import ConfigurationError
from arbscan.trading.types import USDC_MINT


def _settings(**env: str) -> AppSettings:
    with patch.dict(os.environ, env, clear=True):
        return AppSettings.from_env()


class CoercionTests(unittest.TestCase):
    def test_helpers_fall_back_on_bad_values(self) -> None:
        self.assertTrue(to_bool("YES", False))
        self.assertFalse(to_bool("off", True))
        self.assertTrue(to_bool("", True))
        self.assertEqual(to_int("12.7", 0), 12)
        self.assertEqual(to_int("abc", 4), 4)
        self.assertEqual(to_int("inf", 4), 4)
        self.assertEqual(to_float(None, 1.5), 1.5)
        self.assertEqual(to_list("Whirlpool, Raydium ,,"), ["whirlpool", "raydium"])
        self.assertEqual(to_list(None), [])


class AppSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = _settings(RPC_URL="https://rpc.example")

        self.assertEqual(settings.jup_api_base_url, "https://lite-api.jup.ag")
        self.assertTrue(settings.dry_run)
        self.assertEqual(settings.base_mint, USDC_MINT)
        self.assertEqual(settings.base_decimals, 6)
        self.assertEqual(settings.buy_amount, 50.0)
        self.assertEqual(settings.min_net_profit, 0.5)
        self.assertEqual(settings.slippage_bps, 50)
        self.assertEqual(settings.include_mode, "all")
        self.assertEqual(settings.priority_lamports, 10_000)
        self.assertEqual(settings.jito_tip_lamports, 2_000)
        self.assertEqual(settings.scan_interval_seconds, 0.25)
        self.assertEqual(settings.per_token_cooldown_seconds, 0.0)
        self.assertEqual(settings.max_parallel, 4)
        self.assertEqual(settings.http_timeout_seconds, 15.0)
        self.assertEqual(settings.fetch_retries, 5)
        self.assertEqual(settings.retry_backoff_seconds, 0.5)
        self.assertEqual(settings.execution_mode, "both")
        self.assertEqual(settings.assets_file, "memes.txt")
        self.assertEqual(settings.jito_mode, "off")
        self.assertEqual(settings.sender_confirm_commitment, "confirmed")
        self.assertEqual(settings.broadcast_confirm_commitment, "none")
        self.assertEqual(settings.tip_lamports_by_leg, {"buy": 6_000_000, "sell": 8_000_000})
        settings.validate()

    def test_overrides_are_normalized(self) -> None:
        settings = _settings(
            RPC_URL="https://rpc.example",
            JUP_MODE="ultra",
            MODE="SELL-ONLY",
            INCLUDE_MODE="Any",
            INCLUDE_DEXES="Whirlpool,Meteora",
            MAX_PARALLEL="0",
            SENDER_CONFIRM_COMMITMENT="bogus",
            JITO_MODE="RELAYER",
        )

        self.assertEqual(settings.jup_api_base_url, "https://api.jup.ag/ultra")
        self.assertEqual(settings.execution_mode, "sell-only")
        self.assertEqual(settings.include_mode, "any")
        self.assertEqual(settings.include_dexes, ["whirlpool", "meteora"])
        self.assertEqual(settings.max_parallel, 1)
        self.assertEqual(settings.sender_confirm_commitment, "confirmed")
        self.assertTrue(settings.jito_enabled)

    def test_validate_requires_rpc_url(self) -> None:
        with self.assertRaises(ConfigurationError):
            _settings().validate()

    def test_validate_requires_key_for_live_mode(self) -> None:
        with self.assertRaises(ConfigurationError):
            _settings(RPC_URL="https://rpc.example", DRY_RUN="false").validate()

        _settings(RPC_URL="https://rpc.example", DRY_RUN="false", PRIVATE_KEY_B58="key").validate()

    def test_validate_rejects_non_positive_buy_amount(self) -> None:
        with self.assertRaises(ConfigurationError):
            _settings(RPC_URL="https://rpc.example", BUY_AMOUNT_USDC="0").validate()

    def test_validate_rejects_non_finite_amounts(self) -> None:
        cases = [
            ("BUY_AMOUNT_USDC", "nan"),
            ("BUY_AMOUNT_USDC", "inf"),
            ("MIN_NET_PROFIT_USDC", "nan"),
            ("SOL_PRICE_USD", "inf"),
            ("JITO_TIP_SOL_SELL", "inf"),
        ]
        for name, value in cases:
            with self.subTest(name=name, value=value):
                with self.assertRaises(ConfigurationError):
                    _settings(RPC_URL="https://rpc.example", **{name: value}).validate()

    def test_validate_requires_block_engine_for_relayer(self) -> None:
        with self.assertRaises(ConfigurationError):
            _settings(RPC_URL="https://rpc.example", JITO_MODE="relayer", JITO_BLOCK_ENGINE_HTTP="").validate()


class AssetListTests(unittest.TestCase):
    def test_reads_trimmed_unique_lines(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "memes.txt"
            path.write_text("mintA\n\n  mintB  \nmintA\n\t\nmintC\n", encoding="utf-8")

            self.assertEqual(read_asset_list(path), ["mintA", "mintB", "mintC"])

    def test_missing_file_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigurationError):
                read_asset_list(Path(tmp) / "missing.txt")


if __name__ == "__main__":
    unittest.main()
