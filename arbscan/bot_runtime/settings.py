from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any

from arbscan.trading.errors import ConfigurationError
from arbscan.trading.jupiter import resolve_jupiter_base_url
from arbscan.trading.types import USDC_MINT, ExecutionMode, IncludeMode
from arbscan.trading.venues import normalize_include_mode

LAMPORTS_PER_SOL = 1_000_000_000
COMMITMENT_LEVELS = {"none", "processed", "confirmed", "finalized"}


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    return text in {"1", "true", "yes", "on"}


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def to_list(value: Any) -> list[str]:
    if value is None:
        return []
    return [item.strip().lower() for item in str(value).split(",") if item.strip()]


def normalize_execution_mode(value: str) -> ExecutionMode:
    mode = (value or "").strip().lower()
    if mode == "buy-only":
        return "buy-only"
    if mode == "sell-only":
        return "sell-only"
    return "both"


def normalize_jito_mode(value: str) -> str:
    return "relayer" if (value or "").strip().lower() == "relayer" else "off"


def normalize_commitment(value: str | None, default: str) -> str:
    level = (value or "").strip().lower()
    return level if level in COMMITMENT_LEVELS else default


def sol_to_lamports(value: float) -> int:
    return max(0, int(round(value * LAMPORTS_PER_SOL)))


@dataclass(slots=True)
class AppSettings:
    jup_mode: str
    jup_api_base_url: str
    jup_api_key: str
    rpc_url: str
    private_key: str
    dry_run: bool
    base_mint: str
    base_decimals: int
    buy_amount: float
    min_net_profit: float
    near_miss_delta: float
    slippage_bps: int
    include_dexes: list[str]
    include_mode: IncludeMode
    exclude_dexes: list[str]
    priority_lamports: int
    jito_tip_lamports: int
    jup_fee_bps: float
    sol_price_usd: float
    scan_interval_seconds: float
    per_token_cooldown_seconds: float
    max_parallel: int
    http_timeout_seconds: float
    fetch_retries: int
    retry_backoff_seconds: float
    execution_mode: ExecutionMode
    assets_file: str
    jito_mode: str
    jito_block_engine_url: str
    jito_tip_account: str
    jito_auth_uuid: str
    jito_tip_sol_buy: float
    jito_tip_sol_sell: float
    sender_endpoint: str
    sender_api_key: str
    sender_skip_preflight: bool
    sender_max_retries: int
    sender_confirm_commitment: str
    broadcast_max_retries: int
    broadcast_confirm_commitment: str
    stats_window_seconds: float
    log_dir: str

    @classmethod
    def from_env(cls) -> "AppSettings":
        jup_mode = os.getenv("JUP_MODE", "FREE").strip().upper() or "FREE"
        return cls(
            jup_mode=jup_mode,
            jup_api_base_url=resolve_jupiter_base_url(jup_mode),
            jup_api_key=os.getenv("JUP_API_KEY", "").strip(),
            rpc_url=os.getenv("RPC_URL", "").strip(),
            private_key=os.getenv("PRIVATE_KEY_B58", "").strip(),
            dry_run=to_bool(os.getenv("DRY_RUN"), True),
            base_mint=os.getenv("USDC_MINT", "").strip() or USDC_MINT,
            base_decimals=max(0, to_int(os.getenv("BASE_DECIMALS"), 6)),
            buy_amount=to_float(os.getenv("BUY_AMOUNT_USDC"), 50.0),
            min_net_profit=to_float(os.getenv("MIN_NET_PROFIT_USDC"), 0.5),
            near_miss_delta=max(0.0, to_float(os.getenv("NEAR_MISS_DELTA_USDC"), 0.10)),
            slippage_bps=max(0, to_int(os.getenv("SLIPPAGE_BPS"), 50)),
            include_dexes=to_list(os.getenv("INCLUDE_DEXES")),
            include_mode=normalize_include_mode(os.getenv("INCLUDE_MODE", "all")),
            exclude_dexes=to_list(os.getenv("EXCLUDE_DEXES")),
            priority_lamports=max(0, to_int(os.getenv("PRIORITY_LAMPORTS"), 10_000)),
            jito_tip_lamports=max(0, to_int(os.getenv("JITO_TIP_LAMPORTS"), 2_000)),
            jup_fee_bps=max(0.0, to_float(os.getenv("JUP_FEE_BPS"), 10.0)),
            sol_price_usd=max(0.0, to_float(os.getenv("SOL_PRICE_USD"), 150.0)),
            scan_interval_seconds=max(0, to_int(os.getenv("SCAN_INTERVAL_MS"), 250)) / 1000.0,
            per_token_cooldown_seconds=max(0, to_int(os.getenv("PER_TOKEN_COOLDOWN_MS"), 0)) / 1000.0,
            max_parallel=max(1, to_int(os.getenv("MAX_PARALLEL"), 4)),
            http_timeout_seconds=max(100, to_int(os.getenv("HTTP_TIMEOUT_MS"), 15_000)) / 1000.0,
            fetch_retries=max(1, to_int(os.getenv("FETCH_RETRIES"), 5)),
            retry_backoff_seconds=max(0, to_int(os.getenv("RETRY_BACKOFF_MS"), 500)) / 1000.0,
            execution_mode=normalize_execution_mode(os.getenv("MODE", "both")),
            assets_file=os.getenv("ASSETS_FILE", "memes.txt").strip() or "memes.txt",
            jito_mode=normalize_jito_mode(os.getenv("JITO_MODE", "off")),
            jito_block_engine_url=os.getenv(
                "JITO_BLOCK_ENGINE_HTTP",
                "https://mainnet.block-engine.jito.wtf",
            ).strip(),
            jito_tip_account=os.getenv("JITO_TIP_ACCOUNT", "").strip(),
            jito_auth_uuid=os.getenv("JITO_AUTH_UUID", "").strip(),
            jito_tip_sol_buy=max(0.0, to_float(os.getenv("JITO_TIP_SOL_BUY"), 0.006)),
            jito_tip_sol_sell=max(0.0, to_float(os.getenv("JITO_TIP_SOL_SELL"), 0.008)),
            sender_endpoint=os.getenv("SENDER_ENDPOINT", "").strip(),
            sender_api_key=os.getenv("SENDER_API_KEY", "").strip(),
            sender_skip_preflight=to_bool(os.getenv("SENDER_SKIP_PREFLIGHT"), True),
            sender_max_retries=max(0, to_int(os.getenv("SENDER_MAX_RETRIES"), 0)),
            sender_confirm_commitment=normalize_commitment(
                os.getenv("SENDER_CONFIRM_COMMITMENT"),
                "confirmed",
            ),
            broadcast_max_retries=max(0, to_int(os.getenv("BROADCAST_MAX_RETRIES"), 3)),
            broadcast_confirm_commitment=normalize_commitment(
                os.getenv("BROADCAST_CONFIRM_COMMITMENT"),
                "none",
            ),
            stats_window_seconds=max(1.0, to_float(os.getenv("STATS_WINDOW_SECONDS"), 60.0)),
            log_dir=os.getenv("LOG_DIR", "").strip(),
        )

    @property
    def simulation_mode(self) -> bool:
        return self.dry_run

    @property
    def jito_enabled(self) -> bool:
        return self.jito_mode == "relayer"

    @property
    def tip_lamports_by_leg(self) -> dict[str, int]:
        return {
            "buy": sol_to_lamports(self.jito_tip_sol_buy),
            "sell": sol_to_lamports(self.jito_tip_sol_sell),
        }

    def validate(self) -> None:
        if not self.rpc_url:
            raise ConfigurationError("RPC_URL is required.")
        if not self.dry_run and not self.private_key:
            raise ConfigurationError("PRIVATE_KEY_B58 is empty but DRY_RUN=false. Set the key or enable DRY_RUN.")
        for name, value in (
            ("BUY_AMOUNT_USDC", self.buy_amount),
            ("MIN_NET_PROFIT_USDC", self.min_net_profit),
            ("NEAR_MISS_DELTA_USDC", self.near_miss_delta),
            ("JUP_FEE_BPS", self.jup_fee_bps),
            ("SOL_PRICE_USD", self.sol_price_usd),
            ("JITO_TIP_SOL_BUY", self.jito_tip_sol_buy),
            ("JITO_TIP_SOL_SELL", self.jito_tip_sol_sell),
        ):
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be a finite number.")
        if self.buy_amount <= 0:
            raise ConfigurationError("BUY_AMOUNT_USDC must be greater than zero.")
        if self.jito_enabled and not self.jito_block_engine_url:
            raise ConfigurationError("JITO_MODE=relayer requires JITO_BLOCK_ENGINE_HTTP.")

    def describe(self) -> dict[str, Any]:
        return {
            "jup_mode": self.jup_mode,
            "jup_api_base_url": self.jup_api_base_url,
            "dry_run": self.dry_run,
            "execution_mode": self.execution_mode,
            "buy_amount": self.buy_amount,
            "min_net_profit": self.min_net_profit,
            "slippage_bps": self.slippage_bps,
            "include_dexes": self.include_dexes,
            "include_mode": self.include_mode,
            "exclude_dexes": self.exclude_dexes,
            "priority_lamports": self.priority_lamports,
            "jito_tip_lamports": self.jito_tip_lamports,
            "scan_interval_seconds": self.scan_interval_seconds,
            "max_parallel": self.max_parallel,
            "jito_mode": self.jito_mode,
            "sender_enabled": bool(self.sender_endpoint),
        }
