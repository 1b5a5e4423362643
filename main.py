from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal

from dotenv import load_dotenv
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair

from arbscan.bot_runtime import AppSettings, read_asset_list, run_scan_loop, setup_logger
from arbscan.common import log_event
from arbscan.trading import (
    AssetPipeline,
    ConcurrencyLimiter,
    ConfigurationError,
    FeeModel,
    HttpTransport,
    JitoBlockEngineClient,
    JitoBundleSubmitter,
    JupiterClient,
    PriorityCostModel,
    ProfitModel,
    RouteFilterPolicy,
    RpcBroadcastSubmitter,
    SenderRelaySubmitter,
    StatsAggregator,
    TransactionDispatcher,
    load_signer,
    run_stats_reporter,
)
from arbscan.trading.dispatcher import TransactionSubmitter


def load_startup_signer(app_settings: AppSettings) -> Keypair:
    if app_settings.private_key:
        return load_signer(app_settings.private_key)
    # simulation without a wallet still needs a fee payer for swap builds
    return Keypair()


async def build_dispatcher(
    *,
    logger: logging.Logger,
    app_settings: AppSettings,
    transport: HttpTransport,
    rpc_client: AsyncClient,
    signer: Keypair,
) -> TransactionDispatcher:
    submitters: list[TransactionSubmitter] = []

    if app_settings.jito_enabled:
        jito_client = JitoBlockEngineClient(
            logger=logger,
            transport=transport,
            block_engine_url=app_settings.jito_block_engine_url,
            tip_account=app_settings.jito_tip_account,
            auth_uuid=app_settings.jito_auth_uuid,
        )
        await jito_client.prepare()
        submitters.append(
            JitoBundleSubmitter(
                logger=logger,
                jito_client=jito_client,
                rpc_client=rpc_client,
                signer=signer,
                tip_lamports_by_leg=app_settings.tip_lamports_by_leg,
            )
        )

    if app_settings.sender_endpoint:
        submitters.append(
            SenderRelaySubmitter(
                logger=logger,
                transport=transport,
                rpc_client=rpc_client,
                signer=signer,
                endpoint=app_settings.sender_endpoint,
                api_key=app_settings.sender_api_key,
                skip_preflight=app_settings.sender_skip_preflight,
                max_retries=app_settings.sender_max_retries,
                confirm_commitment=app_settings.sender_confirm_commitment,
            )
        )

    submitters.append(
        RpcBroadcastSubmitter(
            logger=logger,
            rpc_client=rpc_client,
            signer=signer,
            max_retries=app_settings.broadcast_max_retries,
            confirm_commitment=app_settings.broadcast_confirm_commitment,
        )
    )
    return TransactionDispatcher(logger=logger, submitters=submitters)


async def main() -> int:
    load_dotenv()
    logger = setup_logger(log_dir=os.getenv("LOG_DIR", "").strip())

    try:
        app_settings = AppSettings.from_env()
        app_settings.validate()
        assets = read_asset_list(app_settings.assets_file)
        if not assets:
            raise ConfigurationError(f"asset list is empty: {app_settings.assets_file}")
        signer = load_startup_signer(app_settings)
    except ConfigurationError as error:
        log_event(
            logger,
            level="error",
            event="startup_failed",
            message=f"Startup failed: {error}",
            error=str(error),
        )
        return 1

    log_event(
        logger,
        level="info",
        event="bot_started",
        message=f"Loaded {len(assets)} assets from {app_settings.assets_file}",
        asset_count=len(assets),
        wallet=str(signer.pubkey()) if app_settings.private_key else None,
        **app_settings.describe(),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        log_event(
            logger,
            level="info",
            event="shutdown_signal_received",
            message="Shutdown signal received",
            signal=sig.name,
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    transport = HttpTransport(
        logger=logger,
        timeout_seconds=app_settings.http_timeout_seconds,
        max_attempts=app_settings.fetch_retries,
        backoff_seconds=app_settings.retry_backoff_seconds,
    )
    rpc_client = AsyncClient(app_settings.rpc_url, commitment=Confirmed)
    reporter: asyncio.Task[None] | None = None

    try:
        await transport.connect()

        jupiter = JupiterClient(
            logger=logger,
            transport=transport,
            api_base_url=app_settings.jup_api_base_url,
            api_key=app_settings.jup_api_key,
            priority_lamports=app_settings.priority_lamports,
            tip_lamports=app_settings.jito_tip_lamports,
        )
        dispatcher = None
        if not app_settings.simulation_mode:
            dispatcher = await build_dispatcher(
                logger=logger,
                app_settings=app_settings,
                transport=transport,
                rpc_client=rpc_client,
                signer=signer,
            )
            log_event(
                logger,
                level="info",
                event="dispatcher_ready",
                message=f"Dispatch paths: {' -> '.join(dispatcher.paths)}",
                paths=list(dispatcher.paths),
            )

        stats = StatsAggregator(logger=logger, window_seconds=app_settings.stats_window_seconds)
        pipeline = AssetPipeline(
            logger=logger,
            jupiter=jupiter,
            route_policy=RouteFilterPolicy.from_labels(
                include=app_settings.include_dexes,
                include_mode=app_settings.include_mode,
                exclude=app_settings.exclude_dexes,
            ),
            profit_model=ProfitModel(
                base_decimals=app_settings.base_decimals,
                fee_model=FeeModel(
                    buy_fee_bps=app_settings.jup_fee_bps,
                    sell_fee_bps=app_settings.jup_fee_bps,
                ),
                priority_cost_model=PriorityCostModel(
                    priority_lamports=app_settings.priority_lamports,
                    tip_lamports=app_settings.jito_tip_lamports,
                    unit_price_in_base=app_settings.sol_price_usd,
                ),
                min_net_profit=app_settings.min_net_profit,
                near_miss_delta=app_settings.near_miss_delta,
            ),
            stats=stats,
            signer=signer,
            base_mint=app_settings.base_mint,
            buy_amount=app_settings.buy_amount,
            slippage_bps=app_settings.slippage_bps,
            execution_mode=app_settings.execution_mode,
            simulation_mode=app_settings.simulation_mode,
            dispatcher=dispatcher,
            rpc_client=rpc_client,
            cooldown_seconds=app_settings.per_token_cooldown_seconds,
        )

        reporter = asyncio.create_task(run_stats_reporter(stats=stats, stop_event=stop_event))
        await run_scan_loop(
            logger=logger,
            stop_event=stop_event,
            assets=assets,
            limiter=ConcurrencyLimiter(app_settings.max_parallel),
            process=pipeline.process,
            scan_interval_seconds=app_settings.scan_interval_seconds,
        )
    finally:
        stop_event.set()
        if reporter is not None:
            with contextlib.suppress(Exception):
                await reporter
        with contextlib.suppress(Exception):
            await transport.close()
        with contextlib.suppress(Exception):
            await rpc_client.close()

        log_event(logger, level="info", event="shutdown_completed", message="Shutdown completed")

    return 0


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
