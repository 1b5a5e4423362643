from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from arbscan.common import guarded_call, log_event, short_asset_id

from .dispatcher import TransactionDispatcher
from .errors import DispatchError, InvalidQuoteError, ProfitModelError, TransportError
from .jupiter import JupiterClient
from .profit import ProfitModel, to_smallest_units
from .signer import sign_transaction
from .stats import StatsAggregator
from .types import DispatchResult, ExecutionMode, Opportunity, SimulationReport, SwapQuote
from .venues import RouteFilterPolicy, normalize_venues


def legs_for_mode(mode: ExecutionMode) -> tuple[str, ...]:
    if mode == "buy-only":
        return ("buy",)
    if mode == "sell-only":
        return ("sell",)
    return ("buy", "sell")


class AssetPipeline:
    """Quote, evaluate and optionally execute one round trip for a single asset.

    Every failure stays inside ``process``: it is logged with the short asset
    id and counted in stats, and never reaches the scan loop.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        jupiter: JupiterClient,
        route_policy: RouteFilterPolicy,
        profit_model: ProfitModel,
        stats: StatsAggregator,
        signer: Keypair,
        base_mint: str,
        buy_amount: float,
        slippage_bps: int,
        execution_mode: ExecutionMode = "both",
        simulation_mode: bool = True,
        dispatcher: TransactionDispatcher | None = None,
        rpc_client: AsyncClient | None = None,
        cooldown_seconds: float = 0.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not simulation_mode and dispatcher is None:
            raise ValueError("live execution requires a transaction dispatcher")

        self._logger = logger
        self._jupiter = jupiter
        self._route_policy = route_policy
        self._profit_model = profit_model
        self._stats = stats
        self._signer = signer
        self._base_mint = base_mint
        self._buy_amount = float(buy_amount)
        self._buy_amount_raw = to_smallest_units(buy_amount, profit_model.base_decimals)
        self._slippage_bps = int(slippage_bps)
        self._execution_mode = execution_mode
        self._simulation_mode = simulation_mode
        self._dispatcher = dispatcher
        self._rpc_client = rpc_client
        self._cooldown_seconds = max(0.0, float(cooldown_seconds))
        self._sleep = sleep

    @property
    def buy_amount_raw(self) -> int:
        return self._buy_amount_raw

    def _route_allowed(self, *, asset: str, leg: str, quote: SwapQuote) -> bool:
        venues = normalize_venues(quote.route_labels)
        if self._route_policy.allows_venues(venues):
            return True
        log_event(
            self._logger,
            level="debug",
            event="quote_rejected_by_route_filter",
            message=f"[{short_asset_id(asset)}] {leg} route rejected: {' > '.join(venues) or '(none)'}",
            asset=short_asset_id(asset),
            leg=leg,
            venues=list(venues),
            policy=self._route_policy.describe(),
            quote=quote.compact(),
        )
        return False

    async def _find_opportunity(self, asset: str) -> Opportunity | None:
        buy_quote = await self._jupiter.quote(
            input_mint=self._base_mint,
            output_mint=asset,
            amount=self._buy_amount_raw,
            slippage_bps=self._slippage_bps,
        )
        if not self._route_allowed(asset=asset, leg="buy", quote=buy_quote):
            return None

        sell_quote = await self._jupiter.quote(
            input_mint=asset,
            output_mint=self._base_mint,
            amount=buy_quote.out_amount,
            slippage_bps=self._slippage_bps,
        )
        if not self._route_allowed(asset=asset, leg="sell", quote=sell_quote):
            return None

        try:
            estimate = self._profit_model.evaluate(
                buy_amount=self._buy_amount,
                buy_quote=buy_quote,
                sell_quote=sell_quote,
            )
        except ProfitModelError as error:
            self._stats.record_error()
            log_event(
                self._logger,
                level="warning",
                event="profit_evaluation_failed",
                message=f"[{short_asset_id(asset)}] profit evaluation failed: {error}",
                asset=short_asset_id(asset),
                error=str(error),
            )
            return None

        return Opportunity(
            asset=asset,
            buy_quote=buy_quote,
            sell_quote=sell_quote,
            estimate=estimate,
            status=self._profit_model.classify(estimate.net_profit),
        )

    def _report(self, opportunity: Opportunity) -> None:
        self._stats.record_opportunity(
            net_profit=opportunity.net_profit,
            candidate=opportunity.is_candidate,
            near_miss=opportunity.is_near_miss,
        )

        short = short_asset_id(opportunity.asset)
        buy_venues = normalize_venues(opportunity.buy_quote.route_labels)
        sell_venues = normalize_venues(opportunity.sell_quote.route_labels)
        fields = {
            "asset": short,
            "status": opportunity.status,
            "buy_venues": list(buy_venues),
            "sell_venues": list(sell_venues),
            "slippage_bps": self._slippage_bps,
            "simulation": self._simulation_mode,
            **opportunity.estimate.to_dict(),
        }
        route = f"BUY: {' > '.join(buy_venues)}  SELL: {' > '.join(sell_venues)}"
        if opportunity.is_candidate:
            log_event(
                self._logger,
                level="info",
                event="opportunity_candidate",
                message=f"CANDIDATE {short} net {opportunity.net_profit:.4f} | {route}",
                **fields,
            )
            return

        log_event(
            self._logger,
            level="info",
            event="opportunity_skipped",
            message=f"[{short}] SKIP net {opportunity.net_profit:.4f} | {route}",
            **fields,
        )

    async def _build_leg(self, quote: SwapQuote) -> str:
        return await self._jupiter.build_swap_transaction(
            quote=quote,
            user_public_key=str(self._signer.pubkey()),
            wrap_and_unwrap_sol=True,
        )

    async def _simulate_leg(self, *, asset: str, leg: str, quote: SwapQuote) -> SimulationReport:
        if self._rpc_client is None:
            raise RuntimeError("simulation requires an RPC client")

        signed = sign_transaction(await self._build_leg(quote), self._signer)
        response = await self._rpc_client.simulate_transaction(signed.transaction)
        value = response.value
        report = SimulationReport(
            leg=leg,
            error=None if value.err is None else str(value.err),
            units_consumed=value.units_consumed,
            logs=tuple(value.logs or ()),
        )
        log_event(
            self._logger,
            level="info",
            event="leg_simulated",
            message=f"[{short_asset_id(asset)}] {leg} simulation {'failed' if report.error else 'ok'}",
            asset=short_asset_id(asset),
            **report.to_dict(),
        )
        return report

    async def _simulate(self, opportunity: Opportunity) -> list[SimulationReport]:
        reports: list[SimulationReport] = []
        quotes = {"buy": opportunity.buy_quote, "sell": opportunity.sell_quote}
        for leg in legs_for_mode(self._execution_mode):
            report = await guarded_call(
                lambda leg=leg: self._simulate_leg(asset=opportunity.asset, leg=leg, quote=quotes[leg]),
                logger=self._logger,
                event="leg_simulation_failed",
                message=f"[{short_asset_id(opportunity.asset)}] {leg} simulation could not run",
                asset=short_asset_id(opportunity.asset),
                leg=leg,
            )
            if report is not None:
                reports.append(report)
        return reports

    async def _execute(self, opportunity: Opportunity) -> list[DispatchResult]:
        if self._dispatcher is None:
            raise RuntimeError("live execution requires a transaction dispatcher")

        short = short_asset_id(opportunity.asset)
        quotes = {"buy": opportunity.buy_quote, "sell": opportunity.sell_quote}
        legs = legs_for_mode(self._execution_mode)
        if "buy" not in legs:
            log_event(
                self._logger,
                level="info",
                event="leg_skipped_by_mode",
                message=f"[{short}] MODE={self._execution_mode}: skipping buy leg execution",
                asset=short,
                leg="buy",
            )

        results: list[DispatchResult] = []
        for leg in legs:
            try:
                tx_base64 = await self._build_leg(quotes[leg])
                results.append(await self._dispatcher.dispatch(tx_base64, leg=leg, asset=short))
            except (DispatchError, InvalidQuoteError, TransportError) as error:
                self._stats.record_error()
                log_event(
                    self._logger,
                    level="error",
                    event="execution_aborted",
                    message=f"[{short}] {leg} leg failed; remaining legs aborted: {error}",
                    asset=short,
                    leg=leg,
                    completed_legs=[result.to_dict() for result in results],
                    failures=getattr(error, "failures", {}),
                    error=str(error),
                )
                return results

        self._stats.record_execution()
        return results

    async def _run(self, asset: str) -> None:
        opportunity = await self._find_opportunity(asset)
        if opportunity is None:
            return

        self._report(opportunity)
        if not opportunity.is_candidate:
            return

        if self._simulation_mode:
            await self._simulate(opportunity)
        else:
            await self._execute(opportunity)

    async def process(self, asset: str) -> None:
        try:
            await self._run(asset)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            self._stats.record_error()
            log_event(
                self._logger,
                level="warning",
                event="asset_failed",
                message=f"[{short_asset_id(asset)}] {error or type(error).__name__}",
                asset=short_asset_id(asset),
                error_type=type(error).__name__,
                error=str(error),
            )

        if self._cooldown_seconds > 0:
            await self._sleep(self._cooldown_seconds)
