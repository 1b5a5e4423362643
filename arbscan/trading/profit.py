from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation

from .errors import ProfitModelError
from .types import OpportunityStatus, ProfitEstimate, SwapQuote

LAMPORTS_PER_SOL = 1_000_000_000
BPS_DENOMINATOR = 10_000


def to_smallest_units(amount: float | str | Decimal, decimals: int) -> int:
    """Floor a human amount into integer smallest units without float rounding."""
    try:
        scaled = Decimal(str(amount)) * (Decimal(10) ** int(decimals))
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    except (InvalidOperation, ValueError) as error:
        raise ProfitModelError(f"cannot convert {amount!r} with {decimals} decimals") from error


def from_smallest_units(raw_amount: int, decimals: int) -> float:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise ProfitModelError(f"invalid decimal exponent: {decimals!r}")
    divisor = 10**decimals
    try:
        value = int(raw_amount) / divisor
    except (OverflowError, TypeError, ValueError, ZeroDivisionError) as error:
        raise ProfitModelError(f"cannot scale {raw_amount!r} by 10^{decimals}") from error
    if not math.isfinite(value):
        raise ProfitModelError(f"non-finite unit conversion for {raw_amount!r}")
    return value


@dataclass(slots=True, frozen=True)
class FeeModel:
    """Conservative constant aggregator fee estimate per leg.

    The rate is configured rather than read from the live quote.
    """

    buy_fee_bps: float = 10.0
    sell_fee_bps: float = 10.0

    def fee_bps(self, *, asset: str, leg: str) -> float:
        return self.buy_fee_bps if leg == "buy" else self.sell_fee_bps


@dataclass(slots=True, frozen=True)
class PriorityCostModel:
    priority_lamports: int = 10_000
    tip_lamports: int = 2_000
    lamports_per_unit: int = LAMPORTS_PER_SOL
    unit_price_in_base: float = 150.0

    @property
    def budget_lamports(self) -> int:
        return max(0, int(self.priority_lamports)) + max(0, int(self.tip_lamports))

    def cost_in_base(self) -> float:
        try:
            return self.budget_lamports / self.lamports_per_unit * self.unit_price_in_base
        except ZeroDivisionError as error:
            raise ProfitModelError("lamports_per_unit must be non-zero") from error


def evaluate_round_trip(
    *,
    buy_amount: float,
    buy_quote: SwapQuote,
    sell_quote: SwapQuote,
    base_decimals: int,
    fee_model: FeeModel,
    priority_cost_model: PriorityCostModel,
) -> ProfitEstimate:
    """Net profit in base-asset units for one buy/sell round trip.

    The sell output is scaled with the configured ``base_decimals``; decimals
    reported inside the quote are ignored.
    """
    asset = buy_quote.output_mint
    sell_output = from_smallest_units(sell_quote.out_amount, base_decimals)
    gross_delta = sell_output - buy_amount

    buy_fee_bps = fee_model.fee_bps(asset=asset, leg="buy")
    sell_fee_bps = fee_model.fee_bps(asset=asset, leg="sell")
    estimated_fees = (buy_amount * buy_fee_bps) / BPS_DENOMINATOR + (
        sell_output * sell_fee_bps
    ) / BPS_DENOMINATOR

    estimated_priority_cost = priority_cost_model.cost_in_base()
    net_profit = gross_delta - estimated_fees - estimated_priority_cost

    components = {
        "sell_output": sell_output,
        "gross_delta": gross_delta,
        "estimated_fees": estimated_fees,
        "estimated_priority_cost": estimated_priority_cost,
        "net_profit": net_profit,
    }
    for name, value in components.items():
        if not math.isfinite(value):
            raise ProfitModelError(f"{name} is not finite: {value}")

    return ProfitEstimate(
        buy_amount=buy_amount,
        sell_output=sell_output,
        gross_delta=gross_delta,
        estimated_fees=estimated_fees,
        estimated_priority_cost=estimated_priority_cost,
        net_profit=net_profit,
    )


def classify_opportunity(
    net_profit: float,
    *,
    min_net_profit: float,
    near_miss_delta: float,
) -> OpportunityStatus:
    if net_profit >= min_net_profit:
        return "candidate"
    if min_net_profit - net_profit <= near_miss_delta:
        return "near_miss"
    return "skip"


class ProfitModel:
    def __init__(
        self,
        *,
        base_decimals: int,
        fee_model: FeeModel,
        priority_cost_model: PriorityCostModel,
        min_net_profit: float,
        near_miss_delta: float,
    ) -> None:
        self.base_decimals = base_decimals
        self.fee_model = fee_model
        self.priority_cost_model = priority_cost_model
        self.min_net_profit = min_net_profit
        self.near_miss_delta = near_miss_delta

    def evaluate(self, *, buy_amount: float, buy_quote: SwapQuote, sell_quote: SwapQuote) -> ProfitEstimate:
        return evaluate_round_trip(
            buy_amount=buy_amount,
            buy_quote=buy_quote,
            sell_quote=sell_quote,
            base_decimals=self.base_decimals,
            fee_model=self.fee_model,
            priority_cost_model=self.priority_cost_model,
        )

    def classify(self, net_profit: float) -> OpportunityStatus:
        return classify_opportunity(
            net_profit,
            min_net_profit=self.min_net_profit,
            near_miss_delta=self.near_miss_delta,
        )
