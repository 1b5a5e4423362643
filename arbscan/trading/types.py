from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

ExecutionMode = Literal["both", "buy-only", "sell-only"]
IncludeMode = Literal["all", "any"]
TransportPath = Literal["bundle", "relay", "broadcast"]
OpportunityStatus = Literal["candidate", "near_miss", "skip"]


@dataclass(slots=True, frozen=True)
class SwapQuote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    route_labels: tuple[str, ...]
    out_decimals: int | None
    raw: dict[str, Any]

    def compact(self) -> dict[str, Any]:
        return {
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "inAmount": str(self.in_amount),
            "outAmount": str(self.out_amount),
            "routeHopCount": len(self.route_labels),
        }


@dataclass(slots=True, frozen=True)
class ProfitEstimate:
    buy_amount: float
    sell_output: float
    gross_delta: float
    estimated_fees: float
    estimated_priority_cost: float
    net_profit: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class Opportunity:
    asset: str
    buy_quote: SwapQuote
    sell_quote: SwapQuote
    estimate: ProfitEstimate
    status: OpportunityStatus

    @property
    def net_profit(self) -> float:
        return self.estimate.net_profit

    @property
    def is_candidate(self) -> bool:
        return self.status == "candidate"

    @property
    def is_near_miss(self) -> bool:
        return self.status == "near_miss"


@dataclass(slots=True, frozen=True)
class DispatchResult:
    reference: str
    transport: TransportPath
    bundle_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class SimulationReport:
    leg: str
    error: str | None
    units_consumed: int | None
    logs: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["logs"] = list(self.logs)
        return payload
