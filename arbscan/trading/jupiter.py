from __future__ import annotations

import logging
from typing import Any, Literal

from arbscan.common import log_event

from .errors import InvalidQuoteError
from .http import HttpTransport
from .types import SwapQuote

JUPITER_ENDPOINTS: dict[str, str] = {
    "FREE": "https://lite-api.jup.ag",
    "ULTRA": "https://api.jup.ag/ultra",
}

RouteShape = Literal["route_plan", "market_infos", "routes"]

_LABEL_KEYS = ("label", "ammLabel")


def resolve_jupiter_base_url(mode: str) -> str:
    return JUPITER_ENDPOINTS.get((mode or "").strip().upper(), JUPITER_ENDPOINTS["FREE"])


def _route_segments(quote: dict[str, Any]) -> list[tuple[RouteShape, list[Any]]]:
    segments: list[tuple[RouteShape, list[Any]]] = []

    route_plan = quote.get("routePlan")
    if isinstance(route_plan, list):
        segments.append(("route_plan", route_plan))
    else:
        market_infos = quote.get("marketInfos")
        if isinstance(market_infos, list):
            segments.append(("market_infos", market_infos))

    routes = quote.get("routes")
    if isinstance(routes, list):
        for route in routes:
            if isinstance(route, dict) and isinstance(route.get("marketInfos"), list):
                segments.append(("routes", route["marketInfos"]))

    return segments


def _hop_labels(shape: RouteShape, hop: Any) -> list[str]:
    if not isinstance(hop, dict):
        return []

    sources: list[dict[str, Any]] = []
    if shape == "route_plan" and isinstance(hop.get("swapInfo"), dict):
        sources.append(hop["swapInfo"])
    sources.append(hop)

    labels: list[str] = []
    for source in sources:
        for key in _LABEL_KEYS:
            value = source.get(key)
            if isinstance(value, str) and value.strip():
                labels.append(value)
    return labels


def extract_route_labels(quote: Any) -> list[str]:
    """Collect raw venue labels from any known route shape; unknown shapes yield []."""
    if not isinstance(quote, dict):
        return []

    labels: list[str] = []
    try:
        for shape, hops in _route_segments(quote):
            for hop in hops:
                for label in _hop_labels(shape, hop):
                    if label not in labels:
                        labels.append(label)
    except (AttributeError, TypeError, KeyError):
        return []
    return labels


def unwrap_quote_payload(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    quote = payload.get("quote")
    if isinstance(quote, dict):
        return quote
    return payload


def parse_amount(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise InvalidQuoteError(f"amount is missing or not an integer: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvalidQuoteError(f"amount must be non-negative: {value}")
        return value
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidQuoteError(f"amount is not a non-negative integer: {value!r}")
    return int(text)


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class JupiterClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        transport: HttpTransport,
        api_base_url: str,
        priority_lamports: int,
        tip_lamports: int,
        api_key: str = "",
    ) -> None:
        self._logger = logger
        self._transport = transport
        self._api_base_url = api_base_url.rstrip("/")
        self._headers = {"x-api-key": api_key.strip()} if api_key.strip() else {}
        self._prioritization_fee_lamports = max(0, int(priority_lamports)) + max(0, int(tip_lamports))

    @property
    def quote_endpoint(self) -> str:
        return f"{self._api_base_url}/swap/v1/quote"

    @property
    def swap_endpoint(self) -> str:
        return f"{self._api_base_url}/swap/v1/transactions"

    async def quote(
        self,
        *,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> SwapQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(int(slippage_bps)),
        }
        payload = await self._transport.get(self.quote_endpoint, params=params, headers=self._headers)
        quote = unwrap_quote_payload(payload)
        if quote is None:
            raise InvalidQuoteError(f"Unexpected quote response: {str(payload)[:240]}")

        if quote.get("outAmount") in (None, ""):
            reason = quote.get("error") or quote.get("message") or "outAmount missing"
            raise InvalidQuoteError(f"Invalid quote {input_mint}->{output_mint}: {str(reason)[:240]}")

        out_amount = parse_amount(quote.get("outAmount"))
        in_amount = _optional_int(quote.get("inAmount"))
        out_decimals = _optional_int(quote.get("outputMintDecimals"))
        if out_decimals is None:
            out_decimals = _optional_int(quote.get("outDecimals"))

        return SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(amount) if in_amount is None else in_amount,
            out_amount=out_amount,
            route_labels=tuple(extract_route_labels(quote)),
            out_decimals=out_decimals,
            raw=quote,
        )

    async def build_swap_transaction(
        self,
        *,
        quote: SwapQuote,
        user_public_key: str,
        wrap_and_unwrap_sol: bool = True,
    ) -> str:
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": wrap_and_unwrap_sol,
            "asLegacyTransaction": False,
            "dynamicSlippage": False,
            "prioritizationFeeLamports": self._prioritization_fee_lamports,
        }
        payload = await self._transport.post(self.swap_endpoint, body, headers=self._headers)
        swap_transaction = payload.get("swapTransaction") if isinstance(payload, dict) else None
        if not isinstance(swap_transaction, str) or not swap_transaction.strip():
            error = payload.get("error") if isinstance(payload, dict) else payload
            log_event(
                self._logger,
                level="warning",
                event="swap_build_failed",
                message="Swap transaction was not provided by the aggregator",
                input_mint=quote.input_mint,
                output_mint=quote.output_mint,
                error=str(error)[:240],
            )
            raise InvalidQuoteError(f"swap transaction not provided: {str(error)[:240]}")
        return swap_transaction.strip()
