from __future__ import annotations

import logging
import unittest
from unittest.mock import AsyncMock

from arbscan.trading.errors import InvalidQuoteError
from arbscan.trading.jupiter import (
    JupiterClient,
    extract_route_labels,
    parse_amount,
    resolve_jupiter_base_url,
    unwrap_quote_payload,
)

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
MEME = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


class RouteLabelExtractionTests(unittest.TestCase):
    def test_route_plan_reads_swap_info_and_hop_labels(self) -> None:
        quote = {
            "routePlan": [
                {"swapInfo": {"label": "Whirlpool"}},
                {"label": "Raydium CLMM"},
                {"swapInfo": {"ammLabel": "Meteora DLMM"}},
            ]
        }

        self.assertEqual(extract_route_labels(quote), ["Whirlpool", "Raydium CLMM", "Meteora DLMM"])

    def test_market_infos_shape(self) -> None:
        self.assertEqual(extract_route_labels({"marketInfos": [{"ammLabel": "Lifinity V2"}]}), ["Lifinity V2"])

    def test_nested_routes_shape(self) -> None:
        quote = {"routes": [{"marketInfos": [{"label": "Orca"}]}, {"marketInfos": [{"label": "Pump"}]}]}

        self.assertEqual(extract_route_labels(quote), ["Orca", "Pump"])

    def test_unknown_shapes_yield_empty_list(self) -> None:
        self.assertEqual(extract_route_labels({"routePlan": "garbage"}), [])
        self.assertEqual(extract_route_labels({"routePlan": [None, 3, {"swapInfo": "x"}]}), [])
        self.assertEqual(extract_route_labels("not a quote"), [])
        self.assertEqual(extract_route_labels({}), [])


class QuotePayloadTests(unittest.TestCase):
    def test_unwraps_known_wrappers(self) -> None:
        quote = {"outAmount": "1"}

        self.assertIs(unwrap_quote_payload({"data": [quote]}), quote)
        self.assertIs(unwrap_quote_payload({"quote": quote}), quote)
        self.assertEqual(unwrap_quote_payload(quote), quote)
        self.assertIsNone(unwrap_quote_payload(["not", "a", "dict"]))

    def test_parse_amount_accepts_only_non_negative_integers(self) -> None:
        self.assertEqual(parse_amount("12345"), 12345)
        self.assertEqual(parse_amount(7), 7)
        for bad in ("-5", "1.5", "", None, True, -1, "abc", "²", "١٢"):
            with self.subTest(value=bad):
                with self.assertRaises(InvalidQuoteError):
                    parse_amount(bad)

    def test_base_url_by_mode(self) -> None:
        self.assertEqual(resolve_jupiter_base_url("free"), "https://lite-api.jup.ag")
        self.assertEqual(resolve_jupiter_base_url("ULTRA"), "https://api.jup.ag/ultra")
        self.assertEqual(resolve_jupiter_base_url("other"), "https://lite-api.jup.ag")


class JupiterClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.transport = AsyncMock()
        self.client = JupiterClient(
            logger=logging.getLogger("test.jupiter"),
            transport=self.transport,
            api_base_url="https://lite-api.jup.ag/",
            priority_lamports=10_000,
            tip_lamports=2_000,
            api_key="secret",
        )

    async def test_quote_requests_endpoint_and_parses_payload(self) -> None:
        self.transport.get.return_value = {
            "data": [
                {
                    "inAmount": "50000000",
                    "outAmount": "987654",
                    "routePlan": [{"swapInfo": {"label": "Whirlpool"}}],
                }
            ]
        }

        quote = await self.client.quote(input_mint=USDC, output_mint=MEME, amount=50_000_000, slippage_bps=50)

        self.transport.get.assert_awaited_once_with(
            "https://lite-api.jup.ag/swap/v1/quote",
            params={"inputMint": USDC, "outputMint": MEME, "amount": "50000000", "slippageBps": "50"},
            headers={"x-api-key": "secret"},
        )
        self.assertEqual(quote.out_amount, 987_654)
        self.assertEqual(quote.in_amount, 50_000_000)
        self.assertEqual(quote.route_labels, ("Whirlpool",))
        self.assertEqual(quote.compact()["routeHopCount"], 1)

    async def test_quote_without_out_amount_is_invalid(self) -> None:
        self.transport.get.return_value = {"error": "Could not find any route"}

        with self.assertRaises(InvalidQuoteError) as ctx:
            await self.client.quote(input_mint=USDC, output_mint=MEME, amount=1, slippage_bps=50)

        self.assertIn("Could not find any route", str(ctx.exception))

    async def test_build_swap_transaction_posts_fee_budget(self) -> None:
        self.transport.post.return_value = {"swapTransaction": " AAAA "}
        self.transport.get.return_value = {"outAmount": "10"}
        quote = await self.client.quote(input_mint=USDC, output_mint=MEME, amount=1, slippage_bps=50)

        tx = await self.client.build_swap_transaction(quote=quote, user_public_key="wallet")

        self.assertEqual(tx, "AAAA")
        url, body = self.transport.post.await_args.args
        self.assertEqual(url, "https://lite-api.jup.ag/swap/v1/transactions")
        self.assertEqual(body["prioritizationFeeLamports"], 12_000)
        self.assertEqual(body["quoteResponse"], {"outAmount": "10"})
        self.assertFalse(body["asLegacyTransaction"])
        self.assertFalse(body["dynamicSlippage"])
        self.assertTrue(body["wrapAndUnwrapSol"])

    async def test_build_swap_transaction_without_payload_raises(self) -> None:
        self.transport.get.return_value = {"outAmount": "10"}
        self.transport.post.return_value = {"error": "stale quote"}
        quote = await self.client.quote(input_mint=USDC, output_mint=MEME, amount=1, slippage_bps=50)

        with self.assertRaises(InvalidQuoteError):
            await self.client.build_swap_transaction(quote=quote, user_public_key="wallet")


if __name__ == "__main__":
    unittest.main()
