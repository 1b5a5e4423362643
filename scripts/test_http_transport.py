from __future__ import annotations

import asyncio
import logging
import unittest
from typing import Any
from unittest.mock import AsyncMock

import aiohttp

from arbscan.trading.errors import TransportError
from arbscan.trading.http import HttpTransport, is_transient_error, is_transient_status


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class _FakeSession:
    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        return None


class HttpTransportTests(unittest.IsolatedAsyncioTestCase):
    def _make_transport(self, outcomes: list[Any], *, max_attempts: int = 5) -> tuple[HttpTransport, _FakeSession]:
        self.sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            self.sleeps.append(delay)

        session = _FakeSession(outcomes)
        transport = HttpTransport(
            logger=logging.getLogger("test.http"),
            max_attempts=max_attempts,
            backoff_seconds=0.5,
            session=session,  # type: ignore[arg-type]
            sleep=fake_sleep,
        )
        return transport, session

    async def test_retries_transient_status_with_exponential_backoff(self) -> None:
        transport, session = self._make_transport(
            [_FakeResponse(503, "busy"), _FakeResponse(503, "busy"), _FakeResponse(200, '{"ok": true}')]
        )

        result = await transport.get("https://quote.example/swap/v1/quote", params={"amount": "1"})

        self.assertEqual(result, {"ok": True})
        self.assertEqual(len(session.calls), 3)
        self.assertEqual(self.sleeps, [0.5, 1.0])

    async def test_gives_up_after_attempt_budget(self) -> None:
        transport, session = self._make_transport([_FakeResponse(429, "slow down")] * 3, max_attempts=3)

        with self.assertRaises(TransportError) as ctx:
            await transport.get("https://quote.example/swap/v1/quote")

        self.assertEqual(len(session.calls), 3)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.status, 429)
        self.assertEqual(self.sleeps, [0.5, 1.0])

    async def test_per_call_attempt_override(self) -> None:
        transport, session = self._make_transport([_FakeResponse(503, "busy")], max_attempts=5)

        with self.assertRaises(TransportError) as ctx:
            await transport.post("https://relay.example/api/v1/bundles", {"method": "getTipAccounts"}, max_attempts=1)

        self.assertEqual(len(session.calls), 1)
        self.assertEqual(ctx.exception.attempts, 1)
        self.assertEqual(self.sleeps, [])

    async def test_not_found_is_returned_after_single_attempt(self) -> None:
        transport, session = self._make_transport([_FakeResponse(404, "not found")])

        result = await transport.get("https://quote.example/missing")

        self.assertEqual(result, {"error": "not found"})
        self.assertEqual(len(session.calls), 1)
        self.assertEqual(self.sleeps, [])

    async def test_client_error_with_json_body_is_parsed(self) -> None:
        transport, _ = self._make_transport([_FakeResponse(400, '{"error": "bad amount"}')])

        result = await transport.post("https://quote.example/swap/v1/transactions", {"a": 1})

        self.assertEqual(result, {"error": "bad amount"})

    async def test_connection_errors_are_retried(self) -> None:
        transport, session = self._make_transport(
            [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), _FakeResponse(200, "[1, 2]")]
        )

        result = await transport.get("https://quote.example/x")

        self.assertEqual(result, [1, 2])
        self.assertEqual(len(session.calls), 3)

    async def test_malformed_success_body_is_not_retried(self) -> None:
        transport, session = self._make_transport([_FakeResponse(200, "<html>")])

        with self.assertRaises(TransportError) as ctx:
            await transport.get("https://quote.example/x")

        self.assertEqual(len(session.calls), 1)
        self.assertEqual(ctx.exception.attempts, 1)

    async def test_empty_body_is_empty_object(self) -> None:
        transport, _ = self._make_transport([_FakeResponse(200, "")])

        self.assertEqual(await transport.get("https://quote.example/x"), {})

    async def test_headers_merge_per_call_values(self) -> None:
        transport, session = self._make_transport([_FakeResponse(200, "{}")])

        await transport.post("https://relay.example", {"id": 1}, headers={"x-api-key": "k"})

        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(call["json"], {"id": 1})
        self.assertEqual(call["headers"]["x-api-key"], "k")
        self.assertEqual(call["headers"]["content-type"], "application/json")
        self.assertEqual(call["headers"]["accept"], "application/json")

    async def test_close_keeps_injected_session_open(self) -> None:
        transport, session = self._make_transport([])
        session.close = AsyncMock()  # type: ignore[method-assign]

        await transport.close()

        session.close.assert_not_awaited()


class TransientClassificationTests(unittest.TestCase):
    def test_status_classification(self) -> None:
        self.assertTrue(is_transient_status(429))
        self.assertTrue(is_transient_status(500))
        self.assertTrue(is_transient_status(599))
        self.assertFalse(is_transient_status(404))
        self.assertFalse(is_transient_status(200))

    def test_error_classification(self) -> None:
        self.assertTrue(is_transient_error(ConnectionResetError()))
        self.assertTrue(is_transient_error(asyncio.TimeoutError()))
        self.assertFalse(is_transient_error(ValueError("bad json")))

    def test_backoff_doubles_per_attempt(self) -> None:
        transport = HttpTransport(logger=logging.getLogger("test.http"), backoff_seconds=0.5)

        self.assertEqual(
            [transport.backoff_for_attempt(attempt) for attempt in (1, 2, 3, 4)],
            [0.5, 1.0, 2.0, 4.0],
        )


if __name__ == "__main__":
    unittest.main()
