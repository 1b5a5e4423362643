from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from arbscan.common import log_event

from .errors import TransientHttpStatusError, TransportError

DEFAULT_MAX_CONNECTIONS = 64
_BODY_PREVIEW_LIMIT = 200


def is_transient_status(status: int) -> bool:
    return status == 429 or 500 <= status <= 599


def is_transient_error(error: BaseException) -> bool:
    if isinstance(error, TransientHttpStatusError):
        return True
    # aiohttp surfaces per-call timeouts as asyncio.TimeoutError (ServerTimeoutError included)
    if isinstance(error, asyncio.TimeoutError):
        return True
    return isinstance(error, (aiohttp.ClientConnectionError, ConnectionError))


class HttpTransport:
    """Retrying JSON-over-HTTP transport shared by every outbound call.

    One keep-alive ``aiohttp.ClientSession`` is reused for the whole process.
    Failures are retried only when transient (timeouts, connection errors,
    HTTP 429 and 5xx). Other 4xx responses are returned as a parsed error
    payload so the caller can decide what they mean.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        timeout_seconds: float = 15.0,
        max_attempts: int = 5,
        backoff_seconds: float = 0.5,
        default_headers: dict[str, str] | None = None,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._logger = logger
        self._timeout_seconds = max(0.1, float(timeout_seconds))
        self._max_attempts = max(1, int(max_attempts))
        self._backoff_seconds = max(0.0, float(backoff_seconds))
        self._default_headers = dict(default_headers or {})
        self._max_connections = max(1, int(max_connections))
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def connect(self) -> None:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._max_connections, keepalive_timeout=30)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            )
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def backoff_for_attempt(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failure (1-based)."""
        return self._backoff_seconds * (2 ** (max(1, attempt) - 1))

    def _build_headers(self, *, is_post: bool, headers: dict[str, str] | None) -> dict[str, str]:
        merged = {"accept": "application/json"}
        if is_post:
            merged["content-type"] = "application/json"
        merged.update(self._default_headers)
        merged.update(headers or {})
        return merged

    async def _send_once(
        self,
        *,
        url: str,
        method: str,
        params: dict[str, str] | None,
        body: Any,
        headers: dict[str, str],
        is_post: bool,
    ) -> Any:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("HTTP session is not initialized.")

        async with self._session.request(
            method,
            url,
            params=params,
            json=body if is_post else None,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
        ) as response:
            status = response.status
            text = await response.text()

        if is_transient_status(status):
            raise TransientHttpStatusError(status, text[:_BODY_PREVIEW_LIMIT])

        if status >= 400:
            try:
                return json.loads(text)
            except ValueError:
                return {"error": text}

        if not text:
            return {}
        return json.loads(text)

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        params: dict[str, str] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        max_attempts: int | None = None,
    ) -> Any:
        method = method.upper()
        is_post = method == "POST"
        request_headers = self._build_headers(is_post=is_post, headers=headers)
        last_error: BaseException | None = None
        attempts = self._max_attempts if max_attempts is None else max(1, int(max_attempts))

        for attempt in range(1, attempts + 1):
            try:
                return await self._send_once(
                    url=url,
                    method=method,
                    params=params,
                    body=body,
                    headers=request_headers,
                    is_post=is_post,
                )
            except asyncio.CancelledError:
                raise
            except Exception as error:
                last_error = error
                if attempt < attempts and is_transient_error(error):
                    backoff = self.backoff_for_attempt(attempt)
                    log_event(
                        self._logger,
                        level="info",
                        event="http_retry",
                        message=f"[retry {attempt}/{attempts}] {error} -> wait {backoff:.3f}s",
                        url=url,
                        attempt=attempt,
                        max_attempts=attempts,
                        error=str(error) or type(error).__name__,
                        backoff_seconds=backoff,
                    )
                    await self._sleep(backoff)
                    continue
                raise TransportError(
                    f"{method} {url} failed after {attempt} attempt(s): {error or type(error).__name__}",
                    cause=error,
                    status=getattr(error, "status", None),
                    attempts=attempt,
                ) from error

        raise TransportError(
            f"{method} {url} failed after {attempts} attempt(s)",
            cause=last_error,
            attempts=attempts,
        )

    async def get(self, url: str, params: dict[str, str] | None = None, **kwargs: Any) -> Any:
        return await self.request(url, method="GET", params=params, **kwargs)

    async def post(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request(url, method="POST", body=body if body is not None else {}, **kwargs)
