from __future__ import annotations

import asyncio
import base64
import logging
import random
import time
from typing import Any, Protocol, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from arbscan.common import log_event

from .errors import DispatchError
from .http import HttpTransport
from .signer import sign_transaction
from .types import DispatchResult, TransportPath

DEFAULT_BLOCK_ENGINE_HTTP = "https://mainnet.block-engine.jito.wtf"
REGIONAL_BLOCK_ENGINES: tuple[str, ...] = (
    "https://frankfurt.mainnet.block-engine.jito.wtf",
    "https://dublin.mainnet.block-engine.jito.wtf",
    "https://amsterdam.mainnet.block-engine.jito.wtf",
    "https://newyork.mainnet.block-engine.jito.wtf",
    "https://tokyo.mainnet.block-engine.jito.wtf",
)
_TIP_ACCOUNT_METHODS = ("getTipAccounts", "get_tip_accounts")
_BUNDLES_PATH = "/api/v1/bundles"


def resolve_commitment(value: str | None) -> Commitment | None:
    level = (value or "").strip().lower()
    if level == "none":
        return None
    if level in {"processed", "confirmed", "finalized"}:
        return Commitment(level)
    return Confirmed


def _bundles_url(base_url: str) -> str:
    url = base_url.strip().rstrip("/")
    if url.endswith(_BUNDLES_PATH):
        return url
    return f"{url}{_BUNDLES_PATH}"


def _error_message_from_payload(payload: Any) -> str:
    if isinstance(payload, dict):
        message = payload.get("message")
        if message:
            return str(message)
        details = payload.get("details")
        if details:
            return str(details)
    return str(payload)


def _extract_tip_accounts(payload: Any) -> list[str]:
    if not isinstance(payload, dict):
        return []
    result = payload.get("result")
    if isinstance(result, dict):
        result = result.get("tipAccounts")
    if not isinstance(result, list):
        return []
    return [str(item).strip() for item in result if str(item or "").strip()]


async def confirm_signature(
    rpc_client: AsyncClient,
    *,
    signature: str,
    commitment: Commitment,
) -> None:
    response = await rpc_client.confirm_transaction(Signature.from_string(signature), commitment)
    statuses = getattr(response, "value", None) or []
    status = statuses[0] if statuses else None
    if status is not None and status.err is not None:
        raise RuntimeError(f"transaction {signature} failed on-chain: {status.err}")


class TransactionSubmitter(Protocol):
    path: TransportPath

    async def submit(self, tx_base64: str, *, leg: str) -> DispatchResult:
        ...


class JitoBlockEngineClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        transport: HttpTransport,
        block_engine_url: str = DEFAULT_BLOCK_ENGINE_HTTP,
        tip_account: str = "",
        auth_uuid: str = "",
        fallback_urls: Sequence[str] = REGIONAL_BLOCK_ENGINES,
        rng: random.Random | None = None,
    ) -> None:
        self._logger = logger
        self._transport = transport
        self._block_engine_url = (block_engine_url or DEFAULT_BLOCK_ENGINE_HTTP).strip().rstrip("/")
        self._fallback_urls = tuple(url.strip().rstrip("/") for url in fallback_urls if url.strip())
        self._auth_uuid = auth_uuid.strip()
        self._tip_account = tip_account.strip() or None
        self._tip_lookup_failed = False
        self._rng = rng or random.Random()

    @property
    def tip_account(self) -> str | None:
        return self._tip_account

    def _headers(self) -> dict[str, str]:
        if self._auth_uuid:
            return {"x-jito-auth": self._auth_uuid}
        return {}

    def _candidate_urls(self) -> list[str]:
        urls: list[str] = []
        for base in (self._block_engine_url, *self._fallback_urls):
            bundles_url = _bundles_url(base)
            if bundles_url not in urls:
                urls.append(bundles_url)
        return urls

    async def prepare(self) -> str | None:
        """Resolve the tip account once; failures leave the bundle path disabled."""
        if self._tip_account:
            log_event(
                self._logger,
                level="info",
                event="jito_tip_account_loaded",
                message=f"[JITO] Tip account (ENV): {self._tip_account}",
                tip_account=self._tip_account,
                source="env",
            )
            return self._tip_account

        for url in self._candidate_urls():
            for method in _TIP_ACCOUNT_METHODS:
                payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": []}
                try:
                    response = await self._transport.post(
                        url,
                        payload,
                        headers=self._headers(),
                        max_attempts=1,
                    )
                except asyncio.CancelledError:
                    raise
                except Exception as error:
                    log_event(
                        self._logger,
                        level="debug",
                        event="jito_tip_accounts_lookup_failed",
                        message="Tip account lookup failed; trying next endpoint",
                        url=url,
                        method=method,
                        error=str(error),
                    )
                    continue

                accounts = _extract_tip_accounts(response)
                if accounts:
                    self._tip_account = self._rng.choice(accounts)
                    log_event(
                        self._logger,
                        level="info",
                        event="jito_tip_account_loaded",
                        message=f"[JITO] Tip account (HTTP): {self._tip_account}",
                        tip_account=self._tip_account,
                        tip_account_count=len(accounts),
                        source="http",
                    )
                    return self._tip_account

        self._tip_lookup_failed = True
        log_event(
            self._logger,
            level="warning",
            event="jito_tip_accounts_unavailable",
            message="[JITO] Could not fetch tip accounts via HTTP. Restart the bot.",
        )
        return None

    async def resolve_tip_account(self) -> str:
        if self._tip_account:
            return self._tip_account
        if not self._tip_lookup_failed:
            await self.prepare()
        if not self._tip_account:
            raise RuntimeError("Jito tip account is unavailable.")
        return self._tip_account

    async def send_bundle(self, signed_transactions: list[str]) -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [signed_transactions, {"encoding": "base64"}],
        }
        response = await self._transport.post(
            _bundles_url(self._block_engine_url),
            payload,
            headers=self._headers(),
        )
        if not isinstance(response, dict):
            raise RuntimeError(f"Unexpected sendBundle response: {str(response)[:240]}")
        if response.get("error") is not None:
            raise RuntimeError(f"Jito sendBundle failed: {_error_message_from_payload(response['error'])}")

        result = response.get("result")
        bundle_id = None
        if isinstance(result, str):
            bundle_id = result
        elif isinstance(result, dict):
            bundle_id = str(result.get("bundleId") or result.get("id") or "") or None
        if not bundle_id:
            raise RuntimeError(f"Jito sendBundle returned no bundle id: {str(response)[:240]}")
        return bundle_id


def build_tip_transaction(
    *,
    signer: Keypair,
    tip_account: str,
    tip_lamports: int,
    blockhash: Hash,
) -> VersionedTransaction:
    instruction = transfer(
        TransferParams(
            from_pubkey=signer.pubkey(),
            to_pubkey=Pubkey.from_string(tip_account),
            lamports=max(0, int(tip_lamports)),
        )
    )
    message = MessageV0.try_compile(signer.pubkey(), [instruction], [], blockhash)
    return VersionedTransaction(message, [signer])


class JitoBundleSubmitter:
    path: TransportPath = "bundle"

    def __init__(
        self,
        *,
        logger: logging.Logger,
        jito_client: JitoBlockEngineClient,
        rpc_client: AsyncClient,
        signer: Keypair,
        tip_lamports_by_leg: dict[str, int],
    ) -> None:
        self._logger = logger
        self._jito_client = jito_client
        self._rpc_client = rpc_client
        self._signer = signer
        self._tip_lamports_by_leg = dict(tip_lamports_by_leg)

    async def submit(self, tx_base64: str, *, leg: str) -> DispatchResult:
        tip_lamports = int(self._tip_lamports_by_leg.get(leg, 0))
        if tip_lamports <= 0:
            raise RuntimeError(f"tip lamports for {leg} leg must be greater than zero in bundle mode.")

        tip_account = await self._jito_client.resolve_tip_account()
        signed = sign_transaction(tx_base64, self._signer)

        blockhash_response = await self._rpc_client.get_latest_blockhash(Finalized)
        tip_tx = build_tip_transaction(
            signer=self._signer,
            tip_account=tip_account,
            tip_lamports=tip_lamports,
            blockhash=blockhash_response.value.blockhash,
        )
        bundle_id = await self._jito_client.send_bundle(
            [signed.to_base64(), base64.b64encode(bytes(tip_tx)).decode("ascii")]
        )
        log_event(
            self._logger,
            level="info",
            event="jito_bundle_submitted",
            message=f"{leg.upper()} bundle sent",
            leg=leg,
            bundle_id=bundle_id,
            signature=signed.signature,
            tip_lamports=tip_lamports,
            tip_account=tip_account,
        )
        return DispatchResult(reference=signed.signature, transport="bundle", bundle_id=bundle_id)


class SenderRelaySubmitter:
    path: TransportPath = "relay"

    def __init__(
        self,
        *,
        logger: logging.Logger,
        transport: HttpTransport,
        rpc_client: AsyncClient,
        signer: Keypair,
        endpoint: str,
        api_key: str = "",
        skip_preflight: bool = True,
        max_retries: int = 0,
        confirm_commitment: str = "confirmed",
    ) -> None:
        self._logger = logger
        self._transport = transport
        self._rpc_client = rpc_client
        self._signer = signer
        self._endpoint = endpoint.strip()
        self._api_key = api_key.strip()
        self._skip_preflight = skip_preflight
        self._max_retries = max(0, int(max_retries))
        self._confirm_commitment = resolve_commitment(confirm_commitment)

    async def submit(self, tx_base64: str, *, leg: str) -> DispatchResult:
        if not self._endpoint:
            raise RuntimeError("SENDER_ENDPOINT is empty")

        signed = sign_transaction(tx_base64, self._signer)
        body = {
            "jsonrpc": "2.0",
            "id": int(time.time() * 1000),
            "method": "sendTransaction",
            "params": [
                signed.to_base64(),
                {
                    "encoding": "base64",
                    "skipPreflight": self._skip_preflight,
                    "maxRetries": self._max_retries,
                },
            ],
        }
        headers = {"x-api-key": self._api_key} if self._api_key else None
        response = await self._transport.post(self._endpoint, body, headers=headers)
        if not isinstance(response, dict):
            raise RuntimeError(f"Sender returned unexpected payload: {str(response)[:240]}")
        if response.get("error"):
            raise RuntimeError(f"Sender error: {_error_message_from_payload(response['error'])}")
        result = response.get("result")
        if not isinstance(result, str) or not result.strip():
            raise RuntimeError(f"Sender returned no signature: {_error_message_from_payload(response)[:240]}")

        if self._confirm_commitment is not None:
            try:
                await confirm_signature(
                    self._rpc_client,
                    signature=signed.signature,
                    commitment=self._confirm_commitment,
                )
            except asyncio.CancelledError:
                raise
            except Exception as error:
                raise RuntimeError(f"Sender confirmation error: {error}") from error

        return DispatchResult(reference=signed.signature, transport="relay")


class RpcBroadcastSubmitter:
    path: TransportPath = "broadcast"

    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_client: AsyncClient,
        signer: Keypair,
        max_retries: int = 3,
        preflight_commitment: str = "confirmed",
        confirm_commitment: str = "none",
    ) -> None:
        self._logger = logger
        self._rpc_client = rpc_client
        self._signer = signer
        self._max_retries = max(0, int(max_retries))
        self._preflight_commitment = resolve_commitment(preflight_commitment) or Confirmed
        self._confirm_commitment = resolve_commitment(confirm_commitment)

    async def submit(self, tx_base64: str, *, leg: str) -> DispatchResult:
        signed = sign_transaction(tx_base64, self._signer)
        response = await self._rpc_client.send_raw_transaction(
            signed.raw,
            opts=TxOpts(
                skip_preflight=False,
                preflight_commitment=self._preflight_commitment,
                max_retries=self._max_retries,
            ),
        )
        reference = str(response.value) if getattr(response, "value", None) is not None else signed.signature

        if self._confirm_commitment is not None:
            await confirm_signature(
                self._rpc_client,
                signature=reference,
                commitment=self._confirm_commitment,
            )

        return DispatchResult(reference=reference, transport="broadcast")


class TransactionDispatcher:
    """Delivers one swap leg through an ordered chain of submit paths.

    Each path signs its own copy of the transaction. The first path that
    succeeds wins; a failing path falls through to the next one.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        submitters: Sequence[TransactionSubmitter],
    ) -> None:
        if not submitters:
            raise ValueError("TransactionDispatcher requires at least one submitter")
        self._logger = logger
        self._submitters = tuple(submitters)

    @property
    def paths(self) -> tuple[TransportPath, ...]:
        return tuple(submitter.path for submitter in self._submitters)

    async def dispatch(self, tx_base64: str, *, leg: str, asset: str = "") -> DispatchResult:
        failures: dict[str, str] = {}
        for submitter in self._submitters:
            try:
                result = await submitter.submit(tx_base64, leg=leg)
            except asyncio.CancelledError:
                raise
            except Exception as error:
                failures[submitter.path] = str(error) or type(error).__name__
                log_event(
                    self._logger,
                    level="warning",
                    event="dispatch_path_failed",
                    message=f"{submitter.path} path failed for {leg} leg; falling through",
                    asset=asset,
                    leg=leg,
                    transport=submitter.path,
                    error=failures[submitter.path],
                )
                continue

            log_event(
                self._logger,
                level="info",
                event="leg_dispatched",
                message=f"{leg.upper()} SENT via {result.transport}",
                asset=asset,
                leg=leg,
                **result.to_dict(),
            )
            return result

        raise DispatchError(
            f"{leg} leg failed on every transport path: {', '.join(failures) or 'none'}",
            failures=failures,
        )
