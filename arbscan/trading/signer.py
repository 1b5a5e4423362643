from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from .errors import ConfigurationError


@dataclass(slots=True, frozen=True)
class SignedTransaction:
    transaction: VersionedTransaction
    signature: str

    @property
    def raw(self) -> bytes:
        return bytes(self.transaction)

    def to_base64(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")


def load_signer(raw: str) -> Keypair:
    value = (raw or "").strip()
    if not value:
        raise ConfigurationError("PRIVATE_KEY_B58 is empty.")

    if value.startswith("["):
        try:
            arr = json.loads(value)
            return Keypair.from_bytes(bytes(arr))
        except Exception as error:
            raise ConfigurationError(f"PRIVATE_KEY_B58 JSON array is invalid: {error}") from error

    try:
        return Keypair.from_bytes(base58.b58decode(value))
    except Exception as error:
        raise ConfigurationError(f"Failed to load PRIVATE_KEY_B58: {error}") from error


def decode_transaction(tx_base64: str) -> VersionedTransaction:
    try:
        raw = base64.b64decode(tx_base64, validate=True)
    except (binascii.Error, ValueError) as error:
        raise ValueError(f"transaction payload is not valid base64: {error}") from error
    return VersionedTransaction.from_bytes(raw)


def sign_transaction(tx_base64: str, signer: Keypair) -> SignedTransaction:
    """Deserialize an unsigned swap transaction and sign it with ``signer``."""
    unsigned = decode_transaction(tx_base64)
    signed = VersionedTransaction(unsigned.message, [signer])
    if not signed.signatures:
        raise RuntimeError("missing transaction signature after signing")
    return SignedTransaction(transaction=signed, signature=str(signed.signatures[0]))
