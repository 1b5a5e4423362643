from __future__ import annotations

import base64
import json
import unittest

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from arbscan.trading.errors import ConfigurationError
from arbscan.trading.signer import decode_transaction, load_signer, sign_transaction


def _unsigned_swap_b64(payer: Keypair) -> str:
    instruction = transfer(
        TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1_000)
    )
    message = MessageV0.try_compile(payer.pubkey(), [instruction], [], Hash.default())
    unsigned = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(unsigned)).decode("ascii")


class LoadSignerTests(unittest.TestCase):
    def test_accepts_base58_secret(self) -> None:
        keypair = Keypair()

        self.assertEqual(load_signer(str(keypair)).pubkey(), keypair.pubkey())

    def test_accepts_json_byte_array(self) -> None:
        keypair = Keypair()

        self.assertEqual(load_signer(json.dumps(list(bytes(keypair)))).pubkey(), keypair.pubkey())

    def test_rejects_empty_and_malformed_keys(self) -> None:
        for raw in ("", "   ", "[1, 2, 3]", "not-base58-0OIl"):
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigurationError):
                    load_signer(raw)


class SignTransactionTests(unittest.TestCase):
    def test_signs_once_and_reports_signature(self) -> None:
        payer = Keypair()

        signed = sign_transaction(_unsigned_swap_b64(payer), payer)

        self.assertNotEqual(signed.signature, str(Signature.default()))
        self.assertEqual(str(signed.transaction.signatures[0]), signed.signature)
        self.assertEqual(decode_transaction(signed.to_base64()).signatures, signed.transaction.signatures)

    def test_resigning_is_deterministic(self) -> None:
        payer = Keypair()
        tx_b64 = _unsigned_swap_b64(payer)

        self.assertEqual(sign_transaction(tx_b64, payer).raw, sign_transaction(tx_b64, payer).raw)

    def test_invalid_base64_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            decode_transaction("***not base64***")


if __name__ == "__main__":
    unittest.main()
