"""
Signature Verifier Test Suite

Recovery is a pure function of (digest, signature). Encoding failures are
rejected before recovery; a well-formed signature over the wrong digest
recovers some other address, which the trust check then rejects.
"""

import json
import os
import tempfile
import unittest
from unittest import mock

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys import keys
from eth_keys.exceptions import BadSignature

from voucherauth import (
    CreationVoucher,
    InvalidSignatureEncoding,
    MalformedSignature,
    VoucherSigner,
    build_typed_data,
    decode_signature,
    recover_signer,
    voucher_digest,
)
from voucherauth.signing import SECP256K1_HALF_N, SECP256K1_N
from voucherauth.util import ZERO_ADDRESS

from vectors import ALICE, ISSUER_ADDRESS, ISSUER_KEY, LATER, issuer, make_domain


def pack(r: int, s: int, v: int) -> bytes:
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def high_s_twin(signature: bytes) -> bytes:
    """The malleable twin (r, n - s, v ^ 1) of a canonical signature."""
    parts = decode_signature(signature)
    return pack(parts.r, SECP256K1_N - parts.s, 55 - parts.v)


class TestRecovery(unittest.TestCase):
    """Valid signatures recover their signer."""

    def setUp(self):
        self.domain = make_domain()
        self.voucher = CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        self.digest = voucher_digest(self.domain, self.voucher)
        self.signature = issuer().sign(self.domain, self.voucher)

    def test_recovers_issuer(self):
        self.assertEqual(recover_signer(self.digest, self.signature), ISSUER_ADDRESS)

    def test_hex_and_bytes_equivalent(self):
        as_hex = "0x" + self.signature.hex()
        self.assertEqual(recover_signer(self.digest, as_hex), ISSUER_ADDRESS)

    def test_signature_is_canonical(self):
        self.assertEqual(len(self.signature), 65)
        parts = decode_signature(self.signature)
        self.assertIn(parts.v, (27, 28))
        self.assertLessEqual(parts.s, SECP256K1_HALF_N)

    def test_matches_eth_account_recovery(self):
        signable = encode_typed_data(full_message=build_typed_data(self.domain, self.voucher))
        self.assertEqual(Account.recover_message(signable, signature=self.signature), ISSUER_ADDRESS)

    def test_wallet_signature_accepted(self):
        """A signature made directly with eth-account verifies."""
        signed = Account.from_key(ISSUER_KEY).sign_typed_data(
            full_message=build_typed_data(self.domain, self.voucher)
        )
        self.assertEqual(recover_signer(self.digest, bytes(signed.signature)), ISSUER_ADDRESS)

    def test_other_digest_recovers_other_address(self):
        other = CreationVoucher(recipient=ALICE, sequence=1, expires_at=LATER)
        recovered = recover_signer(voucher_digest(self.domain, other), self.signature)
        self.assertNotEqual(recovered, ISSUER_ADDRESS)

    def test_recovery_failure_yields_zero_address(self):
        with mock.patch.object(
            keys.Signature, "recover_public_key_from_msg_hash", side_effect=BadSignature("no key")
        ):
            self.assertEqual(recover_signer(self.digest, self.signature), ZERO_ADDRESS)

    def test_digest_must_be_32_bytes(self):
        with self.assertRaises(ValueError):
            recover_signer(self.digest[:31], self.signature)


class TestMalformedSignatures(unittest.TestCase):
    """Length and decoding failures."""

    def setUp(self):
        self.signature = issuer().sign(
            make_domain(), CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        )

    def test_too_short(self):
        with self.assertRaises(MalformedSignature):
            decode_signature(self.signature[:64])

    def test_too_long(self):
        with self.assertRaises(MalformedSignature):
            decode_signature(self.signature + b"\x00")

    def test_empty(self):
        with self.assertRaises(MalformedSignature):
            decode_signature(b"")

    def test_not_hex(self):
        with self.assertRaises(MalformedSignature):
            decode_signature("0x" + "zz" * 65)

    def test_error_records_observed_length(self):
        with self.assertRaises(MalformedSignature) as ctx:
            decode_signature(self.signature[:60])
        self.assertEqual(ctx.exception.observed, "60 bytes")
        self.assertEqual(ctx.exception.to_dict()["error"], "MALFORMED_SIGNATURE")


class TestSignatureEncoding(unittest.TestCase):
    """Component range and canonical form."""

    def setUp(self):
        self.signature = issuer().sign(
            make_domain(), CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        )
        self.parts = decode_signature(self.signature)

    def test_high_s_twin_rejected(self):
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(high_s_twin(self.signature))

    def test_zero_r_rejected(self):
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(pack(0, self.parts.s, self.parts.v))

    def test_zero_s_rejected(self):
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(pack(self.parts.r, 0, self.parts.v))

    def test_r_at_curve_order_rejected(self):
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(pack(SECP256K1_N, self.parts.s, self.parts.v))

    def test_s_at_curve_order_rejected(self):
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(pack(self.parts.r, SECP256K1_N, self.parts.v))

    def test_bad_recovery_ids_rejected(self):
        for v in (0, 1, 26, 29, 35, 255):
            with self.subTest(v=v):
                with self.assertRaises(InvalidSignatureEncoding):
                    decode_signature(pack(self.parts.r, self.parts.s, v))

    def test_half_order_boundary(self):
        parts = decode_signature(pack(self.parts.r, SECP256K1_HALF_N, 27))
        self.assertEqual(parts.s, SECP256K1_HALF_N)
        with self.assertRaises(InvalidSignatureEncoding):
            decode_signature(pack(self.parts.r, SECP256K1_HALF_N + 1, 27))


class TestVoucherSigner(unittest.TestCase):
    """Key handling for off-system issuance."""

    def test_generated_keys_differ(self):
        self.assertNotEqual(VoucherSigner.generate().address, VoucherSigner.generate().address)

    def test_key_file_round_trip(self):
        signer = issuer()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "key.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(signer.to_key_file_dict(), f)
            self.assertEqual(VoucherSigner.from_key_file(path).address, ISSUER_ADDRESS)

    def test_key_file_address_mismatch(self):
        data = issuer().to_key_file_dict()
        data["address"] = ALICE
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "key.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            with self.assertRaises(ValueError):
                VoucherSigner.from_key_file(path)

    def test_issue_bundle(self):
        domain = make_domain()
        voucher = CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        bundle = issuer().issue(domain, voucher)

        self.assertEqual(bundle["signer"], ISSUER_ADDRESS)
        self.assertEqual(bundle["typed_data"], build_typed_data(domain, voucher))
        self.assertEqual(
            recover_signer(voucher_digest(domain, voucher), bundle["signature"]),
            ISSUER_ADDRESS,
        )


if __name__ == "__main__":
    unittest.main()
