"""
Typed Data Conformance Suite

Domain separators, type strings and struct hashes must match EIP-712 as
implemented by eth-account, so that vouchers signed by any standard wallet
verify here.
"""

import unittest

from eth_account.messages import encode_typed_data
from eth_utils import keccak

from voucherauth import (
    ADVANCEMENT_TYPE_HASH,
    AdvancementVoucher,
    CREATION_TYPE_HASH,
    CreationVoucher,
    DOMAIN_TYPE_HASH,
    VoucherDomain,
    build_typed_data,
    domain_separator,
    struct_hash,
    type_string,
    typed_data_digest,
    voucher_digest,
    voucher_from_typed_data,
)
from voucherauth.util import UINT256_MAX, ZERO_ADDRESS

from vectors import ALICE, CHAIN_ID, CONTRACT, LATER, OTHER_CONTRACT, make_domain


def eth_account_hashes(domain, voucher):
    """(separator, struct hash, digest) as computed by eth-account."""
    signable = encode_typed_data(full_message=build_typed_data(domain, voucher))
    digest = keccak(b"\x19" + signable.version + signable.header + signable.body)
    return bytes(signable.header), bytes(signable.body), digest


class TestTypeStrings(unittest.TestCase):
    """Type strings are hashed in full."""

    def test_domain_type_hash(self):
        self.assertEqual(
            DOMAIN_TYPE_HASH,
            keccak(text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"),
        )
        self.assertEqual(
            DOMAIN_TYPE_HASH.hex(),
            "8b73c3c69bb8fe3d512ecc4cf759cc79239f7b179b0ffacaa9a75d522b39400f",
        )

    def test_creation_type_string(self):
        self.assertEqual(
            type_string(CreationVoucher),
            "CreationVoucher(address recipient,uint256 sequence,uint256 expiresAt)",
        )
        self.assertEqual(CREATION_TYPE_HASH, keccak(text=type_string(CreationVoucher)))

    def test_advancement_type_string(self):
        self.assertEqual(
            type_string(AdvancementVoucher),
            "AdvancementVoucher(uint256 itemId,uint8 stage,string avatar,uint256 expiresAt)",
        )
        self.assertEqual(ADVANCEMENT_TYPE_HASH, keccak(text=type_string(AdvancementVoucher)))

    def test_type_hashes_differ(self):
        self.assertNotEqual(CREATION_TYPE_HASH, ADVANCEMENT_TYPE_HASH)


class TestDomainBinder(unittest.TestCase):
    """Domain separator derivation."""

    def test_separator_matches_eth_account(self):
        domain = make_domain()
        voucher = CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        separator, _, _ = eth_account_hashes(domain, voucher)
        self.assertEqual(domain.separator, separator)

    def test_separator_is_deterministic(self):
        self.assertEqual(make_domain().separator, make_domain().separator)
        self.assertEqual(
            make_domain().separator,
            domain_separator("VoucherRegistry", "1", CHAIN_ID, CONTRACT),
        )

    def test_every_parameter_changes_separator(self):
        base = make_domain().separator
        variants = [
            make_domain(chain_id=CHAIN_ID + 1),
            make_domain(verifying_contract=OTHER_CONTRACT),
            make_domain(name="OtherRegistry"),
            make_domain(version="2"),
        ]
        for variant in variants:
            self.assertNotEqual(variant.separator, base)

    def test_contract_address_case_does_not_matter(self):
        lower = make_domain(verifying_contract=CONTRACT.lower())
        self.assertEqual(lower.separator, make_domain().separator)
        self.assertEqual(lower.verifying_contract, CONTRACT)

    def test_invalid_domain_rejected(self):
        with self.assertRaises(ValueError):
            make_domain(chain_id=0)
        with self.assertRaises(ValueError):
            make_domain(chain_id=-1)
        with self.assertRaises(ValueError):
            make_domain(verifying_contract="0x1234")

    def test_dict_round_trip(self):
        domain = make_domain(name="Registry", version="7")
        self.assertEqual(VoucherDomain.from_dict(domain.to_dict()), domain)


class TestStructHasher(unittest.TestCase):
    """Struct hashes and digests agree with eth-account."""

    def setUp(self):
        self.domain = make_domain()

    def assert_matches_eth_account(self, voucher):
        _, body, digest = eth_account_hashes(self.domain, voucher)
        self.assertEqual(struct_hash(voucher), body)
        self.assertEqual(voucher_digest(self.domain, voucher), digest)

    def test_creation_voucher(self):
        self.assert_matches_eth_account(
            CreationVoucher(recipient=ALICE, sequence=7, expires_at=LATER)
        )

    def test_advancement_voucher(self):
        self.assert_matches_eth_account(
            AdvancementVoucher(item_id=3, stage=2, avatar="ipfs://QmAvatar", expires_at=LATER)
        )

    def test_advancement_voucher_empty_avatar(self):
        self.assert_matches_eth_account(
            AdvancementVoucher(item_id=0, stage=255, avatar="", expires_at=UINT256_MAX)
        )

    def test_unicode_avatar(self):
        self.assert_matches_eth_account(
            AdvancementVoucher(item_id=1, stage=1, avatar="ipfs://été/☃", expires_at=LATER)
        )

    def test_absent_avatar_equals_empty_string(self):
        absent = AdvancementVoucher(item_id=1, stage=1, avatar=None, expires_at=LATER)
        empty = AdvancementVoucher(item_id=1, stage=1, avatar="", expires_at=LATER)
        self.assertEqual(absent, empty)
        self.assertEqual(struct_hash(absent), struct_hash(empty))

    def test_every_field_changes_hash(self):
        base = AdvancementVoucher(item_id=1, stage=1, avatar="a", expires_at=LATER)
        variants = [
            AdvancementVoucher(item_id=2, stage=1, avatar="a", expires_at=LATER),
            AdvancementVoucher(item_id=1, stage=2, avatar="a", expires_at=LATER),
            AdvancementVoucher(item_id=1, stage=1, avatar="b", expires_at=LATER),
            AdvancementVoucher(item_id=1, stage=1, avatar="a", expires_at=LATER + 1),
        ]
        for variant in variants:
            self.assertNotEqual(struct_hash(variant), struct_hash(base))

    def test_digest_layout(self):
        voucher = CreationVoucher(recipient=ALICE, sequence=0, expires_at=LATER)
        expected = keccak(b"\x19\x01" + self.domain.separator + struct_hash(voucher))
        self.assertEqual(voucher_digest(self.domain, voucher), expected)

    def test_digest_rejects_short_inputs(self):
        with self.assertRaises(ValueError):
            typed_data_digest(b"\x00" * 31, b"\x00" * 32)


class TestVoucherValidation(unittest.TestCase):
    """Out-of-range fields never reach the hasher."""

    def test_zero_recipient_rejected(self):
        with self.assertRaises(ValueError):
            CreationVoucher(recipient=ZERO_ADDRESS, sequence=0, expires_at=LATER)

    def test_bad_recipient_rejected(self):
        with self.assertRaises(ValueError):
            CreationVoucher(recipient="alice", sequence=0, expires_at=LATER)

    def test_recipient_normalized(self):
        voucher = CreationVoucher(recipient=ALICE.lower(), sequence=0, expires_at=LATER)
        self.assertEqual(voucher.recipient, ALICE)

    def test_stage_is_uint8(self):
        AdvancementVoucher(item_id=0, stage=255, expires_at=LATER)
        with self.assertRaises(ValueError):
            AdvancementVoucher(item_id=0, stage=256, expires_at=LATER)
        with self.assertRaises(ValueError):
            AdvancementVoucher(item_id=0, stage=-1, expires_at=LATER)

    def test_uint256_bounds(self):
        CreationVoucher(recipient=ALICE, sequence=UINT256_MAX, expires_at=UINT256_MAX)
        with self.assertRaises(ValueError):
            CreationVoucher(recipient=ALICE, sequence=UINT256_MAX + 1, expires_at=LATER)
        with self.assertRaises(ValueError):
            AdvancementVoucher(item_id=-1, stage=1, expires_at=LATER)

    def test_non_integer_rejected(self):
        with self.assertRaises(ValueError):
            CreationVoucher(recipient=ALICE, sequence="1", expires_at=LATER)
        with self.assertRaises(ValueError):
            CreationVoucher(recipient=ALICE, sequence=True, expires_at=LATER)


class TestTypedDataDocument(unittest.TestCase):
    """Wallet-facing JSON document."""

    def test_document_shape(self):
        domain = make_domain()
        voucher = AdvancementVoucher(item_id=4, stage=3, avatar="x", expires_at=LATER)
        doc = build_typed_data(domain, voucher)

        self.assertEqual(doc["primaryType"], "AdvancementVoucher")
        self.assertEqual(doc["domain"]["chainId"], CHAIN_ID)
        self.assertEqual(
            [f["name"] for f in doc["types"]["AdvancementVoucher"]],
            ["itemId", "stage", "avatar", "expiresAt"],
        )
        self.assertEqual(doc["message"], {"itemId": 4, "stage": 3, "avatar": "x", "expiresAt": LATER})

    def test_voucher_rebuilt_from_document(self):
        domain = make_domain()
        voucher = CreationVoucher(recipient=ALICE, sequence=9, expires_at=LATER)
        self.assertEqual(voucher_from_typed_data(build_typed_data(domain, voucher)), voucher)

    def test_unknown_primary_type_rejected(self):
        with self.assertRaises(ValueError):
            voucher_from_typed_data({"primaryType": "Mail", "message": {}})


if __name__ == "__main__":
    unittest.main()
