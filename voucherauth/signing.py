"""
Voucher Signature Recovery and Issuance

Signatures are 65-byte secp256k1 signatures laid out as r || s || v, with
v in {27, 28}. Recovery is a pure function of (digest, signature): it never
touches state and never consults the authority set.

Rejection rules:
- length other than 65 bytes (or undecodable hex) -> MalformedSignature
- r or s zero or not below the curve order, s in the upper half of the
  order, v outside {27, 28} -> InvalidSignatureEncoding
- no recoverable public key -> zero address (never authorized)

The upper-half-s rule removes the malleable twin (r, n - s, v ^ 1) that
would otherwise verify for the same digest.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Union

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature

from .domain import VoucherDomain
from .errors import InvalidSignatureEncoding, MalformedSignature
from .hashing import Voucher, build_typed_data
from .util import ZERO_ADDRESS, bytes_to_hex, hex_to_bytes

SIGNATURE_LENGTH = 65
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SignatureInput = Union[bytes, bytearray, str]


@dataclass(frozen=True)
class SignatureParts:
    """Decoded signature components."""
    r: int
    s: int
    v: int


def decode_signature(signature: SignatureInput) -> SignatureParts:
    """
    Split and validate a 65-byte signature.

    Raises:
        MalformedSignature: Wrong length or undecodable input
        InvalidSignatureEncoding: Out-of-range or non-canonical component
    """
    try:
        raw = hex_to_bytes(signature)
    except (TypeError, ValueError) as e:
        raise MalformedSignature(
            "signature is not valid hex",
            required=f"{SIGNATURE_LENGTH} bytes",
            observed=str(e),
        ) from e

    if len(raw) != SIGNATURE_LENGTH:
        raise MalformedSignature(
            "signature has wrong length",
            required=f"{SIGNATURE_LENGTH} bytes",
            observed=f"{len(raw)} bytes",
        )

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]

    if not 0 < r < SECP256K1_N:
        raise InvalidSignatureEncoding("r out of range", required="0 < r < n", observed=hex(r))
    if not 0 < s < SECP256K1_N:
        raise InvalidSignatureEncoding("s out of range", required="0 < s < n", observed=hex(s))
    if s > SECP256K1_HALF_N:
        raise InvalidSignatureEncoding("s in upper half of curve order", required="s <= n/2", observed=hex(s))
    if v not in (27, 28):
        raise InvalidSignatureEncoding("invalid recovery id", required="v in {27, 28}", observed=str(v))

    return SignatureParts(r=r, s=s, v=v)


def recover_signer(digest: bytes, signature: SignatureInput) -> str:
    """
    Recover the checksum address that produced `signature` over `digest`.

    Returns the zero address when no public key can be recovered.
    """
    if len(digest) != 32:
        raise ValueError("digest must be 32 bytes")

    parts = decode_signature(signature)
    sig = keys.Signature(vrs=(parts.v - 27, parts.r, parts.s))
    try:
        public_key = sig.recover_public_key_from_msg_hash(digest)
    except BadSignature:
        return ZERO_ADDRESS
    return public_key.to_checksum_address()


class VoucherSigner:
    """
    Off-system voucher issuer.

    Holds one secp256k1 key and signs vouchers as standard EIP-712 typed
    data, so the signatures are interchangeable with wallet-produced ones.
    """

    def __init__(self, private_key: Union[str, bytes]):
        self._account = Account.from_key(private_key)

    @classmethod
    def generate(cls) -> "VoucherSigner":
        """Create a signer with a fresh random key."""
        return cls(os.urandom(32))

    @classmethod
    def from_key_file(cls, path: str) -> "VoucherSigner":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        signer = cls(raw["private_key"])
        declared = raw.get("address")
        if declared and declared.lower() != signer.address.lower():
            raise ValueError(f"Key file address mismatch: {declared} != {signer.address}")
        return signer

    @property
    def address(self) -> str:
        return self._account.address

    def to_key_file_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "private_key": bytes_to_hex(bytes(self._account.key)),
        }

    def sign(self, domain: VoucherDomain, voucher: Voucher) -> bytes:
        """Sign a voucher for `domain`; returns 65 signature bytes."""
        signed = self._account.sign_typed_data(full_message=build_typed_data(domain, voucher))
        return bytes(signed.signature)

    def issue(self, domain: VoucherDomain, voucher: Voucher) -> Dict[str, Any]:
        """
        Sign and package a voucher for transport.

        The bundle carries the typed-data document and the hex signature.
        """
        return {
            "typed_data": build_typed_data(domain, voucher),
            "signature": bytes_to_hex(self.sign(domain, voucher)),
            "signer": self.address,
        }
