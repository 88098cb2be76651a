"""
Voucher Struct Hashing

Implements EIP-712 `hashStruct` for voucher kinds and the final typed-data
digest that signers sign:

    typeHash   = keccak256(TypeName(type1 name1,type2 name2,...))
    structHash = keccak256(abi.encode(typeHash, enc(v1), enc(v2), ...))
    digest     = keccak256(0x19 || 0x01 || domainSeparator || structHash)

Dynamic `string` and `bytes` values are replaced by their keccak256 hash;
every other field is ABI-encoded in place. Fields are encoded in declaration
order and none may be omitted. The full type string (not a short tag) is
hashed, so two voucher kinds can never share a type hash prefix.
"""

from typing import Any, Dict, List, Tuple, Union

from eth_abi import encode
from eth_utils import keccak

from .domain import VoucherDomain
from .vouchers import AdvancementVoucher, CreationVoucher, type_fields

Voucher = Union[CreationVoucher, AdvancementVoucher]

EIP712_PREFIX = b"\x19\x01"
DYNAMIC_TYPES = ("string", "bytes")


def type_string(voucher_cls) -> str:
    """
    Encode a voucher kind's EIP-712 type string.

    Example: "CreationVoucher(address recipient,uint256 sequence,uint256 expiresAt)"
    """
    members = ",".join(f"{sol_type} {name}" for sol_type, name, _ in voucher_cls.FIELDS)
    return f"{voucher_cls.TYPE_NAME}({members})"


def type_hash(voucher_cls) -> bytes:
    return keccak(text=type_string(voucher_cls))


CREATION_TYPE_HASH = type_hash(CreationVoucher)
ADVANCEMENT_TYPE_HASH = type_hash(AdvancementVoucher)


def _encode_field(sol_type: str, value: Any) -> Tuple[str, Any]:
    """Map one field to its (abi type, abi value) pair per EIP-712 encodeData."""
    if sol_type == "string":
        return "bytes32", keccak(text=value)
    if sol_type == "bytes":
        return "bytes32", keccak(value)
    return sol_type, value


def struct_hash(voucher: Voucher) -> bytes:
    """Compute hashStruct(voucher)."""
    voucher_cls = type(voucher)
    abi_types: List[str] = ["bytes32"]
    abi_values: List[Any] = [type_hash(voucher_cls)]

    for sol_type, _, attr in voucher_cls.FIELDS:
        abi_type, abi_value = _encode_field(sol_type, getattr(voucher, attr))
        abi_types.append(abi_type)
        abi_values.append(abi_value)

    return keccak(encode(abi_types, abi_values))


def typed_data_digest(separator: bytes, struct_digest: bytes) -> bytes:
    """Combine a domain separator and struct hash into the signed digest."""
    if len(separator) != 32 or len(struct_digest) != 32:
        raise ValueError("separator and struct hash must be 32 bytes each")
    return keccak(EIP712_PREFIX + separator + struct_digest)


def voucher_digest(domain: VoucherDomain, voucher: Voucher) -> bytes:
    """The digest a signer signs for `voucher` on `domain`."""
    return typed_data_digest(domain.separator, struct_hash(voucher))


def build_typed_data(domain: VoucherDomain, voucher: Voucher) -> Dict[str, Any]:
    """
    Build the EIP-712 JSON document for a voucher.

    This is the shape wallets accept for `eth_signTypedData_v4`.
    """
    voucher_cls = type(voucher)
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            voucher_cls.TYPE_NAME: type_fields(voucher_cls),
        },
        "primaryType": voucher_cls.TYPE_NAME,
        "domain": domain.to_dict(),
        "message": voucher.to_message(),
    }
