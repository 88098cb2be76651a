"""
Domain Binder

Derives the EIP-712 domain separator that binds every voucher signature to
one deployment: protocol name, version, chain id and contract instance.
A signature produced for any other deployment recovers to a different signer
and is therefore rejected.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from eth_abi import encode
from eth_utils import keccak

from .util import check_uint, normalize_address

DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
DOMAIN_TYPE_HASH = keccak(text=DOMAIN_TYPE)

DEFAULT_DOMAIN_NAME = "VoucherRegistry"
DEFAULT_DOMAIN_VERSION = "1"


@dataclass(frozen=True)
class VoucherDomain:
    """
    Deployment identity for voucher signatures.

    The separator is computed once at construction and never changes for the
    lifetime of the object.
    """
    chain_id: int
    verifying_contract: str
    name: str = DEFAULT_DOMAIN_NAME
    version: str = DEFAULT_DOMAIN_VERSION
    separator: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        check_uint(self.chain_id, 256, "chain_id")
        if self.chain_id == 0:
            raise ValueError("chain_id must be positive")
        object.__setattr__(
            self, "verifying_contract",
            normalize_address(self.verifying_contract, "verifying_contract"),
        )
        object.__setattr__(self, "separator", domain_separator(
            self.name, self.version, self.chain_id, self.verifying_contract
        ))

    @property
    def separator_hex(self) -> str:
        return "0x" + self.separator.hex()

    def to_dict(self) -> Dict[str, Any]:
        """Domain in the EIP-712 JSON shape used by wallets."""
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoucherDomain":
        return cls(
            chain_id=int(data["chainId"]),
            verifying_contract=data["verifyingContract"],
            name=data.get("name", DEFAULT_DOMAIN_NAME),
            version=data.get("version", DEFAULT_DOMAIN_VERSION),
        )


def domain_separator(name: str, version: str, chain_id: int, verifying_contract: str) -> bytes:
    """
    keccak256(abi.encode(DOMAIN_TYPE_HASH, keccak(name), keccak(version),
    chainId, verifyingContract))
    """
    return keccak(encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            DOMAIN_TYPE_HASH,
            keccak(text=name),
            keccak(text=version),
            chain_id,
            verifying_contract,
        ],
    ))
