"""
Voucher Types

A voucher is an off-system signed message authorizing one state transition.
Vouchers are never persisted; only their effects (counters, stages) are.

Each voucher kind declares its EIP-712 struct name and ordered, typed field
list. The field list is the single source for the type string, the struct
hash and the wallet-facing JSON document.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .util import check_uint, is_zero_address, normalize_address

# (solidity type, EIP-712 field name, python attribute)
FieldSpec = Tuple[str, str, str]


@dataclass(frozen=True)
class CreationVoucher:
    """
    One-time permission to create one item for `recipient`.

    `sequence` must equal the recipient's counter when the voucher is applied.
    """
    recipient: str
    sequence: int
    expires_at: int

    TYPE_NAME: ClassVar[str] = "CreationVoucher"
    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = (
        ("address", "recipient", "recipient"),
        ("uint256", "sequence", "sequence"),
        ("uint256", "expiresAt", "expires_at"),
    )

    def __post_init__(self):
        recipient = normalize_address(self.recipient, "recipient")
        if is_zero_address(recipient):
            raise ValueError("recipient must not be the zero address")
        object.__setattr__(self, "recipient", recipient)
        check_uint(self.sequence, 256, "sequence")
        check_uint(self.expires_at, 256, "expires_at")

    def to_message(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "sequence": self.sequence,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "CreationVoucher":
        return cls(
            recipient=data["recipient"],
            sequence=int(data["sequence"]),
            expires_at=int(data["expiresAt"]),
        )


@dataclass(frozen=True)
class AdvancementVoucher:
    """
    Permission to move `item_id` forward to `stage`, replacing its avatar.

    An absent avatar is the empty string, so `None` and `""` denote the same
    voucher and hash identically.
    """
    item_id: int
    stage: int
    expires_at: int
    avatar: Optional[str] = ""

    TYPE_NAME: ClassVar[str] = "AdvancementVoucher"
    FIELDS: ClassVar[Tuple[FieldSpec, ...]] = (
        ("uint256", "itemId", "item_id"),
        ("uint8", "stage", "stage"),
        ("string", "avatar", "avatar"),
        ("uint256", "expiresAt", "expires_at"),
    )

    def __post_init__(self):
        check_uint(self.item_id, 256, "item_id")
        check_uint(self.stage, 8, "stage")
        check_uint(self.expires_at, 256, "expires_at")
        if self.avatar is None:
            object.__setattr__(self, "avatar", "")
        elif not isinstance(self.avatar, str):
            raise ValueError("avatar must be a string")

    def to_message(self) -> Dict[str, Any]:
        return {
            "itemId": self.item_id,
            "stage": self.stage,
            "avatar": self.avatar,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "AdvancementVoucher":
        return cls(
            item_id=int(data["itemId"]),
            stage=int(data["stage"]),
            avatar=data.get("avatar") or "",
            expires_at=int(data["expiresAt"]),
        )


VOUCHER_TYPES = {
    CreationVoucher.TYPE_NAME: CreationVoucher,
    AdvancementVoucher.TYPE_NAME: AdvancementVoucher,
}


def type_fields(voucher_cls) -> List[Dict[str, str]]:
    """Field list in the EIP-712 `types` JSON shape."""
    return [{"name": name, "type": sol_type} for sol_type, name, _ in voucher_cls.FIELDS]


def voucher_from_typed_data(document: Dict[str, Any]):
    """Rebuild a voucher from an EIP-712 JSON document."""
    primary = document.get("primaryType")
    if primary not in VOUCHER_TYPES:
        raise ValueError(f"Unknown voucher type: {primary}")
    return VOUCHER_TYPES[primary].from_message(document["message"])
