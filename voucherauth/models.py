from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .vouchers import AdvancementVoucher, CreationVoucher


class CreationVoucherBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str
    sequence: int
    expires_at: int = Field(alias="expiresAt")

    def to_voucher(self) -> CreationVoucher:
        return CreationVoucher(
            recipient=self.recipient,
            sequence=self.sequence,
            expires_at=self.expires_at,
        )


class AdvancementVoucherBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: int = Field(alias="itemId")
    stage: int
    avatar: Optional[str] = ""
    expires_at: int = Field(alias="expiresAt")

    def to_voucher(self) -> AdvancementVoucher:
        return AdvancementVoucher(
            item_id=self.item_id,
            stage=self.stage,
            avatar=self.avatar,
            expires_at=self.expires_at,
        )


class CreationSubmission(BaseModel):
    voucher: CreationVoucherBody
    signature: str


class AdvancementSubmission(BaseModel):
    voucher: AdvancementVoucherBody
    signature: str


class VerifyResponse(BaseModel):
    signer: str
    digest: str
    authorized: bool


class DomainResponse(BaseModel):
    name: str
    version: str
    chainId: int
    verifyingContract: str
    separator: str


class ItemResponse(BaseModel):
    item_id: int
    owner: str
    stage: int
    auxiliary: Dict[str, Any] = Field(default_factory=dict)


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)
