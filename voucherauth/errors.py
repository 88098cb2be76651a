"""
Voucher Failure Taxonomy

Every rejection of a voucher maps to exactly one failure code. Failures are
terminal for the exact voucher that produced them: a corrected voucher with a
fresh signature is required.
"""

from enum import Enum
from typing import Any, Dict, Optional


class FailureCode(str, Enum):
    """Failure codes surfaced to callers."""
    MALFORMED_SIGNATURE = "MALFORMED_SIGNATURE"
    INVALID_SIGNATURE_ENCODING = "INVALID_SIGNATURE_ENCODING"
    UNAUTHORIZED_SIGNER = "UNAUTHORIZED_SIGNER"
    STALE_OR_FUTURE_SEQUENCE = "STALE_OR_FUTURE_SEQUENCE"
    INVALID_STAGE_TRANSITION = "INVALID_STAGE_TRANSITION"
    VOUCHER_EXPIRED = "VOUCHER_EXPIRED"
    UNKNOWN_ITEM = "UNKNOWN_ITEM"


class VoucherError(Exception):
    """
    Base class for voucher rejections. Abstract: raise a subclass.

    Carries the same required/observed pair the audit log records, so a
    rejection can be explained without re-running the pipeline.
    """

    code: Optional[FailureCode] = None

    def __init__(self, message: str, required: Optional[str] = None, observed: Optional[str] = None):
        if self.code is None:
            raise TypeError(f"{type(self).__name__} has no failure code; raise a subclass")
        self.message = message
        self.required = required
        self.observed = observed
        super().__init__(f"{self.code.value}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        d = {"error": self.code.value, "message": self.message}
        if self.required is not None:
            d["required"] = self.required
        if self.observed is not None:
            d["observed"] = self.observed
        return d


class MalformedSignature(VoucherError):
    """Signature is not exactly 65 bytes (or not decodable hex)."""
    code = FailureCode.MALFORMED_SIGNATURE


class InvalidSignatureEncoding(VoucherError):
    """Signature components are out of range or non-canonical."""
    code = FailureCode.INVALID_SIGNATURE_ENCODING


class UnauthorizedSigner(VoucherError):
    """Recovered signer is the zero address or lacks signing authority."""
    code = FailureCode.UNAUTHORIZED_SIGNER


class StaleOrFutureSequence(VoucherError):
    """Creation voucher sequence does not match the recipient's counter."""
    code = FailureCode.STALE_OR_FUTURE_SEQUENCE


class InvalidStageTransition(VoucherError):
    """Advancement voucher stage is not strictly above the current stage."""
    code = FailureCode.INVALID_STAGE_TRANSITION


class VoucherExpired(VoucherError):
    """Voucher deadline has passed."""
    code = FailureCode.VOUCHER_EXPIRED


class UnknownItem(VoucherError):
    """Advancement voucher targets an item that does not exist."""
    code = FailureCode.UNKNOWN_ITEM

