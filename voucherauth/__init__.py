"""
voucherauth: Signed Voucher Authorization

Version: 1.0.0

Off-system issuers sign vouchers; anyone may relay them. A voucher is applied
at most once, only if its signer currently holds signing authority, only
before its deadline, and only on the deployment it was signed for.

Two voucher kinds exist:
    CreationVoucher(recipient, sequence, expiresAt)
        creates one item; `sequence` must equal the recipient's counter
    AdvancementVoucher(itemId, stage, avatar, expiresAt)
        moves an existing item strictly forward to `stage`

Signatures are EIP-712 typed-data signatures over secp256k1, so any standard
wallet can produce them.

Usage:
    from voucherauth import (
        CreationVoucher,
        InMemoryAccessControl,
        InMemoryItemRegistry,
        MINTER_ROLE,
        TrustOracle,
        VoucherDomain,
        VoucherProcessor,
        VoucherSigner,
    )

    domain = VoucherDomain(chain_id=1, verifying_contract="0x...")
    issuer = VoucherSigner.generate()

    roles = InMemoryAccessControl()
    roles.grant_role(MINTER_ROLE, issuer.address)
    processor = VoucherProcessor(domain, InMemoryItemRegistry(), TrustOracle(roles))

    voucher = CreationVoucher(recipient="0x...", sequence=0, expires_at=deadline)
    event = processor.apply_creation(voucher, issuer.sign(domain, voucher))
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    FailureCode,
    VoucherError,
    MalformedSignature,
    InvalidSignatureEncoding,
    UnauthorizedSigner,
    StaleOrFutureSequence,
    InvalidStageTransition,
    VoucherExpired,
    UnknownItem,
)

# Domain and vouchers
from .domain import VoucherDomain, domain_separator, DOMAIN_TYPE_HASH
from .vouchers import CreationVoucher, AdvancementVoucher, voucher_from_typed_data

# Hashing
from .hashing import (
    type_string,
    type_hash,
    struct_hash,
    typed_data_digest,
    voucher_digest,
    build_typed_data,
    CREATION_TYPE_HASH,
    ADVANCEMENT_TYPE_HASH,
)

# Signatures
from .signing import VoucherSigner, decode_signature, recover_signer

# Authority
from .roles import (
    AccessControl,
    InMemoryAccessControl,
    TrustOracle,
    DEFAULT_ADMIN_ROLE,
    MINTER_ROLE,
    role_id,
)

# Collaborators
from .registry import ItemRegistry, InMemoryItemRegistry
from .replay import ReplayStore, InMemoryReplayStore, ReplayGuard
from .events import EventSink, InMemoryEventLog, ItemCreated, ItemAdvanced

# Pipeline
from .processor import VoucherProcessor


__all__ = [
    # Version
    "__version__",

    # Errors
    "FailureCode",
    "VoucherError",
    "MalformedSignature",
    "InvalidSignatureEncoding",
    "UnauthorizedSigner",
    "StaleOrFutureSequence",
    "InvalidStageTransition",
    "VoucherExpired",
    "UnknownItem",

    # Domain and vouchers
    "VoucherDomain",
    "domain_separator",
    "DOMAIN_TYPE_HASH",
    "CreationVoucher",
    "AdvancementVoucher",
    "voucher_from_typed_data",

    # Hashing
    "type_string",
    "type_hash",
    "struct_hash",
    "typed_data_digest",
    "voucher_digest",
    "build_typed_data",
    "CREATION_TYPE_HASH",
    "ADVANCEMENT_TYPE_HASH",

    # Signatures
    "VoucherSigner",
    "decode_signature",
    "recover_signer",

    # Authority
    "AccessControl",
    "InMemoryAccessControl",
    "TrustOracle",
    "DEFAULT_ADMIN_ROLE",
    "MINTER_ROLE",
    "role_id",

    # Collaborators
    "ItemRegistry",
    "InMemoryItemRegistry",
    "ReplayStore",
    "InMemoryReplayStore",
    "ReplayGuard",
    "EventSink",
    "InMemoryEventLog",
    "ItemCreated",
    "ItemAdvanced",

    # Pipeline
    "VoucherProcessor",
]
