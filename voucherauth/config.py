"""
Configuration module for voucherauth.

Centralizes all configuration with environment variable support
and validation.
"""

import os
from typing import Dict, List

from .domain import DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION, VoucherDomain
from .util import normalize_address

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("VOUCHER_ENV", "dev")  # dev|stage|prod

# Domain binding
DOMAIN_NAME = os.getenv("VOUCHER_DOMAIN_NAME", DEFAULT_DOMAIN_NAME)
DOMAIN_VERSION = os.getenv("VOUCHER_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION)
CHAIN_ID = os.getenv("VOUCHER_CHAIN_ID", "31337")
VERIFYING_CONTRACT = os.getenv(
    "VOUCHER_VERIFYING_CONTRACT", "0x5FbDB2315678afecb367f032d93F642f64180aa3"
)

# Storage
STORE_BACKEND = os.getenv("VOUCHER_STORE", "memory")  # memory|sqlite
DB_PATH = os.getenv("VOUCHER_DB_PATH", "data/voucherauth.db")
FIRST_ITEM_ID = int(os.getenv("VOUCHER_FIRST_ITEM_ID", "0"))

# Addresses granted MINTER_ROLE at startup
SIGNERS = os.getenv("VOUCHER_SIGNERS", "")

# Rate limits (requests per minute)
APPLY_RPM = int(os.getenv("APPLY_RPM", "120"))

# Logging
LOG_LEVEL = os.getenv("VOUCHER_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("VOUCHER_LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Loaders
# ============================================================

def load_domain() -> VoucherDomain:
    """Build the deployment domain from configuration."""
    return VoucherDomain(
        chain_id=int(CHAIN_ID),
        verifying_contract=VERIFYING_CONTRACT,
        name=DOMAIN_NAME,
        version=DOMAIN_VERSION,
    )


def load_signers() -> List[str]:
    """Checksummed addresses listed in VOUCHER_SIGNERS."""
    return [
        normalize_address(entry.strip(), "VOUCHER_SIGNERS entry")
        for entry in SIGNERS.split(",")
        if entry.strip()
    ]


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, str]:
    """
    Validate configuration values.
    Returns dict of setting -> problem; empty when everything is usable.
    """
    problems: Dict[str, str] = {}

    try:
        chain_id = int(CHAIN_ID)
        if chain_id <= 0:
            problems["VOUCHER_CHAIN_ID"] = "must be positive"
    except ValueError:
        problems["VOUCHER_CHAIN_ID"] = f"not an integer: {CHAIN_ID!r}"

    try:
        normalize_address(VERIFYING_CONTRACT, "VOUCHER_VERIFYING_CONTRACT")
    except ValueError as e:
        problems["VOUCHER_VERIFYING_CONTRACT"] = str(e)

    try:
        load_signers()
    except ValueError as e:
        problems["VOUCHER_SIGNERS"] = str(e)

    if STORE_BACKEND not in ("memory", "sqlite"):
        problems["VOUCHER_STORE"] = f"unknown backend: {STORE_BACKEND!r}"

    if FIRST_ITEM_ID < 0:
        problems["VOUCHER_FIRST_ITEM_ID"] = "must not be negative"

    return problems


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("VOUCHER_DEBUG", "").lower() in ("1", "true", "yes")
