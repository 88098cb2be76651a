import os

import pytest

# Configuration is read at import time; pin it before voucherauth.config loads.
os.environ["VOUCHER_ENV"] = "dev"
os.environ["VOUCHER_STORE"] = "memory"
os.environ["VOUCHER_CHAIN_ID"] = "31337"
os.environ["VOUCHER_VERIFYING_CONTRACT"] = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
os.environ["VOUCHER_SIGNERS"] = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
os.environ["VOUCHER_FIRST_ITEM_ID"] = "0"
os.environ["APPLY_RPM"] = "1000"
os.environ["VOUCHER_LOG_LEVEL"] = "WARNING"


@pytest.fixture
def api_app():
    """Relay app with fresh in-memory state."""
    from voucherauth import api
    from vectors import ISSUER_ADDRESS

    api._startup()
    api.ROLES.grant_role(api.MINTER_ROLE, ISSUER_ADDRESS)
    return api.app
