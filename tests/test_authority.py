"""
Signing Authority and Service Support Test Suite

Role membership is consulted live on every call; configuration and rate
limiting behave as documented.
"""

import unittest
from unittest import mock

from eth_utils import keccak

from voucherauth import (
    DEFAULT_ADMIN_ROLE,
    InMemoryAccessControl,
    MINTER_ROLE,
    TrustOracle,
    role_id,
)
from voucherauth import config
from voucherauth.rate_limit import RateLimiter
from voucherauth.util import ZERO_ADDRESS

from vectors import ALICE, CHAIN_ID, CONTRACT, ISSUER_ADDRESS


class TestRoles(unittest.TestCase):
    """Role identifiers and membership."""

    def test_role_ids(self):
        self.assertEqual(MINTER_ROLE, keccak(text="MINTER_ROLE"))
        self.assertEqual(role_id("MINTER_ROLE"), MINTER_ROLE)
        self.assertEqual(DEFAULT_ADMIN_ROLE, b"\x00" * 32)

    def test_grant_and_revoke_are_idempotent(self):
        roles = InMemoryAccessControl()
        self.assertTrue(roles.grant_role(MINTER_ROLE, ISSUER_ADDRESS))
        self.assertFalse(roles.grant_role(MINTER_ROLE, ISSUER_ADDRESS.lower()))
        self.assertEqual(roles.members(MINTER_ROLE), [ISSUER_ADDRESS])
        self.assertTrue(roles.revoke_role(MINTER_ROLE, ISSUER_ADDRESS))
        self.assertFalse(roles.revoke_role(MINTER_ROLE, ISSUER_ADDRESS))
        self.assertEqual(roles.members(MINTER_ROLE), [])

    def test_roles_are_independent(self):
        roles = InMemoryAccessControl()
        roles.grant_role(DEFAULT_ADMIN_ROLE, ALICE)
        self.assertFalse(roles.has_role(MINTER_ROLE, ALICE))

    def test_role_changes_audited(self):
        roles = InMemoryAccessControl()
        with self.assertLogs("voucherauth.audit", level="INFO") as logs:
            roles.grant_role(MINTER_ROLE, ALICE)
            roles.revoke_role(MINTER_ROLE, ALICE)
        events = [r.extra_fields["event_type"] for r in logs.records]
        self.assertEqual(events, ["ROLE_GRANTED", "ROLE_REVOKED"])


class TestTrustOracle(unittest.TestCase):
    """Authority is looked up on every call."""

    def test_live_lookup(self):
        roles = InMemoryAccessControl()
        oracle = TrustOracle(roles)
        self.assertFalse(oracle.is_authorized(ALICE))
        roles.grant_role(MINTER_ROLE, ALICE)
        self.assertTrue(oracle.is_authorized(ALICE))
        roles.revoke_role(MINTER_ROLE, ALICE)
        self.assertFalse(oracle.is_authorized(ALICE))

    def test_no_caching(self):
        roles = InMemoryAccessControl()
        oracle = TrustOracle(roles)
        with mock.patch.object(roles, "has_role", return_value=True) as has_role:
            oracle.is_authorized(ALICE)
            oracle.is_authorized(ALICE)
        self.assertEqual(has_role.call_count, 2)

    def test_zero_address_never_authorized(self):
        roles = mock.Mock()
        roles.has_role.return_value = True
        self.assertFalse(TrustOracle(roles).is_authorized(ZERO_ADDRESS))
        roles.has_role.assert_not_called()

    def test_invalid_identity_not_authorized(self):
        self.assertFalse(TrustOracle(InMemoryAccessControl()).is_authorized("nobody"))


class TestConfig(unittest.TestCase):
    """Environment-driven configuration."""

    def test_load_domain(self):
        domain = config.load_domain()
        self.assertEqual(domain.chain_id, CHAIN_ID)
        self.assertEqual(domain.verifying_contract, CONTRACT)

    def test_load_signers(self):
        with mock.patch.object(config, "SIGNERS", f" {ALICE.lower()} , {ISSUER_ADDRESS},"):
            self.assertEqual(config.load_signers(), [ALICE, ISSUER_ADDRESS])

    def test_validate_config_clean(self):
        self.assertEqual(config.validate_config(), {})

    def test_validate_config_reports_problems(self):
        with mock.patch.multiple(
            config,
            CHAIN_ID="0",
            VERIFYING_CONTRACT="0x1234",
            SIGNERS="bogus",
            STORE_BACKEND="redis",
        ):
            problems = config.validate_config()
        self.assertEqual(
            set(problems),
            {"VOUCHER_CHAIN_ID", "VOUCHER_VERIFYING_CONTRACT", "VOUCHER_SIGNERS", "VOUCHER_STORE"},
        )


class TestRateLimiter(unittest.TestCase):
    """Sliding window."""

    def test_window(self):
        now = [1000.0]
        limiter = RateLimiter(2, window_seconds=60, clock=lambda: now[0])
        self.assertTrue(limiter.allow("a"))
        self.assertTrue(limiter.allow("a"))
        result = limiter.check("a")
        self.assertFalse(result.allowed)
        self.assertEqual(result.retry_after, 60.0)
        self.assertTrue(limiter.allow("b"))

        now[0] += 60
        self.assertTrue(limiter.allow("a"))

    def test_reset(self):
        limiter = RateLimiter(1)
        limiter.allow("a")
        self.assertFalse(limiter.allow("a"))
        limiter.reset("a")
        self.assertTrue(limiter.allow("a"))


if __name__ == "__main__":
    unittest.main()
