"""
Signing Authority

Role membership backs the trust decision for recovered signers. Membership
can change at any moment; the trust oracle therefore looks it up on every
call and never caches an answer. Revoking a signer invalidates all of its
outstanding vouchers immediately.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Set

from eth_utils import keccak

from .logging_config import audit_log
from .util import is_zero_address, normalize_address


def role_id(name: str) -> bytes:
    """Role identifier: keccak256 of the role name."""
    return keccak(text=name)


DEFAULT_ADMIN_ROLE = b"\x00" * 32
MINTER_ROLE = role_id("MINTER_ROLE")

ROLE_NAMES: Dict[bytes, str] = {
    DEFAULT_ADMIN_ROLE: "DEFAULT_ADMIN_ROLE",
    MINTER_ROLE: "MINTER_ROLE",
}


def role_label(role: bytes) -> str:
    return ROLE_NAMES.get(role, "0x" + role.hex())


class AccessControl(ABC):
    """
    Abstract role store.

    Grant and revoke are idempotent; each returns True only when membership
    actually changed.
    """

    @abstractmethod
    def has_role(self, role: bytes, account: str) -> bool:
        pass

    @abstractmethod
    def grant_role(self, role: bytes, account: str) -> bool:
        pass

    @abstractmethod
    def revoke_role(self, role: bytes, account: str) -> bool:
        pass

    @abstractmethod
    def members(self, role: bytes) -> List[str]:
        pass


class InMemoryAccessControl(AccessControl):
    """Thread-safe in-process role store."""

    def __init__(self):
        self._roles: Dict[bytes, Set[str]] = {}
        self._lock = threading.Lock()

    def has_role(self, role: bytes, account: str) -> bool:
        try:
            account = normalize_address(account)
        except ValueError:
            return False
        with self._lock:
            return account in self._roles.get(role, ())

    def grant_role(self, role: bytes, account: str) -> bool:
        account = normalize_address(account)
        with self._lock:
            holders = self._roles.setdefault(role, set())
            if account in holders:
                return False
            holders.add(account)
        audit_log.role_changed(role_label(role), account, granted=True)
        return True

    def revoke_role(self, role: bytes, account: str) -> bool:
        account = normalize_address(account)
        with self._lock:
            holders = self._roles.get(role)
            if not holders or account not in holders:
                return False
            holders.discard(account)
        audit_log.role_changed(role_label(role), account, granted=False)
        return True

    def members(self, role: bytes) -> List[str]:
        with self._lock:
            return sorted(self._roles.get(role, ()))


class TrustOracle:
    """
    Answers whether an identity currently holds signing authority.

    The zero address is never authorized, whatever the role store says.
    """

    def __init__(self, access_control: AccessControl, role: bytes = MINTER_ROLE):
        self.access_control = access_control
        self.role = role

    def is_authorized(self, identity: str) -> bool:
        if is_zero_address(identity):
            return False
        return self.access_control.has_role(self.role, identity)
