"""
Item Registry

The registry of unique items is an external collaborator. The voucher
pipeline only needs to ask whether an item exists, create an item for an
owner, and record auxiliary fields on an item. Ownership transfer and
enumeration belong to the registry itself and are not modelled here.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .util import is_zero_address, normalize_address


class ItemRegistry(ABC):
    """
    Abstract item registry.

    Implementations must hand out sequential, never-reused item ids.
    """

    @abstractmethod
    def exists(self, item_id: int) -> bool:
        pass

    @abstractmethod
    def create(self, owner: str) -> int:
        """Create a new item owned by `owner` and return its id."""
        pass

    @abstractmethod
    def set_auxiliary(self, item_id: int, fields: Dict[str, Any]) -> None:
        """Replace the auxiliary fields of an existing item."""
        pass

    @abstractmethod
    def discard(self, item_id: int) -> None:
        """Remove an item whose creating transition was aborted."""
        pass

    @abstractmethod
    def owner_of(self, item_id: int) -> Optional[str]:
        pass

    @abstractmethod
    def auxiliary(self, item_id: int) -> Dict[str, Any]:
        pass

    @abstractmethod
    def total_items(self) -> int:
        pass


class InMemoryItemRegistry(ItemRegistry):
    """
    In-memory registry for development/testing.

    WARNING: Not persistent across restarts. Use SqliteItemRegistry for
    anything that must survive a restart.
    """

    def __init__(self, first_item_id: int = 0):
        self._next_id = first_item_id
        self._owners: Dict[int, str] = {}
        self._aux: Dict[int, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def exists(self, item_id: int) -> bool:
        with self._lock:
            return item_id in self._owners

    def create(self, owner: str) -> int:
        owner = normalize_address(owner, "owner")
        if is_zero_address(owner):
            raise ValueError("cannot create an item for the zero address")
        with self._lock:
            item_id = self._next_id
            self._next_id += 1
            self._owners[item_id] = owner
            self._aux[item_id] = {}
            return item_id

    def set_auxiliary(self, item_id: int, fields: Dict[str, Any]) -> None:
        with self._lock:
            if item_id not in self._owners:
                raise KeyError(f"Item not found: {item_id}")
            self._aux[item_id] = dict(fields)

    def discard(self, item_id: int) -> None:
        with self._lock:
            self._owners.pop(item_id, None)
            self._aux.pop(item_id, None)

    def owner_of(self, item_id: int) -> Optional[str]:
        with self._lock:
            return self._owners.get(item_id)

    def auxiliary(self, item_id: int) -> Dict[str, Any]:
        with self._lock:
            if item_id not in self._owners:
                raise KeyError(f"Item not found: {item_id}")
            return dict(self._aux[item_id])

    def total_items(self) -> int:
        with self._lock:
            return len(self._owners)
