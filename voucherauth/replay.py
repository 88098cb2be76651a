"""
Replay Guard

Two independent anti-replay policies:

- Creation (per recipient): the voucher sequence must equal the recipient's
  counter. Consuming it bumps the counter by exactly one, so a sequence number
  can be consumed once and pre-issued vouchers only in issuance order.
- Advancement (per item): the voucher stage must be strictly greater than the
  item's current stage. Consuming it sets the stage to the voucher value,
  which lets the signer skip stages.

Store updates are compare-and-set so that two submissions of the same voucher
can never both consume it, even across processes sharing a store. Within one
process, per-key locks serialize the check-then-mutate sequence.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List

from .errors import InvalidStageTransition, StaleOrFutureSequence
from .util import normalize_address
from .vouchers import AdvancementVoucher, CreationVoucher


class ReplayStore(ABC):
    """
    Abstract counter/stage store.

    Unknown recipients read as sequence 0, unknown items as stage 0.
    """

    @abstractmethod
    def get_sequence(self, identity: str) -> int:
        pass

    @abstractmethod
    def get_stage(self, item_id: int) -> int:
        pass

    @abstractmethod
    def compare_and_set_sequence(self, identity: str, expected: int, new: int) -> bool:
        """Set the counter to `new` only if it currently equals `expected`."""
        pass

    @abstractmethod
    def compare_and_set_stage(self, item_id: int, expected: int, new: int) -> bool:
        """Set the stage to `new` only if it currently equals `expected`."""
        pass

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Scope whose writes become visible together.

        Stores without transactions yield a plain scope; the caller then
        undoes its own writes on failure.
        """
        yield


class InMemoryReplayStore(ReplayStore):
    """
    In-memory replay store for development/testing.

    WARNING: Not persistent. Losing this state re-opens every consumed
    voucher to replay; use SqliteReplayStore where that matters.
    """

    def __init__(self):
        self._sequences: Dict[str, int] = {}
        self._stages: Dict[int, int] = {}
        self._lock = threading.Lock()

    def get_sequence(self, identity: str) -> int:
        with self._lock:
            return self._sequences.get(identity, 0)

    def get_stage(self, item_id: int) -> int:
        with self._lock:
            return self._stages.get(item_id, 0)

    def compare_and_set_sequence(self, identity: str, expected: int, new: int) -> bool:
        with self._lock:
            if self._sequences.get(identity, 0) != expected:
                return False
            self._sequences[identity] = new
            return True

    def compare_and_set_stage(self, item_id: int, expected: int, new: int) -> bool:
        with self._lock:
            if self._stages.get(item_id, 0) != expected:
                return False
            self._stages[item_id] = new
            return True


class KeyedLocks:
    """
    Re-entrant lock per key, alive only while held or awaited.

    Each entry is [lock, holders]; the entry is dropped when the last
    holder releases, so arbitrary keys never accumulate.
    """

    def __init__(self):
        self._locks: Dict[Hashable, List] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class ReplayGuard:
    """Applies the creation and advancement freshness policies to a store."""

    def __init__(self, store: ReplayStore):
        self.store = store
        self._locks = KeyedLocks()

    def recipient_lock(self, identity: str):
        return self._locks.hold(("recipient", normalize_address(identity)))

    def item_lock(self, item_id: int):
        return self._locks.hold(("item", item_id))

    def atomic(self):
        return self.store.atomic()

    def current_sequence(self, identity: str) -> int:
        identity = normalize_address(identity)
        with self.recipient_lock(identity):
            return self.store.get_sequence(identity)

    def current_stage(self, item_id: int) -> int:
        with self.item_lock(item_id):
            return self.store.get_stage(item_id)

    # Creation policy

    def check_sequence(self, voucher: CreationVoucher) -> None:
        current = self.store.get_sequence(voucher.recipient)
        if voucher.sequence != current:
            raise StaleOrFutureSequence(
                f"sequence {voucher.sequence} does not match counter for {voucher.recipient}",
                required=f"sequence == {current}",
                observed=f"sequence = {voucher.sequence}",
            )

    def consume_sequence(self, voucher: CreationVoucher) -> None:
        if not self.store.compare_and_set_sequence(
            voucher.recipient, voucher.sequence, voucher.sequence + 1
        ):
            raise StaleOrFutureSequence(
                f"sequence {voucher.sequence} was consumed concurrently",
                required=f"sequence == {voucher.sequence}",
                observed="counter moved",
            )

    def rewind_sequence(self, voucher: CreationVoucher) -> None:
        self.store.compare_and_set_sequence(
            voucher.recipient, voucher.sequence + 1, voucher.sequence
        )

    # Advancement policy

    def check_stage(self, voucher: AdvancementVoucher) -> int:
        """Return the current stage if the voucher moves strictly forward."""
        current = self.store.get_stage(voucher.item_id)
        if voucher.stage <= current:
            raise InvalidStageTransition(
                f"stage {voucher.stage} does not advance item {voucher.item_id}",
                required=f"stage > {current}",
                observed=f"stage = {voucher.stage}",
            )
        return current

    def consume_stage(self, voucher: AdvancementVoucher, current: int) -> None:
        if not self.store.compare_and_set_stage(voucher.item_id, current, voucher.stage):
            raise InvalidStageTransition(
                f"stage of item {voucher.item_id} changed concurrently",
                required=f"stage == {current}",
                observed="stage moved",
            )

    def rewind_stage(self, voucher: AdvancementVoucher, previous: int) -> None:
        self.store.compare_and_set_stage(voucher.item_id, voucher.stage, previous)
