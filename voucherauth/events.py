"""
Transition Events

Every successful voucher application emits exactly one event. Rejected
vouchers emit nothing; they are only visible in the audit log.
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Union


class EventType:
    ITEM_CREATED = "ItemCreated"
    ITEM_ADVANCED = "ItemAdvanced"


@dataclass(frozen=True)
class ItemCreated:
    """A creation voucher was consumed and a new item minted."""
    recipient: str
    item_id: int
    sequence: int
    signer: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    event_type = EventType.ITEM_CREATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type,
            "recipient": self.recipient,
            "item_id": self.item_id,
            "sequence": self.sequence,
            "signer": self.signer,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


@dataclass(frozen=True)
class ItemAdvanced:
    """An advancement voucher was consumed and the item's stage moved."""
    item_id: int
    stage: int
    avatar: str
    signer: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    event_type = EventType.ITEM_ADVANCED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type,
            "item_id": self.item_id,
            "stage": self.stage,
            "avatar": self.avatar,
            "signer": self.signer,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


TransitionEvent = Union[ItemCreated, ItemAdvanced]


class EventSink(ABC):
    """Abstract destination for transition events."""

    @abstractmethod
    def emit(self, event: TransitionEvent) -> None:
        pass

    @abstractmethod
    def query(
        self,
        event_type: Optional[str] = None,
        item_id: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> List[TransitionEvent]:
        pass


class InMemoryEventLog(EventSink):
    """
    In-memory event log for development/testing.

    Keeps the most recent `max_events` events.
    """

    def __init__(self, max_events: int = 10000):
        self._events: Deque[TransitionEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def emit(self, event: TransitionEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        event_type: Optional[str] = None,
        item_id: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> List[TransitionEvent]:
        with self._lock:
            events = list(self._events)

        if event_type:
            events = [e for e in events if e.event_type == event_type]
        if item_id is not None:
            events = [e for e in events if e.item_id == item_id]
        if recipient:
            events = [e for e in events if getattr(e, "recipient", "").lower() == recipient.lower()]

        return events
