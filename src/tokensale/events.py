"""
Ordered event log for off-chain indexing.

Ledgers append one event per committed state transition. The log takes part in
atomic sections, so events appended by a call that later aborts are dropped
before anyone can read them. Consumers poll with since(sequence) and never see
an event twice.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class EventType(Enum):
    CREATED = "Created"
    PAID = "Paid"
    RELEASED = "Released"
    RECLAIMED = "Reclaimed"
    DISPUTE = "Dispute"
    NEW_BUYER = "NewBuyer"
    NEW_TOKEN_GRANT = "NewTokenGrant"
    NEW_TOKEN_CLAIM = "NewTokenClaim"
    SALE_STOPPED = "SaleStopped"
    SALE_RESUMED = "SaleResumed"
    SALE_FINALIZED = "SaleFinalized"


@dataclass(frozen=True)
class LedgerEvent:
    """Immutable record of a completed state transition."""

    sequence: int
    event_type: EventType
    source: str
    payload: Mapping[str, Any]
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "event": self.event_type.value,
            "source": self.source,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


class EventLog:
    """Append-only, sequence-numbered event store shared by the ledgers."""

    def __init__(self) -> None:
        self._events: list[LedgerEvent] = []
        self._lock = threading.RLock()

    def emit(
        self,
        event_type: EventType,
        source: str,
        payload: Mapping[str, Any],
        timestamp: int | None = None,
    ) -> LedgerEvent:
        with self._lock:
            event = LedgerEvent(
                sequence=len(self._events) + 1,
                event_type=event_type,
                source=source,
                payload=MappingProxyType(dict(payload)),
                timestamp=int(timestamp) if timestamp is not None else int(time.time()),
            )
            self._events.append(event)
            return event

    def since(self, sequence: int = 0) -> list[LedgerEvent]:
        """Events with a sequence number greater than `sequence`."""
        with self._lock:
            return self._events[max(sequence, 0):]

    def of_type(self, event_type: EventType) -> list[LedgerEvent]:
        with self._lock:
            return [event for event in self._events if event.event_type is event_type]

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return len(self._events)

    def __len__(self) -> int:
        return self.last_sequence

    def snapshot(self) -> int:
        return self.last_sequence

    def restore(self, state: int) -> None:
        with self._lock:
            del self._events[state:]
