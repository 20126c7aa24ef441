"""Outcome events and assignment notifications.

Outcome events are produced outside the core and only read by the
results analyzer. Assignment notifications go out through listeners the
caller registers on the assignment engine.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from splitlab.experimentation.models import VariantAssignment


@dataclass
class OutcomeEvent:
    """Single outcome event emitted by a subject."""

    subject_id: str
    event_name: str
    value: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "subject_id": self.subject_id,
            "event_name": self.event_name,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "properties": self.properties,
        }


class EventStore(ABC):
    """Abstract outcome event storage."""

    @abstractmethod
    def record(self, event: OutcomeEvent) -> None:
        """Store an event."""
        pass

    @abstractmethod
    def query(
        self,
        subject_ids: Iterable[str],
        event_name: str,
    ) -> list[OutcomeEvent]:
        """Events named ``event_name`` emitted by any of ``subject_ids``."""
        pass


class InMemoryEventStore(EventStore):
    """In-memory event storage for development/testing."""

    def __init__(self, max_records: int = 1_000_000):
        """Initialize store.

        Args:
            max_records: Maximum events to keep in memory.
        """
        self.max_records = max_records
        self._events: list[OutcomeEvent] = []
        self._lock = threading.Lock()

    def record(self, event: OutcomeEvent) -> None:
        with self._lock:
            self._events.append(event)

            if len(self._events) > self.max_records:
                self._events = self._events[-self.max_records:]

    def query(
        self,
        subject_ids: Iterable[str],
        event_name: str,
    ) -> list[OutcomeEvent]:
        wanted = set(subject_ids)
        if not wanted:
            return []

        with self._lock:
            return [
                e
                for e in self._events
                if e.event_name == event_name and e.subject_id in wanted
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        """Clear all events."""
        with self._lock:
            self._events.clear()


class AssignmentListener(Protocol):
    """Callback invoked after a new assignment has been persisted."""

    def __call__(self, assignment: VariantAssignment) -> None: ...


class EventStoreAssignmentRecorder:
    """Records each new assignment as an event in an event store."""

    def __init__(self, event_store: EventStore, event_name: str = "experiment_assignment"):
        self.event_store = event_store
        self.event_name = event_name

    def __call__(self, assignment: VariantAssignment) -> None:
        self.event_store.record(
            OutcomeEvent(
                subject_id=assignment.subject_id,
                event_name=self.event_name,
                timestamp=assignment.assigned_at,
                properties={
                    "experiment_id": assignment.experiment_id,
                    "variant_id": assignment.variant_id,
                },
            )
        )
