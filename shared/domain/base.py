"""
Base Domain Classes

Building blocks shared by the booking and finance contexts:
- Entity: object with identity
- ValueObject: immutable, compared by value
- Aggregate: consistency boundary that records domain events
- DomainEvent: fact that happened inside an aggregate
"""

from abc import ABC
from dataclasses import dataclass, field, fields
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Entity(ABC):
    """
    Base class for entities

    Two entities are equal when their identifiers are equal.
    """
    id: UUID = field(default_factory=uuid4)

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True)
class ValueObject(ABC):
    """Immutable object without identity."""
    pass


@dataclass
class Aggregate(Entity):
    """
    Base class for aggregate roots

    Events are buffered on the aggregate and handed to the unit of work,
    which publishes them once the surrounding transaction has committed.
    """
    _events: List['DomainEvent'] = field(default_factory=list, repr=False, init=False, compare=False)

    def add_event(self, event: 'DomainEvent'):
        self._events.append(event)

    def clear_events(self):
        self._events.clear()

    @property
    def events(self) -> List['DomainEvent']:
        """Copy of the buffered events"""
        return self._events.copy()


def _serialize(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    return value


@dataclass
class DomainEvent:
    """
    Base class for domain events

    Subclasses declare their payload as dataclass fields; every field
    ends up in ``to_dict()`` so handlers and logs see the same shape.
    """
    event_id: UUID = field(default_factory=uuid4, kw_only=True)
    occurred_at: datetime = field(default_factory=utcnow, kw_only=True)
    aggregate_id: Any = field(default=None, kw_only=True)

    def to_dict(self) -> dict:
        payload = {
            f.name: _serialize(getattr(self, f.name))
            for f in fields(self)
            if f.name not in ('event_id', 'occurred_at', 'aggregate_id')
        }
        return {
            'event_id': str(self.event_id),
            'event_type': self.__class__.__name__,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': str(self.aggregate_id) if self.aggregate_id is not None else None,
            'payload': payload,
        }
