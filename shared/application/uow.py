"""
Unit of Work Pattern

Wraps a database transaction and holds domain events until it commits,
so handlers never observe a reservation or ledger write that was rolled back.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass

    @abstractmethod
    def add_event(self, event: DomainEvent):
        pass

    def collect_events(self, aggregate):
        """Move buffered events from an aggregate root into this unit of work"""
        new_events = getattr(aggregate, 'events', None)
        if not new_events:
            return
        for event in new_events:
            self.add_event(event)
        aggregate.clear_events()
        logger.debug(
            f"Collected {len(new_events)} events from "
            f"{aggregate.__class__.__name__} (ID: {aggregate.id})"
        )


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            venue = Venue.objects.select_for_update().get(pk=venue_id)
            schedule.allocate(reservation_id, interval)
            uow.collect_events(schedule)
            reservation.save()
        # events are published after the outermost commit
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def add_event(self, event: DomainEvent):
        self._events.append(event)

    def commit(self):
        """
        Schedule event publishing with transaction.on_commit(), which fires
        only once the outermost atomic block has been committed.
        """
        events = self._events.copy()
        self._events.clear()
        logger.debug(f"Committing unit of work with {len(events)} events")
        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        if self._events:
            logger.warning(f"Rolling back unit of work, discarding {len(self._events)} events")
        self._events.clear()

    def _publish_events(self, events: List[DomainEvent]):
        from shared.application.message_bus import message_bus

        try:
            message_bus.publish_events(events)
        except Exception as e:
            # Writes are already committed; a broken handler must not undo them.
            logger.error(f"Error publishing events: {e}", exc_info=True)
