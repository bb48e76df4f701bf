"""Message-bus subscribers for committed booking events."""

from __future__ import annotations

import structlog

from shared.application.message_bus import message_bus

from .cache import invalidate_intervals
from .domain.events import PaymentCaptured, PaymentStateChanged, ReservationCreated, SlotAllocated, SlotReleased

logger = structlog.get_logger("apps.bookings.audit")


@message_bus.subscribe(SlotAllocated, SlotReleased)
def drop_cached_availability(event) -> None:
    invalidate_intervals(event.venue_id, event.date)


@message_bus.subscribe(ReservationCreated, PaymentStateChanged, PaymentCaptured)
def audit_reservation_event(event) -> None:
    data = event.to_dict()
    logger.info(
        f"reservation.{data['event_type']}",
        event_id=data["event_id"],
        **data["payload"],
    )
