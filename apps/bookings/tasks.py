"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .application.commitment import PaymentCommitmentMachine

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (scheduled by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_stale_reservations")
def expire_stale_reservations() -> dict[str, int]:
    """
    Release slots held by reservations that never finished paying.

    Processing or unpaid reservations older than
    RESERVATION_PROCESSING_TIMEOUT_MINUTES become failed; pay-at-venue
    reservations are cancelled only when PAY_AT_VENUE_HOLD_MINUTES is set.

    Returns:
        dict: {"failed": n, "cancelled": m}
    """
    return PaymentCommitmentMachine().expire_stale()
