"""Celery tasks for payouts and reconciliation."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from apps.venues.models import Venue

from .domain.errors import PayoutConfigurationError, PayoutError
from .services import PayoutReconciler

logger = logging.getLogger(__name__)


@shared_task(name="finances.generate_payout_batches")
def generate_payout_batches() -> dict[str, int]:
    """
    Build payout batches for venues whose payout day is today.

    Runs daily; each venue's frequency (daily, weekly on Mondays,
    monthly on the 1st) decides whether it gets a batch.
    """
    batches = PayoutReconciler().generate_due_batches()
    if batches:
        logger.info(f"Generated {len(batches)} payout batches")
    return {"generated": len(batches)}


@shared_task(name="finances.process_payout_batch")
def process_payout_batch(batch_id: int) -> str:
    from .models import PayoutBatch

    batch = PayoutBatch.objects.select_related("venue", "venue__payout_details").get(pk=batch_id)
    try:
        batch = PayoutReconciler().process_batch(batch)
    except PayoutConfigurationError as e:
        logger.error(f"Payout batch {batch_id} blocked by configuration: {e}")
        return "blocked"
    except PayoutError as e:
        logger.warning(f"Payout batch {batch_id} not processed: {e}")
        return "skipped"
    return batch.status


@shared_task(name="finances.check_reconciliation_drift")
def check_reconciliation_drift() -> dict[str, list[int]]:
    """Snapshot outstanding balances and report venues whose balance keeps growing."""
    drifting = PayoutReconciler().detect_drift_for_all(Venue.objects.filter(is_active=True))
    venue_ids = [snapshot.venue_id for snapshot in drifting]
    if venue_ids:
        logger.warning(f"Reconciliation drift detected for venues {venue_ids}")
    return {"drift": venue_ids}
