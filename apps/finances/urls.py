"""URL routing for the finance domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import (
    PaymentLedgerEntryViewSet,
    PayoutBatchViewSet,
    ReconciliationSnapshotViewSet,
    ReconciliationView,
)

router = DefaultRouter()
router.register(r"ledger", PaymentLedgerEntryViewSet, basename="ledger-entry")
router.register(r"payouts", PayoutBatchViewSet, basename="payout-batch")
router.register(r"reconciliation/snapshots", ReconciliationSnapshotViewSet, basename="reconciliation-snapshot")

urlpatterns = [
    path("reconciliation/", ReconciliationView.as_view(), name="reconciliation"),
    path("", include(router.urls)),
]
