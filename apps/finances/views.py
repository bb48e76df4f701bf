"""API views for ledger entries, payout batches and reconciliation.

Admin-only: these surfaces expose platform commission and venue
payables across all venues.
"""

from __future__ import annotations

import logging

from rest_framework import mixins, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.users.permissions import IsPlatformAdmin

from .models import PaymentLedgerEntry, PayoutBatch, ReconciliationSnapshot
from .serializers import (
    GenerateBatchSerializer,
    MarkPaidSerializer,
    PaymentLedgerEntrySerializer,
    PayoutBatchSerializer,
    ReconciliationQuerySerializer,
    ReconciliationSnapshotSerializer,
)
from .services import PayoutReconciler

logger = logging.getLogger(__name__)


class PaymentLedgerEntryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = PaymentLedgerEntry.objects.select_related("reservation").all()
    serializer_class = PaymentLedgerEntrySerializer
    permission_classes = [IsPlatformAdmin]
    filterset_fields = ["venue", "status", "collected_by", "payout_batch"]


class PayoutBatchViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = PayoutBatch.objects.select_related("venue").all()
    serializer_class = PayoutBatchSerializer
    permission_classes = [IsPlatformAdmin]
    filterset_fields = ["venue", "status"]

    reconciler_class = PayoutReconciler

    def get_reconciler(self) -> PayoutReconciler:
        return self.reconciler_class()

    @action(detail=False, methods=["post"])
    def generate(self, request):  # type: ignore
        serializer = GenerateBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = self.get_reconciler().generate_batch(
            serializer.validated_data["venue"],
            serializer.validated_data["period_start"],
            serializer.validated_data["period_end"],
        )
        if batch is None:
            return Response({"detail": "Nothing to pay out for this period."}, status=status.HTTP_200_OK)
        return Response(PayoutBatchSerializer(batch).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):  # type: ignore
        batch: PayoutBatch = self.get_object()  # type: ignore
        batch = self.get_reconciler().process_batch(batch)
        return Response(PayoutBatchSerializer(batch).data)

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):  # type: ignore
        batch: PayoutBatch = self.get_object()  # type: ignore
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = self.get_reconciler().mark_batch_paid(batch, serializer.validated_data.get("reference", ""))
        return Response(PayoutBatchSerializer(batch).data)


class ReconciliationView(APIView):
    """Outstanding balance for one venue, optionally limited to a revenue period."""

    permission_classes = [IsPlatformAdmin]

    def get(self, request):  # type: ignore
        query = ReconciliationQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        venue = query.validated_data["venue"]
        result = PayoutReconciler().reconcile(
            venue,
            query.validated_data.get("period_start"),
            query.validated_data.get("period_end"),
        )
        latest = ReconciliationSnapshot.objects.filter(venue=venue).first()
        data = result.to_dict()
        data["drift_detected"] = bool(latest and latest.drift_detected)
        return Response(data)


class ReconciliationSnapshotViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ReconciliationSnapshot.objects.all()
    serializer_class = ReconciliationSnapshotSerializer
    permission_classes = [IsPlatformAdmin]
    filterset_fields = ["venue", "drift_detected"]
