"""API views for venues: settings, manual blocks, payout details and availability."""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404  # type: ignore
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.services import availability_for, block_interval, calendar_for, recheck_for, remove_block
from apps.users.permissions import IsPlatformAdmin, IsVenueOwnerOrAdmin, is_platform_admin

from .models import Venue, VenueBlock, VenuePayoutDetails
from .serializers import (
    AvailabilityQuerySerializer,
    VenueBlockSerializer,
    VenueCommissionSerializer,
    VenuePayoutDetailsSerializer,
    VenueSerializer,
)

logger = logging.getLogger(__name__)

PUBLIC_ACTIONS = ("list", "retrieve", "availability", "calendar")


class VenueViewSet(viewsets.ModelViewSet):
    """Venues are public to browse; owners manage their own, admins manage commission."""

    queryset = Venue.objects.select_related("owner").all()
    serializer_class = VenueSerializer
    filterset_fields = ["city", "is_active", "allows_pay_at_venue", "allows_advance_payment"]

    def get_permissions(self):  # type: ignore
        if self.action in PUBLIC_ACTIONS:
            return [permissions.AllowAny()]
        if self.action == "commission":
            return [IsPlatformAdmin()]
        return [IsVenueOwnerOrAdmin()]

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        if self.action in PUBLIC_ACTIONS:
            return qs.filter(is_active=True)
        user = self.request.user
        if is_platform_admin(user):
            return qs
        return qs.filter(owner=user)

    def perform_create(self, serializer):  # type: ignore
        user = self.request.user
        if not (is_platform_admin(user) or user.is_venue_owner()):
            raise PermissionDenied("Only venue owners can list venues.")
        venue = serializer.save(owner=user)
        logger.info(f"Venue {venue.pk} created by user {user.pk}")

    @action(detail=True, methods=["get"])
    def availability(self, request, pk=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        on_date = query.validated_data["date"]
        duration = query.validated_data.get("duration") or venue.slot_duration_minutes

        if "start_time" in query.validated_data:
            candidate = recheck_for(venue, on_date, query.validated_data["start_time"], duration)
            return Response({**candidate.to_dict(), "invalidate_selection": not candidate.available})

        slots = availability_for(venue, on_date, duration)
        return Response({
            "venue_id": venue.pk,
            "date": on_date.isoformat(),
            "duration_minutes": duration,
            "slots": [slot.to_dict() for slot in slots],
        })

    @action(detail=True, methods=["get"])
    def calendar(self, request, pk=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return Response(calendar_for(venue, query.validated_data["date"]))

    @action(detail=True, methods=["get", "post"])
    def blocks(self, request, pk=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        if request.method == "GET":
            blocks = venue.blocks.all()
            if "date" in request.query_params:
                blocks = blocks.filter(date=request.query_params["date"])
            return Response(VenueBlockSerializer(blocks, many=True).data)

        serializer = VenueBlockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        block = block_interval(
            venue,
            serializer.validated_data["date"],
            serializer.validated_data["start_time"],
            serializer.validated_data["end_time"],
            serializer.validated_data.get("reason", ""),
            created_by=request.user,
        )
        return Response(VenueBlockSerializer(block).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"blocks/(?P<block_id>[^/.]+)")
    def delete_block(self, request, pk=None, block_id=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        block = get_object_or_404(VenueBlock, pk=block_id, venue=venue)
        remove_block(block)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["put", "patch"])
    def commission(self, request, pk=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        serializer = VenueCommissionSerializer(venue, data=request.data, partial=request.method == "PATCH")
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info(
            f"Commission for venue {venue.pk} set to {venue.commission_type} {venue.commission_value} "
            f"by admin {request.user.pk}"
        )
        return Response(serializer.data)

    @action(detail=True, methods=["get", "put"], url_path="payout-details")
    def payout_details(self, request, pk=None):  # type: ignore
        venue: Venue = self.get_object()  # type: ignore
        details, _ = VenuePayoutDetails.objects.get_or_create(venue=venue)
        if request.method == "GET":
            return Response(VenuePayoutDetailsSerializer(details).data)
        serializer = VenuePayoutDetailsSerializer(details, data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
