"""API views for the booking domain."""

from __future__ import annotations

from django.db.models import Q  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.users.permissions import is_platform_admin

from .application.commitment import (
    CancelReservation,
    ChooseCommitmentMode,
    CollectAtVenue,
    ConfirmGatewayPayment,
    PaymentCommitmentMachine,
    ReportPaymentFailure,
)
from .models import Reservation
from .serializers import (
    CancelSerializer,
    CheckoutSerializer,
    CollectPaymentSerializer,
    PaymentFailureSerializer,
    ReservationCreateSerializer,
    ReservationSerializer,
    VerifyPaymentSerializer,
)
from .services import ReservationWriter


def _is_venue_side(user, reservation: Reservation) -> bool:
    return is_platform_admin(user) or reservation.venue.owner_id == user.id


class IsReservationStakeholder(permissions.BasePermission):
    """Requesters, the venue owner and platform admins can see a reservation."""

    def has_object_permission(self, request, view, obj: Reservation):  # type: ignore
        return obj.requester_id == request.user.id or _is_venue_side(request.user, obj)


class IsRequester(permissions.BasePermission):
    """Paying for a reservation is reserved to whoever made it."""

    def has_object_permission(self, request, view, obj: Reservation):  # type: ignore
        return obj.requester_id == request.user.id


class IsVenueSide(permissions.BasePermission):
    def has_object_permission(self, request, view, obj: Reservation):  # type: ignore
        return _is_venue_side(request.user, obj)


class ReservationViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create reservations and drive their payment state."""

    queryset = Reservation.objects.select_related("venue", "requester").all()
    serializer_class = ReservationSerializer
    permission_classes = [permissions.IsAuthenticated, IsReservationStakeholder]
    filterset_fields = ["venue", "date", "payment_state"]

    writer_class = ReservationWriter
    machine_class = PaymentCommitmentMachine

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return ReservationCreateSerializer
        return ReservationSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if is_platform_admin(user):
            return qs
        if user.is_venue_owner():
            return qs.filter(Q(venue__owner=user) | Q(requester=user))
        return qs.filter(requester=user)

    def get_machine(self) -> PaymentCommitmentMachine:
        return self.machine_class()

    def _respond(self, reservation: Reservation, http_status=status.HTTP_200_OK) -> Response:
        return Response(ReservationSerializer(reservation).data, status=http_status)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        venue = data["venue"]
        reservation = self.writer_class().create(
            venue=venue,
            requester=request.user,
            on_date=data["date"],
            start_time=data["start_time"],
            duration_minutes=data.get("duration_minutes") or venue.slot_duration_minutes,
            match_reference=data.get("match_reference", ""),
        )
        return self._respond(reservation, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAuthenticated, IsRequester])
    def checkout(self, request, pk=None):  # type: ignore
        reservation: Reservation = self.get_object()  # type: ignore
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_machine().handle(
            ChooseCommitmentMode(reservation_id=reservation.pk, mode=serializer.validated_data["mode"])
        )
        return Response(result.to_dict())

    @action(
        detail=True,
        methods=["post"],
        url_path="verify-payment",
        permission_classes=[permissions.IsAuthenticated, IsRequester],
    )
    def verify_payment(self, request, pk=None):  # type: ignore
        reservation: Reservation = self.get_object()  # type: ignore
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reservation = self.get_machine().handle(
            ConfirmGatewayPayment(reservation_id=reservation.pk, **serializer.validated_data)
        )
        return self._respond(reservation)

    @action(
        detail=True,
        methods=["post"],
        url_path="payment-failed",
        permission_classes=[permissions.IsAuthenticated, IsRequester],
    )
    def payment_failed(self, request, pk=None):  # type: ignore
        reservation: Reservation = self.get_object()  # type: ignore
        serializer = PaymentFailureSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reservation = self.get_machine().handle(
            ReportPaymentFailure(reservation_id=reservation.pk, reason=serializer.validated_data.get("reason", ""))
        )
        return self._respond(reservation)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAuthenticated, IsVenueSide])
    def collect(self, request, pk=None):  # type: ignore
        reservation: Reservation = self.get_object()  # type: ignore
        serializer = CollectPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reservation = self.get_machine().handle(CollectAtVenue(
            reservation_id=reservation.pk,
            amount=serializer.validated_data.get("amount"),
            reference=serializer.validated_data.get("reference", ""),
        ))
        return self._respond(reservation)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        reservation: Reservation = self.get_object()  # type: ignore
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if reservation.requester_id == request.user.id:
            cancelled_by = Reservation.CancelledBy.PLAYER
        else:
            cancelled_by = Reservation.CancelledBy.VENUE
        reservation = self.get_machine().handle(CancelReservation(
            reservation_id=reservation.pk,
            reason=serializer.validated_data.get("reason", ""),
            cancelled_by=cancelled_by,
        ))
        return self._respond(reservation)
