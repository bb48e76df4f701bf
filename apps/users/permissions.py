"""Role-based DRF permissions shared by the venues, bookings and finances APIs."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore


def is_platform_admin(user) -> bool:
    if not user or not user.is_authenticated:
        return False
    return bool(getattr(user, "is_staff", False) or getattr(user, "is_superuser", False)) or (
        hasattr(user, "is_platform_admin") and user.is_platform_admin()
    )


class IsPlatformAdmin(permissions.BasePermission):
    """Commission, payouts and reconciliation are admin-only surfaces."""

    def has_permission(self, request, view) -> bool:  # type: ignore
        return is_platform_admin(request.user)


class IsVenueOwnerOrAdmin(permissions.BasePermission):
    """Object-level check for anything that hangs off a venue."""

    def has_permission(self, request, view) -> bool:  # type: ignore
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj) -> bool:  # type: ignore
        if is_platform_admin(request.user):
            return True
        venue = getattr(obj, "venue", obj)
        return venue.owner_id == request.user.id
