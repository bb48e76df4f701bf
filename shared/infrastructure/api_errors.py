"""DRF exception handler that turns domain errors into JSON responses.

Every domain error answers with ``detail``, a stable ``code`` and an
``error_kind`` (``booking_error`` or ``payment_error``) so clients can
tell whether money was involved.
"""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from apps.bookings.domain.errors import (
    BookingError,
    CommitmentModeNotAllowed,
    InvalidPaymentTransition,
    LateCaptureRefunded,
    PaymentError,
    PaymentSetupError,
    PaymentVerificationError,
    RefundError,
    SlotUnavailableError,
)
from apps.finances.domain.errors import (
    CommissionConfigurationError,
    FinanceError,
    LedgerEntryImmutable,
    PayoutConfigurationError,
    PayoutError,
)

logger = logging.getLogger(__name__)

# Most specific first.
STATUS_BY_ERROR = (
    (SlotUnavailableError, status.HTTP_409_CONFLICT),
    (InvalidPaymentTransition, status.HTTP_409_CONFLICT),
    (CommitmentModeNotAllowed, status.HTTP_400_BAD_REQUEST),
    (PaymentSetupError, status.HTTP_502_BAD_GATEWAY),
    (PaymentVerificationError, status.HTTP_400_BAD_REQUEST),
    (RefundError, status.HTTP_502_BAD_GATEWAY),
    (LateCaptureRefunded, status.HTTP_409_CONFLICT),
    (CommissionConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PayoutConfigurationError, status.HTTP_400_BAD_REQUEST),
    (PayoutError, status.HTTP_409_CONFLICT),
    (LedgerEntryImmutable, status.HTTP_409_CONFLICT),
    (BookingError, status.HTTP_400_BAD_REQUEST),
    (PaymentError, status.HTTP_502_BAD_GATEWAY),
    (FinanceError, status.HTTP_400_BAD_REQUEST),
)


def status_for(exc: Exception) -> int | None:
    for error_class, code in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return code
    return None


def domain_exception_handler(exc, context):  # type: ignore
    http_status = status_for(exc)
    if http_status is None:
        return exception_handler(exc, context)

    if http_status >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
    body = {
        "detail": str(exc),
        "code": getattr(exc, "code", "error"),
        "error_kind": getattr(exc, "error_kind", "booking_error"),
    }
    if isinstance(exc, PaymentError):
        body["retryable"] = getattr(exc, "retryable", False)
    return Response(body, status=http_status)
