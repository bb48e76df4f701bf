"""
Booking Domain Errors

``error_kind`` tells the requester whether money was involved:
``booking_error`` means nothing was charged, ``payment_error`` means the
failure happened on the money path.
"""


class BookingError(Exception):
    code = "booking_error"
    error_kind = "booking_error"


class InvalidReservationRequest(BookingError):
    """Duration, date or time of day cannot be booked at this venue."""

    code = "invalid_request"


class SlotUnavailableError(BookingError):
    """Requested interval overlaps a committed reservation or block."""

    code = "slot_taken"

    def __init__(self, message: str = "Slot taken", conflicting_id=None):
        self.conflicting_id = conflicting_id
        super().__init__(message)


class InvalidPaymentTransition(BookingError):
    code = "invalid_transition"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move payment state from {current} to {target}")


class PaymentError(Exception):
    code = "payment_error"
    error_kind = "payment_error"


class CommitmentModeNotAllowed(PaymentError):
    """The venue does not offer the chosen way of paying."""

    code = "mode_not_allowed"


class PaymentSetupError(PaymentError):
    """
    Gateway order could not be created. The reservation stays unpaid and
    the requester may retry.
    """

    code = "payment_setup_failed"
    retryable = True


class PaymentVerificationError(PaymentError):
    """Signature check failed. Never retried automatically."""

    code = "payment_verification_failed"
    retryable = False


class RefundError(PaymentError):
    """Gateway refused or could not be reached for a refund."""

    code = "refund_failed"


class LateCaptureRefunded(PaymentError):
    """
    Payment arrived for a reservation that was no longer waiting for it
    (expired or cancelled); the captured amount has been refunded.
    """

    code = "late_capture_refunded"
