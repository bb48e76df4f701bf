"""
Finance Domain Errors

Each error carries a stable ``code`` so API responses and logs can be
matched without parsing messages.
"""


class FinanceError(Exception):
    """Base class for money-side failures."""

    code = "finance_error"
    error_kind = "payment_error"


class CommissionConfigurationError(FinanceError):
    """Neither a venue override nor a platform default commission exists."""

    code = "commission_not_configured"


class PayoutConfigurationError(FinanceError):
    """Venue bank details are missing or incomplete."""

    code = "payout_details_incomplete"


class PayoutError(FinanceError):
    """A payout batch cannot move to the requested state."""

    code = "payout_invalid"


class ReconciliationDriftDetected(FinanceError):
    """
    Outstanding balance kept growing across consecutive snapshots.

    Reported, never auto-corrected.
    """

    code = "reconciliation_drift"

    def __init__(self, venue_id, outstanding, window: int):
        self.venue_id = venue_id
        self.outstanding = outstanding
        self.window = window
        super().__init__(
            f"Outstanding for venue {venue_id} grew over {window} consecutive "
            f"snapshots (now {outstanding})"
        )


class LedgerEntryImmutable(FinanceError):
    """Ledger entries only change by refund or by joining a payout batch."""

    code = "ledger_entry_immutable"
