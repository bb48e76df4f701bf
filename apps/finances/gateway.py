"""
Payment gateway client (Razorpay-style contract).

Orders are created in minor units, payments are confirmed by an
HMAC-SHA256 signature over ``"{order_id}|{payment_id}"`` keyed with the
merchant secret, refunds and payouts are plain REST calls.

When ``DEBUG`` is on or no key id is configured the client emulates the
gateway locally so development and tests never leave the process.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import requests
from django.conf import settings  # type: ignore

logger = logging.getLogger(__name__)

EMULATED_SECRET = "emulated-gateway-secret"


class GatewayError(Exception):
    """Gateway answered with an error."""


class GatewayUnavailableError(GatewayError):
    """Gateway could not be reached or timed out."""


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: Decimal
    currency: str
    key_id: str
    receipt: str

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "key_id": self.key_id,
        }


@dataclass(frozen=True)
class GatewayPayout:
    payout_id: str
    status: str

    @property
    def processed(self) -> bool:
        return self.status == "processed"


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentGateway:
    """Thin HTTP client; every call has a timeout and raises ``GatewayError`` subclasses."""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        payout_account: str | None = None,
    ):
        self.key_id = key_id if key_id is not None else getattr(settings, "GATEWAY_KEY_ID", "")
        self.key_secret = key_secret if key_secret is not None else getattr(settings, "GATEWAY_KEY_SECRET", "")
        self.base_url = (base_url or getattr(settings, "GATEWAY_API_BASE_URL", "https://api.razorpay.com/v1/")).rstrip("/")
        self.timeout = timeout or getattr(settings, "GATEWAY_TIMEOUT_SECONDS", 10)
        self.payout_account = payout_account or getattr(settings, "GATEWAY_PAYOUT_ACCOUNT", "")

    @property
    def emulated(self) -> bool:
        return bool(settings.DEBUG or not self.key_id)

    @property
    def signing_secret(self) -> str:
        if self.emulated:
            return self.key_secret or EMULATED_SECRET
        return self.key_secret

    def _request(self, method: str, path: str, payload: dict) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.error(f"Gateway unreachable at {url}: {e}")
            raise GatewayUnavailableError(f"Gateway unreachable: {e}") from e
        except requests.exceptions.HTTPError as e:
            body = e.response.text if e.response is not None else ""
            logger.error(f"Gateway rejected {method} {path}: {e} {body}")
            raise GatewayError(f"Gateway rejected request: {e}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Unexpected gateway response for {method} {path}: {e}", exc_info=True)
            raise GatewayError(f"Unexpected gateway response: {e}") from e

    def create_order(self, amount: Decimal, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrder:
        logger.info(f"Creating gateway order {receipt} for {amount} {currency}")

        if self.emulated:
            order_id = f"order_{uuid.uuid4().hex[:14]}"
            logger.warning(f"Gateway emulation: order {order_id} created locally")
            return GatewayOrder(order_id, Decimal(amount), currency, self.key_id or "emulated_key", receipt)

        result = self._request("post", "orders", {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        })
        order_id = result.get("id")
        if not order_id:
            raise GatewayError(f"Gateway order response without id: {result}")
        return GatewayOrder(order_id, Decimal(amount), currency, self.key_id, receipt)

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not (order_id and payment_id and signature and self.signing_secret):
            return False
        expected = compute_signature(self.signing_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature)

    def refund(self, payment_id: str, amount: Decimal) -> str:
        logger.info(f"Refunding {amount} on gateway payment {payment_id}")

        if self.emulated:
            return f"rfnd_{uuid.uuid4().hex[:14]}"

        result = self._request("post", f"payments/{payment_id}/refund", {"amount": to_minor_units(amount)})
        return result.get("id", "")

    def create_payout(self, amount: Decimal, currency: str, bank_account: dict, reference: str) -> GatewayPayout:
        logger.info(f"Requesting payout {reference} of {amount} {currency}")

        if self.emulated:
            return GatewayPayout(f"pout_{uuid.uuid4().hex[:14]}", "processed")

        result = self._request("post", "payouts", {
            "account_number": self.payout_account,
            "amount": to_minor_units(amount),
            "currency": currency,
            "mode": "IMPS",
            "purpose": "payout",
            "reference_id": reference,
            "fund_account": {
                "account_type": "bank_account",
                "bank_account": {
                    "name": bank_account["account_name"],
                    "ifsc": bank_account["ifsc"],
                    "account_number": bank_account["account_number"],
                },
            },
        })
        return GatewayPayout(result.get("id", ""), result.get("status", ""))


def get_gateway() -> PaymentGateway:
    return PaymentGateway()
