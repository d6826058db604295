"""UPI payment hand-off and settlement."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import quote

from .config import Settings
from .errors import (
    ForbiddenError,
    InvalidSignatureError,
    OrderNotFoundError,
    PaymentAlreadyVerifiedError,
    PaymentNotFoundError,
    ValidationError,
)
from .identifiers import generate_transaction_id
from .kv_store import KeyValueStore
from .models import CustomerPrincipal, Order, Payment, _to_iso
from .orders import OrderService

logger = logging.getLogger(__name__)

PAYMENT_KEY_PREFIX = "payment:"
SETTLED_STATUSES = ("success", "failed")

# Same reserved set as JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def _format_amount(amount: float) -> str:
    """Render an amount without a trailing .0 (3000.0 -> '3000', 99.5 -> '99.5')."""
    return format(amount, "f").rstrip("0").rstrip(".")


def build_upi_link(
    vpa: str, merchant_name: str, amount: float, currency: str, note: str, transaction_id: str
) -> str:
    """Build a upi://pay deep link."""
    return (
        f"upi://pay?pa={vpa}"
        f"&pn={quote(merchant_name, safe=_URI_COMPONENT_SAFE)}"
        f"&am={_format_amount(amount)}"
        f"&cu={currency}"
        f"&tn={quote(note, safe=_URI_COMPONENT_SAFE)}"
        f"&tr={transaction_id}"
    )


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of a callback body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@dataclass
class PaymentLink:
    transaction_id: str
    upi_link: str

    def to_dict(self) -> dict[str, Any]:
        # qrData is what the storefront renders as a QR code.
        return {
            "transactionId": self.transaction_id,
            "upiLink": self.upi_link,
            "qrData": self.upi_link,
        }


@dataclass
class VerificationResult:
    payment: Payment
    order: Order | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment": self.payment.to_dict(),
            "order": self.order.to_dict() if self.order else None,
        }


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class PaymentService:
    """Creates payment links and applies reported outcomes to orders."""

    def __init__(
        self,
        store: KeyValueStore,
        orders: OrderService,
        settings: Settings,
        clock: Callable[[], datetime] = _default_clock,
    ):
        self.store = store
        self.orders = orders
        self.settings = settings
        self.clock = clock

    def _key(self, transaction_id: str) -> str:
        return f"{PAYMENT_KEY_PREFIX}{transaction_id}"

    def get(self, transaction_id: str) -> Payment:
        data = self.store.get(self._key(transaction_id))
        if data is None:
            raise PaymentNotFoundError(transaction_id)
        return Payment.from_dict(data)

    def _claim_transaction(
        self, customer: CustomerPrincipal, amount: float, order_id: str, now: datetime
    ) -> Payment:
        """
        Store a pending payment under the first free TXN<epoch-ms> key.

        A key already taken within the same millisecond is never overwritten;
        the next millisecond is tried instead.
        """
        while True:
            payment = Payment(
                transaction_id=generate_transaction_id(now),
                order_id=order_id,
                amount=amount,
                customer_id=customer.id,
                status="pending",
                created_at=_to_iso(now),
            )
            claimed: list[bool] = []

            def claim(current: dict[str, Any] | None) -> dict[str, Any] | None:
                if current is not None:
                    return None
                claimed.append(True)
                return payment.to_dict()

            self.store.update(self._key(payment.transaction_id), claim)
            if claimed:
                return payment
            now += timedelta(milliseconds=1)

    def create_payment(
        self, customer: CustomerPrincipal, amount: float, order_id: str
    ) -> PaymentLink:
        """
        Start a UPI payment for one of the customer's orders.

        Raises:
            ValidationError: If amount isn't positive.
            OrderNotFoundError: If order doesn't exist.
            ForbiddenError: If the order belongs to someone else.
        """
        if amount <= 0:
            raise ValidationError("amount", "must be greater than zero")

        order = self.orders.get(order_id)
        if order.customer_id != customer.id:
            raise ForbiddenError("pay for another customer's order")

        payment = self._claim_transaction(customer, amount, order_id, self.clock())
        transaction_id = payment.transaction_id
        link = build_upi_link(
            vpa=self.settings.merchant_vpa,
            merchant_name=self.settings.merchant_name,
            amount=amount,
            currency=self.settings.currency,
            note=f"Order {order_id}",
            transaction_id=transaction_id,
        )
        logger.info("Payment %s created for order %s (%.2f)", transaction_id, order_id, amount)
        return PaymentLink(transaction_id=transaction_id, upi_link=link)

    def verify_signature(self, body: bytes, signature: str | None) -> None:
        """
        Check a callback signature when a webhook secret is configured.

        Raises:
            InvalidSignatureError: If the signature is missing or wrong.
        """
        secret = self.settings.payment_webhook_secret
        if not secret:
            logger.warning("Accepting unsigned payment verification (no webhook secret set)")
            return
        expected = sign_payload(secret, body)
        if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
            raise InvalidSignatureError()

    def verify_payment(self, transaction_id: str, status: str) -> VerificationResult:
        """
        Settle a payment with the reported outcome and update its order.

        A payment is settled once; its order is confirmed on success and
        cancelled on failure.

        Raises:
            ValidationError: If status isn't 'success' or 'failed'.
            PaymentNotFoundError: If transaction doesn't exist.
            PaymentAlreadyVerifiedError: If it was settled before.
        """
        if status not in SETTLED_STATUSES:
            raise ValidationError("status", f"must be one of {', '.join(SETTLED_STATUSES)}")

        def settle(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise PaymentNotFoundError(transaction_id)
            payment = Payment.from_dict(current)
            if payment.status != "pending":
                raise PaymentAlreadyVerifiedError(transaction_id, payment.status)
            payment.status = status
            payment.verified_at = _to_iso(self.clock())
            return payment.to_dict()

        payment = Payment.from_dict(self.store.update(self._key(transaction_id), settle))
        logger.info("Payment %s reported %s", transaction_id, status)

        try:
            order = self.orders.record_payment_outcome(payment.order_id, status == "success")
        except OrderNotFoundError:
            logger.warning(
                "Payment %s references missing order %s", transaction_id, payment.order_id
            )
            order = None

        return VerificationResult(payment=payment, order=order)
