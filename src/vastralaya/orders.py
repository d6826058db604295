"""Order lifecycle: checkout, fulfillment status, delivery and tracking."""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from .config import Settings
from .errors import (
    ForbiddenError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from .identifiers import (
    ORDER_KEY_PREFIX,
    estimate_delivery,
    generate_barcode,
    generate_order_id,
    generate_tracking_number,
    normalize_identifier,
)
from .kv_store import KeyValueStore
from .models import (
    ORDER_STATUSES,
    STATUS_TRANSITIONS,
    Address,
    CustomerPrincipal,
    LineItem,
    Order,
    RetailerPrincipal,
    _created_sort_key,
    _parse_iso,
    _to_iso,
)
from .retailer_auth import require_retailer

logger = logging.getLogger(__name__)

# Fixed offset used when backfilling legacy orders.
LEGACY_DELIVERY_DAYS = 7

# Tolerance when comparing a client-computed total with ours.
_AMOUNT_TOLERANCE = 0.005


@dataclass
class MigrationResult:
    """Outcome of a legacy order backfill."""

    migrated_count: int
    total_orders: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": f"Successfully migrated {self.migrated_count} orders",
            "migratedCount": self.migrated_count,
            "totalOrders": self.total_orders,
        }


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Creates orders and applies every later change to them."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        clock: Callable[[], datetime] = _default_clock,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.rng = rng

    # --- Reads ---

    def get(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        if not order_id.startswith(ORDER_KEY_PREFIX):
            raise OrderNotFoundError(order_id)
        data = self.store.get(order_id)
        if data is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(data)

    def _all_orders(self) -> list[Order]:
        orders = [Order.from_dict(d) for d in self.store.get_by_prefix(ORDER_KEY_PREFIX)]
        orders.sort(key=lambda o: _created_sort_key(o.created_at), reverse=True)
        return orders

    def list_all(self, retailer: RetailerPrincipal) -> list[Order]:
        """Every order, newest first."""
        require_retailer(self.settings, retailer, "list all orders")
        return self._all_orders()

    def list_for_customer(self, customer: CustomerPrincipal) -> list[Order]:
        """The customer's own orders, newest first."""
        return [o for o in self._all_orders() if o.customer_id == customer.id]

    def track(self, identifier: str) -> Order:
        """
        Public lookup by barcode, tracking number or order ID.

        Display dashes are ignored on both sides of the comparison.

        Raises:
            OrderNotFoundError: If nothing matches.
        """
        needle = normalize_identifier(identifier)
        if not needle:
            raise OrderNotFoundError(identifier)

        for data in self.store.get_by_prefix(ORDER_KEY_PREFIX):
            candidates = (data.get("barcode"), data.get("trackingNumber"), data.get("id"))
            if any(c and normalize_identifier(c) == needle for c in candidates):
                return Order.from_dict(data)

        raise OrderNotFoundError(identifier)

    # --- Writes ---

    def _mutate(self, order_id: str, change: Callable[[Order, datetime], None]) -> Order:
        """
        Apply change to an order under the store lock and persist it.

        change receives the order and the time of the write; the same time
        stamps updatedAt.
        """
        if not order_id.startswith(ORDER_KEY_PREFIX):
            raise OrderNotFoundError(order_id)

        def apply(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise OrderNotFoundError(order_id)
            order = Order.from_dict(current)
            now = self.clock()
            change(order, now)
            order.touch(now)
            return order.to_dict()

        return Order.from_dict(self.store.update(order_id, apply))

    def create(
        self,
        customer: CustomerPrincipal,
        items: list[LineItem],
        shipping_address: Address,
        total_amount: float | None = None,
    ) -> Order:
        """
        Place an order.

        The total is the sum of line totals plus the shipping fee. A
        client-supplied total is only checked against it, never trusted.

        Raises:
            ValidationError: On empty carts, bad lines, incomplete addresses
                or a total that doesn't add up.
        """
        if not items:
            raise ValidationError("items", "order must contain at least one item")
        for item in items:
            if item.quantity < 1:
                raise ValidationError("items", f"quantity for {item.name!r} must be at least 1")
            if item.price < 0:
                raise ValidationError("items", f"price for {item.name!r} must not be negative")

        missing = shipping_address.missing_fields()
        if missing:
            raise ValidationError("shippingAddress", f"missing {', '.join(missing)}")

        subtotal = sum(item.line_total for item in items)
        shipping = self.settings.shipping_fee if subtotal > 0 else 0
        total = round(subtotal + shipping, 2)
        if total_amount is not None and abs(total_amount - total) > _AMOUNT_TOLERANCE:
            raise ValidationError("totalAmount", f"expected {total}, got {total_amount}")

        now = self.clock()
        order_id = generate_order_id(now, self.rng)
        order = Order(
            id=order_id,
            customer_id=customer.id,
            customer_name=customer.name or "Customer",
            customer_email=customer.email,
            customer_phone=customer.phone,
            items=list(items),
            total_amount=total,
            shipping_address=shipping_address,
            status="pending",
            payment_status="pending",
            barcode=generate_barcode(order_id, now, self.rng),
            tracking_number=generate_tracking_number(now, self.rng),
            estimated_delivery=_to_iso(estimate_delivery(now, rng=self.rng)),
            delivery_confirmed=False,
            created_at=_to_iso(now),
            version=1,
        )

        self.store.set(order.id, order.to_dict())
        logger.info("Order %s placed by %s for %.2f", order.id, customer.id, total)
        return order

    def transition_status(
        self, retailer: RetailerPrincipal, order_id: str, status: str
    ) -> Order:
        """
        Set an order's fulfillment status.

        Any status may follow any other unless transition enforcement is on.

        Raises:
            ForbiddenError: If the caller isn't the retailer.
            ValidationError: If status isn't a known order status.
            InvalidStatusTransitionError: If enforcement rejects the edge.
            OrderNotFoundError: If order doesn't exist.
        """
        require_retailer(self.settings, retailer, "update order status")
        if status not in ORDER_STATUSES:
            raise ValidationError("status", f"must be one of {', '.join(ORDER_STATUSES)}")

        previous: list[str] = []

        def change(order: Order, now: datetime) -> None:
            if (
                self.settings.enforce_status_transitions
                and status != order.status
                and status not in STATUS_TRANSITIONS.get(order.status, frozenset())
            ):
                raise InvalidStatusTransitionError(order.status, status)
            previous.append(order.status)
            order.status = status

        order = self._mutate(order_id, change)
        logger.info("Order %s status %s -> %s", order_id, previous[0], status)
        return order

    def confirm_delivery(
        self, customer: CustomerPrincipal, order_id: str, confirmed: bool
    ) -> Order:
        """
        Record the customer's delivery confirmation.

        Confirming forces the status to delivered whatever it was before.

        Raises:
            ForbiddenError: If the order belongs to someone else.
            OrderNotFoundError: If order doesn't exist.
        """

        def change(order: Order, now: datetime) -> None:
            if order.customer_id != customer.id:
                raise ForbiddenError("confirm delivery of another customer's order")
            order.delivery_confirmed = confirmed
            if confirmed:
                order.delivery_confirmed_at = _to_iso(now)
                order.status = "delivered"

        order = self._mutate(order_id, change)
        logger.info("Order %s delivery confirmed=%s by %s", order_id, confirmed, customer.id)
        return order

    def record_payment_outcome(self, order_id: str, succeeded: bool) -> Order:
        """Confirm the order on a successful payment, cancel it on a failed one."""

        def change(order: Order, now: datetime) -> None:
            if succeeded:
                order.payment_status = "paid"
                order.status = "confirmed"
            else:
                order.payment_status = "failed"
                order.status = "cancelled"

        order = self._mutate(order_id, change)
        logger.info(
            "Order %s payment %s, status now %s", order_id, order.payment_status, order.status
        )
        return order

    def _assign_identifiers(self, order: Order, now: datetime) -> None:
        previous = order.barcode
        barcode = generate_barcode(order.id, now, self.rng)
        while barcode == previous:
            barcode = generate_barcode(order.id, now, self.rng)
        order.barcode = barcode
        order.tracking_number = generate_tracking_number(now, self.rng)

    def regenerate_barcode(self, retailer: RetailerPrincipal, order_id: str) -> Order:
        """
        Replace an order's barcode and tracking number.

        The old values are discarded and no longer resolve via track().
        """
        require_retailer(self.settings, retailer, "regenerate barcodes")

        def change(order: Order, now: datetime) -> None:
            self._assign_identifiers(order, now)
            order.barcode_regenerated_at = _to_iso(now)

        order = self._mutate(order_id, change)
        logger.info("Order %s barcode regenerated as %s", order_id, order.barcode)
        return order

    def migrate_legacy_orders(self, retailer: RetailerPrincipal) -> MigrationResult:
        """
        Backfill identifiers and payment/delivery fields on legacy orders.

        Orders that already have both a barcode and a tracking number are
        left untouched, so a second run migrates nothing.
        """
        require_retailer(self.settings, retailer, "migrate orders")
        records = self.store.get_by_prefix(ORDER_KEY_PREFIX)
        migrated = 0

        for data in records:
            if data.get("barcode") and data.get("trackingNumber"):
                continue
            changed: list[bool] = []

            def backfill(current: dict[str, Any] | None) -> dict[str, Any] | None:
                if current is None or (current.get("barcode") and current.get("trackingNumber")):
                    return None
                order = Order.from_dict(current)
                now = self.clock()
                self._assign_identifiers(order, now)
                if not order.payment_status:
                    order.payment_status = "failed" if order.status == "cancelled" else "paid"
                if not order.estimated_delivery:
                    try:
                        created = _parse_iso(order.created_at)
                    except ValueError:
                        created = now
                    order.estimated_delivery = _to_iso(
                        estimate_delivery(created, days=LEGACY_DELIVERY_DAYS)
                    )
                order.touch(now)
                changed.append(True)
                return order.to_dict()

            self.store.update(data["id"], backfill)
            if changed:
                migrated += 1

        logger.info("Migrated %d of %d orders", migrated, len(records))
        return MigrationResult(migrated_count=migrated, total_orders=len(records))
