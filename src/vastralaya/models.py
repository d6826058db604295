"""Data models for vastralaya."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_RECORD_STATUSES = ("pending", "success", "failed")

# Allowed edges when status transition enforcement is enabled.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return _to_iso(datetime.now(timezone.utc))


def _to_iso(dt: datetime) -> str:
    """Render an aware datetime as ISO 8601 with a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _has_expired(created_at: str | None, ttl: timedelta, now: datetime) -> bool:
    """True once created_at + ttl has passed. Missing or garbled stamps count as expired."""
    if not created_at:
        return True
    try:
        return _parse_iso(created_at) + ttl <= now
    except ValueError:
        return True


@dataclass
class Address:
    """Shipping address. All five fields are required at checkout."""

    street: str
    city: str
    state: str
    pincode: str
    country: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            pincode=data.get("pincode", ""),
            country=data.get("country", ""),
        )

    def missing_fields(self) -> list[str]:
        """Names of fields that are empty or whitespace only."""
        return [name for name, value in self.to_dict().items() if not str(value).strip()]


@dataclass
class LineItem:
    """A product snapshot taken when the order was placed."""

    product_id: str
    name: str
    price: float
    quantity: int
    image_url: str | None = None
    category: str | None = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "productId": self.product_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }
        if self.image_url is not None:
            result["imageUrl"] = self.image_url
        if self.category is not None:
            result["category"] = self.category
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        # Legacy records embed the whole cart item, keyed by the product's own "id".
        return cls(
            product_id=data.get("productId") or data.get("id", ""),
            name=data.get("name", ""),
            price=float(data.get("price", 0)),
            quantity=int(data.get("quantity", 1)),
            image_url=data.get("imageUrl"),
            category=data.get("category"),
        )


@dataclass
class Order:
    """A customer order and its fulfillment state."""

    id: str
    customer_id: str
    customer_name: str
    customer_email: str
    items: list[LineItem]
    total_amount: float
    shipping_address: Address | None
    status: str = "pending"
    customer_phone: str | None = None
    payment_status: str | None = None
    barcode: str | None = None
    tracking_number: str | None = None
    estimated_delivery: str | None = None
    delivery_confirmed: bool | None = None
    delivery_confirmed_at: str | None = None
    barcode_regenerated_at: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str | None = None
    version: int = 0

    @property
    def effective_payment_status(self) -> str:
        """Payment status with absent treated as pending."""
        return self.payment_status or "pending"

    def touch(self, now: datetime | None = None) -> None:
        """Record a write: bump the version and the update timestamp."""
        self.version += 1
        self.updated_at = _to_iso(now) if now else _utc_now()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "items": [item.to_dict() for item in self.items],
            "totalAmount": self.total_amount,
            "status": self.status,
            "createdAt": self.created_at,
            "version": self.version,
        }
        optional = {
            "shippingAddress": self.shipping_address.to_dict() if self.shipping_address else None,
            "customerPhone": self.customer_phone,
            "paymentStatus": self.payment_status,
            "barcode": self.barcode,
            "trackingNumber": self.tracking_number,
            "estimatedDelivery": self.estimated_delivery,
            "deliveryConfirmed": self.delivery_confirmed,
            "deliveryConfirmedAt": self.delivery_confirmed_at,
            "barcodeRegeneratedAt": self.barcode_regenerated_at,
            "updatedAt": self.updated_at,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        address = None
        if data.get("shippingAddress"):
            address = Address.from_dict(data["shippingAddress"])
        return cls(
            id=data["id"],
            customer_id=data.get("customerId", ""),
            customer_name=data.get("customerName", ""),
            customer_email=data.get("customerEmail", ""),
            items=[LineItem.from_dict(i) for i in data.get("items", [])],
            total_amount=float(data.get("totalAmount", 0)),
            shipping_address=address,
            status=data.get("status", "pending"),
            customer_phone=data.get("customerPhone"),
            payment_status=data.get("paymentStatus"),
            barcode=data.get("barcode"),
            tracking_number=data.get("trackingNumber"),
            estimated_delivery=data.get("estimatedDelivery"),
            delivery_confirmed=data.get("deliveryConfirmed"),
            delivery_confirmed_at=data.get("deliveryConfirmedAt"),
            barcode_regenerated_at=data.get("barcodeRegeneratedAt"),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt"),
            version=int(data.get("version", 0)),
        )


@dataclass
class Payment:
    """A UPI payment hand-off awaiting the customer's report."""

    transaction_id: str
    order_id: str
    amount: float
    customer_id: str
    status: str = "pending"
    created_at: str = field(default_factory=_utc_now)
    verified_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "transactionId": self.transaction_id,
            "orderId": self.order_id,
            "amount": self.amount,
            "customerId": self.customer_id,
            "status": self.status,
            "createdAt": self.created_at,
        }
        if self.verified_at is not None:
            result["verifiedAt"] = self.verified_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Payment":
        return cls(
            transaction_id=data["transactionId"],
            order_id=data.get("orderId", ""),
            amount=float(data.get("amount", 0)),
            customer_id=data.get("customerId", ""),
            status=data.get("status", "pending"),
            created_at=data.get("createdAt", ""),
            verified_at=data.get("verifiedAt"),
        )


@dataclass
class Product:
    """A catalog entry."""

    id: str
    name: str
    price: float
    category: str
    description: str = ""
    image_url: str = ""
    stock: int = 0
    retailer_id: str = ""
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "imageUrl": self.image_url,
            "stock": self.stock,
            "retailerId": self.retailer_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            price=float(data.get("price", 0)),
            category=data.get("category", ""),
            description=data.get("description", ""),
            image_url=data.get("imageUrl", ""),
            stock=int(data.get("stock", 0)),
            retailer_id=data.get("retailerId", ""),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class UserProfile:
    """Per-customer profile with an optional saved address."""

    user_id: str
    name: str
    user_type: str = "customer"
    address: Address | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "userId": self.user_id,
            "name": self.name,
            "userType": self.user_type,
        }
        if self.address is not None:
            result["address"] = self.address.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        address = None
        if data.get("address"):
            address = Address.from_dict(data["address"])
        return cls(
            user_id=data["userId"],
            name=data.get("name", ""),
            user_type=data.get("userType", "customer"),
            address=address,
        )


@dataclass
class RetailerSession:
    """An issued retailer session token."""

    token: str
    user_id: str
    email: str
    user_type: str = "retailer"
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "userType": self.user_type,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, token: str, data: dict[str, Any]) -> "RetailerSession":
        return cls(
            token=token,
            user_id=data.get("userId", ""),
            email=data.get("email", ""),
            user_type=data.get("userType", ""),
            created_at=data.get("createdAt", ""),
        )


@dataclass(frozen=True)
class CustomerPrincipal:
    """A customer resolved from a bearer token."""

    id: str
    email: str
    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class RetailerPrincipal:
    """The retailer resolved from a session token."""

    id: str
    email: str


def _created_sort_key(created_at: str | None) -> datetime:
    """Sort key for createdAt values; unparseable values sort oldest."""
    if created_at:
        try:
            return _parse_iso(created_at)
        except ValueError:
            pass
    return datetime.min.replace(tzinfo=timezone.utc)
