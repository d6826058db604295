"""Identifier generation and parsing for orders, shipments and payments."""

import random
import re
import string
from datetime import datetime, timedelta, timezone

BARCODE_PREFIX = "VST"
TRACKING_PREFIX = "VAST"
TRANSACTION_PREFIX = "TXN"
ORDER_KEY_PREFIX = "order:"
PRODUCT_KEY_PREFIX = "product:"

# Barcode display: VST-XXXXX-XXXX-XXXX
BARCODE_DASH_OFFSETS = (3, 8, 12)
BARCODE_DISPLAY_MIN_LENGTH = 16

BARCODE_PATTERN = re.compile(r"^VST[A-Z0-9]{13,20}$")
TRACKING_PATTERN = re.compile(r"^VAST\d{12}$")

MIN_DELIVERY_DAYS = 5
MAX_DELIVERY_DAYS = 7

_BASE36 = string.digits + string.ascii_uppercase
_BASE36_LOWER = string.digits + string.ascii_lowercase


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _epoch_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def to_base36(value: int) -> str:
    """Render a non-negative integer in uppercase base 36."""
    if value < 0:
        raise ValueError(f"base36 value must be non-negative, got {value}")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _random_chars(count: int, alphabet: str, rng: random.Random | None) -> str:
    rng = rng or random
    return "".join(rng.choice(alphabet) for _ in range(count))


def generate_record_id(
    prefix: str, now: datetime | None = None, rng: random.Random | None = None
) -> str:
    """Generate a store key of the form <prefix><epoch-ms>_<9 base36 chars>."""
    return f"{prefix}{_epoch_ms(_now(now))}_{_random_chars(9, _BASE36_LOWER, rng)}"


def generate_order_id(now: datetime | None = None, rng: random.Random | None = None) -> str:
    return generate_record_id(ORDER_KEY_PREFIX, now, rng)


def generate_product_id(now: datetime | None = None, rng: random.Random | None = None) -> str:
    return generate_record_id(PRODUCT_KEY_PREFIX, now, rng)


def _order_fragment(order_id: str, rng: random.Random | None) -> str:
    """Four uppercase characters taken from the random part of an order ID."""
    parts = order_id.split("_")
    if len(parts) > 1:
        fragment = "".join(c for c in parts[1].upper() if c in _BASE36)[:4]
        if len(fragment) == 4:
            return fragment
    return _random_chars(4, _BASE36, rng)


def generate_barcode(
    order_id: str, now: datetime | None = None, rng: random.Random | None = None
) -> str:
    """
    Generate a shipment barcode for an order.

    Layout: VST + base36(epoch ms) + 4 chars of the order ID + 4 random chars.
    """
    timestamp = to_base36(_epoch_ms(_now(now)))
    fragment = _order_fragment(order_id, rng)
    suffix = _random_chars(4, _BASE36, rng)
    return f"{BARCODE_PREFIX}{timestamp}{fragment}{suffix}"


def generate_tracking_number(
    now: datetime | None = None, rng: random.Random | None = None
) -> str:
    """Generate VAST + last 8 digits of epoch ms + 4 zero-padded random digits."""
    rng = rng or random
    timestamp = str(_epoch_ms(_now(now)))[-8:].rjust(8, "0")
    return f"{TRACKING_PREFIX}{timestamp}{rng.randrange(10000):04d}"


def generate_transaction_id(now: datetime | None = None) -> str:
    return f"{TRANSACTION_PREFIX}{_epoch_ms(_now(now))}"


def estimate_delivery(
    created_at: datetime, days: int | None = None, rng: random.Random | None = None
) -> datetime:
    """
    Estimated delivery date.

    Args:
        created_at: Order creation time.
        days: Fixed offset; when omitted a uniform 5-7 day offset is drawn.
    """
    if days is None:
        days = (rng or random).randint(MIN_DELIVERY_DAYS, MAX_DELIVERY_DAYS)
    return created_at + timedelta(days=days)


def normalize_identifier(identifier: str) -> str:
    """Strip surrounding whitespace and display dashes."""
    return identifier.strip().replace("-", "")


def format_barcode_display(barcode: str | None) -> str:
    """Insert display dashes into a barcode, or 'N/A' when there isn't one."""
    if not barcode:
        return "N/A"
    if len(barcode) < BARCODE_DISPLAY_MIN_LENGTH:
        return barcode
    a, b, c = BARCODE_DASH_OFFSETS
    return f"{barcode[:a]}-{barcode[a:b]}-{barcode[b:c]}-{barcode[c:]}"


def is_valid_barcode(barcode: str | None) -> bool:
    if not barcode:
        return False
    return bool(BARCODE_PATTERN.match(barcode.replace("-", "")))


def is_valid_tracking_number(tracking_number: str | None) -> bool:
    if not tracking_number:
        return False
    return bool(TRACKING_PATTERN.match(tracking_number))
