"""Tests for identifier generation and parsing."""

import random
import re
from datetime import datetime, timedelta, timezone

import pytest

from vastralaya.identifiers import (
    estimate_delivery,
    format_barcode_display,
    generate_barcode,
    generate_order_id,
    generate_product_id,
    generate_tracking_number,
    generate_transaction_id,
    is_valid_barcode,
    is_valid_tracking_number,
    normalize_identifier,
    to_base36,
)

NEW_YEAR = datetime(2024, 1, 1, tzinfo=timezone.utc)
NEW_YEAR_MS = 1704067200000


class TestBase36:
    def test_small_values(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"

    def test_round_trips_through_int(self):
        assert int(to_base36(NEW_YEAR_MS), 36) == NEW_YEAR_MS

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_base36(-1)


class TestRecordIds:
    def test_order_id_shape(self):
        order_id = generate_order_id(NEW_YEAR, random.Random(7))
        assert re.match(r"^order:1704067200000_[0-9a-z]{9}$", order_id)

    def test_product_id_shape(self):
        product_id = generate_product_id(NEW_YEAR, random.Random(7))
        assert re.match(r"^product:1704067200000_[0-9a-z]{9}$", product_id)

    def test_ids_differ_within_same_millisecond(self):
        rng = random.Random(3)
        assert generate_order_id(NEW_YEAR, rng) != generate_order_id(NEW_YEAR, rng)

    def test_transaction_id(self):
        assert generate_transaction_id(NEW_YEAR) == "TXN1704067200000"


class TestBarcode:
    def test_layout(self):
        barcode = generate_barcode("order:1704067200000_abc123xyz", NEW_YEAR, random.Random(1))
        timestamp = to_base36(NEW_YEAR_MS)

        assert barcode.startswith("VST" + timestamp)
        assert barcode[3 + len(timestamp):3 + len(timestamp) + 4] == "ABC1"
        assert len(barcode) == 3 + len(timestamp) + 8
        assert is_valid_barcode(barcode)

    def test_falls_back_to_random_fragment(self):
        timestamp = to_base36(NEW_YEAR_MS)
        barcode = generate_barcode("order-without-suffix", NEW_YEAR, random.Random(1))

        assert len(barcode) == 3 + len(timestamp) + 8
        assert re.match(r"^VST[0-9A-Z]+$", barcode)

    def test_same_order_same_instant_usually_differs(self):
        rng = random.Random(11)
        order_id = "order:1704067200000_abc123xyz"
        codes = {generate_barcode(order_id, NEW_YEAR, rng) for _ in range(20)}
        assert len(codes) > 1


class TestTrackingNumber:
    def test_layout(self):
        tracking = generate_tracking_number(NEW_YEAR, random.Random(5))

        assert tracking.startswith("VAST67200000")
        assert len(tracking) == 16
        assert is_valid_tracking_number(tracking)

    def test_random_part_is_zero_padded(self):
        class LowRandom(random.Random):
            def randrange(self, *args, **kwargs):
                return 42

        assert generate_tracking_number(NEW_YEAR, LowRandom()) == "VAST672000000042"


class TestEstimateDelivery:
    def test_fixed_days(self):
        assert estimate_delivery(NEW_YEAR, days=7) == NEW_YEAR + timedelta(days=7)

    def test_random_window(self):
        rng = random.Random(0)
        offsets = {(estimate_delivery(NEW_YEAR, rng=rng) - NEW_YEAR).days for _ in range(200)}
        assert offsets == {5, 6, 7}


class TestDisplayAndParsing:
    def test_format_barcode_display(self):
        assert format_barcode_display("VST12345ABCDEFGH") == "VST-12345-ABCD-EFGH"

    def test_format_short_barcode_unchanged(self):
        assert format_barcode_display("VST123") == "VST123"

    def test_format_missing_barcode(self):
        assert format_barcode_display(None) == "N/A"
        assert format_barcode_display("") == "N/A"

    def test_normalize_identifier(self):
        assert normalize_identifier("  VST-12345-ABCD-EFGH ") == "VST12345ABCDEFGH"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("VST12345ABCDEFGH", True),
            ("VST-12345-ABCD-EFGH", True),
            ("vst12345abcdefgh", False),
            ("VST123", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_barcode(self, value, expected):
        assert is_valid_barcode(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("VAST672000000042", True),
            ("VAST67200000004", False),
            ("VST672000000042", False),
            (None, False),
        ],
    )
    def test_is_valid_tracking_number(self, value, expected):
        assert is_valid_tracking_number(value) is expected
