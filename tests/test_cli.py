"""Integration tests for CLI."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest


def run_vastralaya(args: list[str], data_dir: Path) -> subprocess.CompletedProcess:
    """Run vastralaya CLI command against a data directory."""
    env = {**os.environ, "VASTRALAYA_DATA_DIR": str(data_dir), "VASTRALAYA_LOG_LEVEL": "WARNING"}
    return subprocess.run(
        [sys.executable, "-m", "vastralaya.cli"] + args,
        env=env,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def order(services, alice, items, address):
    return services.orders.create(alice, items, address)


class TestCLIIntegration:
    """Integration tests for CLI commands."""

    def test_no_command_prints_help(self, settings):
        result = run_vastralaya([], settings.data_dir)

        assert result.returncode == 0
        assert "usage: vastralaya" in result.stdout

    def test_orders_list_empty(self, settings):
        result = run_vastralaya(["orders", "list"], settings.data_dir)

        assert result.returncode == 0
        assert "No orders." in result.stdout

    def test_orders_list(self, settings, order):
        result = run_vastralaya(["orders", "list", "-v"], settings.data_dir)

        assert result.returncode == 0
        assert order.id in result.stdout
        assert "3000.00" in result.stdout
        assert "Customer: Alice <alice@example.com>" in result.stdout

    def test_orders_list_json(self, settings, order):
        result = run_vastralaya(["orders", "list", "--json"], settings.data_dir)

        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert [o["id"] for o in data] == [order.id]

    def test_set_status(self, settings, services, order):
        result = run_vastralaya(["orders", "set-status", order.id, "shipped"], settings.data_dir)

        assert result.returncode == 0
        assert "is now shipped" in result.stdout
        assert services.orders.get(order.id).status == "shipped"

    def test_set_status_rejects_unknown_value(self, settings, order):
        result = run_vastralaya(["orders", "set-status", order.id, "lost"], settings.data_dir)

        assert result.returncode == 2
        assert "invalid choice" in result.stderr

    def test_set_status_unknown_order(self, settings):
        result = run_vastralaya(["orders", "set-status", "order:missing", "shipped"], settings.data_dir)

        assert result.returncode == 1
        assert "Order not found" in result.stderr

    def test_regenerate_barcode(self, settings, services, order):
        result = run_vastralaya(["orders", "regenerate-barcode", order.id], settings.data_dir)

        assert result.returncode == 0
        assert services.orders.get(order.id).barcode != order.barcode
        assert "Tracking: VAST" in result.stdout

    def test_migrate_orders(self, settings, store, order):
        store.set(
            "order:1700000000000_legacy001",
            {
                "id": "order:1700000000000_legacy001",
                "customerId": "cust-legacy",
                "items": [],
                "totalAmount": 500,
                "status": "delivered",
                "createdAt": "2023-11-14T22:13:20.000Z",
            },
        )

        result = run_vastralaya(["migrate-orders"], settings.data_dir)

        assert result.returncode == 0
        assert "Migrated 1 of 2 orders" in result.stdout

    def test_track(self, settings, order):
        result = run_vastralaya(["track", order.tracking_number, "--json"], settings.data_dir)

        assert result.returncode == 0
        assert json.loads(result.stdout)["id"] == order.id

    def test_track_unknown(self, settings, order):
        result = run_vastralaya(["track", "VST0000000000000000"], settings.data_dir)

        assert result.returncode == 1
        assert "Error:" in result.stderr

    def test_corrupt_store_reported(self, settings):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        (settings.data_dir / "store.json").write_text("{broken")

        result = run_vastralaya(["orders", "list"], settings.data_dir)

        assert result.returncode == 1
        assert "corrupt" in result.stderr
