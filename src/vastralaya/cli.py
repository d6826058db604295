"""Command-line interface for vastralaya."""

import argparse
import json
import logging
import sys

from . import __version__
from .config import Settings
from .errors import VastralayaError
from .identifiers import format_barcode_display
from .models import ORDER_STATUSES, Order
from .services import Services, build_services


def get_services() -> Services:
    """Build services for the configured data directory."""
    return build_services(Settings.from_env())


def format_order(order: Order, verbose: bool = False) -> str:
    """Format an order for display."""
    payment = order.effective_payment_status
    result = (
        f"{order.id}  {order.status:<9} {payment:<7} "
        f"{order.total_amount:>10.2f}  {format_barcode_display(order.barcode)}"
    )
    if verbose:
        result += f"\n    Customer: {order.customer_name} <{order.customer_email}>"
        result += f"\n    Tracking: {order.tracking_number or 'N/A'}"
        if order.estimated_delivery:
            result += f"\n    Estimated delivery: {order.estimated_delivery}"
        for item in order.items:
            result += f"\n      {item.quantity} x {item.name} @ {item.price:.2f}"
    return result


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List all orders, newest first."""
    try:
        services = get_services()
        orders = services.orders.list_all(services.settings.retailer)

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders.")
            return 0

        for order in orders:
            print(format_order(order, verbose=args.verbose))
        return 0

    except VastralayaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_set_status(args: argparse.Namespace) -> int:
    """Set an order's status as the retailer."""
    try:
        services = get_services()
        order = services.orders.transition_status(
            services.settings.retailer, args.order_id, args.status
        )
        print(f"Order {order.id} is now {order.status}")
        return 0

    except VastralayaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_regenerate_barcode(args: argparse.Namespace) -> int:
    """Issue a new barcode and tracking number."""
    try:
        services = get_services()
        order = services.orders.regenerate_barcode(services.settings.retailer, args.order_id)
        print(f"Barcode: {format_barcode_display(order.barcode)}")
        print(f"Tracking: {order.tracking_number}")
        return 0

    except VastralayaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_migrate_orders(args: argparse.Namespace) -> int:
    """Backfill legacy orders."""
    try:
        services = get_services()
        result = services.orders.migrate_legacy_orders(services.settings.retailer)
        print(f"Migrated {result.migrated_count} of {result.total_orders} orders")
        return 0

    except VastralayaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_track(args: argparse.Namespace) -> int:
    """Look an order up by barcode, tracking number or ID."""
    try:
        services = get_services()
        order = services.orders.track(args.identifier)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
        else:
            print(format_order(order, verbose=True))
        return 0

    except VastralayaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = Settings.from_env()
        print("Starting vastralaya API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "vastralaya.api:app" if args.reload else None
        if app_target is None:
            from .api import create_app
            app_target = create_app(settings)

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
            log_level=settings.log_level.lower(),
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vastralaya",
        description="Storefront backend: serve the API and administer orders.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # orders
    orders_parser = subparsers.add_parser("orders", help="Administer orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List all orders")
    orders_list_parser.add_argument("--verbose", "-v", action="store_true", help="Show details")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    set_status_parser = orders_subparsers.add_parser("set-status", help="Set an order's status")
    set_status_parser.add_argument("order_id", help="Order ID")
    set_status_parser.add_argument("status", choices=ORDER_STATUSES, help="New status")

    regenerate_parser = orders_subparsers.add_parser(
        "regenerate-barcode", help="Issue a new barcode and tracking number"
    )
    regenerate_parser.add_argument("order_id", help="Order ID")

    # migrate-orders
    subparsers.add_parser(
        "migrate-orders", help="Backfill barcodes and tracking numbers on legacy orders"
    )

    # track
    track_parser = subparsers.add_parser("track", help="Look up an order")
    track_parser.add_argument("identifier", help="Barcode, tracking number or order ID")
    track_parser.add_argument("--json", action="store_true", help="Output as JSON")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=Settings.from_env().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    # Handle orders subcommands
    if args.command == "orders":
        if not getattr(args, "orders_command", None):
            parser.parse_args(["orders", "--help"])
            return 0
        if args.orders_command == "list":
            return cmd_orders_list(args)
        elif args.orders_command == "set-status":
            return cmd_orders_set_status(args)
        elif args.orders_command == "regenerate-barcode":
            return cmd_orders_regenerate_barcode(args)

    commands = {
        "serve": cmd_serve,
        "migrate-orders": cmd_migrate_orders,
        "track": cmd_track,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
