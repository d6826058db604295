"""Wiring of the store and services shared by the API and the CLI."""

from dataclasses import dataclass

from .catalog import ProductService
from .config import Settings
from .identity import IdentityProvider, build_identity_provider
from .kv_store import JsonFileStore, KeyValueStore
from .orders import OrderService
from .payments import PaymentService
from .profiles import ProfileService
from .retailer_auth import RetailerAuth


@dataclass
class Services:
    settings: Settings
    store: KeyValueStore
    identity: IdentityProvider
    retailer_auth: RetailerAuth
    orders: OrderService
    payments: PaymentService
    products: ProductService
    profiles: ProfileService


def build_services(
    settings: Settings,
    identity: IdentityProvider | None = None,
    store: KeyValueStore | None = None,
) -> Services:
    """Build every service over one store."""
    store = store or JsonFileStore(settings.data_dir)
    orders = OrderService(store, settings)
    return Services(
        settings=settings,
        store=store,
        identity=identity or build_identity_provider(settings, store),
        retailer_auth=RetailerAuth(store, settings),
        orders=orders,
        payments=PaymentService(store, orders, settings),
        products=ProductService(store, settings),
        profiles=ProfileService(store),
    )
