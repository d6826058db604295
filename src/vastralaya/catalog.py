"""Product catalog storage."""

import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable

from .config import Settings
from .errors import ProductNotFoundError, ValidationError
from .identifiers import PRODUCT_KEY_PREFIX, generate_product_id
from .kv_store import KeyValueStore
from .models import Product, RetailerPrincipal, _created_sort_key, _to_iso
from .retailer_auth import require_retailer

logger = logging.getLogger(__name__)

# Wire names the retailer may change after creation.
EDITABLE_FIELDS = ("name", "description", "price", "category", "imageUrl", "stock")


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(fields: dict[str, Any]) -> None:
    for name, value in fields.items():
        if value is None:
            raise ValidationError(name, "must not be null")
    if "price" in fields and fields["price"] < 0:
        raise ValidationError("price", "must not be negative")
    if "stock" in fields and fields["stock"] < 0:
        raise ValidationError("stock", "must not be negative")
    if "name" in fields and not str(fields["name"]).strip():
        raise ValidationError("name", "must not be empty")


class ProductService:
    """Manages products on behalf of the retailer."""

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

    def list_products(self) -> list[Product]:
        """All products, newest first."""
        products = [Product.from_dict(d) for d in self.store.get_by_prefix(PRODUCT_KEY_PREFIX)]
        products.sort(key=lambda p: _created_sort_key(p.created_at), reverse=True)
        return products

    def list_for_retailer(self, retailer: RetailerPrincipal) -> list[Product]:
        require_retailer(self.settings, retailer, "list retailer products")
        return [p for p in self.list_products() if p.retailer_id == retailer.id]

    def get(self, product_id: str) -> Product:
        """
        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        data = self.store.get(product_id) if product_id.startswith(PRODUCT_KEY_PREFIX) else None
        if data is None:
            raise ProductNotFoundError(product_id)
        return Product.from_dict(data)

    def create(
        self,
        retailer: RetailerPrincipal,
        name: str,
        price: float,
        category: str,
        description: str = "",
        image_url: str = "",
        stock: int = 0,
    ) -> Product:
        """Add a product to the catalog."""
        require_retailer(self.settings, retailer, "add products")
        _check_fields({"name": name, "price": price, "stock": stock})

        now = self.clock()
        product = Product(
            id=generate_product_id(now, self.rng),
            name=name,
            price=price,
            category=category,
            description=description,
            image_url=image_url,
            stock=stock,
            retailer_id=retailer.id,
            created_at=_to_iso(now),
        )
        self.store.set(product.id, product.to_dict())
        logger.info("Product %s added (%s)", product.id, name)
        return product

    def update(
        self, retailer: RetailerPrincipal, product_id: str, changes: dict[str, Any]
    ) -> Product:
        """
        Merge changes (wire field names) into a product.

        Identity fields (id, retailerId, createdAt) are never overwritten.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            ValidationError: If a changed value is out of range.
        """
        require_retailer(self.settings, retailer, "update products")
        updates = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        _check_fields(updates)
        if not product_id.startswith(PRODUCT_KEY_PREFIX):
            raise ProductNotFoundError(product_id)

        def merge(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise ProductNotFoundError(product_id)
            return Product.from_dict({**current, **updates}).to_dict()

        product = Product.from_dict(self.store.update(product_id, merge))
        logger.info("Product %s updated: %s", product_id, ", ".join(sorted(updates)) or "no changes")
        return product

    def delete(self, retailer: RetailerPrincipal, product_id: str) -> None:
        """
        Raises:
            ProductNotFoundError: If product doesn't exist.
        """
        require_retailer(self.settings, retailer, "delete products")
        if not product_id.startswith(PRODUCT_KEY_PREFIX) or not self.store.delete(product_id):
            raise ProductNotFoundError(product_id)
        logger.info("Product %s deleted", product_id)
