"""Cart management service."""
import logging
from typing import Dict, Any
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.monitoring import cart_additions_counter, cart_removals_counter
from storefront.schemas import CartEntry
from storefront.services.catalog_service import CatalogService
from storefront.state_store import StateStore

logger = logging.getLogger(__name__)


class CartService:
    """Service for managing the shopping cart."""

    def __init__(self, store: StateStore, catalog_service: CatalogService):
        """
        Initialize cart service.

        Args:
            store: State store holding the cart
            catalog_service: Catalog used to snapshot products
        """
        self.store = store
        self.catalog_service = catalog_service

    def add_to_cart(self, db: Session, product_id: int) -> Dict[str, Any]:
        """
        Append a snapshot of a catalog product to the cart.

        Adding the same product twice stores two entries; there is no
        per-entry quantity.

        Args:
            db: Database session
            product_id: Product identifier

        Returns:
            The stored entry and the new cart size

        Raises:
            ProductNotFound: If the product is not in the catalog
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)

        product = self.catalog_service.get_product(db, product_id)
        entry = CartEntry.model_validate(product)
        count = self.store.append_cart_entry(entry)

        cart_additions_counter.add(1, {
            "category": entry.category,
            "product_id": str(product_id)
        })

        logger.info("Added product to cart", extra={
            "product_id": product_id,
            "product_name": entry.name,
            "cart_count": count
        })

        return {"entry": entry, "count": count}

    def get_cart(self) -> Dict[str, Any]:
        """
        Get cart contents.

        Returns:
            Entries in insertion order, their price total and count
        """
        entries = self.store.cart_entries()
        return {
            "entries": entries,
            "total": sum(entry.price for entry in entries),
            "count": len(entries)
        }

    def remove_from_cart(self, product_id: int) -> Dict[str, Any]:
        """Remove every entry for a product and return the updated cart."""
        removed = self.store.remove_cart_product(product_id)
        if removed:
            cart_removals_counter.add(removed, {"product_id": str(product_id)})
        logger.info("Removed product from cart", extra={
            "product_id": product_id,
            "removed_entries": removed
        })
        return self.get_cart()

    def clear_cart(self) -> None:
        self.store.clear_cart()
        logger.info("Cart cleared")
