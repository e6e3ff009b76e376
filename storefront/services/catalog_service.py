"""Product catalog service."""
import logging
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.errors import ProductNotFound
from storefront.models import PRODUCT_CATEGORIES, Product

logger = logging.getLogger(__name__)


class CatalogService:
    """Read-only access to the product catalog."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def list_products(
        self,
        db: Session,
        search: Optional[str] = None,
        category: Optional[str] = None,
        sort: str = "default",
        min_rating: Optional[float] = None
    ) -> List[Product]:
        """
        List catalog products.

        Args:
            db: Database session
            search: Case-insensitive substring of the product name
            category: Only products of this category
            sort: "default" (catalog order), "lowToHigh" or "highToLow" by price
            min_rating: Only products rated at least this much

        Returns:
            Matching products
        """
        with self.tracer.start_as_current_span("db.query.list_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")

            query = db.query(Product)
            if category:
                query = query.filter(Product.category == category)
            if search:
                query = query.filter(Product.name.ilike(f"%{search}%"))
            if min_rating is not None:
                query = query.filter(Product.rating >= min_rating)

            if sort == "lowToHigh":
                query = query.order_by(Product.price.asc(), Product.id.asc())
            elif sort == "highToLow":
                query = query.order_by(Product.price.desc(), Product.id.asc())
            else:
                query = query.order_by(Product.id.asc())

            products = query.all()
            db_span.set_attribute("db.rows_returned", len(products))

        return products

    def get_product(self, db: Session, product_id: int) -> Product:
        """
        Get one product.

        Raises:
            ProductNotFound: If the id is not in the catalog
        """
        product = db.query(Product).filter(Product.id == product_id).first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} is not in the catalog.")
        return product

    def catalog_by_category(self, db: Session, **filters) -> Dict[str, List[Product]]:
        """Products grouped into the material, machine and worker tabs."""
        grouped: Dict[str, List[Product]] = {category: [] for category in PRODUCT_CATEGORIES}
        for product in self.list_products(db, **filters):
            if product.category in grouped:
                grouped[product.category].append(product)
            else:
                logger.warning("Product with unknown category", extra={
                    "product_id": product.id,
                    "category": product.category
                })
        return grouped
