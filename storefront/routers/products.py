"""Products API router."""
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from opentelemetry import trace

from storefront.database import get_db
from storefront.dependencies import get_catalog_service
from storefront.errors import ProductNotFound, to_http_exception
from storefront.monitoring import product_views_counter
from storefront.schemas import CatalogResponse, PriceSort, ProductCategory, ProductResponse
from storefront.services.catalog_service import CatalogService

router = APIRouter(prefix="/api", tags=["products"])


@router.get("/products", response_model=List[ProductResponse])
async def get_products(
    search: Optional[str] = Query(None, description="Case-insensitive name search"),
    category: Optional[ProductCategory] = Query(None),
    sort: PriceSort = Query("default", description="default, lowToHigh or highToLow"),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    List catalog products.

    Examples:
    - GET /api/products - whole catalog in catalog order
    - GET /api/products?category=machine&sort=highToLow
    - GET /api/products?search=cement&minRating=4
    """
    products = catalog.list_products(
        db,
        search=search,
        category=category,
        sort=sort,
        min_rating=min_rating
    )

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    span.set_attribute("endpoint.type", "product_catalog")

    product_views_counter.add(1, {"view": "list", "category": category or "all"})

    return products


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    search: Optional[str] = Query(None),
    sort: PriceSort = Query("default"),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Catalog grouped into material, machine and worker tabs."""
    product_views_counter.add(1, {"view": "catalog", "category": "all"})
    return catalog.catalog_by_category(db, search=search, sort=sort, min_rating=min_rating)


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get product details."""
    try:
        product = catalog.get_product(db, product_id)
    except ProductNotFound as e:
        raise to_http_exception(e)

    span = trace.get_current_span()
    span.set_attribute("product.id", product_id)

    product_views_counter.add(1, {"view": "detail", "category": product.category})

    return product
