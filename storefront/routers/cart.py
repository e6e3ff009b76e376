"""Cart API router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import get_cart_service
from storefront.errors import StorefrontError, to_http_exception
from storefront.schemas import AddToCartRequest, CartResponse
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart(cart_service: CartService = Depends(get_cart_service)):
    """Get cart entries and total."""
    return cart_service.get_cart()


@router.post("/items", response_model=CartResponse, status_code=201)
async def add_to_cart(
    request: AddToCartRequest,
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    """Append a product snapshot to the cart."""
    try:
        cart_service.add_to_cart(db=db, product_id=request.product_id)
    except StorefrontError as e:
        raise to_http_exception(e)
    return cart_service.get_cart()


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_from_cart(
    product_id: int,
    cart_service: CartService = Depends(get_cart_service)
):
    """Remove every entry of a product from the cart."""
    try:
        return cart_service.remove_from_cart(product_id)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.delete("", response_model=CartResponse)
async def clear_cart(cart_service: CartService = Depends(get_cart_service)):
    """Empty the cart."""
    cart_service.clear_cart()
    return cart_service.get_cart()
