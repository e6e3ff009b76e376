"""Orders API router."""
from fastapi import APIRouter, Depends

from storefront.dependencies import get_order_service
from storefront.errors import StorefrontError, to_http_exception
from storefront.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    LatestOrderResponse,
    NoticeResponse,
    Order,
    OrdersListResponse,
    RatingRequest,
    RatingResponse,
    TrackingResponse,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Turn the cart into orders and start their fulfillment sequence."""
    try:
        return order_service.process_checkout(payment_method=request.payment_method)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.get("", response_model=OrdersListResponse)
async def get_orders(order_service: OrderService = Depends(get_order_service)):
    """Get every order, oldest first."""
    return {"orders": order_service.list_orders()}


@router.get("/latest", response_model=LatestOrderResponse)
async def get_latest_order(order_service: OrderService = Depends(get_order_service)):
    """Get the most recently placed order with its live fulfillment status."""
    return order_service.latest_order()


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: str, order_service: OrderService = Depends(get_order_service)):
    try:
        return order_service.get_order(order_id)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.post("/{order_id}/rating", response_model=RatingResponse)
async def submit_rating(
    order_id: str,
    request: RatingRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Rate a delivered order (1-5 stars)."""
    try:
        return order_service.submit_rating(
            order_id,
            request.rating,
            expected_version=request.expected_version
        )
    except StorefrontError as e:
        raise to_http_exception(e)


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def track_order(order_id: str, order_service: OrderService = Depends(get_order_service)):
    try:
        return order_service.track_order(order_id)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.post("/{order_id}/contact-delivery", response_model=NoticeResponse)
async def contact_delivery(order_id: str, order_service: OrderService = Depends(get_order_service)):
    """Call the delivery person assigned to an order."""
    try:
        return {"notice": order_service.contact_delivery(order_id)}
    except StorefrontError as e:
        raise to_http_exception(e)
