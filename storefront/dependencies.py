"""Dependency injection for services."""
from fastapi import Request

from storefront.services.cart_service import CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.fulfillment_service import FulfillmentScheduler
from storefront.services.order_service import OrderService
from storefront.state_store import StateStore


def get_store(request: Request) -> StateStore:
    """Get the state store from app state."""
    return request.app.state.store


def get_scheduler(request: Request) -> FulfillmentScheduler:
    """Get the fulfillment scheduler started by the lifespan handler."""
    return request.app.state.scheduler


def get_catalog_service() -> CatalogService:
    return CatalogService()


def get_cart_service(request: Request) -> CartService:
    """Get cart service instance."""
    return CartService(get_store(request), get_catalog_service())


def get_order_service(request: Request) -> OrderService:
    """Get order service instance."""
    return OrderService(
        get_store(request),
        get_scheduler(request),
        clock=request.app.state.clock
    )
