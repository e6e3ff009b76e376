"""Pydantic schemas for persisted state and request/response validation.

Persisted records and API payloads share one camelCase wire layout
(``productName``, ``trackingId``, ...), so the same models serialize the
Redis blobs and the HTTP bodies.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional

ORDER_PLACED = "Placed"
ORDER_PREPARING = "Preparing"
ORDER_OUT_FOR_DELIVERY = "Out for Delivery"
ORDER_DELIVERED = "Delivered"

# Fulfillment only ever moves forward through this sequence
ORDER_STATUS_SEQUENCE = (
    ORDER_PLACED,
    ORDER_PREPARING,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_DELIVERED,
)

PaymentMethod = Literal["COD", "UPI", "NEFT", "BankTransfer"]
ProductCategory = Literal["material", "machine", "worker"]
PriceSort = Literal["default", "lowToHigh", "highToLow"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductResponse(CamelModel):
    """Schema for a catalog product."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )

    id: int
    name: str
    price: float
    image: str = "/placeholder.svg"
    description: str = ""
    category: ProductCategory
    rating: float = 0.0


class CatalogResponse(BaseModel):
    """Catalog grouped by product category."""
    material: List[ProductResponse]
    machine: List[ProductResponse]
    worker: List[ProductResponse]


class CartEntry(ProductResponse):
    """Product snapshot held in the cart. Duplicates are separate entries."""


class AddToCartRequest(CamelModel):
    """Schema for add to cart request."""
    product_id: int


class CartResponse(CamelModel):
    """Schema for cart response."""
    entries: List[CartEntry]
    total: float
    count: int


class DeliveryPersonnel(CamelModel):
    name: str
    phone: str


class Order(CamelModel):
    """Order record as persisted in the order store."""
    id: str
    product_name: str
    quantity: int = 1
    status: str = ORDER_PLACED
    rating: int = Field(0, ge=0, le=5)
    tracking_id: Optional[str] = None
    tracking_url: Optional[str] = None
    delivery_personnel: Optional[DeliveryPersonnel] = None
    batch_id: Optional[str] = None
    version: int = 0


class FulfillmentTracker(CamelModel):
    """Persisted state of the status-transition sequence for one checkout batch."""
    batch_id: str
    order_ids: List[str]
    latest_order_id: str
    payment_method: PaymentMethod
    status: str = ORDER_PLACED
    created_at: float
    next_transition_at: Optional[float] = None


class Notice(BaseModel):
    """User-visible, toast-style notification."""
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


class CheckoutRequest(CamelModel):
    """Schema for checkout request."""
    payment_method: PaymentMethod


class CheckoutResponse(CamelModel):
    """Schema for checkout response."""
    notice: Notice
    orders: List[Order]
    latest_order: Order
    total_amount: float


class LatestOrderResponse(CamelModel):
    """Most recently created order as shown on the cart page tracker."""
    order: Optional[Order] = None
    message: Optional[str] = None
    next_transition_at: Optional[float] = None


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[Order]


class RatingRequest(CamelModel):
    """Schema for rating submission."""
    rating: int = Field(..., ge=1, le=5)
    expected_version: Optional[int] = None


class RatingResponse(CamelModel):
    notice: Notice
    order: Order


class TrackingResponse(CamelModel):
    """Schema for order tracking details."""
    order_id: str
    status: str
    tracking_id: Optional[str] = None
    tracking_url: Optional[str] = None


class NoticeResponse(BaseModel):
    notice: Notice
