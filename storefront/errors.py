"""Storefront errors.

Every error carries the notice shown to the shopper. Routers turn them into
``HTTPException`` responses with the notice as detail.
"""
from typing import Optional

from fastapi import HTTPException

from storefront.schemas import Notice


class StorefrontError(ValueError):
    """Base error with a user-visible notice."""

    status_code = 400
    title = "Request Failed"

    def __init__(self, description: str, title: Optional[str] = None):
        super().__init__(description)
        self.notice = Notice(
            title=title or self.title,
            description=description,
            variant="destructive"
        )


class CheckoutRejected(StorefrontError):
    title = "Checkout Rejected"


class ProductNotFound(StorefrontError):
    status_code = 404
    title = "Product Not Found"


class OrderNotFound(StorefrontError):
    status_code = 404
    title = "Order Not Found"


class RatingNotAllowed(StorefrontError):
    status_code = 409
    title = "Rating Unavailable"


class DeliveryContactUnavailable(StorefrontError):
    status_code = 409
    title = "Unable to Contact"


class StaleOrderVersion(StorefrontError):
    status_code = 409
    title = "Order Changed"


class StoreWriteConflict(StorefrontError):
    status_code = 409
    title = "Please Try Again"


def to_http_exception(error: StorefrontError) -> HTTPException:
    """HTTP error response carrying the error's notice."""
    return HTTPException(status_code=error.status_code, detail=error.notice.model_dump())
