"""Order management service."""
import logging
import random
import string
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set

from opentelemetry import trace

from storefront.config import CASH_ON_DELIVERY, COD_LIMIT
from storefront.errors import (
    CheckoutRejected,
    DeliveryContactUnavailable,
    OrderNotFound,
    RatingNotAllowed,
)
from storefront.monitoring import (
    checkout_amount_histogram,
    checkout_counter,
    order_ratings_counter,
)
from storefront.schemas import (
    CartEntry,
    FulfillmentTracker,
    Notice,
    Order,
    ORDER_DELIVERED,
    ORDER_PLACED,
)
from storefront.services.fulfillment_service import FulfillmentScheduler, status_message
from storefront.state_store import StateStore

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_order_id(now: float) -> str:
    """Current time in milliseconds followed by a random base-36 fragment."""
    fragment = "".join(random.choices(_BASE36, k=9))
    return f"{int(now * 1000)}{fragment}"


class OrderService:
    """Service for checkout, order views and ratings."""

    def __init__(
        self,
        store: StateStore,
        scheduler: FulfillmentScheduler,
        clock: Callable[[], float] = time.time,
        cod_limit: float = COD_LIMIT
    ):
        """
        Initialize order service.

        Args:
            store: State store holding cart and orders
            scheduler: Drives the fulfillment sequence of new batches
            clock: Time source for order ids and tracker timestamps
            cod_limit: Largest cart total accepted for cash on delivery
        """
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.cod_limit = cod_limit

    def _unique_order_id(self, now: float, taken: Set[str], is_stored: Callable[[str], bool]) -> str:
        while True:
            order_id = generate_order_id(now)
            if order_id in taken or is_stored(order_id):
                logger.warning("Generated order id collided, regenerating", extra={"order_id": order_id})
                continue
            taken.add(order_id)
            return order_id

    def process_checkout(self, payment_method: str) -> Dict[str, Any]:
        """
        Convert the cart into one order per entry.

        Args:
            payment_method: Payment method label

        Returns:
            Checkout result with the new orders and the latest one

        Raises:
            CheckoutRejected: If the cart is empty or cash on delivery is
                requested above the limit; nothing is written in that case
        """
        span = trace.get_current_span()
        span.set_attribute("payment.method", payment_method)

        checked_out: Dict[str, float] = {}

        def prepare(entries: List[CartEntry], is_stored: Callable[[str], bool]):
            total_amount = sum(entry.price for entry in entries)
            checked_out["total"] = total_amount

            if not entries:
                raise CheckoutRejected("Your cart is empty.", title="Cart is empty")

            if payment_method == CASH_ON_DELIVERY and total_amount > self.cod_limit:
                raise CheckoutRejected(
                    "Cash on Delivery is not available for orders above ₹1 Lakh. "
                    "Please choose another payment method.",
                    title="COD Limit Exceeded"
                )

            now = self.clock()
            taken: Set[str] = set()
            batch_id = uuid.uuid4().hex
            new_orders = [
                Order(
                    id=self._unique_order_id(now, taken, is_stored),
                    product_name=entry.name,
                    quantity=1,
                    status=ORDER_PLACED,
                    batch_id=batch_id
                )
                for entry in entries
            ]
            tracker = self.scheduler.new_tracker(
                batch_id=batch_id,
                order_ids=[order.id for order in new_orders],
                payment_method=payment_method,
                created_at=now
            )
            return new_orders, tracker

        try:
            new_orders, tracker = self.store.checkout(prepare)
        except CheckoutRejected as e:
            checkout_counter.add(1, {
                "payment_method": payment_method,
                "status": "rejected"
            })
            logger.warning("Checkout rejected", extra={
                "payment_method": payment_method,
                "amount": checked_out.get("total"),
                "reason": e.notice.title
            })
            raise

        total_amount = checked_out["total"]
        self.scheduler.start(tracker)

        checkout_counter.add(1, {
            "payment_method": payment_method,
            "status": "completed"
        })
        checkout_amount_histogram.record(total_amount, {"payment_method": payment_method})

        logger.info("Checkout completed", extra={
            "batch_id": tracker.batch_id,
            "amount": total_amount,
            "payment_method": payment_method,
            "order_count": len(new_orders)
        })

        return {
            "notice": Notice(
                title="Payment Successful",
                description=status_message(tracker)
            ),
            "orders": new_orders,
            "latest_order": new_orders[-1],
            "total_amount": total_amount
        }

    def list_orders(self) -> List[Order]:
        return self.store.orders()

    def get_order(self, order_id: str) -> Order:
        """
        Get one order by id.

        Raises:
            OrderNotFound: If no order has this id
        """
        order = self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(f"No order with id {order_id}.")
        return order

    def latest_order(self) -> Dict[str, Any]:
        """
        The order shown in the cart page tracker.

        While a batch is being fulfilled its latest order is reported with
        the tracker's status, which runs ahead of the stored orders until
        delivery. Without a tracker, the last stored order is reported.
        """
        tracker: Optional[FulfillmentTracker] = self.store.latest_tracker()
        if tracker is not None:
            order = self.store.get_order(tracker.latest_order_id)
            if order is not None:
                return {
                    "order": order.model_copy(update={"status": tracker.status}),
                    "message": status_message(tracker),
                    "next_transition_at": tracker.next_transition_at
                }

        orders = self.store.orders()
        return {"order": orders[-1] if orders else None}

    def submit_rating(
        self,
        order_id: str,
        rating: int,
        expected_version: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Rate a delivered order.

        Resubmitting the stored rating writes nothing.

        Raises:
            OrderNotFound: If no order has this id
            RatingNotAllowed: If the order has not been delivered
            StaleOrderVersion: If ``expected_version`` is outdated
        """
        order = self.get_order(order_id)
        if order.status != ORDER_DELIVERED:
            raise RatingNotAllowed(
                f"Order {order_id} can be rated once it has been delivered."
            )

        updated = self.store.update_order(
            order_id,
            {"rating": rating},
            expected_version=expected_version
        )

        order_ratings_counter.add(1, {"rating": str(rating)})
        logger.info("Order rated", extra={
            "order_id": order_id,
            "rating": rating,
            "version": updated.version
        })

        return {
            "notice": Notice(title="Rating Submitted", description="Thank you for your feedback!"),
            "order": updated
        }

    def track_order(self, order_id: str) -> Dict[str, Any]:
        order = self.get_order(order_id)
        return {
            "order_id": order.id,
            "status": order.status,
            "tracking_id": order.tracking_id,
            "tracking_url": order.tracking_url
        }

    def contact_delivery(self, order_id: str) -> Notice:
        """
        Notice for calling the delivery person of an order.

        Raises:
            DeliveryContactUnavailable: If no delivery person is assigned
        """
        order = self.get_order(order_id)
        personnel = order.delivery_personnel
        if personnel is None:
            raise DeliveryContactUnavailable(
                "Delivery personnel information is not available yet."
            )
        logger.info("Contacting delivery personnel", extra={"order_id": order_id})
        return Notice(
            title="Contacting Delivery Personnel",
            description=f"Calling {personnel.name} at {personnel.phone}"
        )
