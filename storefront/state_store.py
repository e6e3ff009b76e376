"""Redis-backed state store for the cart, orders and fulfillment trackers.

Key layout under the configured namespace:

- ``<ns>:cart``               list of JSON cart entries, in insertion order
- ``<ns>:orders``             hash of order id -> JSON order
- ``<ns>:orders:index``       list of order ids, in creation order
- ``<ns>:fulfillment``        hash of batch id -> JSON fulfillment tracker
- ``<ns>:fulfillment:latest`` id of the most recently created batch

Multi-key writes run as optimistic transactions (WATCH/MULTI/EXEC). A
transaction that loses a race is retried from a fresh read, so concurrent
writers are detected instead of silently overwriting each other.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

import redis
from opentelemetry import trace
from pydantic import BaseModel, ValidationError

from storefront.config import STORE_NAMESPACE
from storefront.errors import OrderNotFound, StaleOrderVersion, StoreWriteConflict
from storefront.monitoring import store_parse_failures_counter, store_write_conflicts_counter
from storefront.schemas import CartEntry, FulfillmentTracker, Order

logger = logging.getLogger(__name__)

MAX_TRANSACTION_RETRIES = 10

ModelT = TypeVar("ModelT", bound=BaseModel)
CheckoutPlan = Tuple[List[Order], FulfillmentTracker]


class StateStore:
    """Explicit read/write access to the storefront's persisted state."""

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = STORE_NAMESPACE,
        max_retries: int = MAX_TRANSACTION_RETRIES
    ):
        """
        Initialize the state store.

        Args:
            redis_client: Redis client created with ``decode_responses=True``
            namespace: Prefix for every key the store owns
            max_retries: Attempts per optimistic transaction before giving up
        """
        self.redis_client = redis_client
        self.namespace = namespace
        self.max_retries = max_retries
        self.tracer = trace.get_tracer(__name__)

        self.cart_key = f"{namespace}:cart"
        self.orders_key = f"{namespace}:orders"
        self.order_index_key = f"{namespace}:orders:index"
        self.trackers_key = f"{namespace}:fulfillment"
        self.latest_tracker_key = f"{namespace}:fulfillment:latest"

    # -------------------- parsing --------------------

    def _parse_sequence(
        self,
        raw_items: Iterable[Optional[str]],
        model: Type[ModelT],
        slot: str
    ) -> List[ModelT]:
        """Parse a persisted sequence; any unreadable item empties the whole sequence."""
        try:
            items = []
            for raw in raw_items:
                if raw is None:
                    raise ValueError("indexed record is missing")
                items.append(model.model_validate_json(raw))
            return items
        except (ValidationError, ValueError) as e:
            store_parse_failures_counter.add(1, {"slot": slot})
            logger.warning("Failed to parse persisted sequence, using empty sequence", extra={
                "slot": slot,
                "error": str(e)
            })
            return []

    def _parse_one(self, raw: Optional[str], model: Type[ModelT], slot: str) -> Optional[ModelT]:
        if raw is None:
            return None
        parsed = self._parse_sequence([raw], model, slot)
        return parsed[0] if parsed else None

    @staticmethod
    def _dump(record: BaseModel) -> str:
        return record.model_dump_json(by_alias=True)

    def _read_list(self, client: Any, key: str) -> List[str]:
        try:
            return client.lrange(key, 0, -1)
        except redis.ResponseError as e:
            # Key holds a value of the wrong type
            logger.warning("Unreadable list slot", extra={"key": key, "error": str(e)})
            return []

    def _read_orders(self, client: Any) -> List[Order]:
        order_ids = self._read_list(client, self.order_index_key)
        if not order_ids:
            return []
        try:
            raw_orders = client.hmget(self.orders_key, order_ids)
        except redis.ResponseError as e:
            logger.warning("Unreadable order slot", extra={"key": self.orders_key, "error": str(e)})
            return []
        return self._parse_sequence(raw_orders, Order, "orders")

    def _run_transaction(self, name: str, watch_keys: Sequence[str], body: Callable[[Any], Any]) -> Any:
        """
        Run ``body`` inside an optimistic transaction, retrying on conflict.

        ``body`` receives a pipeline in immediate mode with ``watch_keys``
        watched; it reads, calls ``pipe.multi()`` and queues its writes.
        Exceptions raised by ``body`` abort the transaction untouched.
        """
        with self.tracer.start_as_current_span(f"cache.transaction.{name}") as span:
            span.set_attribute("cache.system", "redis")
            with self.redis_client.pipeline() as pipe:
                for attempt in range(1, self.max_retries + 1):
                    try:
                        pipe.watch(*watch_keys)
                        result = body(pipe)
                        pipe.execute()
                        span.set_attribute("cache.transaction.attempts", attempt)
                        return result
                    except redis.WatchError:
                        store_write_conflicts_counter.add(1, {"operation": name})
                        logger.warning("Concurrent write detected, retrying transaction", extra={
                            "operation": name,
                            "attempt": attempt
                        })
            raise StoreWriteConflict(
                "The store kept changing while saving your request. Please try again."
            )

    # -------------------- cart --------------------

    def cart_entries(self) -> List[CartEntry]:
        """Return the cart as an ordered sequence of product snapshots."""
        return self._parse_sequence(
            self._read_list(self.redis_client, self.cart_key), CartEntry, "cart"
        )

    def append_cart_entry(self, entry: CartEntry) -> int:
        """Append one snapshot to the cart and return the new cart length."""
        with self.tracer.start_as_current_span("cache.rpush") as span:
            span.set_attribute("cache.system", "redis")
            span.set_attribute("cache.key", self.cart_key)
            return self.redis_client.rpush(self.cart_key, self._dump(entry))

    def remove_cart_product(self, product_id: int) -> int:
        """Remove every cart entry for ``product_id``; returns how many were removed."""
        def body(pipe):
            entries = self._parse_sequence(self._read_list(pipe, self.cart_key), CartEntry, "cart")
            kept = [entry for entry in entries if entry.id != product_id]
            pipe.multi()
            pipe.delete(self.cart_key)
            if kept:
                pipe.rpush(self.cart_key, *[self._dump(entry) for entry in kept])
            return len(entries) - len(kept)

        return self._run_transaction("remove_cart_product", [self.cart_key], body)

    def clear_cart(self) -> None:
        """Empty the cart in one write."""
        self.redis_client.delete(self.cart_key)

    # -------------------- orders --------------------

    def orders(self) -> List[Order]:
        """Return every order ever checked out, oldest first."""
        return self._read_orders(self.redis_client)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._parse_one(self.redis_client.hget(self.orders_key, order_id), Order, "orders")

    def update_order(
        self,
        order_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Order:
        """
        Apply field changes to one order, keyed by id.

        A write that changes nothing is skipped, so the version only moves on
        effective changes.

        Raises:
            OrderNotFound: If no order has this id
            StaleOrderVersion: If ``expected_version`` no longer matches
        """
        def body(pipe):
            current = self._parse_one(pipe.hget(self.orders_key, order_id), Order, "orders")
            if current is None:
                raise OrderNotFound(f"No order with id {order_id}.")
            if expected_version is not None and current.version != expected_version:
                raise StaleOrderVersion(
                    f"Order {order_id} is at version {current.version}, not {expected_version}."
                )
            updated = current.model_copy(update=changes)
            if updated == current:
                pipe.multi()
                return current
            updated = updated.model_copy(update={"version": current.version + 1})
            pipe.multi()
            pipe.hset(self.orders_key, order_id, self._dump(updated))
            return updated

        return self._run_transaction("update_order", [self.orders_key], body)

    def set_orders_status(self, order_ids: Sequence[str], status: str) -> List[Order]:
        """Set ``status`` on every listed order in one transaction."""
        def body(pipe):
            raw_orders = pipe.hmget(self.orders_key, list(order_ids)) if order_ids else []
            changed = []
            for order_id, raw in zip(order_ids, raw_orders):
                order = self._parse_one(raw, Order, "orders")
                if order is None:
                    logger.warning("Order missing from store", extra={"order_id": order_id})
                    continue
                if order.status != status:
                    changed.append(order.model_copy(update={
                        "status": status,
                        "version": order.version + 1
                    }))
            pipe.multi()
            for order in changed:
                pipe.hset(self.orders_key, order.id, self._dump(order))
            return changed

        return self._run_transaction("set_orders_status", [self.orders_key], body)

    def checkout(
        self,
        prepare: Callable[[List[CartEntry], Callable[[str], bool]], CheckoutPlan]
    ) -> CheckoutPlan:
        """
        Convert the cart into orders atomically.

        ``prepare`` receives the current cart entries and a predicate telling
        whether an order id is already stored. It returns the new orders and
        their fulfillment tracker, or raises to reject the checkout, in which
        case nothing is written.
        """
        def body(pipe):
            entries = self._parse_sequence(self._read_list(pipe, self.cart_key), CartEntry, "cart")
            new_orders, tracker = prepare(
                entries,
                lambda order_id: bool(pipe.hexists(self.orders_key, order_id))
            )
            pipe.multi()
            for order in new_orders:
                pipe.hset(self.orders_key, order.id, self._dump(order))
            pipe.rpush(self.order_index_key, *[order.id for order in new_orders])
            pipe.delete(self.cart_key)
            pipe.hset(self.trackers_key, tracker.batch_id, self._dump(tracker))
            pipe.set(self.latest_tracker_key, tracker.batch_id)
            return new_orders, tracker

        return self._run_transaction(
            "checkout",
            [self.cart_key, self.orders_key, self.order_index_key],
            body
        )

    # -------------------- fulfillment trackers --------------------

    def save_tracker(self, tracker: FulfillmentTracker) -> None:
        self.redis_client.hset(self.trackers_key, tracker.batch_id, self._dump(tracker))

    def get_tracker(self, batch_id: str) -> Optional[FulfillmentTracker]:
        return self._parse_one(
            self.redis_client.hget(self.trackers_key, batch_id), FulfillmentTracker, "fulfillment"
        )

    def latest_tracker(self) -> Optional[FulfillmentTracker]:
        batch_id = self.redis_client.get(self.latest_tracker_key)
        if batch_id is None:
            return None
        return self.get_tracker(batch_id)

    def pending_trackers(self) -> List[FulfillmentTracker]:
        """Trackers whose sequence has a transition still due."""
        raw_trackers = self.redis_client.hvals(self.trackers_key)
        trackers = self._parse_sequence(raw_trackers, FulfillmentTracker, "fulfillment")
        return [t for t in trackers if t.next_transition_at is not None]
