"""Order fulfillment state machine.

A checkout batch moves strictly forward through
Placed -> Preparing -> Out for Delivery -> Delivered, one step per fixed
delay. The tracker for the batch is persisted after every step together
with the timestamp of the next due transition, so a restarted process can
resume the sequence where it stopped. Only the final step touches the
orders themselves: every order of the batch is set to Delivered.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from opentelemetry import trace

from storefront.config import FULFILLMENT_RETRY_DELAY, FULFILLMENT_STEP_DELAYS
from storefront.monitoring import order_status_transitions_counter
from storefront.schemas import (
    FulfillmentTracker,
    ORDER_DELIVERED,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_PLACED,
    ORDER_PREPARING,
    ORDER_STATUS_SEQUENCE,
)
from storefront.state_store import StateStore

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    ORDER_PREPARING: "Your order is being prepared.",
    ORDER_OUT_FOR_DELIVERY: "Your order is out for delivery.",
    ORDER_DELIVERED: "Your order has been delivered.",
}


def next_status(status: str) -> Optional[str]:
    """Return the status that follows ``status``, or None once terminal."""
    try:
        index = ORDER_STATUS_SEQUENCE.index(status)
    except ValueError:
        return None
    if index + 1 >= len(ORDER_STATUS_SEQUENCE):
        return None
    return ORDER_STATUS_SEQUENCE[index + 1]


def status_message(tracker: FulfillmentTracker) -> str:
    """Shopper-facing message for the tracker's current status."""
    if tracker.status == ORDER_PLACED:
        return f"Order placed successfully! Payment method: {tracker.payment_method}"
    return STATUS_MESSAGES.get(tracker.status, f"Order status: {tracker.status}")


class FulfillmentScheduler:
    """Drives fulfillment trackers with owned, cancelable timer handles."""

    def __init__(
        self,
        store: StateStore,
        step_delays: Sequence[float] = FULFILLMENT_STEP_DELAYS,
        clock: Callable[[], float] = time.time,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        retry_delay: float = FULFILLMENT_RETRY_DELAY
    ):
        """
        Initialize the scheduler.

        Args:
            store: State store holding trackers and orders
            step_delays: Seconds spent in each non-terminal status
            clock: Wall-clock source; due times are persisted as epoch seconds
            loop: Event loop for timers; the running loop when omitted
            retry_delay: Seconds before a failed step is attempted again
        """
        if len(step_delays) != len(ORDER_STATUS_SEQUENCE) - 1:
            raise ValueError("step_delays needs one delay per transition")
        self.store = store
        self.step_delays = tuple(float(d) for d in step_delays)
        self.clock = clock
        self.retry_delay = float(retry_delay)
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self.tracer = trace.get_tracer(__name__)

    def new_tracker(
        self,
        batch_id: str,
        order_ids: List[str],
        payment_method: str,
        created_at: float
    ) -> FulfillmentTracker:
        """Build the tracker for a batch that has just been placed."""
        return FulfillmentTracker(
            batch_id=batch_id,
            order_ids=order_ids,
            latest_order_id=order_ids[-1],
            payment_method=payment_method,
            status=ORDER_PLACED,
            created_at=created_at,
            next_transition_at=created_at + self.step_delays[0]
        )

    def _delay_after(self, status: str) -> float:
        return self.step_delays[ORDER_STATUS_SEQUENCE.index(status)]

    def advance(self, batch_id: str, now: Optional[float] = None) -> Optional[FulfillmentTracker]:
        """
        Apply every transition of a batch that is due at ``now``.

        Overdue transitions are applied one status at a time, each due time
        counted from the previous one, so a resumed sequence never skips a
        status.

        Returns:
            The tracker after advancing, or None if the batch is unknown
        """
        tracker = self.store.get_tracker(batch_id)
        if tracker is None:
            logger.warning("Fulfillment tracker not found", extra={"batch_id": batch_id})
            return None

        now = self.clock() if now is None else now
        moved = False
        while tracker.next_transition_at is not None and now >= tracker.next_transition_at:
            target = next_status(tracker.status)
            if target is None:
                tracker = tracker.model_copy(update={"next_transition_at": None})
                moved = True
                break

            with self.tracer.start_as_current_span("fulfillment.transition") as span:
                span.set_attribute("fulfillment.batch_id", batch_id)
                span.set_attribute("fulfillment.status.from", tracker.status)
                span.set_attribute("fulfillment.status.to", target)

                due_at = tracker.next_transition_at
                next_due = None if target == ORDER_DELIVERED else due_at + self._delay_after(target)
                tracker = tracker.model_copy(update={
                    "status": target,
                    "next_transition_at": next_due
                })
                if target == ORDER_DELIVERED:
                    self.store.set_orders_status(tracker.order_ids, ORDER_DELIVERED)

            moved = True
            order_status_transitions_counter.add(1, {"status": target})
            logger.info("Order batch status advanced", extra={
                "batch_id": batch_id,
                "status": target,
                "order_count": len(tracker.order_ids)
            })

        if moved:
            self.store.save_tracker(tracker)
        return tracker

    # -------------------- timers --------------------

    def start(self, tracker: FulfillmentTracker) -> None:
        """Begin driving a freshly persisted tracker."""
        self._schedule(tracker)

    def _schedule(self, tracker: FulfillmentTracker) -> None:
        if tracker.next_transition_at is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        delay = max(0.0, tracker.next_transition_at - self.clock())
        self.cancel(tracker.batch_id)
        self._handles[tracker.batch_id] = loop.call_later(delay, self._on_timer, tracker.batch_id)

    def _on_timer(self, batch_id: str) -> None:
        self._handles.pop(batch_id, None)
        try:
            tracker = self.advance(batch_id)
        except Exception:
            # The retry re-reads the persisted tracker, so no step is lost
            logger.exception("Fulfillment step failed, retrying", extra={
                "batch_id": batch_id,
                "retry_delay": self.retry_delay
            })
            self._retry(batch_id)
            return
        if tracker is not None:
            self._schedule(tracker)

    def _retry(self, batch_id: str) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self.cancel(batch_id)
        self._handles[batch_id] = loop.call_later(self.retry_delay, self._on_timer, batch_id)

    def cancel(self, batch_id: str) -> bool:
        """Stop the timer for one batch. Persisted progress is kept."""
        handle = self._handles.pop(batch_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Stop every timer owned by this scheduler."""
        batch_ids = list(self._handles)
        for batch_id in batch_ids:
            self.cancel(batch_id)
        return len(batch_ids)

    def pending_batches(self) -> List[str]:
        return list(self._handles)

    def resume(self) -> int:
        """
        Pick up every persisted tracker with a transition still due.

        Overdue steps are applied immediately; the rest get timers.

        Returns:
            Number of trackers resumed
        """
        trackers = self.store.pending_trackers()
        for pending in trackers:
            tracker = self.advance(pending.batch_id)
            if tracker is not None:
                self._schedule(tracker)
        if trackers:
            logger.info("Resumed fulfillment trackers", extra={"tracker_count": len(trackers)})
        return len(trackers)
