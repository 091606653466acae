"""
Order submission and status reconciliation against Printful.

Two producers update local order status: the webhook (push) and
`refresh_order_status` (poll). Both funnel into `update_local_order_status`,
which derives every written value, `updated_at` included, from the remote
snapshot. Applying the same snapshot twice leaves the row unchanged.

Idempotency on submit:
1. An order that already has a printful_order_id is never resubmitted.
2. The external id is generated once and persisted before the first call, so
   a retry after a lost response reuses it and Printful rejects the duplicate.
3. On such a rejection we look the order up by external id and adopt it.
"""
import logging

from constants import (
    ORDER_STATUS_PROCESSING,
    SUBMITTABLE_ORDER_STATUSES,
)
from services.fulfillment_providers import OrderSubmissionError
from services.observability import ErrorReporter
from services.printful_client import PrintfulApiError
from utils.timestamps import from_unix

logger = logging.getLogger(__name__)


def _is_duplicate_external_id(error) -> bool:
    return (
        isinstance(error, PrintfulApiError)
        and error.code == 400
        and "external" in (error.message or "").lower()
    )


def latest_shipment(remote_order):
    shipments = [s for s in (remote_order.get("shipments") or []) if isinstance(s, dict)]
    if not shipments:
        return None
    return max(shipments, key=lambda s: (s.get("shipped_at") or 0, s.get("id") or 0))


class OrderFulfillment:
    def __init__(self, provider, repository, reporter=None):
        self.provider = provider
        self.repository = repository
        self.reporter = reporter or ErrorReporter()

    def _load(self, order_id):
        order = self.repository.find_order_by_local_id(order_id)
        if not order:
            raise OrderSubmissionError(f"Order {order_id} not found")
        return order

    def submit_local_order(self, order_id):
        """
        Send a paid order to Printful.

        Returns a dict describing the remote order. On failure the order is
        left in `submission_failed` with the error text, and
        OrderSubmissionError is raised.
        """
        order = self._load(order_id)
        local_id = order["id"]

        if order.get("printful_order_id"):
            logger.info(f"[Fulfillment] Order {local_id} already at Printful ({order['printful_order_id']}); not resubmitting")
            return {
                "order_id": local_id,
                "printful_order_id": order["printful_order_id"],
                "external_id": order.get("printful_external_id"),
                "status": order.get("status"),
                "already_submitted": True,
            }

        if order.get("status") not in SUBMITTABLE_ORDER_STATUSES:
            raise OrderSubmissionError(
                f"Order {local_id} is '{order.get('status')}'; only paid orders can be submitted"
            )

        external_id = order.get("printful_external_id")
        if not external_id:
            external_id = self.provider.build_external_id(local_id)
            self.repository.set_order_external_id(local_id, external_id)

        logger.info(f"[Fulfillment] Submitting order {local_id} (external_id={external_id})")
        try:
            items = self.repository.get_order_items(local_id)
            variants = self.repository.get_variants_by_ids([i["variant_id"] for i in items])
            payload = self.provider.build_order_payload(order, items, variants, external_id)
            remote = self._submit_or_adopt(payload, external_id)
        except (OrderSubmissionError, PrintfulApiError) as e:
            self.repository.mark_order_submission_failed(local_id, str(e))
            self.reporter.capture(e, "printful_order_submission", order_id=local_id, external_id=external_id)
            logger.error(f"[Fulfillment] Order {local_id} submission failed: {e}")
            if isinstance(e, OrderSubmissionError):
                raise
            raise OrderSubmissionError(str(e)) from e

        self.repository.record_order_submission(
            local_id,
            printful_order_id=remote["id"],
            printful_status=remote.get("status"),
            status=ORDER_STATUS_PROCESSING,
        )
        logger.info(f"[Fulfillment] Order {local_id} submitted as Printful {remote['id']}")
        return {
            "order_id": local_id,
            "printful_order_id": remote["id"],
            "external_id": external_id,
            "status": ORDER_STATUS_PROCESSING,
            "printful_status": remote.get("status"),
            "already_submitted": False,
        }

    def _submit_or_adopt(self, payload, external_id):
        try:
            return self.provider.submit_order(payload)
        except PrintfulApiError as e:
            if not _is_duplicate_external_id(e):
                raise
            logger.warning(f"[Fulfillment] External id {external_id} already exists at Printful; adopting it")
            remote = self.provider.find_by_external_id(external_id)
            if not remote or not remote.get("id"):
                raise
            return remote

    def update_local_order_status(self, order_id, remote_order):
        """Apply a Printful order snapshot to the local row. Returns the written fields."""
        shipment = latest_shipment(remote_order)
        fields = {
            "status": self.provider.map_status(remote_order.get("status")),
            "printful_status": remote_order.get("status"),
            "printful_order_id": remote_order.get("id"),
            "tracking_number": shipment.get("tracking_number") if shipment else None,
            "tracking_url": shipment.get("tracking_url") if shipment else None,
            "shipped_at": from_unix(shipment.get("shipped_at")) if shipment else None,
            "updated_at": from_unix(remote_order.get("updated")) or from_unix(remote_order.get("created")),
        }
        self.repository.update_order_status(order_id, fields)
        logger.info(
            f"[Fulfillment] Order {order_id} -> {fields['status']} "
            f"(printful={fields['printful_status']}, tracking={fields['tracking_number']})"
        )
        return fields

    def refresh_order_status(self, order_id):
        """Poll Printful for an order's state."""
        order = self._load(order_id)
        if not order.get("printful_order_id"):
            raise OrderSubmissionError(f"Order {order['id']} has not been submitted to Printful")
        remote = self.provider.get_status(order["printful_order_id"])
        return self.update_local_order_status(order["id"], remote)

    def cancel_local_order(self, order_id):
        order = self._load(order_id)
        if not order.get("printful_order_id"):
            raise OrderSubmissionError(f"Order {order['id']} has not been submitted to Printful")
        remote = self.provider.cancel_order(order["printful_order_id"])
        return self.update_local_order_status(order["id"], remote)

    def apply_webhook_event(self, event):
        """
        Handle an `order_*` webhook. Returns the local order id, or None when
        the event doesn't reference an order we know.
        """
        remote_order = (event.get("data") or {}).get("order") or {}
        external_id = remote_order.get("external_id")
        if not external_id:
            return None
        order = self.repository.find_order_by_local_id(external_id)
        if not order:
            logger.warning(f"[Fulfillment] Webhook for unknown order external_id={external_id}")
            return None
        self.update_local_order_status(order["id"], remote_order)
        return order["id"]
