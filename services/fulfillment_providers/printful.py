import logging
import time

from constants import (
    PRINTFUL_ORDER_STATUS_MAP,
    ORDER_STATUS_PENDING,
    COUNTRY_CODE_ALIASES,
    US_STATE_CODES,
    CA_PROVINCE_CODES,
    DEFAULT_CURRENCY,
    DEFAULT_SHIPPING_METHOD,
)
from services.fulfillment_providers import FulfillmentProvider, OrderSubmissionError

logger = logging.getLogger(__name__)

# Printful caps external_id at 32 characters.
EXTERNAL_ID_MAX_LENGTH = 32
EXTERNAL_ID_PREFIX_LENGTH = 24

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 only encodes non-negative integers")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def build_external_id(order_id, now_ms=None) -> str:
    """Hyphen-free local id prefix plus a base36 millisecond stamp."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    prefix = str(order_id).replace("-", "")[:EXTERNAL_ID_PREFIX_LENGTH]
    return (prefix + to_base36(int(now_ms)))[:EXTERNAL_ID_MAX_LENGTH]


def normalize_country(country) -> str:
    raw = (country or "").strip().upper()
    if not raw:
        return "US"
    return COUNTRY_CODE_ALIASES.get(raw, raw if len(raw) == 2 else raw[:2])


def normalize_state(state, country_code):
    raw = (state or "").strip().upper()
    if not raw:
        return None
    if len(raw) == 2:
        return raw
    if country_code == "US":
        return US_STATE_CODES.get(raw, raw)
    if country_code == "CA":
        return CA_PROVINCE_CODES.get(raw, raw)
    return raw


def _money(value) -> str:
    return f"{float(value or 0):.2f}"


class PrintfulProvider(FulfillmentProvider):
    """
    Printful order API. Submissions are created as drafts unless `confirm`
    is set, in which case Printful charges and starts production.
    """

    def __init__(self, client, confirm_orders=False):
        self.client = client
        self.confirm_orders = confirm_orders

    def build_order_payload(self, order, items, variants, external_id):
        by_id = {str(v["id"]): v for v in variants}
        lines = []
        for item in items:
            variant = by_id.get(str(item.get("variant_id")))
            if not variant or not variant.get("printful_id"):
                raise OrderSubmissionError(
                    f"Order {order['id']}: item {item.get('id')} has no Printful variant mapping"
                )
            lines.append({
                "sync_variant_id": int(variant["printful_id"]),
                "quantity": int(item.get("quantity") or 1),
                "retail_price": _money(item.get("price") or variant.get("retail_price")),
                "name": item.get("name") or variant.get("name"),
            })

        if not lines:
            raise OrderSubmissionError(f"Order {order['id']} has no items")

        country_code = normalize_country(order.get("shipping_country"))
        return {
            "external_id": external_id,
            "shipping": DEFAULT_SHIPPING_METHOD,
            "recipient": {
                "name": order.get("shipping_name"),
                "address1": order.get("shipping_address1"),
                "address2": order.get("shipping_address2") or None,
                "city": order.get("shipping_city"),
                "state_code": normalize_state(order.get("shipping_state"), country_code),
                "country_code": country_code,
                "zip": order.get("shipping_postal_code"),
                "email": order.get("email"),
                "phone": order.get("phone") or None,
            },
            "items": lines,
            "retail_costs": {
                "currency": order.get("currency") or DEFAULT_CURRENCY,
                "subtotal": _money(order.get("subtotal")),
                "shipping": _money(order.get("shipping_cost")),
                "tax": _money(order.get("tax_amount")),
            },
        }

    def build_external_id(self, order_id, now_ms=None):
        return build_external_id(order_id, now_ms)

    def submit_order(self, payload):
        envelope = self.client.submit_order(payload, confirm=self.confirm_orders)
        remote = envelope.get("result") if isinstance(envelope, dict) else None
        if not isinstance(remote, dict) or not remote.get("id"):
            raise OrderSubmissionError("Printful accepted the request but returned no order")
        logger.info(f"[Printful] Created order {remote['id']} (external_id={payload.get('external_id')})")
        return remote

    def find_by_external_id(self, external_id):
        return self.client.get_order(f"@{external_id}")

    def cancel_order(self, provider_order_id):
        logger.info(f"[Printful] Cancelling order {provider_order_id}")
        return self.client.cancel_order(provider_order_id)

    def get_status(self, provider_order_id):
        return self.client.get_order(provider_order_id)

    def map_status(self, provider_status):
        return PRINTFUL_ORDER_STATUS_MAP.get((provider_status or "").strip().lower(), ORDER_STATUS_PENDING)
