import hmac
import hashlib
import json
from flask import Blueprint, request, jsonify, current_app

from constants import (
    WEBHOOK_SOURCE_PRINTFUL,
    WEBHOOK_STATUS_PROCESSED,
    WEBHOOK_STATUS_ERROR,
    WEBHOOK_STATUS_IGNORED,
)
from extensions import limiter
from services.container import get_services
from utils.timestamps import utc_now

webhook_bp = Blueprint('webhook', __name__)

SIGNATURE_HEADER = "X-PF-Signature"


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def signature_is_valid(secret: str, payload: bytes, signature) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, payload), signature.strip().lower())


@webhook_bp.route("/webhooks/printful", methods=["GET"])
def printful_webhook_verify():
    """Printful pings the URL with ?token= when the webhook is registered."""
    secret = current_app.config.get("PRINTFUL_WEBHOOK_SECRET")
    token = request.args.get("token", "")
    if secret and token and hmac.compare_digest(secret, token):
        return jsonify({"success": True}), 200
    return jsonify({"success": False, "error": "unauthorized"}), 401


@webhook_bp.route("/webhooks/printful", methods=["POST"])
@limiter.limit("120 per minute")
def printful_webhook():
    # Early-exit if webhook secret is not configured
    secret = current_app.config.get("PRINTFUL_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("[Webhook] PRINTFUL_WEBHOOK_SECRET is not configured.")
        return jsonify({"error": "Webhook not configured"}), 500

    payload = request.get_data()

    # 1. Validate signature before touching the body or the database
    if not signature_is_valid(secret, payload, request.headers.get(SIGNATURE_HEADER)):
        current_app.logger.warning("[Webhook] Invalid or missing Printful signature")
        return jsonify({"error": "Invalid signature"}), 401

    try:
        event = json.loads(payload)
    except ValueError as e:
        current_app.logger.warning(f"[Webhook] Invalid payload: {e}")
        return jsonify({"error": "Invalid payload"}), 400

    if not isinstance(event, dict):
        return jsonify({"error": "Invalid payload"}), 400

    event_type = event.get("type") or ""
    current_app.logger.info(f"[Webhook] Received Printful event: {event_type}")

    # 2. Only order events change local state
    if not event_type.startswith("order_"):
        return jsonify({"success": True, "ignored": True}), 200

    services = get_services()
    remote_order = (event.get("data") or {}).get("order") or {}
    event_id = f"{remote_order.get('id')}-{event.get('created')}"
    log = {
        "source": WEBHOOK_SOURCE_PRINTFUL,
        "event_type": event_type,
        "event_id": event_id,
        "payload": event,
    }

    # 3. Apply; a 500 makes Printful retry the delivery
    try:
        order_id = services.fulfillment.apply_webhook_event(event)
    except Exception as e:
        current_app.logger.exception(f"[Webhook] Failed processing {event_type} ({event_id})")
        services.reporter.capture(e, "printful_webhook", event_type=event_type, event_id=event_id)
        _write_log(services, dict(log, status=WEBHOOK_STATUS_ERROR, error_message=str(e)))
        return jsonify({"error": "Webhook processing failed"}), 500

    status = WEBHOOK_STATUS_PROCESSED if order_id else WEBHOOK_STATUS_IGNORED
    _write_log(services, dict(log, status=status, order_id=order_id))
    return jsonify({"success": True, "order_id": str(order_id) if order_id else None}), 200


def _write_log(services, fields):
    fields["processed_at"] = utc_now()
    try:
        services.repository.insert_webhook_log(fields)
    except Exception as e:
        current_app.logger.error(f"[Webhook] Could not write webhook log: {e}")
