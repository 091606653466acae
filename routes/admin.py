from flask import Blueprint, request, jsonify, current_app

from constants import CHANGE_STATUS_APPROVED, CHANGE_STATUS_REJECTED, SYNC_TYPE_FULL
from services.container import get_services
from services.fulfillment_providers import OrderSubmissionError
from services.printful_client import PrintfulApiError
from services.product_sync import CategoryMappingError, ChangeReviewError
from utils.decorators import require_admin_token

admin_bp = Blueprint('admin', __name__, url_prefix="/admin/printful")


@admin_bp.before_request
@require_admin_token
def require_admin():
    return None


def _reviewer():
    body = request.get_json(silent=True) or {}
    return body.get("reviewer") or request.headers.get("X-ADMIN-USER") or "admin"


@admin_bp.errorhandler(PrintfulApiError)
def handle_printful_error(e):
    current_app.logger.error(f"[Admin] Printful error: {e.message} ({e.reason})")
    status = e.code if 400 <= (e.code or 0) < 600 else 502
    return jsonify({"success": False, "error": e.message, "reason": e.reason}), status


# ---------------------------------------------------------------------------
# Mockups
# ---------------------------------------------------------------------------
@admin_bp.route("/mockups", methods=["POST"])
def enqueue_mockups():
    body = request.get_json(silent=True) or {}
    required = ("variant_id", "printful_product_id", "printful_variant_id")
    missing = [k for k in required if body.get(k) in (None, "")]
    if missing:
        return jsonify({"success": False, "error": f"missing fields: {', '.join(missing)}"}), 400

    views = body.get("views") or [body.get("view") or "front"]
    queue = get_services().mockup_queue
    task_ids = [
        queue.enqueue(
            body["variant_id"],
            body["printful_product_id"],
            body["printful_variant_id"],
            view,
            printful_external_id=body.get("printful_external_id"),
        )
        for view in views
    ]
    return jsonify({"success": True, "task_ids": task_ids}), 202


@admin_bp.route("/mockups/status/<variant_id>", methods=["GET"])
def mockup_status(variant_id):
    return jsonify(get_services().mockup_queue.get_queue_status(variant_id))


@admin_bp.route("/mockups/<task_id>", methods=["DELETE"])
def remove_mockup_task(task_id):
    if get_services().mockup_queue.remove_pending(task_id):
        return jsonify({"success": True})
    return jsonify({"success": False, "error": "task not found or already started"}), 409


# ---------------------------------------------------------------------------
# Sync + change review
# ---------------------------------------------------------------------------
@admin_bp.route("/sync/products", methods=["POST"])
def trigger_product_sync():
    result = get_services().synchronizer.sync_products(SYNC_TYPE_FULL)
    return jsonify(result.to_dict()), (200 if result.success else 500)


@admin_bp.route("/sync/categories", methods=["POST"])
def trigger_category_sync():
    result = get_services().synchronizer.sync_categories()
    return jsonify(result), (200 if result["success"] else 500)


@admin_bp.route("/sync/history", methods=["GET"])
def sync_history():
    limit = request.args.get("limit", 20, type=int)
    rows = get_services().synchronizer.list_sync_history(limit)
    return jsonify({"success": True, "history": [vars(r) for r in rows]})


@admin_bp.route("/changes", methods=["GET"])
def list_changes():
    status = request.args.get("status", "pending_review")
    changes = get_services().synchronizer.list_product_changes(status or None)
    return jsonify({"success": True, "changes": [c.to_dict() for c in changes]})


def _review(change_id, action):
    synchronizer = get_services().synchronizer
    try:
        if action == "apply":
            change = synchronizer.apply_product_change(change_id, _reviewer())
        else:
            change = synchronizer.review_product_change(change_id, action, _reviewer())
    except ChangeReviewError as e:
        return jsonify({"success": False, "error": str(e)}), 409
    return jsonify({"success": True, "change": change.to_dict()})


@admin_bp.route("/changes/<int:change_id>/approve", methods=["POST"])
def approve_change(change_id):
    return _review(change_id, CHANGE_STATUS_APPROVED)


@admin_bp.route("/changes/<int:change_id>/reject", methods=["POST"])
def reject_change(change_id):
    return _review(change_id, CHANGE_STATUS_REJECTED)


@admin_bp.route("/changes/<int:change_id>/apply", methods=["POST"])
def apply_change(change_id):
    return _review(change_id, "apply")


# ---------------------------------------------------------------------------
# Category mapping
# ---------------------------------------------------------------------------
@admin_bp.route("/categories", methods=["GET"])
def list_categories():
    return jsonify({"success": True, "categories": get_services().synchronizer.list_category_mappings()})


@admin_bp.route("/categories/<int:printful_category_id>", methods=["PUT"])
def update_category(printful_category_id):
    body = request.get_json(silent=True) or {}
    local_category_id = body.get("local_category_id")
    is_active = body.get("is_active", True)
    if local_category_id is not None and not isinstance(local_category_id, str):
        return jsonify({"success": False, "error": "local_category_id must be a string or null"}), 400
    if not isinstance(is_active, bool):
        return jsonify({"success": False, "error": "is_active must be a boolean"}), 400

    try:
        row = get_services().synchronizer.update_category_mapping(
            printful_category_id, local_category_id or None, is_active
        )
    except CategoryMappingError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    return jsonify({"success": True, "category": row})


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@admin_bp.route("/orders/<order_id>/submit", methods=["POST"])
def submit_order(order_id):
    try:
        result = get_services().fulfillment.submit_local_order(order_id)
    except OrderSubmissionError as e:
        return jsonify({"success": False, "error": str(e)}), 422
    return jsonify(dict(result, success=True))


@admin_bp.route("/orders/<order_id>/refresh", methods=["POST"])
def refresh_order(order_id):
    try:
        fields = get_services().fulfillment.refresh_order_status(order_id)
    except OrderSubmissionError as e:
        return jsonify({"success": False, "error": str(e)}), 422
    return jsonify({"success": True, "order": fields})


@admin_bp.route("/orders/<order_id>/cancel", methods=["POST"])
def cancel_order(order_id):
    try:
        fields = get_services().fulfillment.cancel_local_order(order_id)
    except OrderSubmissionError as e:
        return jsonify({"success": False, "error": str(e)}), 422
    return jsonify({"success": True, "order": fields})
