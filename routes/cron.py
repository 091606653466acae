from flask import Blueprint, request, jsonify, current_app

from extensions import limiter
from services.container import get_services
from utils.decorators import require_cron_secret

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


@cron_bp.route("/sync-products", methods=["POST"])
@limiter.limit("10 per hour")
@require_cron_secret
def sync_products():
    body = request.get_json(silent=True) or {}
    force = bool(body.get("force"))
    min_hours = current_app.config.get("MIN_HOURS_BETWEEN_SYNCS", 12)

    synchronizer = get_services().synchronizer
    result = synchronizer.run_scheduled_sync(min_hours=min_hours, force=force)
    if result is None:
        return jsonify({"success": True, "skipped": True, "reason": f"last sync within {min_hours}h"})

    status_code = 200 if result.success else 500
    return jsonify(result.to_dict()), status_code


@cron_bp.route("/sync-categories", methods=["POST"])
@limiter.limit("10 per hour")
@require_cron_secret
def sync_categories():
    result = get_services().synchronizer.sync_categories()
    return jsonify(result), (200 if result["success"] else 500)


@cron_bp.route("/process-mockup-tasks", methods=["POST"])
@limiter.limit("60 per hour")
@require_cron_secret
def process_mockup_tasks():
    queue = get_services().mockup_queue
    started = queue.process_queue()
    polled = queue.poll_generation_results()
    return jsonify({"success": True, "started": started, "results_updated": polled})
