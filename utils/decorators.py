import hmac
from functools import wraps
from flask import request, jsonify, current_app


def _bearer_token():
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def _tokens_match(expected, incoming) -> bool:
    if not expected or not incoming:
        return False
    return hmac.compare_digest(str(expected), str(incoming))


def require_shared_secret(config_key: str, header_name: str):
    """
    Deny the request unless `header_name` (or an Authorization bearer token)
    matches app.config[config_key]. An unset secret denies everything.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            expected = current_app.config.get(config_key)
            incoming = request.headers.get(header_name) or _bearer_token()
            if not _tokens_match(expected, incoming):
                current_app.logger.warning(f"[Auth] Rejected {request.path}: bad or missing {header_name}")
                return jsonify({"success": False, "error": "unauthorized"}), 401
            return f(*args, **kwargs)
        return decorated_function
    return decorator


require_cron_secret = require_shared_secret("CRON_SECRET", "X-CRON-SECRET")
require_admin_token = require_shared_secret("ADMIN_API_TOKEN", "X-ADMIN-TOKEN")
