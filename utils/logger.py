import logging
import json
import uuid
import sys
from flask import request, has_request_context, g

from utils.redaction import redact_mapping
from utils.timestamps import utc_now

# Extra attributes callers may attach via logger.info(..., extra={...})
CONTEXT_FIELDS = ("operation", "endpoint", "reason", "task_id", "order_id", "sync_id")


class JSONFormatter(logging.Formatter):
    """
    Formatter to output logs in JSON format.
    Includes request_id if available in Flask context.
    """
    def format(self, record):
        log_record = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "lineno": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_record[field] = value

        tags = getattr(record, "tags", None)
        if isinstance(tags, dict):
            log_record["tags"] = redact_mapping(tags)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        if has_request_context():
            log_record["method"] = request.method
            log_record["path"] = request.path
            if hasattr(g, "request_id"):
                log_record["request_id"] = g.request_id

        return json.dumps(log_record, default=str)


def setup_logger(app):
    """
    Configures JSON logging to stdout (for container logging).

    The root logger gets the same handler so module loggers in services/
    land in the same stream as app.logger.
    """
    app.logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    app.logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False

    root = logging.getLogger()
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        root.addHandler(handler)
    if root.level > logging.INFO or root.level == logging.NOTSET:
        root.setLevel(logging.INFO)

    logging.getLogger('werkzeug').handlers = [handler]

    gunicorn_logger = logging.getLogger('gunicorn.error')
    if gunicorn_logger.handlers:
        app.logger.handlers = gunicorn_logger.handlers
        app.logger.setLevel(gunicorn_logger.level)

    @app.before_request
    def add_request_id():
        g.request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))

    app.logger.info("Logger setup complete. JSON formatted logs enabled.")
