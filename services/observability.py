"""
Error reporting for the Printful integration.

Every service takes a reporter so the destination can be swapped (an error
tracker in production, a recorder in tests). The default writes a structured
log record; tags are redacted before they leave the process.
"""
import logging

from utils.redaction import redact_mapping

logger = logging.getLogger(__name__)

# Customer PII that must never reach an external tracker.
PII_KEYS = {"email", "phone", "address1", "address2", "recipient"}


def _clean_tags(tags):
    cleaned = {k: v for k, v in tags.items() if k.lower() not in PII_KEYS and v is not None}
    return redact_mapping(cleaned)


class ErrorReporter:
    """Logs captured errors with their operation and tags."""

    def capture(self, error, operation, **tags):
        clean = _clean_tags(tags)
        logger.error(
            f"[Observability] {operation} failed: {type(error).__name__}: {error}",
            extra={"operation": operation, "tags": clean},
        )
        return clean


class RecordingReporter(ErrorReporter):
    """Keeps captured errors in memory; used by tests and the CLI dry-runs."""

    def __init__(self):
        self.events = []

    def capture(self, error, operation, **tags):
        clean = super().capture(error, operation, **tags)
        self.events.append({"error": error, "operation": operation, "tags": clean})
        return clean
