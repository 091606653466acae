"""
Printful REST client.

All calls go through `PrintfulClient.request`, which classifies every failure
into a `PrintfulApiError` and retries the transient ones (transport failures,
429, 5xx) with exponential backoff: 1s, 2s, 4s for the default ceiling of 3.
"""
import logging
import time

import requests
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception

from services.observability import ErrorReporter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.printful.com"
DEFAULT_MAX_RETRIES = 3
SYNC_PRODUCTS_PAGE_SIZE = 100

REASON_MISSING_API_KEY = "missing_api_key"
REASON_JSON_PARSE_ERROR = "json_parse_error"
REASON_INVALID_RESPONSE = "invalid_response"
REASON_MISSING_RESULT = "missing_result"
REASON_API_ERROR = "api_error"
REASON_HTTP_ERROR = "http_error"
REASON_NETWORK_ERROR = "network_error"

# Errors we synthesize ourselves from a malformed body; only worth retrying if
# the HTTP status alongside them was transient.
_SYNTHESIZED_REASONS = {REASON_JSON_PARSE_ERROR, REASON_INVALID_RESPONSE, REASON_MISSING_RESULT}


def _is_transient_status(status) -> bool:
    return status is not None and (status == 429 or status >= 500)


class PrintfulApiError(Exception):
    """A failed Printful call. `code` mirrors the HTTP/API code."""

    def __init__(self, code, message, reason=None, endpoint=None, http_status=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.reason = reason
        self.endpoint = endpoint
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        if self.reason == REASON_NETWORK_ERROR:
            return True
        if self.reason == REASON_MISSING_API_KEY:
            return False
        if self.reason in _SYNTHESIZED_REASONS:
            return _is_transient_status(self.http_status)
        return _is_transient_status(self.code)

    def to_dict(self):
        return {"code": self.code, "message": self.message, "reason": self.reason}

    def __repr__(self):
        return f"PrintfulApiError(code={self.code}, reason={self.reason!r}, message={self.message!r})"


def _should_retry(exc) -> bool:
    return isinstance(exc, PrintfulApiError) and exc.retryable


class PrintfulClient:
    def __init__(
        self,
        api_key,
        base_url=DEFAULT_BASE_URL,
        sandbox=False,
        max_retries=DEFAULT_MAX_RETRIES,
        timeout=30.0,
        api_location="us-east",
        session=None,
        sleep=time.sleep,
        reporter=None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.sandbox = sandbox
        self.max_retries = max(0, int(max_retries))
        self.timeout = timeout
        self.api_location = api_location
        self.session = session or requests.Session()
        self._sleep = sleep
        self.reporter = reporter or ErrorReporter()

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------
    def _headers(self):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.api_location:
            headers["X-PF-API-Location"] = self.api_location
        if self.sandbox:
            headers["X-PF-Sandbox"] = "1"
        return headers

    def _error(self, code, message, reason, endpoint, http_status=None):
        err = PrintfulApiError(code, message, reason, endpoint=endpoint, http_status=http_status)
        self.reporter.capture(err, "printful_request", endpoint=endpoint, reason=reason, code=code)
        return err

    def _log_retry(self, retry_state):
        exc = retry_state.outcome.exception()
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"[Printful] Retrying {getattr(exc, 'endpoint', '?')} in {wait:.0f}s "
            f"(attempt {retry_state.attempt_number}/{self.max_retries}): {exc}"
        )

    def request(self, endpoint, method="GET", json=None, params=None):
        """
        Perform a call and return the decoded envelope (`{"code", "result", ...}`).

        Raises PrintfulApiError once retries are exhausted or the failure is
        terminal.
        """
        if not self.api_key:
            raise self._error(401, "Printful API key is not configured", REASON_MISSING_API_KEY, endpoint)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, exp_base=2),
            retry=retry_if_exception(_should_retry),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(self._send, endpoint, method, json, params)

    def _send(self, endpoint, method, json, params):
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise self._error(500, f"Network error calling Printful: {e}", REASON_NETWORK_ERROR, endpoint)

        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            code = status if status >= 400 else 500
            raise self._error(code, "Printful returned a non-JSON body", REASON_JSON_PARSE_ERROR, endpoint, http_status=status)

        if not isinstance(body, dict):
            raise self._error(500, "Printful returned an unexpected body", REASON_INVALID_RESPONSE, endpoint, http_status=status)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or str(body.get("result") or "Printful API error")
                reason = error.get("reason") or REASON_API_ERROR
            else:
                message = str(error)
                reason = REASON_API_ERROR
            code = body.get("code") or status
            raise self._error(int(code), message, reason, endpoint, http_status=status)

        if status >= 400:
            message = body.get("result") if isinstance(body.get("result"), str) else f"HTTP {status}"
            raise self._error(status, message, REASON_HTTP_ERROR, endpoint, http_status=status)

        if "result" not in body:
            raise self._error(500, "Printful response has no result", REASON_MISSING_RESULT, endpoint, http_status=status)

        return body

    def _result(self, endpoint, method="GET", json=None, params=None):
        return self.request(endpoint, method=method, json=json, params=params)["result"]

    # ------------------------------------------------------------------
    # Sync (store) products
    # ------------------------------------------------------------------
    def get_sync_products(self, page_size=SYNC_PRODUCTS_PAGE_SIZE):
        """All store products, following Printful's offset paging."""
        products = []
        offset = 0
        while True:
            envelope = self.request("/sync/products", params={"offset": offset, "limit": page_size})
            batch = envelope.get("result") or []
            products.extend(batch)
            total = (envelope.get("paging") or {}).get("total")
            offset += len(batch)
            if not batch or total is None or offset >= int(total):
                break
        return products

    def get_sync_product(self, product_id):
        """Returns {"sync_product": {...}, "sync_variants": [...]}."""
        return self._result(f"/sync/products/{product_id}")

    def get_sync_variant(self, variant_id):
        return self._result(f"/sync/variant/{variant_id}")

    def create_store_product(self, product_data):
        return self._result("/store/products", method="POST", json=product_data)

    def update_store_product(self, product_id, product_data):
        return self._result(f"/store/products/{product_id}", method="PUT", json=product_data)

    def delete_store_product(self, product_id):
        return self._result(f"/store/products/{product_id}", method="DELETE")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def get_catalog_products(self):
        return self._result("/catalog/products")

    def get_catalog_product(self, product_id):
        return self._result(f"/catalog/products/{product_id}")

    def get_catalog_variants(self, product_id):
        return self._result(f"/catalog/products/{product_id}/variants")

    def get_catalog_categories(self):
        result = self._result("/store/categories")
        # Printful nests the list under "categories" on some API versions.
        if isinstance(result, dict):
            return result.get("categories") or []
        return result or []

    # ------------------------------------------------------------------
    # Mockup generator
    # ------------------------------------------------------------------
    def get_printfiles(self, product_id):
        return self._result(f"/mockup-generator/printfiles/{product_id}")

    def create_mockup_task(self, product_id, variant_ids, files, image_format="jpg"):
        """Returns the envelope so callers can inspect job-level errors."""
        return self.request(
            f"/mockup-generator/create-task/{product_id}",
            method="POST",
            json={"variant_ids": list(variant_ids), "format": image_format, "files": files},
        )

    def get_mockup_task(self, task_key):
        return self._result("/mockup-generator/task", params={"task_key": task_key})

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def submit_order(self, order_data, confirm=False):
        params = {"confirm": "true"} if confirm else None
        return self.request("/orders", method="POST", json=order_data, params=params)

    def get_order(self, order_id):
        return self._result(f"/orders/{order_id}")

    def cancel_order(self, order_id):
        return self._result(f"/orders/{order_id}", method="DELETE")
