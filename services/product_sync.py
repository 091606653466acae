"""
Catalog sync: pull Printful store products into local products/variants.

Safe metadata (names, sku, options, files) is written directly. Anything that
changes what a customer pays or whether they can buy (price, stock, a variant
disappearing) is staged as a ProductChange for an admin to approve and apply.

Each run writes exactly one printful_sync_history row. It is inserted as
`failed`/"in progress" up front, so a process that dies mid-run leaves an
honest record behind, and completed once at the end.
"""
import logging
from decimal import Decimal, InvalidOperation

from slugify import slugify

from constants import (
    SYNC_TYPE_FULL,
    SYNC_TYPE_SCHEDULED,
    SYNC_SCOPE_PRODUCTS,
    SYNC_SCOPE_CATEGORIES,
    SYNC_STATUS_SUCCESS,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_FAILED,
    CHANGE_TYPE_PRICE,
    CHANGE_TYPE_INVENTORY,
    CHANGE_TYPE_VARIANT,
    SEVERITY_CRITICAL,
    SEVERITY_STANDARD,
    CHANGE_STATUS_PENDING_REVIEW,
    CHANGE_STATUS_APPROVED,
    CHANGE_STATUS_REJECTED,
    CHANGE_STATUS_APPLIED,
    APPLICABLE_CHANGE_STATUSES,
    PRICE_TOLERANCE,
    DEFAULT_CURRENCY,
)
from models import ProductChange, SyncHistory, SyncResult
from services.observability import ErrorReporter
from services.variant_options import derive_options
from utils.timestamps import utc_now, hours_between

logger = logging.getLogger(__name__)

# Product columns an applied change may write directly.
APPLICABLE_PRODUCT_FIELDS = {"name", "description", "thumbnail_url"}


class ChangeReviewError(ValueError):
    pass


class CategoryMappingError(LookupError):
    pass


def to_price(value):
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def prices_differ(a, b) -> bool:
    a, b = to_price(a), to_price(b)
    if a is None or b is None:
        return False
    return abs(a - b) > Decimal(str(PRICE_TOLERANCE))


def remote_in_stock(variant) -> bool:
    if "in_stock" in variant:
        return bool(variant["in_stock"])
    status = variant.get("availability_status")
    if status is None:
        return True
    return status == "active"


def _text(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_bool(value):
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def summarize_status(synced, failed):
    if failed == 0:
        return SYNC_STATUS_SUCCESS
    if synced > 0:
        return SYNC_STATUS_PARTIAL
    return SYNC_STATUS_FAILED


class CatalogSynchronizer:
    def __init__(self, client, repository, reporter=None, now=utc_now):
        self.client = client
        self.repository = repository
        self.reporter = reporter or ErrorReporter()
        self._now = now

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def sync_products(self, sync_type=SYNC_TYPE_FULL) -> SyncResult:
        started_at = self._now()
        result = SyncResult()
        logger.info(f"[Sync] Starting {sync_type} product sync")

        try:
            result.sync_id = self.repository.insert_sync_history(sync_type, SYNC_SCOPE_PRODUCTS, started_at)
            remote_products = self.client.get_sync_products()

            for summary in remote_products:
                if self._sync_one_product(summary, result.sync_id):
                    result.synced_count += 1
                else:
                    result.failed_count += 1

            result.status = summarize_status(result.synced_count, result.failed_count)
            message = f"Synced {result.synced_count} products, {result.failed_count} failed"
            self.repository.complete_sync_history(
                result.sync_id, result.status, message,
                result.synced_count, result.failed_count, self._now(),
            )
            logger.info(f"[Sync] {message} (status={result.status})")
            return result
        except Exception as e:
            logger.error(f"[Sync] Product sync aborted: {e}")
            self.reporter.capture(e, "printful_product_sync", sync_id=result.sync_id, sync_type=sync_type)
            result.status = SYNC_STATUS_FAILED
            result.error = str(e)
            self._record_failure(result, sync_type, SYNC_SCOPE_PRODUCTS, started_at, f"Sync failed: {e}")
            return result

    def _record_failure(self, result, sync_type, scope, started_at, message):
        """Best effort: the database may be what failed in the first place."""
        try:
            if result.sync_id is None:
                result.sync_id = self.repository.insert_sync_history(sync_type, scope, started_at)
            self.repository.complete_sync_history(
                result.sync_id, SYNC_STATUS_FAILED, message,
                result.synced_count, result.failed_count, self._now(),
            )
        except Exception as e:
            logger.error(f"[Sync] Could not record failed sync: {e}")

    def _sync_one_product(self, summary, sync_id) -> bool:
        remote_id = summary.get("id")
        try:
            return self._sync_product(summary, sync_id)
        except Exception as e:
            logger.error(f"[Sync] Product {remote_id} failed: {e}")
            self.reporter.capture(e, "printful_product_sync_item", printful_product_id=remote_id, sync_id=sync_id)
            return False

    def _sync_product(self, summary, sync_id) -> bool:
        remote_id = int(summary["id"])
        detail = self.client.get_sync_product(remote_id) or {}
        remote_product = detail.get("sync_product") or summary
        remote_variants = detail.get("sync_variants") or []
        now = self._now()

        base_price = to_price(remote_variants[0].get("retail_price")) if remote_variants else None
        product = self.repository.find_product_by_remote_id(remote_id)
        is_new = product is None

        if is_new:
            product = self.repository.upsert_product({
                "printful_id": remote_id,
                "printful_external_id": remote_product.get("external_id"),
                "printful_synced": True,
                "name": remote_product.get("name") or f"Printful product {remote_id}",
                "description": remote_product.get("description"),
                "slug": self._unique_slug(remote_product.get("name"), remote_id),
                "thumbnail_url": remote_product.get("thumbnail_url"),
                "published_status": False,
                "price": base_price,
                "synced_at": now,
            })
            logger.info(f"[Sync] Created product {product['id']} from Printful {remote_id}")
        else:
            self.repository.update_product_fields(product["id"], {
                "name": remote_product.get("name") or product.get("name"),
                "printful_synced": True,
                "synced_at": now,
            })
            if prices_differ(product.get("price"), base_price):
                self._stage(
                    product, None, remote_id, CHANGE_TYPE_PRICE, SEVERITY_CRITICAL,
                    "price", to_price(product.get("price")), base_price, sync_id,
                )

        variant_failures = 0
        remote_variant_ids = set()
        for remote_variant in remote_variants:
            if remote_variant.get("id") is not None:
                remote_variant_ids.add(int(remote_variant["id"]))
            try:
                self._sync_variant(product, remote_id, remote_variant, sync_id, now)
            except Exception as e:
                variant_failures += 1
                logger.error(f"[Sync] Variant {remote_variant.get('id')} of product {remote_id} failed: {e}")

        if not is_new:
            self._stage_vanished_variants(product, remote_id, remote_variant_ids, sync_id)

        if variant_failures:
            logger.warning(f"[Sync] Product {remote_id}: {variant_failures} variant(s) failed")
        return variant_failures == 0

    def _sync_variant(self, product, remote_product_id, remote_variant, sync_id, now):
        remote_variant_id = int(remote_variant["id"])
        options = derive_options(remote_variant)
        catalog = remote_variant.get("product") or {}
        remote_price = to_price(remote_variant.get("retail_price"))
        in_stock = remote_in_stock(remote_variant)

        existing = self.repository.find_variant_by_remote_id(remote_variant_id)
        self.repository.upsert_variant({
            "product_id": product["id"],
            "printful_id": remote_variant_id,
            "printful_external_id": remote_variant.get("external_id"),
            "printful_product_id": catalog.get("product_id") or remote_product_id,
            "printful_catalog_variant_id": remote_variant.get("variant_id") or catalog.get("variant_id"),
            "name": remote_variant.get("name"),
            "sku": remote_variant.get("sku"),
            "retail_price": remote_price,
            "currency": remote_variant.get("currency") or DEFAULT_CURRENCY,
            "options": options.to_json(),
            "files": remote_variant.get("files") or [],
            "in_stock": in_stock,
            "is_active": True,
            "synced_at": now,
        })

        if existing is None:
            return

        if prices_differ(existing.get("retail_price"), remote_price):
            self._stage(
                product, existing["id"], remote_product_id, CHANGE_TYPE_PRICE, SEVERITY_CRITICAL,
                "retail_price", to_price(existing.get("retail_price")), remote_price, sync_id,
            )
        if existing.get("in_stock") is not None and bool(existing["in_stock"]) != in_stock:
            self._stage(
                product, existing["id"], remote_product_id, CHANGE_TYPE_INVENTORY, SEVERITY_STANDARD,
                "in_stock", bool(existing["in_stock"]), in_stock, sync_id,
            )
        if existing.get("is_active") is False:
            self._stage(
                product, existing["id"], remote_product_id, CHANGE_TYPE_VARIANT, SEVERITY_CRITICAL,
                "active", False, True, sync_id,
            )

    def _stage_vanished_variants(self, product, remote_product_id, remote_variant_ids, sync_id):
        for local in self.repository.list_variants_for_product(product["id"]):
            if local.get("is_active") is False:
                continue
            if local.get("printful_id") is None or int(local["printful_id"]) in remote_variant_ids:
                continue
            self._stage(
                product, local["id"], remote_product_id, CHANGE_TYPE_VARIANT, SEVERITY_CRITICAL,
                "active", True, False, sync_id,
            )

    def _stage(self, product, variant_id, remote_product_id, change_type, severity,
               field_name, old_value, new_value, sync_id):
        new_text = _text(new_value)
        if self.repository.find_pending_change(product["id"], variant_id, field_name, new_text):
            return None
        change_id = self.repository.insert_product_change({
            "product_id": product["id"],
            "variant_id": variant_id,
            "printful_product_id": remote_product_id,
            "change_type": change_type,
            "severity": severity,
            "field_name": field_name,
            "old_value": _text(old_value),
            "new_value": new_text,
            "sync_history_id": sync_id,
            "status": CHANGE_STATUS_PENDING_REVIEW,
        })
        logger.info(
            f"[Sync] Staged {severity} {change_type} change {change_id} on product {product['id']}: "
            f"{field_name} {_text(old_value)} -> {new_text}"
        )
        return change_id

    def _unique_slug(self, name, remote_id):
        base = slugify(name or "") or f"printful-{remote_id}"
        if not self.repository.slug_exists(base):
            return base
        return f"{base}-{remote_id}"

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def sync_categories(self, sync_type=SYNC_TYPE_FULL):
        started_at = self._now()
        result = SyncResult()
        added = existing = 0
        logger.info("[Sync] Starting category sync")

        try:
            result.sync_id = self.repository.insert_sync_history(sync_type, SYNC_SCOPE_CATEGORIES, started_at)
            for category in self.client.get_catalog_categories():
                try:
                    known = self.repository.find_category_by_remote_id(category["id"]) is not None
                    # Names and parents are refreshed; the local link and active flag belong to admins.
                    self.repository.upsert_category({
                        "printful_category_id": category["id"],
                        "printful_category_name": category.get("title") or category.get("name") or "",
                        "parent_printful_id": category.get("parent_id") or None,
                        "is_active": True,
                    })
                    if known:
                        existing += 1
                    else:
                        added += 1
                    result.synced_count += 1
                except Exception as e:
                    result.failed_count += 1
                    logger.error(f"[Sync] Category {category.get('id')} failed: {e}")

            result.status = summarize_status(result.synced_count, result.failed_count)
            message = f"Categories: {added} added, {existing} existing, {result.failed_count} failed"
            self.repository.complete_sync_history(
                result.sync_id, result.status, message,
                result.synced_count, result.failed_count, self._now(),
            )
            logger.info(f"[Sync] {message}")
        except Exception as e:
            logger.error(f"[Sync] Category sync aborted: {e}")
            self.reporter.capture(e, "printful_category_sync", sync_id=result.sync_id)
            result.status = SYNC_STATUS_FAILED
            result.error = str(e)
            self._record_failure(result, sync_type, SYNC_SCOPE_CATEGORIES, started_at, f"Category sync failed: {e}")

        return {
            "success": result.success,
            "status": result.status,
            "sync_id": result.sync_id,
            "added": added,
            "existing": existing,
            "failed": result.failed_count,
            "error": result.error,
        }

    def list_category_mappings(self):
        return self.repository.list_category_mappings()

    def update_category_mapping(self, printful_category_id, local_category_id, is_active=True):
        """Link a Printful category to a storefront category, or unlink it with None."""
        row = self.repository.update_category_mapping(printful_category_id, local_category_id, is_active)
        if not row:
            raise CategoryMappingError(f"Printful category {printful_category_id} has not been synced")
        logger.info(
            f"[Sync] Category {printful_category_id} mapped to {local_category_id or 'nothing'} "
            f"(active={is_active})"
        )
        return row

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def should_run_sync(self, min_hours=12) -> bool:
        """True unless a product sync succeeded (fully or partly) within `min_hours`."""
        last = self.repository.last_completed_sync(
            SYNC_SCOPE_PRODUCTS, (SYNC_STATUS_SUCCESS, SYNC_STATUS_PARTIAL)
        )
        if not last or not last.get("completed_at"):
            return True
        return hours_between(last["completed_at"], self._now()) >= min_hours

    def run_scheduled_sync(self, min_hours=12, force=False):
        """Returns the SyncResult, or None when skipped."""
        if not force and not self.should_run_sync(min_hours):
            logger.info(f"[Sync] Skipping scheduled sync; last run was under {min_hours}h ago")
            return None
        return self.sync_products(SYNC_TYPE_SCHEDULED)

    def list_sync_history(self, limit=20):
        return [SyncHistory.from_row(r) for r in self.repository.list_sync_history(limit)]

    # ------------------------------------------------------------------
    # Change review
    # ------------------------------------------------------------------
    def list_product_changes(self, status=CHANGE_STATUS_PENDING_REVIEW, limit=100):
        return [ProductChange.from_row(r) for r in self.repository.list_product_changes(status, limit)]

    def _load_change(self, change_id):
        row = self.repository.get_product_change(change_id)
        if not row:
            raise ChangeReviewError(f"Product change {change_id} not found")
        return ProductChange.from_row(row)

    def review_product_change(self, change_id, decision, reviewer):
        """Approve or reject a staged change without applying it."""
        if decision not in (CHANGE_STATUS_APPROVED, CHANGE_STATUS_REJECTED):
            raise ChangeReviewError(f"Unknown review decision '{decision}'")
        change = self._load_change(change_id)
        if change.status != CHANGE_STATUS_PENDING_REVIEW:
            raise ChangeReviewError(f"Change {change_id} is already {change.status}")

        self.repository.update_product_change(change_id, {
            "status": decision,
            "reviewed_by": reviewer,
            "reviewed_at": self._now(),
        })
        logger.info(f"[Sync] Change {change_id} {decision} by {reviewer}")
        change.status = decision
        change.reviewed_by = reviewer
        return change

    def apply_product_change(self, change_id, reviewer):
        """Write the staged value onto the product/variant and mark it applied."""
        change = self._load_change(change_id)
        if change.status not in APPLICABLE_CHANGE_STATUSES:
            raise ChangeReviewError(f"Change {change_id} is {change.status} and cannot be applied")

        if change.field_name in ("price", "retail_price"):
            price = to_price(change.new_value)
            if price is None:
                raise ChangeReviewError(f"Change {change_id} has no usable price")
            if change.variant_id:
                self.repository.update_variant_fields(change.variant_id, {"retail_price": price})
            else:
                self.repository.update_product_fields(change.product_id, {"price": price})
        elif change.field_name == "in_stock":
            self._require_variant(change)
            self.repository.update_variant_fields(change.variant_id, {"in_stock": _as_bool(change.new_value)})
        elif change.field_name == "active":
            self._require_variant(change)
            self.repository.update_variant_fields(change.variant_id, {"is_active": _as_bool(change.new_value)})
        elif change.field_name in APPLICABLE_PRODUCT_FIELDS:
            self.repository.update_product_fields(change.product_id, {change.field_name: change.new_value})
        else:
            raise ChangeReviewError(f"Don't know how to apply field '{change.field_name}'")

        self.repository.update_product_change(change_id, {
            "status": CHANGE_STATUS_APPLIED,
            "reviewed_by": reviewer,
            "reviewed_at": self._now(),
        })
        logger.info(f"[Sync] Applied change {change_id} ({change.field_name} -> {change.new_value}) by {reviewer}")
        change.status = CHANGE_STATUS_APPLIED
        change.reviewed_by = reviewer
        return change

    @staticmethod
    def _require_variant(change):
        if not change.variant_id:
            raise ChangeReviewError(f"Change {change.id} on '{change.field_name}' has no variant")
