"""
Postgres persistence for the Printful integration.

Raw SQL through database.get_db(); every write commits on its own, so each
call is atomic at the row level. Callers outside a request must push an app
context first (the mockup queue's TimerScheduler does this).
"""
import logging

from psycopg2.extras import Json

from database import get_db
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = (
    "printful_id", "printful_external_id", "printful_synced", "name", "description",
    "slug", "thumbnail_url", "published_status", "price", "synced_at",
)
PRODUCT_SAFE_COLUMNS = ("printful_external_id", "printful_synced", "name", "synced_at")
PRODUCT_UPDATABLE = set(PRODUCT_COLUMNS) | {"updated_at"}

VARIANT_COLUMNS = (
    "product_id", "printful_id", "printful_external_id", "printful_product_id",
    "printful_catalog_variant_id", "name", "sku", "retail_price", "currency",
    "options", "files", "in_stock", "is_active", "synced_at",
)
# Columns a sync may overwrite on an existing variant. Price, stock and the
# active flag only change through an applied ProductChange.
VARIANT_SAFE_COLUMNS = (
    "product_id", "printful_external_id", "printful_product_id",
    "printful_catalog_variant_id", "name", "sku", "currency", "options", "files", "synced_at",
)
VARIANT_UPDATABLE = set(VARIANT_COLUMNS) | {"updated_at"}

ORDER_STATUS_COLUMNS = (
    "status", "printful_status", "printful_order_id", "tracking_number",
    "tracking_url", "shipped_at",
)

MOCKUP_TASK_COLUMNS = (
    "id", "variant_id", "printful_product_id", "printful_variant_id", "printful_external_id",
    "view", "status", "retry_after", "result", "error", "created_at", "updated_at",
)

CHANGE_UPDATABLE = {"status", "reviewed_by", "reviewed_at"}

_JSON_COLUMNS = {"options", "files", "result", "payload"}


def _adapt(column, value):
    if column in _JSON_COLUMNS and value is not None:
        return Json(value)
    return value


def _set_clause(fields, allowed, table):
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Refusing to update {table} columns: {sorted(unknown)}")
    columns = sorted(fields)
    clause = ", ".join(f"{c} = %s" for c in columns)
    params = [_adapt(c, fields[c]) for c in columns]
    return clause, params


def _one(cursor):
    row = cursor.fetchone()
    return dict(row) if row else None


def _all(cursor):
    return [dict(r) for r in cursor.fetchall()]


class PostgresRepository:
    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def find_product_by_remote_id(self, printful_id):
        return _one(get_db().execute(
            "SELECT * FROM products WHERE printful_id = %s", (printful_id,)
        ))

    def slug_exists(self, slug):
        return get_db().execute(
            "SELECT 1 FROM products WHERE slug = %s", (slug,)
        ).fetchone() is not None

    def upsert_product(self, fields):
        """
        Insert a product, or refresh only PRODUCT_SAFE_COLUMNS when the
        Printful id is already known. Slug and price are never touched on
        conflict.
        """
        db = get_db()
        columns = [c for c in PRODUCT_COLUMNS if c in fields]
        placeholders = ", ".join(["%s"] * len(columns))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in PRODUCT_SAFE_COLUMNS if c in fields)
        row = _one(db.execute(
            f"""
            INSERT INTO products ({', '.join(columns)})
            VALUES ({placeholders})
            ON CONFLICT (printful_id) DO UPDATE SET {updates}, updated_at = NOW()
            RETURNING *
            """,
            [fields[c] for c in columns],
        ))
        db.commit()
        return row

    def update_product_fields(self, product_id, fields):
        if not fields:
            return
        fields = dict(fields, updated_at=fields.get("updated_at") or utc_now())
        clause, params = _set_clause(fields, PRODUCT_UPDATABLE, "products")
        db = get_db()
        db.execute(f"UPDATE products SET {clause} WHERE id = %s", params + [product_id])
        db.commit()

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------
    def find_variant_by_remote_id(self, printful_id):
        return _one(get_db().execute(
            "SELECT * FROM product_variants WHERE printful_id = %s", (printful_id,)
        ))

    def list_variants_for_product(self, product_id):
        return _all(get_db().execute(
            "SELECT * FROM product_variants WHERE product_id = %s ORDER BY created_at",
            (product_id,),
        ))

    def get_variants_by_ids(self, variant_ids):
        ids = [str(v) for v in variant_ids]
        if not ids:
            return []
        return _all(get_db().execute(
            "SELECT * FROM product_variants WHERE id::text = ANY(%s)", (ids,)
        ))

    def upsert_variant(self, fields):
        """
        Insert a variant, or refresh only VARIANT_SAFE_COLUMNS when the
        Printful id is already known.
        """
        db = get_db()
        columns = [c for c in VARIANT_COLUMNS if c in fields]
        placeholders = ", ".join(["%s"] * len(columns))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in VARIANT_SAFE_COLUMNS if c in fields)
        row = _one(db.execute(
            f"""
            INSERT INTO product_variants ({', '.join(columns)})
            VALUES ({placeholders})
            ON CONFLICT (printful_id) DO UPDATE SET {updates}, updated_at = NOW()
            RETURNING *
            """,
            [_adapt(c, fields[c]) for c in columns],
        ))
        db.commit()
        return row

    def update_variant_fields(self, variant_id, fields):
        if not fields:
            return
        fields = dict(fields, updated_at=fields.get("updated_at") or utc_now())
        clause, params = _set_clause(fields, VARIANT_UPDATABLE, "product_variants")
        db = get_db()
        db.execute(f"UPDATE product_variants SET {clause} WHERE id = %s", params + [variant_id])
        db.commit()

    # ------------------------------------------------------------------
    # Sync history
    # ------------------------------------------------------------------
    def insert_sync_history(self, sync_type, sync_scope, started_at):
        db = get_db()
        cursor = db.execute(
            """
            INSERT INTO printful_sync_history (sync_type, sync_scope, status, message, started_at)
            VALUES (%s, %s, 'failed', 'in progress', %s)
            RETURNING id
            """,
            (sync_type, sync_scope, started_at),
        )
        sync_id = cursor.fetchone()["id"]
        db.commit()
        return sync_id

    def complete_sync_history(self, sync_id, status, message, products_synced, products_failed, completed_at):
        db = get_db()
        db.execute(
            """
            UPDATE printful_sync_history
            SET status = %s, message = %s, products_synced = %s,
                products_failed = %s, completed_at = %s
            WHERE id = %s AND completed_at IS NULL
            """,
            (status, message, products_synced, products_failed, completed_at, sync_id),
        )
        db.commit()

    def last_completed_sync(self, sync_scope, statuses):
        return _one(get_db().execute(
            """
            SELECT * FROM printful_sync_history
            WHERE sync_scope = %s AND completed_at IS NOT NULL AND status = ANY(%s)
            ORDER BY completed_at DESC
            LIMIT 1
            """,
            (sync_scope, list(statuses)),
        ))

    def list_sync_history(self, limit=20):
        return _all(get_db().execute(
            "SELECT * FROM printful_sync_history ORDER BY started_at DESC LIMIT %s", (limit,)
        ))

    # ------------------------------------------------------------------
    # Product changes
    # ------------------------------------------------------------------
    def insert_product_change(self, fields):
        db = get_db()
        cursor = db.execute(
            """
            INSERT INTO printful_product_changes
                (product_id, variant_id, printful_product_id, change_type, severity,
                 field_name, old_value, new_value, sync_history_id, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                fields["product_id"], fields.get("variant_id"), fields.get("printful_product_id"),
                fields["change_type"], fields["severity"], fields["field_name"],
                fields.get("old_value"), fields.get("new_value"), fields.get("sync_history_id"),
                fields["status"],
            ),
        )
        change_id = cursor.fetchone()["id"]
        db.commit()
        return change_id

    def find_pending_change(self, product_id, variant_id, field_name, new_value):
        return _one(get_db().execute(
            """
            SELECT * FROM printful_product_changes
            WHERE product_id = %s
              AND variant_id IS NOT DISTINCT FROM %s
              AND field_name = %s
              AND new_value IS NOT DISTINCT FROM %s
              AND status = 'pending_review'
            LIMIT 1
            """,
            (product_id, variant_id, field_name, new_value),
        ))

    def get_product_change(self, change_id):
        return _one(get_db().execute(
            "SELECT * FROM printful_product_changes WHERE id = %s", (change_id,)
        ))

    def update_product_change(self, change_id, fields):
        clause, params = _set_clause(fields, CHANGE_UPDATABLE, "printful_product_changes")
        db = get_db()
        db.execute(f"UPDATE printful_product_changes SET {clause} WHERE id = %s", params + [change_id])
        db.commit()

    def list_product_changes(self, status=None, limit=100):
        if status:
            return _all(get_db().execute(
                """
                SELECT * FROM printful_product_changes
                WHERE status = %s ORDER BY created_at DESC LIMIT %s
                """,
                (status, limit),
            ))
        return _all(get_db().execute(
            "SELECT * FROM printful_product_changes ORDER BY created_at DESC LIMIT %s", (limit,)
        ))

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def find_category_by_remote_id(self, printful_category_id):
        return _one(get_db().execute(
            "SELECT * FROM printful_category_mapping WHERE printful_category_id = %s",
            (printful_category_id,),
        ))

    def upsert_category(self, fields):
        db = get_db()
        db.execute(
            """
            INSERT INTO printful_category_mapping
                (printful_category_id, printful_category_name, parent_printful_id, is_active)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (printful_category_id) DO UPDATE SET
                printful_category_name = EXCLUDED.printful_category_name,
                parent_printful_id = EXCLUDED.parent_printful_id,
                updated_at = NOW()
            """,
            (
                fields["printful_category_id"], fields["printful_category_name"],
                fields.get("parent_printful_id"), fields.get("is_active", True),
            ),
        )
        db.commit()

    def list_category_mappings(self):
        return _all(get_db().execute(
            "SELECT * FROM printful_category_mapping ORDER BY printful_category_name"
        ))

    def update_category_mapping(self, printful_category_id, local_category_id, is_active):
        db = get_db()
        row = _one(db.execute(
            """
            UPDATE printful_category_mapping
            SET local_category_id = %s, is_active = %s, updated_at = NOW()
            WHERE printful_category_id = %s
            RETURNING *
            """,
            (local_category_id, is_active, printful_category_id),
        ))
        db.commit()
        return row

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def find_order_by_local_id(self, identifier):
        """Match the local id or the external id we sent to Printful."""
        return _one(get_db().execute(
            "SELECT * FROM orders WHERE id::text = %s OR printful_external_id = %s LIMIT 1",
            (str(identifier), str(identifier)),
        ))

    def get_order_items(self, order_id):
        return _all(get_db().execute(
            "SELECT * FROM order_items WHERE order_id = %s ORDER BY id", (order_id,)
        ))

    def set_order_external_id(self, order_id, external_id):
        db = get_db()
        db.execute(
            "UPDATE orders SET printful_external_id = %s WHERE id = %s AND printful_external_id IS NULL",
            (external_id, order_id),
        )
        db.commit()

    def record_order_submission(self, order_id, printful_order_id, printful_status, status):
        db = get_db()
        db.execute(
            """
            UPDATE orders
            SET printful_order_id = %s, printful_status = %s, status = %s,
                submission_error = NULL, updated_at = %s
            WHERE id = %s
            """,
            (printful_order_id, printful_status, status, utc_now(), order_id),
        )
        db.commit()

    def mark_order_submission_failed(self, order_id, error):
        db = get_db()
        db.execute(
            """
            UPDATE orders
            SET status = 'submission_failed', submission_error = %s, updated_at = %s
            WHERE id = %s
            """,
            (str(error)[:2000], utc_now(), order_id),
        )
        db.commit()

    def update_order_status(self, order_id, fields):
        """
        One UPDATE for a remote snapshot. Missing values keep what the row has,
        and `updated_at` is taken from the snapshot so replays are no-ops.
        """
        db = get_db()
        db.execute(
            """
            UPDATE orders
            SET status = %s,
                printful_status = %s,
                printful_order_id = COALESCE(%s, printful_order_id),
                tracking_number = COALESCE(%s, tracking_number),
                tracking_url = COALESCE(%s, tracking_url),
                shipped_at = COALESCE(%s, shipped_at),
                updated_at = COALESCE(%s, updated_at)
            WHERE id = %s
            """,
            (
                fields["status"], fields.get("printful_status"), fields.get("printful_order_id"),
                fields.get("tracking_number"), fields.get("tracking_url"), fields.get("shipped_at"),
                fields.get("updated_at"), order_id,
            ),
        )
        db.commit()

    # ------------------------------------------------------------------
    # Webhook log
    # ------------------------------------------------------------------
    def insert_webhook_log(self, fields):
        db = get_db()
        db.execute(
            """
            INSERT INTO webhook_logs
                (source, event_type, event_id, order_id, status, payload, error_message, processed_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                fields["source"], fields["event_type"], fields.get("event_id"), fields.get("order_id"),
                fields["status"], Json(fields.get("payload")), fields.get("error_message"),
                fields.get("processed_at") or utc_now(),
            ),
        )
        db.commit()

    # ------------------------------------------------------------------
    # Mockup task mirror
    # ------------------------------------------------------------------
    def upsert_mockup_task(self, row):
        db = get_db()
        columns = [c for c in MOCKUP_TASK_COLUMNS if c in row]
        placeholders = ", ".join(["%s"] * len(columns))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c not in ("id", "created_at"))
        db.execute(
            f"""
            INSERT INTO printful_mockup_tasks ({', '.join(columns)})
            VALUES ({placeholders})
            ON CONFLICT (id) DO UPDATE SET {updates}
            """,
            [_adapt(c, row[c]) for c in columns],
        )
        db.commit()

    def list_active_mockup_tasks(self):
        return _all(get_db().execute(
            """
            SELECT * FROM printful_mockup_tasks
            WHERE status IN ('pending', 'processing', 'rate_limited')
            ORDER BY created_at
            """
        ))

    def delete_mockup_task(self, task_id):
        db = get_db()
        db.execute("DELETE FROM printful_mockup_tasks WHERE id = %s", (task_id,))
        db.commit()
