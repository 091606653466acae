"""
In-memory shapes for rows the Printful integration reads and writes.

Rows come back from psycopg2 as DictRow; `from_row` accepts any mapping so
tests can hand in plain dicts.
"""
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any

from constants import TASK_STATUS_PENDING, TASK_STATUS_RATE_LIMITED
from utils.timestamps import from_unix, to_unix


@dataclass
class MockupTask:
    """
    One mockup-generation request for a (variant, view) pair.

    Times are epoch seconds from the queue's clock. `retry_after` is only
    meaningful while status is rate_limited.
    """
    variant_id: str
    printful_product_id: int
    printful_variant_id: int
    view: str
    printful_external_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = TASK_STATUS_PENDING
    retry_after: Optional[float] = None
    created_at: float = 0.0
    updated_at: float = 0.0
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def set_status(self, status, now, retry_after=None):
        self.status = status
        self.updated_at = now
        self.retry_after = retry_after if status == TASK_STATUS_RATE_LIMITED else None

    def to_dict(self):
        return asdict(self)

    def to_row(self):
        row = self.to_dict()
        row["retry_after"] = from_unix(self.retry_after)
        row["created_at"] = from_unix(self.created_at)
        row["updated_at"] = from_unix(self.updated_at)
        return row

    @classmethod
    def from_row(cls, row):
        row = dict(row)
        return cls(
            id=str(row["id"]),
            variant_id=str(row["variant_id"]),
            printful_product_id=int(row["printful_product_id"]),
            printful_variant_id=int(row["printful_variant_id"]),
            printful_external_id=row.get("printful_external_id"),
            view=row["view"],
            status=row["status"],
            retry_after=_as_epoch(row.get("retry_after")),
            created_at=_as_epoch(row.get("created_at")) or 0.0,
            updated_at=_as_epoch(row.get("updated_at")) or 0.0,
            result=row.get("result"),
            error=row.get("error"),
        )


def _as_epoch(value):
    if value is None or isinstance(value, (int, float)):
        return value
    return to_unix(value)


@dataclass
class SyncHistory:
    id: Any
    sync_type: str
    status: str
    sync_scope: str = "products"
    message: Optional[str] = None
    started_at: Any = None
    completed_at: Any = None
    products_synced: int = 0
    products_failed: int = 0

    @classmethod
    def from_row(cls, row):
        row = dict(row)
        return cls(
            id=row["id"],
            sync_type=row["sync_type"],
            status=row["status"],
            sync_scope=row.get("sync_scope") or "products",
            message=row.get("message"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            products_synced=row.get("products_synced") or 0,
            products_failed=row.get("products_failed") or 0,
        )


@dataclass
class ProductChange:
    id: Any
    product_id: Any
    printful_product_id: Any
    change_type: str
    severity: str
    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]
    status: str
    variant_id: Any = None
    sync_history_id: Any = None
    reviewed_by: Optional[str] = None
    reviewed_at: Any = None
    created_at: Any = None

    @classmethod
    def from_row(cls, row):
        row = dict(row)
        return cls(**{k: row.get(k) for k in cls.__dataclass_fields__})

    def to_dict(self):
        return asdict(self)


@dataclass
class SyncResult:
    synced_count: int = 0
    failed_count: int = 0
    sync_id: Any = None
    status: str = "failed"
    error: Optional[str] = None

    @property
    def success(self):
        return self.status != "failed"

    def to_dict(self):
        data = asdict(self)
        data["success"] = self.success
        return data


class OptionKey(str, Enum):
    COLOR = "color"
    SIZE = "size"


@dataclass
class VariantOptions:
    """Known option keys plus anything Printful sends that we don't model yet."""
    values: Dict[OptionKey, str] = field(default_factory=dict)
    unrecognized: Dict[str, Any] = field(default_factory=dict)

    @property
    def color(self):
        return self.values.get(OptionKey.COLOR)

    @property
    def size(self):
        return self.values.get(OptionKey.SIZE)

    def to_json(self):
        data = {key.value: value for key, value in self.values.items()}
        if self.unrecognized:
            data["unrecognized"] = dict(self.unrecognized)
        return data
