# Local Order Status Constants
ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_REFUNDED = "refunded"
# Set when the provider rejected or never received the order; admin can retry.
ORDER_STATUS_SUBMISSION_FAILED = "submission_failed"

SUBMITTABLE_ORDER_STATUSES = frozenset({
    ORDER_STATUS_PAID,
    ORDER_STATUS_SUBMISSION_FAILED,
})

# Printful order status -> local order status
PRINTFUL_ORDER_STATUS_MAP = {
    "draft": ORDER_STATUS_PENDING,
    "pending": ORDER_STATUS_PENDING,
    "onhold": ORDER_STATUS_PENDING,
    "inprocess": ORDER_STATUS_PROCESSING,
    "fulfilled": ORDER_STATUS_SHIPPED,
    "shipped": ORDER_STATUS_SHIPPED,
    "delivered": ORDER_STATUS_DELIVERED,
    "failed": ORDER_STATUS_CANCELLED,
    "canceled": ORDER_STATUS_CANCELLED,
}

# Mockup Task Status Constants
TASK_STATUS_PENDING = "pending"
TASK_STATUS_PROCESSING = "processing"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUS_ERROR = "error"
TASK_STATUS_RATE_LIMITED = "rate_limited"

TASK_STATUSES = (
    TASK_STATUS_PENDING,
    TASK_STATUS_PROCESSING,
    TASK_STATUS_COMPLETED,
    TASK_STATUS_ERROR,
    TASK_STATUS_RATE_LIMITED,
)

ACTIVE_TASK_STATUSES = frozenset({
    TASK_STATUS_PENDING,
    TASK_STATUS_PROCESSING,
    TASK_STATUS_RATE_LIMITED,
})

# Local view name -> Printful mockup placement
MOCKUP_VIEW_PLACEMENTS = {
    "front": "front",
    "back": "back",
    "left_front": "left",
    "right_front": "right",
    "flat": "flat",
    "lifestyle": "lifestyle",
    "top": "embroidery_front",
}
DEFAULT_MOCKUP_PLACEMENT = "front"

# Sync History
SYNC_TYPE_FULL = "full"
SYNC_TYPE_SCHEDULED = "scheduled"
SYNC_TYPE_WEBHOOK = "webhook"
SYNC_TYPES = (SYNC_TYPE_FULL, SYNC_TYPE_SCHEDULED, SYNC_TYPE_WEBHOOK)

SYNC_SCOPE_PRODUCTS = "products"
SYNC_SCOPE_CATEGORIES = "categories"

SYNC_STATUS_SUCCESS = "success"
SYNC_STATUS_PARTIAL = "partial"
SYNC_STATUS_FAILED = "failed"

# Product Change Review
CHANGE_TYPE_PRICE = "price"
CHANGE_TYPE_INVENTORY = "inventory"
CHANGE_TYPE_METADATA = "metadata"
CHANGE_TYPE_IMAGE = "image"
CHANGE_TYPE_VARIANT = "variant"
CHANGE_TYPE_OTHER = "other"

SEVERITY_CRITICAL = "critical"
SEVERITY_STANDARD = "standard"
SEVERITY_MINOR = "minor"

CHANGE_STATUS_PENDING_REVIEW = "pending_review"
CHANGE_STATUS_APPROVED = "approved"
CHANGE_STATUS_REJECTED = "rejected"
CHANGE_STATUS_APPLIED = "applied"

APPLICABLE_CHANGE_STATUSES = frozenset({
    CHANGE_STATUS_PENDING_REVIEW,
    CHANGE_STATUS_APPROVED,
})

# Differences at or below this are float noise, not price changes.
PRICE_TOLERANCE = 0.01

# Webhook Log
WEBHOOK_SOURCE_PRINTFUL = "printful"
WEBHOOK_STATUS_PROCESSED = "processed"
WEBHOOK_STATUS_ERROR = "error"
WEBHOOK_STATUS_IGNORED = "ignored"

# Address normalization for order payloads
COUNTRY_CODE_ALIASES = {
    "US": "US",
    "USA": "US",
    "UNITED STATES": "US",
    "UNITED STATES OF AMERICA": "US",
    "CA": "CA",
    "CANADA": "CA",
    "GB": "GB",
    "UK": "GB",
    "UNITED KINGDOM": "GB",
    "GREAT BRITAIN": "GB",
}

US_STATE_CODES = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "DISTRICT OF COLUMBIA": "DC", "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI",
    "IDAHO": "ID", "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA",
    "KANSAS": "KS", "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME",
    "MARYLAND": "MD", "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN",
    "MISSISSIPPI": "MS", "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE",
    "NEVADA": "NV", "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM",
    "NEW YORK": "NY", "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH",
    "OKLAHOMA": "OK", "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI",
    "SOUTH CAROLINA": "SC", "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX",
    "UTAH": "UT", "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA",
    "WEST VIRGINIA": "WV", "WISCONSIN": "WI", "WYOMING": "WY",
}

CA_PROVINCE_CODES = {
    "ALBERTA": "AB", "BRITISH COLUMBIA": "BC", "MANITOBA": "MB",
    "NEW BRUNSWICK": "NB", "NEWFOUNDLAND AND LABRADOR": "NL",
    "NOVA SCOTIA": "NS", "ONTARIO": "ON", "PRINCE EDWARD ISLAND": "PE",
    "QUEBEC": "QC", "SASKATCHEWAN": "SK", "NORTHWEST TERRITORIES": "NT",
    "NUNAVUT": "NU", "YUKON": "YT",
}

DEFAULT_CURRENCY = "USD"
DEFAULT_SHIPPING_METHOD = "STANDARD"
