"""
Domain constants used across services/routers.
"""

# Order numbers look like NSH-<base36 millis>-<4 random>
ORDER_NUMBER_PREFIX = "NSH"

# Notification.product_id sentinel that targets the admin group
ADMIN_ONLY_TARGET = "ADMIN_ONLY"

# ── Real-time rooms & events ────────────────────────────────────────
ADMIN_ROOM = "admin_notifications"
USER_ROOM_PREFIX = "user_"
ORDER_ROOM_PREFIX = "order_"

EVENT_NEW_NOTIFICATION = "new_notification"
EVENT_RECEIVE_MESSAGE = "receive_message"
EVENT_ORDER_UPDATED = "order_updated"
EVENT_NEW_MESSAGE_NOTIFICATION = "new_message_notification"

# ── Cache ───────────────────────────────────────────────────────────
# URL fragments whose cached responses go stale on catalog writes
CATALOG_CACHE_FRAGMENTS = ("/api/products", "/api/search", "/api/categories")

# ── Contact inquiries ───────────────────────────────────────────────
INQUIRY_PRIORITY = {
    "technical": "HIGH",
    "order": "HIGH",
    "returns": "NORMAL",
    "product": "NORMAL",
    "general": "LOW",
}

# ── Settings ────────────────────────────────────────────────────────
PUBLIC_SETTING_KEYS = (
    "store_name",
    "store_email",
    "store_phone",
    "store_address",
    "currency",
    "currency_symbol",
    "tax_rate",
    "free_shipping_threshold",
    "default_shipping_fee",
)

# ── Uploads ─────────────────────────────────────────────────────────
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
