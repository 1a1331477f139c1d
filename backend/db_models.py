"""
SQLAlchemy ORM models for the Storefront API.

Tables:
    users                 — customers and admins
    addresses             — saved shipping/billing addresses
    categories            — two-level product taxonomy (parent/children)
    products              — catalog items with stock counters
    product_images        — gallery images, one flagged primary
    product_specs         — name/value specification rows
    cart_items            — per-user cart lines
    orders                — order aggregate (money, status, payment, delivery flags)
    order_items           — product snapshot lines of an order
    order_status_history  — append-only status audit trail
    coupons               — discount codes
    reviews               — product reviews awaiting/after moderation
    contact_messages      — support inbox
    settings              — typed key/value store configuration
    notifications         — notification definitions (targeted, global, admin-only)
    user_notifications    — per-user read state
    chat_messages         — per-order customer/admin chat
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Column, Integer, Numeric, String, Float, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


# Monetary columns: fixed precision, two decimal places
Money = Numeric(12, 2, asdecimal=True)


class User(Base):
    """Customers and staff accounts."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    avatar = Column(Text, nullable=True)
    role = Column(String(20), nullable=False, default="CUSTOMER")  # CUSTOMER | ADMIN | SUPER_ADMIN
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan", lazy="select")
    orders = relationship("Order", back_populates="user", lazy="select")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Address(Base):
    """Saved addresses; at most one default per user."""
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="shipping")
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=False, default="Uganda")
    phone = Column(String(30), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="addresses")


class Category(Base):
    """Product categories (parent_id NULL means top level)."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(150), nullable=False)
    slug = Column(String(180), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    icon = Column(String(100), nullable=True)
    image = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent", lazy="select")


class Product(Base):
    """Catalog items. `quantity` is the authoritative stock counter."""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(300), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    short_description = Column(String(500), nullable=True)
    price = Column(Money, nullable=False)
    original_price = Column(Money, nullable=True)
    cost_price = Column(Money, nullable=True)
    sku = Column(String(100), unique=True, nullable=True)
    barcode = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    track_inventory = Column(Boolean, nullable=False, default=True)
    in_stock = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    weight = Column(Float, nullable=True)
    dimensions = Column(JSON, nullable=True)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(String(500), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("Category", lazy="selectin")
    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.sort_order",
        lazy="selectin",
    )
    specs = relationship(
        "ProductSpec",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductSpec.sort_order",
        lazy="selectin",
    )

    @property
    def primary_image(self) -> str | None:
        for image in self.images:
            if image.is_primary:
                return image.url
        return self.images[0].url if self.images else None


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    alt = Column(String(255), nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="images")


class ProductSpec(Base):
    __tablename__ = "product_specs"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    value = Column(String(500), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="specs")


class CartItem(Base):
    """One line per (user, product)."""
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
    )


class Order(Base):
    """
    Order aggregate.

    Money fields are computed once at creation; total = subtotal + tax +
    shipping_cost - discount. `version` is an optimistic lock checked on
    every UPDATE. `stock_restored` records that cancelled stock went back
    to the shelf so it is never returned twice.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    address_id = Column(String(36), ForeignKey("addresses.id"), nullable=True)

    subtotal = Column(Money, nullable=False)
    tax = Column(Money, nullable=False, default=0)
    shipping_cost = Column(Money, nullable=False, default=0)
    discount = Column(Money, nullable=False, default=0)
    total = Column(Money, nullable=False)

    status = Column(String(20), nullable=False, default="PENDING", index=True)
    payment_status = Column(String(20), nullable=False, default="PENDING", index=True)
    payment_method = Column(String(20), nullable=False)
    payment_details = Column(JSON, nullable=True)

    idempotency_key = Column(String(100), unique=True, nullable=True)
    coupon_code = Column(String(50), nullable=True)
    customer_note = Column(Text, nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipping_method = Column(String(100), nullable=True)

    client_confirmed_delivery = Column(Boolean, nullable=False, default=False)
    admin_confirmed_delivery = Column(Boolean, nullable=False, default=False)
    stock_restored = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    paid_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="orders")
    address = relationship("Address", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class OrderItem(Base):
    """Snapshot of a product at purchase time."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = Column(String(255), nullable=False)
    product_image = Column(Text, nullable=True)
    price = Column(Money, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Money, nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only audit trail of order status changes."""
    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="status_history")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # PERCENTAGE | FIXED
    discount_value = Column(Money, nullable=False)
    min_order_value = Column(Money, nullable=True)
    max_discount = Column(Money, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    starts_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Review(Base):
    """One review per (product, user); hidden until approved."""
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(200), nullable=True)
    comment = Column(Text, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_approved = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", lazy="selectin")
    product = relationship("Product", lazy="select")

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),
    )


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    subject = Column(String(255), nullable=False)
    inquiry_type = Column(String(30), nullable=False, default="general")
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="NEW", index=True)
    priority = Column(String(10), nullable=False, default="NORMAL")
    assigned_to = Column(String(36), nullable=True)
    response = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Setting(Base):
    """Typed key/value configuration editable from the admin panel."""
    __tablename__ = "settings"

    id = Column(String(36), primary_key=True, default=new_id)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    type = Column(String(10), nullable=False, default="string")  # string | number | boolean | json
    group = Column(String(50), nullable=False, default="general")
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Notification(Base):
    """
    Notification definition.

    Targeting: `user_id` set → that user; `is_global` → everyone;
    `product_id == "ADMIN_ONLY"` → the admin group. A row with
    `scheduled_at` in the future stays invisible until the scheduler
    stamps `sent_at`.
    """
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="INFO")
    is_global = Column(Boolean, nullable=False, default=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    order_id = Column(String(36), nullable=True)
    product_id = Column(String(36), nullable=True)
    link = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    scheduled_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_notifications_due", "is_active", "scheduled_at", "sent_at"),
    )


class UserNotification(Base):
    """Per-user read marker for a notification."""
    __tablename__ = "user_notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_id = Column(String(36), ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "notification_id", name="uq_user_notification"),
    )


class ChatMessage(Base):
    """Order-scoped chat between the customer and staff."""
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    location = Column(JSON, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    sender = relationship("User", lazy="selectin")
