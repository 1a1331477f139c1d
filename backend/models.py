"""
Pydantic models for request validation.

Request bodies use camelCase aliases on the wire and snake_case names in
Python; routes pass `model_dump(exclude_unset=True)` straight into the
service layer.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware input accordingly."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_discount_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.upper()
    if value not in ("PERCENTAGE", "FIXED"):
        raise ValueError("discountType must be PERCENTAGE or FIXED")
    return value


class ApiModel(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ── Auth ────────────────────────────────────────────────────────────

class RegisterRequest(ApiModel):
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)


class LoginRequest(ApiModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class UpdatePasswordRequest(ApiModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=128)


class UpdateMeRequest(ApiModel):
    first_name: Optional[str] = Field(None, alias="firstName", min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    avatar: Optional[str] = None


class ForgotPasswordRequest(ApiModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)


class ResetPasswordRequest(ApiModel):
    token: str
    password: str = Field(..., min_length=6)


# ── Users & Addresses ───────────────────────────────────────────────

class AddressRequest(ApiModel):
    type: str = "shipping"
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    address_line1: str = Field(..., alias="addressLine1", min_length=1)
    address_line2: Optional[str] = Field(None, alias="addressLine2")
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country: str = "Uganda"
    phone: Optional[str] = None
    is_default: bool = Field(False, alias="isDefault")


class AddressUpdateRequest(ApiModel):
    type: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    address_line1: Optional[str] = Field(None, alias="addressLine1")
    address_line2: Optional[str] = Field(None, alias="addressLine2")
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = Field(None, alias="isDefault")


class AdminUserUpdateRequest(ApiModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    phone: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")
    email_verified: Optional[bool] = Field(None, alias="emailVerified")
    password: Optional[str] = Field(None, min_length=6)


# ── Catalog ─────────────────────────────────────────────────────────

class ProductImageIn(ApiModel):
    url: str = Field(..., min_length=1)
    alt: Optional[str] = None
    is_primary: bool = Field(False, alias="isPrimary")


class ProductSpecIn(ApiModel):
    name: str = Field(..., min_length=1)
    value: str


class ProductCreateRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    description: Optional[str] = None
    short_description: Optional[str] = Field(None, alias="shortDescription")
    original_price: Optional[Decimal] = Field(None, alias="originalPrice", ge=0)
    cost_price: Optional[Decimal] = Field(None, alias="costPrice", ge=0)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    quantity: int = Field(0, ge=0)
    low_stock_threshold: Optional[int] = Field(None, alias="lowStockThreshold", ge=0)
    category_id: Optional[str] = Field(None, alias="categoryId")
    featured: Optional[bool] = None
    is_active: Optional[bool] = Field(None, alias="isActive")
    weight: Optional[float] = None
    dimensions: Optional[dict[str, Any]] = None
    meta_title: Optional[str] = Field(None, alias="metaTitle")
    meta_description: Optional[str] = Field(None, alias="metaDescription")
    images: List[ProductImageIn] = Field(default_factory=list)
    specs: List[ProductSpecIn] = Field(default_factory=list)


class ProductUpdateRequest(ApiModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    short_description: Optional[str] = Field(None, alias="shortDescription")
    original_price: Optional[Decimal] = Field(None, alias="originalPrice", ge=0)
    cost_price: Optional[Decimal] = Field(None, alias="costPrice", ge=0)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, alias="lowStockThreshold", ge=0)
    category_id: Optional[str] = Field(None, alias="categoryId")
    featured: Optional[bool] = None
    is_active: Optional[bool] = Field(None, alias="isActive")
    in_stock: Optional[bool] = Field(None, alias="inStock")
    weight: Optional[float] = None
    dimensions: Optional[dict[str, Any]] = None
    meta_title: Optional[str] = Field(None, alias="metaTitle")
    meta_description: Optional[str] = Field(None, alias="metaDescription")
    images: Optional[List[ProductImageIn]] = None
    specs: Optional[List[ProductSpecIn]] = None


class AddImagesRequest(ApiModel):
    images: List[ProductImageIn] = Field(..., min_length=1)


class CategoryCreateRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    icon: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    sort_order: Optional[int] = Field(None, alias="sortOrder")
    is_active: Optional[bool] = Field(None, alias="isActive")


class CategoryUpdateRequest(ApiModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    icon: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    sort_order: Optional[int] = Field(None, alias="sortOrder")
    is_active: Optional[bool] = Field(None, alias="isActive")


# ── Cart ────────────────────────────────────────────────────────────

class CartAddRequest(ApiModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(1, ge=1)


class CartUpdateRequest(ApiModel):
    quantity: int = Field(..., ge=1)


class CartLine(ApiModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)


class CartSyncRequest(ApiModel):
    items: List[CartLine] = Field(default_factory=list)


# ── Orders ──────────────────────────────────────────────────────────

class OrderLine(ApiModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)


class ShippingAddressIn(ApiModel):
    """Either the id of a saved address or a full inline address."""
    id: Optional[str] = None
    type: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    address_line1: Optional[str] = Field(None, alias="addressLine1")
    address_line2: Optional[str] = Field(None, alias="addressLine2")
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country: Optional[str] = None
    phone: Optional[str] = None


class OrderCreateRequest(ApiModel):
    items: List[OrderLine] = Field(..., min_length=1)
    shipping_address: ShippingAddressIn = Field(..., alias="shippingAddress")
    payment_method: str = Field(..., alias="paymentMethod")
    payment_details: Optional[dict[str, Any]] = Field(None, alias="paymentDetails")
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", max_length=100)
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    customer_note: Optional[str] = Field(None, alias="customerNote")


class CancelOrderRequest(ApiModel):
    reason: Optional[str] = None


class OrderStatusUpdateRequest(ApiModel):
    status: str
    note: Optional[str] = None


class PaymentStatusUpdateRequest(ApiModel):
    payment_status: str = Field(..., alias="paymentStatus")


class TrackingRequest(ApiModel):
    tracking_number: str = Field(..., alias="trackingNumber", min_length=1)
    shipping_method: Optional[str] = Field(None, alias="shippingMethod")


# ── Reviews ─────────────────────────────────────────────────────────

class ReviewCreateRequest(ApiModel):
    product_id: str = Field(..., alias="productId")
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: Optional[str] = None


class ReviewUpdateRequest(ApiModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: Optional[str] = None


# ── Coupons ─────────────────────────────────────────────────────────

class CouponValidateRequest(ApiModel):
    code: str = Field(..., min_length=1)
    order_total: Decimal = Field(..., alias="orderTotal", ge=0)


class CouponCreateRequest(ApiModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: str = Field(..., alias="discountType")
    discount_value: Decimal = Field(..., alias="discountValue", gt=0)
    min_order_value: Optional[Decimal] = Field(None, alias="minOrderValue", ge=0)
    max_discount: Optional[Decimal] = Field(None, alias="maxDiscount", ge=0)
    usage_limit: Optional[int] = Field(None, alias="usageLimit", ge=1)
    starts_at: Optional[datetime] = Field(None, alias="startsAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    is_active: Optional[bool] = Field(None, alias="isActive")

    normalize_dates = field_validator("starts_at", "expires_at")(to_naive_utc)
    check_discount_type = field_validator("discount_type")(to_discount_type)


class CouponUpdateRequest(ApiModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: Optional[str] = Field(None, alias="discountType")
    discount_value: Optional[Decimal] = Field(None, alias="discountValue", gt=0)
    min_order_value: Optional[Decimal] = Field(None, alias="minOrderValue", ge=0)
    max_discount: Optional[Decimal] = Field(None, alias="maxDiscount", ge=0)
    usage_limit: Optional[int] = Field(None, alias="usageLimit", ge=1)
    starts_at: Optional[datetime] = Field(None, alias="startsAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    is_active: Optional[bool] = Field(None, alias="isActive")

    normalize_dates = field_validator("starts_at", "expires_at")(to_naive_utc)
    check_discount_type = field_validator("discount_type")(to_discount_type)


# ── Contact ─────────────────────────────────────────────────────────

class ContactCreateRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=255)
    inquiry_type: str = Field("general", alias="inquiryType")
    message: str = Field(..., min_length=1)


class ContactStatusRequest(ApiModel):
    status: str


class ContactAssignRequest(ApiModel):
    assigned_to: Optional[str] = Field(None, alias="assignedTo")


class ContactRespondRequest(ApiModel):
    response: str = ""


# ── Settings ────────────────────────────────────────────────────────

class SettingUpsertRequest(ApiModel):
    value: Any
    type: Optional[str] = None
    group: Optional[str] = None
    description: Optional[str] = None


class SettingBulkItem(ApiModel):
    key: str = Field(..., min_length=1)
    value: Any
    type: Optional[str] = None
    group: Optional[str] = None


class SettingBulkRequest(ApiModel):
    settings: List[SettingBulkItem]


# ── Chat ────────────────────────────────────────────────────────────

class ChatMessageRequest(ApiModel):
    content: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    location: Optional[dict[str, Any]] = None


# ── Notifications ───────────────────────────────────────────────────

class NotificationCreateRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    type: str = "INFO"
    is_global: bool = Field(False, alias="isGlobal")
    user_id: Optional[str] = Field(None, alias="userId")
    order_id: Optional[str] = Field(None, alias="orderId")
    product_id: Optional[str] = Field(None, alias="productId")
    link: Optional[str] = None
    scheduled_at: Optional[datetime] = Field(None, alias="scheduledAt")

    normalize_dates = field_validator("scheduled_at")(to_naive_utc)


class NotificationUpdateRequest(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    message: Optional[str] = None
    type: Optional[str] = None
    is_global: Optional[bool] = Field(None, alias="isGlobal")
    is_active: Optional[bool] = Field(None, alias="isActive")
    link: Optional[str] = None
    scheduled_at: Optional[datetime] = Field(None, alias="scheduledAt")

    normalize_dates = field_validator("scheduled_at")(to_naive_utc)
