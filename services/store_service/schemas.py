"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from services.store_service.models import (
    DiscountType,
    FulfillmentStatus,
    LoyaltyTransactionType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


# ============================================================================
# AUTH SCHEMAS
# ============================================================================


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str


class GoogleAuthRequest(BaseModel):
    id_token: str


class FacebookAuthRequest(BaseModel):
    access_token: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: EmailStr
    full_name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    role: UserRole
    is_email_verified: bool
    loyalty_points: int
    created_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenPair


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    avatar_url: Optional[str] = Field(None, max_length=512)


# ============================================================================
# CATEGORY SCHEMAS
# ============================================================================


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=512)
    parent_id: Optional[uuid.UUID] = None
    sort_order: int = 0
    is_active: bool = True
    is_featured: bool = False


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=512)
    parent_id: Optional[uuid.UUID] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class CategoryResponse(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    created_at: datetime
    updated_at: datetime


class CategoryTreeNode(CategoryResponse):
    children: List["CategoryTreeNode"] = []


class CategoryOrderItem(BaseModel):
    id: uuid.UUID
    sort_order: int


class CategoryReorderRequest(BaseModel):
    items: List[CategoryOrderItem] = Field(..., min_length=1)


# ============================================================================
# PRODUCT SCHEMAS
# ============================================================================


class ProductVariantBase(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    variant_name: str = Field(..., min_length=1, max_length=255)
    price_adjustment: Decimal = Decimal("0")
    stock_quantity: int = Field(0, ge=0)
    attributes: Dict[str, Any] = {}
    is_active: bool = True
    sort_order: int = 0


class ProductVariantCreate(ProductVariantBase):
    pass


class ProductVariantUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    variant_name: Optional[str] = Field(None, min_length=1, max_length=255)
    price_adjustment: Optional[Decimal] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    attributes: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class ProductVariantResponse(ProductVariantBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    category_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    short_description: Optional[str] = Field(None, max_length=500)
    base_price: Decimal = Field(..., ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: int = Field(0, ge=0)
    low_stock_threshold: int = Field(5, ge=0)
    is_active: bool = True
    is_featured: bool = False
    tags: List[str] = []
    images: List[str] = []
    attributes: Dict[str, Any] = {}


class ProductCreate(ProductBase):
    variants: List[ProductVariantCreate] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    category_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    short_description: Optional[str] = Field(None, max_length=500)
    base_price: Optional[Decimal] = Field(None, ge=0)
    compare_at_price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None
    attributes: Optional[Dict[str, Any]] = None


class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str


class ProductResponse(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    category: Optional[CategorySummary] = None
    variants: List[ProductVariantResponse] = []
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    pagination: Pagination


# ============================================================================
# INVENTORY SCHEMAS
# ============================================================================


class StockAdjustment(BaseModel):
    quantity_change: int = Field(..., description="Positive to add, negative to remove")
    variant_id: Optional[uuid.UUID] = None
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("quantity_change")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity_change must be non-zero")
        return v


class VariantStock(BaseModel):
    variant_id: uuid.UUID
    sku: str
    variant_name: str
    stock_quantity: int
    is_low_stock: bool


class InventoryStatusItem(BaseModel):
    product_id: uuid.UUID
    sku: str
    name: str
    stock_quantity: int
    low_stock_threshold: int
    is_low_stock: bool
    is_active: bool
    variants: List[VariantStock] = []


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(1, ge=1)
    customizations: Optional[Dict[str, Any]] = None


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)
    customizations: Optional[Dict[str, Any]] = None


class CartItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    product_name: str
    product_slug: str
    variant_name: Optional[str] = None
    sku: str
    image: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    available_stock: int
    is_available: bool
    customizations: Optional[Dict[str, Any]] = None


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    item_count: int
    subtotal: Decimal
    estimated_tax: Decimal
    estimated_shipping: Decimal
    estimated_total: Decimal
    loyalty_points: int
    loyalty_points_value: Decimal


class CartValidationResponse(BaseModel):
    is_valid: bool
    issues: List[str]


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class Address(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=8, max_length=20)
    address_line: str = Field(..., min_length=1, max_length=500)
    ward: Optional[str] = Field(None, max_length=100)
    district: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)


class OrderCreate(BaseModel):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: PaymentMethod = PaymentMethod.COD
    discount_code: Optional[str] = Field(None, max_length=50)
    loyalty_points_to_redeem: int = Field(0, ge=0)
    customer_notes: Optional[str] = Field(None, max_length=1000)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = Field(None, max_length=100)
    admin_notes: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    variant_id: Optional[uuid.UUID] = None
    product_name: str
    variant_name: Optional[str] = None
    sku: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    customizations: Optional[Dict[str, Any]] = None


class OrderStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    reason: Optional[str] = None
    performed_by: Optional[uuid.UUID] = None
    created_at: datetime


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    payment_method: PaymentMethod
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    coupon_discount: Decimal
    loyalty_discount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    discount_code: Optional[str] = None
    points_redeemed: int
    points_earned: int
    shipping_address: Dict[str, Any]
    billing_address: Optional[Dict[str, Any]] = None
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []
    status_history: List[OrderStatusHistoryResponse] = []


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    pagination: Pagination
    status_counts: Dict[str, int]


class OrderSummaryResponse(BaseModel):
    total_orders: int
    status_counts: Dict[str, int]
    total_spent: Decimal
    total_points_earned: int


class DeliveryProgress(BaseModel):
    confirmed: bool
    processing: bool
    shipping: bool
    delivered: bool


class OrderTrackingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivery_progress: DeliveryProgress
    status_history: List[OrderStatusHistoryResponse]
    items: List[OrderItemResponse]
    shipping_address: Dict[str, Any]
    total_amount: Decimal


# ============================================================================
# DISCOUNT SCHEMAS
# ============================================================================


class DiscountBase(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    discount_type: DiscountType
    value: Decimal = Field(..., gt=0)
    min_order_amount: Decimal = Field(Decimal("0"), ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, gt=0)
    max_uses: int = Field(10, ge=1)
    applicable_users: List[uuid.UUID] = []
    is_first_time_only: bool = False
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class DiscountCreate(DiscountBase):
    pass


class DiscountUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=50)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    value: Optional[Decimal] = Field(None, gt=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, gt=0)
    max_uses: Optional[int] = Field(None, ge=1)
    applicable_users: Optional[List[uuid.UUID]] = None
    is_first_time_only: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class DiscountResponse(DiscountBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    used_count: int
    created_at: datetime


class DiscountListResponse(BaseModel):
    items: List[DiscountResponse]
    pagination: Pagination


class DiscountValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    subtotal: Decimal = Field(..., ge=0)


class DiscountValidateResponse(BaseModel):
    valid: bool = True
    code: str
    discount_type: DiscountType
    value: Decimal
    discount_amount: Decimal
    remaining_uses: int
    description: Optional[str] = None


# ============================================================================
# LOYALTY SCHEMAS
# ============================================================================


class LoyaltyTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    transaction_type: LoyaltyTransactionType
    points: int
    balance_after: int
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime


class LoyaltySummaryResponse(BaseModel):
    balance: int
    balance_value: Decimal
    transactions: List[LoyaltyTransactionResponse]
    pagination: Pagination


class LoyaltyAdjustmentRequest(BaseModel):
    user_id: uuid.UUID
    points: int
    reason: str = Field(..., min_length=1, max_length=255)


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================


class VNPayCreateRequest(BaseModel):
    order_id: uuid.UUID
    bank_code: Optional[str] = Field(None, max_length=20)
    locale: Literal["vn", "en"] = "vn"


class VNPayCreateResponse(BaseModel):
    payment_url: str
    order_id: uuid.UUID
    order_number: str
    amount: Decimal


class PaymentStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: uuid.UUID = Field(validation_alias="id")
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    paid_at: Optional[datetime] = None
    vnpay_transaction_no: Optional[str] = None
    vnpay_bank_code: Optional[str] = None
    vnpay_response_code: Optional[str] = None


# ============================================================================
# IMAGE SCHEMAS
# ============================================================================


class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    filename: str
    url: str
    thumbnail_url: str
    content_type: str
    size: int
    width: int
    height: int


class ImageListResponse(BaseModel):
    images: List[ImageResponse]
