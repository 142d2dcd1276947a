"""Discount codes and the loyalty-point ledger."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.store_service.models.enums import (
    DiscountType,
    LoyaltyTransactionType,
    enum_values,
)
from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# DISCOUNT CODES
# ============================================================================


class DiscountCode(Base):
    """A redeemable promo code."""

    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="used_count_non_negative"),
        CheckConstraint("value > 0", name="value_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        SAEnum(DiscountType, values_callable=enum_values, name="discount_type_enum"),
        nullable=False,
    )
    # Percent (0-100] for PERCENTAGE, VND for FIXED_AMOUNT
    value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    min_order_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), server_default="0"
    )
    max_discount_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True
    )

    max_uses: Mapped[int] = mapped_column(Integer, default=10, server_default="10")
    used_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    # Empty list = everyone
    applicable_users: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_first_time_only: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="0"
    )

    valid_from: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    usages = relationship(
        "DiscountUsage", back_populates="discount_code", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<DiscountCode {self.code}>"


class DiscountUsage(Base):
    """One redemption of a code on an order."""

    __tablename__ = "discount_usages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    discount_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("discount_codes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    discount_code = relationship("DiscountCode", back_populates="usages")


# ============================================================================
# LOYALTY
# ============================================================================


class LoyaltyTransaction(Base):
    """Ledger row. ``points`` is signed; ``balance_after`` is the user's new balance."""

    __tablename__ = "loyalty_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    transaction_type: Mapped[LoyaltyTransactionType] = mapped_column(
        SAEnum(
            LoyaltyTransactionType,
            values_callable=enum_values,
            name="loyalty_transaction_type_enum",
        ),
        nullable=False,
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    user = relationship("User", back_populates="loyalty_transactions")

    def __repr__(self):
        return f"<LoyaltyTransaction {self.transaction_type} {self.points:+d}>"
