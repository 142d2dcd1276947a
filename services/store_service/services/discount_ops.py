"""Discount code administration, validation and usage tracking."""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from libs.common.currency import ZERO, percent_of, to_vnd
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from libs.common.logging import get_logger
from services.store_service.models import (
    AuditEntityType,
    DiscountCode,
    DiscountType,
    DiscountUsage,
)
from services.store_service.services.audit import log_audit
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class DiscountQuote:
    discount: DiscountCode
    amount: Decimal
    remaining_uses: int


def normalize_code(code: str) -> str:
    return code.strip().upper()


def calculate_discount_amount(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    """Percentage capped by ``max_discount_amount``; fixed capped by the subtotal."""
    if discount.discount_type == DiscountType.PERCENTAGE:
        amount = percent_of(subtotal, Decimal(discount.value) / 100)
        if discount.max_discount_amount is not None:
            amount = min(amount, to_vnd(discount.max_discount_amount))
    else:
        amount = to_vnd(discount.value)
    return max(min(amount, to_vnd(subtotal)), ZERO)


# ============================================================================
# ADMIN CRUD
# ============================================================================


async def list_discounts(
    db: AsyncSession, *, active_only: bool = False, page: int = 1, limit: int = 20
) -> Tuple[List[DiscountCode], int]:
    filters = [DiscountCode.is_active.is_(True)] if active_only else []
    total = await db.scalar(select(func.count(DiscountCode.id)).where(*filters))
    result = await db.execute(
        select(DiscountCode)
        .where(*filters)
        .order_by(DiscountCode.created_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def get_discount(db: AsyncSession, discount_id: uuid.UUID) -> DiscountCode:
    discount = await db.get(DiscountCode, discount_id)
    if not discount:
        raise NotFoundError("Discount code not found", code="DISCOUNT_NOT_FOUND")
    return discount


def _check_definition(data: dict) -> None:
    discount_type = data.get("discount_type")
    value = data.get("value")
    if discount_type == DiscountType.PERCENTAGE and value is not None and value > 100:
        raise ValidationError(
            "Percentage discounts cannot exceed 100", code="INVALID_DISCOUNT"
        )
    valid_from, valid_until = data.get("valid_from"), data.get("valid_until")
    if valid_from and valid_until and ensure_utc(valid_until) <= ensure_utc(valid_from):
        raise ValidationError(
            "valid_until must be after valid_from", code="INVALID_DISCOUNT"
        )


async def create_discount(
    db: AsyncSession, *, data: dict, performed_by: str
) -> DiscountCode:
    data = dict(data)
    data["code"] = normalize_code(data["code"])
    data["applicable_users"] = [str(u) for u in data.get("applicable_users") or []]
    _check_definition(data)
    if await db.scalar(select(DiscountCode.id).where(DiscountCode.code == data["code"])):
        raise ConflictError("Discount code already exists", code="DUPLICATE_CODE")

    discount = DiscountCode(**data)
    db.add(discount)
    await db.flush()
    log_audit(
        db,
        entity_type=AuditEntityType.DISCOUNT,
        entity_id=discount.id,
        action="created",
        performed_by=performed_by,
        new_value={"code": discount.code, "value": str(discount.value)},
    )
    await db.commit()
    await db.refresh(discount)
    logger.info("Created discount code %s", discount.code)
    return discount


async def update_discount(
    db: AsyncSession, discount_id: uuid.UUID, *, data: dict, performed_by: str
) -> DiscountCode:
    discount = await get_discount(db, discount_id)
    data = dict(data)
    if data.get("code"):
        data["code"] = normalize_code(data["code"])
        if data["code"] != discount.code and await db.scalar(
            select(DiscountCode.id).where(DiscountCode.code == data["code"])
        ):
            raise ConflictError("Discount code already exists", code="DUPLICATE_CODE")
    if "applicable_users" in data:
        data["applicable_users"] = [str(u) for u in data["applicable_users"] or []]
    _check_definition(
        {
            "discount_type": data.get("discount_type", discount.discount_type),
            "value": data.get("value", discount.value),
            "valid_from": data.get("valid_from", discount.valid_from),
            "valid_until": data.get("valid_until", discount.valid_until),
        }
    )

    old_value = {"code": discount.code, "value": str(discount.value)}
    for field, value in data.items():
        setattr(discount, field, value)
    log_audit(
        db,
        entity_type=AuditEntityType.DISCOUNT,
        entity_id=discount.id,
        action="updated",
        performed_by=performed_by,
        old_value=old_value,
        new_value={"code": discount.code, "value": str(discount.value)},
    )
    await db.commit()
    await db.refresh(discount)
    return discount


async def delete_discount(db: AsyncSession, discount_id: uuid.UUID) -> None:
    discount = await get_discount(db, discount_id)
    await db.delete(discount)
    await db.commit()


# ============================================================================
# VALIDATION / USAGE
# ============================================================================


async def validate_discount(
    db: AsyncSession,
    *,
    code: str,
    user_id: uuid.UUID,
    subtotal: Decimal,
    lock: bool = False,
) -> DiscountQuote:
    """Check a code against every restriction and price it for ``subtotal``.

    ``lock`` takes a row lock so concurrent checkouts cannot both claim the
    last use.
    """
    stmt = select(DiscountCode).where(DiscountCode.code == normalize_code(code))
    if lock:
        stmt = stmt.with_for_update()
    discount = await db.scalar(stmt)
    if not discount or not discount.is_active:
        raise NotFoundError("Invalid discount code", code="INVALID_DISCOUNT_CODE")

    now = utc_now()
    if discount.valid_from and ensure_utc(discount.valid_from) > now:
        raise ValidationError(
            "Discount code is not active yet", code="DISCOUNT_NOT_STARTED"
        )
    if discount.valid_until and ensure_utc(discount.valid_until) < now:
        raise ValidationError("Discount code has expired", code="DISCOUNT_EXPIRED")
    if discount.used_count >= discount.max_uses:
        raise ValidationError(
            "Discount code usage limit reached", code="DISCOUNT_LIMIT_REACHED"
        )
    if subtotal < discount.min_order_amount:
        raise ValidationError(
            f"Minimum order amount of {to_vnd(discount.min_order_amount)} VND required",
            code="MINIMUM_ORDER_NOT_MET",
        )
    if discount.applicable_users and str(user_id) not in discount.applicable_users:
        raise PermissionDeniedError(
            "This discount code is not available for your account",
            code="DISCOUNT_NOT_APPLICABLE",
        )
    if discount.is_first_time_only:
        previous = await db.scalar(
            select(func.count(DiscountUsage.id)).where(
                DiscountUsage.discount_code_id == discount.id,
                DiscountUsage.user_id == user_id,
            )
        )
        if previous:
            raise PermissionDeniedError(
                "This discount code can only be used once per customer",
                code="DISCOUNT_ALREADY_USED",
            )

    return DiscountQuote(
        discount=discount,
        amount=calculate_discount_amount(discount, subtotal),
        remaining_uses=discount.max_uses - discount.used_count,
    )


def record_usage(
    db: AsyncSession,
    quote: DiscountQuote,
    *,
    user_id: uuid.UUID,
    order_id: uuid.UUID,
    amount: Decimal,
) -> DiscountUsage:
    """Stage a usage row and bump the counter on the caller's transaction."""
    quote.discount.used_count += 1
    usage = DiscountUsage(
        discount_code_id=quote.discount.id,
        user_id=user_id,
        order_id=order_id,
        amount=amount,
    )
    db.add(usage)
    return usage


async def release_usage(db: AsyncSession, *, order_id: uuid.UUID) -> None:
    """Undo ``record_usage`` for a cancelled order."""
    result = await db.execute(
        select(DiscountUsage).where(DiscountUsage.order_id == order_id)
    )
    for usage in result.scalars().all():
        discount = await db.get(DiscountCode, usage.discount_code_id)
        if discount and discount.used_count > 0:
            discount.used_count -= 1
        await db.delete(usage)
