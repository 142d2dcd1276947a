"""Loyalty point ledger operations.

Every balance change goes through ``_apply`` so ``User.loyalty_points`` and
the ledger's ``balance_after`` never disagree. Callers own the commit.
"""

import uuid
from datetime import timedelta
from typing import List, Optional, Tuple

from libs.common.datetime_utils import utc_now
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.store_service.models import (
    LoyaltyTransaction,
    LoyaltyTransactionType,
    User,
)
from services.store_service.services.pricing import (
    POINTS_EXPIRY_MONTHS,
    WELCOME_BONUS_POINTS,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DAYS_PER_MONTH = 30


def _apply(
    db: AsyncSession,
    user: User,
    *,
    points: int,
    transaction_type: LoyaltyTransactionType,
    description: str,
    order_id: Optional[uuid.UUID] = None,
    expires: bool = False,
) -> LoyaltyTransaction:
    new_balance = user.loyalty_points + points
    if new_balance < 0:
        raise ValidationError(
            "Insufficient loyalty points", code="INSUFFICIENT_POINTS"
        )
    user.loyalty_points = new_balance
    entry = LoyaltyTransaction(
        user_id=user.id,
        order_id=order_id,
        transaction_type=transaction_type,
        points=points,
        balance_after=new_balance,
        description=description,
        expires_at=(
            utc_now() + timedelta(days=POINTS_EXPIRY_MONTHS * DAYS_PER_MONTH)
            if expires
            else None
        ),
    )
    db.add(entry)
    return entry


def grant_welcome_bonus(db: AsyncSession, user: User) -> LoyaltyTransaction:
    return _apply(
        db,
        user,
        points=WELCOME_BONUS_POINTS,
        transaction_type=LoyaltyTransactionType.WELCOME_BONUS,
        description="Welcome bonus",
        expires=True,
    )


def redeem_points(
    db: AsyncSession, user: User, *, points: int, order_id: uuid.UUID, order_number: str
) -> LoyaltyTransaction:
    return _apply(
        db,
        user,
        points=-points,
        transaction_type=LoyaltyTransactionType.REDEEMED_DISCOUNT,
        description=f"Redeemed on order {order_number}",
        order_id=order_id,
    )


def earn_points(
    db: AsyncSession, user: User, *, points: int, order_id: uuid.UUID, order_number: str
) -> LoyaltyTransaction:
    return _apply(
        db,
        user,
        points=points,
        transaction_type=LoyaltyTransactionType.EARNED_PURCHASE,
        description=f"Earned on order {order_number}",
        order_id=order_id,
        expires=True,
    )


def restore_redeemed_points(
    db: AsyncSession, user: User, *, points: int, order_id: uuid.UUID, order_number: str
) -> LoyaltyTransaction:
    return _apply(
        db,
        user,
        points=points,
        transaction_type=LoyaltyTransactionType.REDEMPTION_RESTORED,
        description=f"Restored from cancelled order {order_number}",
        order_id=order_id,
    )


def reverse_earned_points(
    db: AsyncSession, user: User, *, points: int, order_id: uuid.UUID, order_number: str
) -> Optional[LoyaltyTransaction]:
    """Take back points earned on a cancelled order, as far as the balance allows."""
    reversible = min(points, user.loyalty_points)
    if reversible <= 0:
        return None
    return _apply(
        db,
        user,
        points=-reversible,
        transaction_type=LoyaltyTransactionType.EARNED_REVERSED,
        description=f"Reversed from cancelled order {order_number}",
        order_id=order_id,
    )


async def adjust_points(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    points: int,
    reason: str,
) -> LoyaltyTransaction:
    """Manual admin correction."""
    user = await db.get(User, user_id, with_for_update=True)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    if points == 0:
        raise ValidationError("Adjustment must be non-zero")
    entry = _apply(
        db,
        user,
        points=points,
        transaction_type=LoyaltyTransactionType.ADMIN_ADJUSTMENT,
        description=reason,
    )
    await db.commit()
    await db.refresh(entry)
    logger.info("Adjusted loyalty points for %s by %+d", user_id, points)
    return entry


async def get_loyalty_summary(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
) -> Tuple[User, List[LoyaltyTransaction], int]:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    total = await db.scalar(
        select(func.count(LoyaltyTransaction.id)).where(
            LoyaltyTransaction.user_id == user_id
        )
    )
    result = await db.execute(
        select(LoyaltyTransaction)
        .where(LoyaltyTransaction.user_id == user_id)
        .order_by(LoyaltyTransaction.created_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return user, list(result.scalars().all()), total or 0
