"""VNPay checkout flow: payment creation, IPN handling, return redirects."""

import uuid
from typing import Mapping, Optional
from urllib.parse import urlencode

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.store_service.models import Order, OrderStatus, PaymentMethod, PaymentStatus
from services.store_service.services import order_ops
from services.store_service.services.vnpay import (
    IPN_ALREADY_CONFIRMED,
    IPN_INVALID_AMOUNT,
    IPN_INVALID_CHECKSUM,
    IPN_ORDER_NOT_FOUND,
    IPN_SUCCESS,
    IPN_UNKNOWN_ERROR,
    VNPayClient,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PAYABLE_STATUSES = frozenset({OrderStatus.PENDING})


async def create_payment(
    db: AsyncSession,
    client: VNPayClient,
    *,
    user: AuthUser,
    order_id: uuid.UUID,
    ip_addr: str,
    bank_code: Optional[str] = None,
    locale: str = "vn",
) -> dict:
    """Signed payment URL for the caller's own unpaid VNPay order.

    The amount always comes from the stored order, never from the client.
    """
    order = await order_ops.get_order(db, order_id=order_id, user=user)
    if order.user_id != user.user_id:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    if order.payment_method != PaymentMethod.VNPAY:
        raise ValidationError(
            "Order is not payable by VNPay", code="INVALID_PAYMENT_METHOD"
        )
    if order.payment_status == PaymentStatus.PAID:
        raise ValidationError("Order is already paid", code="ORDER_ALREADY_PAID")
    if order.status not in PAYABLE_STATUSES:
        raise ValidationError(
            f"Order cannot be paid in status {order.status.value}",
            code="ORDER_NOT_PAYABLE",
        )

    payment_url = client.create_payment_url(
        order_ref=order.order_number,
        amount=order.total_amount,
        ip_addr=ip_addr,
        order_info=f"Thanh toan don hang {order.order_number}",
        bank_code=bank_code,
        locale=locale,
    )
    return {
        "payment_url": payment_url,
        "order_id": order.id,
        "order_number": order.order_number,
        "amount": order.total_amount,
    }


async def handle_ipn(
    db: AsyncSession, client: VNPayClient, query: Mapping[str, str]
) -> dict:
    """Server-to-server notification. Always answers with an ``RspCode``."""
    result = client.verify(query)
    if not result.is_valid:
        logger.warning("VNPay IPN with invalid checksum for %s", result.order_ref)
        return IPN_INVALID_CHECKSUM

    # Held until commit so duplicate notifications are applied one at a time
    order = (
        await order_ops.get_order_by_number(db, result.order_ref, lock=True)
        if result.order_ref
        else None
    )
    if not order:
        return IPN_ORDER_NOT_FOUND
    if result.amount != order.total_amount:
        logger.warning(
            "VNPay IPN amount mismatch for %s: got %s expected %s",
            order.order_number,
            result.amount,
            order.total_amount,
        )
        return IPN_INVALID_AMOUNT
    if order.payment_status == PaymentStatus.PAID:
        return IPN_ALREADY_CONFIRMED

    try:
        await order_ops.record_payment_result(
            db,
            order,
            success=result.is_success,
            response_code=result.response_code or "",
            transaction_no=result.transaction_no,
            bank_code=result.bank_code,
        )
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to record VNPay result for %s", order.order_number)
        return IPN_UNKNOWN_ERROR
    return IPN_SUCCESS


def build_return_redirect(client: VNPayClient, query: Mapping[str, str]) -> str:
    """Frontend URL the shopper lands on after VNPay."""
    settings = get_settings()
    base = settings.CLIENT_URL.rstrip("/") + "/payment/vnpay-return"
    result = client.verify(query)

    if not result.is_valid:
        params = {"payment": "failed", "message": "Invalid signature"}
    elif result.is_success:
        params = {
            "payment": "success",
            "orderNumber": result.order_ref or "",
            "vnp_ResponseCode": result.response_code,
            "vnp_TransactionNo": result.transaction_no or "",
        }
    else:
        params = {
            "payment": "failed",
            "orderNumber": result.order_ref or "",
            "vnp_ResponseCode": result.response_code or "",
            "message": result.message,
        }
    return f"{base}?{urlencode(params)}"


async def get_payment_status(
    db: AsyncSession, *, reference: str, user: AuthUser
) -> Order:
    """Look up by order id or order number. Owner or staff only."""
    order = None
    try:
        order_id = uuid.UUID(reference)
    except ValueError:
        order = await order_ops.get_order_by_number(db, reference)
    else:
        order = await order_ops.get_order(db, order_id=order_id, user=user)
    if not order or (order.user_id != user.user_id and not user.is_staff):
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order
