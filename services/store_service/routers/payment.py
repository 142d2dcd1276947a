"""Payment router: VNPay checkout, browser return, IPN and status lookups."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.common.rate_limit import get_client_ip, payment_limit
from libs.db.session import get_async_db
from services.store_service.schemas import (
    PaymentStatusResponse,
    VNPayCreateRequest,
    VNPayCreateResponse,
)
from services.store_service.services import payment_ops
from services.store_service.services.vnpay import VNPayClient, get_vnpay_client
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


@router.post("/vnpay/create", response_model=VNPayCreateResponse)
@payment_limit
async def create_vnpay_payment(
    request: Request,
    payload: VNPayCreateRequest,
    current_user: AuthUser = Depends(get_current_user),
    client: VNPayClient = Depends(get_vnpay_client),
    db: AsyncSession = Depends(get_async_db),
):
    """Signed VNPay URL for one of the caller's unpaid orders."""
    return await payment_ops.create_payment(
        db,
        client,
        user=current_user,
        order_id=payload.order_id,
        ip_addr=get_client_ip(request),
        bank_code=payload.bank_code,
        locale=payload.locale,
    )


@router.get("/vnpay/return")
async def vnpay_return(
    request: Request,
    client: VNPayClient = Depends(get_vnpay_client),
):
    """Browser redirect from VNPay. Order state is only changed by the IPN."""
    target = payment_ops.build_return_redirect(client, dict(request.query_params))
    return RedirectResponse(url=target, status_code=302)


@router.get("/vnpay/ipn")
async def vnpay_ipn(
    request: Request,
    client: VNPayClient = Depends(get_vnpay_client),
    db: AsyncSession = Depends(get_async_db),
) -> dict[str, str]:
    """Server-to-server notification; VNPay expects an ``RspCode`` body."""
    query = dict(request.query_params)
    logger.info("VNPay IPN for %s", query.get("vnp_TxnRef"))
    return await payment_ops.handle_ipn(db, client, query)


@router.get("/status/{reference}", response_model=PaymentStatusResponse)
async def payment_status(
    reference: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Payment state by order id or order number."""
    return await payment_ops.get_payment_status(
        db, reference=reference, user=current_user
    )
