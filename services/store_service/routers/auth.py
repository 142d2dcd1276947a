"""Auth router: registration, login, tokens, passwords, profile, loyalty."""

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.currency import points_to_vnd
from libs.common.rate_limit import auth_limit
from libs.db.session import get_async_db
from services.store_service.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    FacebookAuthRequest,
    ForgotPasswordRequest,
    GoogleAuthRequest,
    LoginRequest,
    LoyaltyAdjustmentRequest,
    LoyaltySummaryResponse,
    LoyaltyTransactionResponse,
    MessageResponse,
    Pagination,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
    UserResponse,
    VerifyEmailRequest,
)
from services.store_service.services import auth_ops, loyalty_ops
from services.store_service.services.catalog_ops import total_pages
from services.store_service.services.oauth import OAuthVerifier, get_oauth_verifier
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(user, tokens: dict) -> AuthResponse:
    return AuthResponse(user=UserResponse.model_validate(user), tokens=TokenPair(**tokens))


# ============================================================================
# REGISTRATION / LOGIN
# ============================================================================


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@auth_limit
async def register(
    request: Request,
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_async_db),
):
    """Create a customer account. Credits the welcome bonus."""
    user, tokens = await auth_ops.register(
        db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        phone=payload.phone,
    )
    return _auth_response(user, tokens)


@router.post("/login", response_model=AuthResponse)
@auth_limit
async def login(
    request: Request,
    payload: LoginRequest,
    db: AsyncSession = Depends(get_async_db),
):
    user, tokens = await auth_ops.login(db, email=payload.email, password=payload.password)
    return _auth_response(user, tokens)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_async_db),
):
    return await auth_ops.refresh_tokens(db, refresh_token=payload.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: AuthUser = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    return MessageResponse(message="Logged out")


# ============================================================================
# OAUTH
# ============================================================================


@router.post("/google", response_model=AuthResponse)
@auth_limit
async def google_login(
    request: Request,
    payload: GoogleAuthRequest,
    verifier: OAuthVerifier = Depends(get_oauth_verifier),
    db: AsyncSession = Depends(get_async_db),
):
    identity = await verifier.verify_google(payload.id_token)
    user, tokens, _ = await auth_ops.upsert_oauth_user(
        db,
        provider=identity.provider,
        provider_id=identity.provider_id,
        email=identity.email,
        full_name=identity.full_name,
        avatar_url=identity.avatar_url,
    )
    return _auth_response(user, tokens)


@router.post("/facebook", response_model=AuthResponse)
@auth_limit
async def facebook_login(
    request: Request,
    payload: FacebookAuthRequest,
    verifier: OAuthVerifier = Depends(get_oauth_verifier),
    db: AsyncSession = Depends(get_async_db),
):
    identity = await verifier.verify_facebook(payload.access_token)
    user, tokens, _ = await auth_ops.upsert_oauth_user(
        db,
        provider=identity.provider,
        provider_id=identity.provider_id,
        email=identity.email,
        full_name=identity.full_name,
        avatar_url=identity.avatar_url,
    )
    return _auth_response(user, tokens)


# ============================================================================
# PASSWORDS / EMAIL
# ============================================================================


@router.post("/forgot-password", response_model=MessageResponse)
@auth_limit
async def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_async_db),
):
    await auth_ops.request_password_reset(db, email=payload.email)
    return MessageResponse(
        message="If an account exists for this email, a reset link has been sent"
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_async_db),
):
    await auth_ops.reset_password(
        db, token=payload.token, new_password=payload.new_password
    )
    return MessageResponse(message="Password has been reset")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await auth_ops.change_password(
        db,
        user_id=current_user.user_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return MessageResponse(message="Password changed")


@router.post("/verify-email", response_model=UserResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    db: AsyncSession = Depends(get_async_db),
):
    return await auth_ops.verify_email(db, token=payload.token)


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await auth_ops.resend_verification(db, user_id=current_user.user_id)
    return MessageResponse(message="Verification email sent")


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await auth_ops.get_user(db, current_user.user_id)


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    payload: ProfileUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await auth_ops.update_profile(
        db, user_id=current_user.user_id, data=payload.model_dump(exclude_unset=True)
    )


# ============================================================================
# LOYALTY
# ============================================================================


@router.get("/loyalty", response_model=LoyaltySummaryResponse)
async def get_loyalty(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Points balance and ledger, newest first."""
    user, transactions, total = await loyalty_ops.get_loyalty_summary(
        db, user_id=current_user.user_id, page=page, limit=limit
    )
    return LoyaltySummaryResponse(
        balance=user.loyalty_points,
        balance_value=points_to_vnd(user.loyalty_points),
        transactions=[
            LoyaltyTransactionResponse.model_validate(t) for t in transactions
        ],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=total_pages(total, limit)
        ),
    )


@router.post("/loyalty/adjust", response_model=LoyaltyTransactionResponse)
async def adjust_loyalty(
    payload: LoyaltyAdjustmentRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Manual points correction (admin only)."""
    return await loyalty_ops.adjust_points(
        db, user_id=payload.user_id, points=payload.points, reason=payload.reason
    )
