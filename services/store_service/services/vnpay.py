"""
VNPay payment gateway integration.

Provides:
- Outbound payment URL construction (HMAC-SHA512 signed)
- Verification of return/IPN query parameters
- Response code descriptions

Signing: parameters are sorted by key and joined as ``key=value&...``
without URL encoding; the HMAC-SHA512 hex digest of that string under the
shared secret is sent as ``vnp_SecureHash``.
"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional
from urllib.parse import urlencode

from libs.common.config import get_settings
from libs.common.datetime_utils import local_now
from libs.common.logging import get_logger

logger = get_logger(__name__)

VNPAY_VERSION = "2.1.0"
SIMULATED_HASH_PREFIX = "SIMULATED_HASH_"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")
MAX_ORDER_INFO_LENGTH = 255
SUCCESS_CODE = "00"

RESPONSE_MESSAGES = {
    "00": "Transaction successful",
    "07": "Amount debited; transaction flagged as suspicious (possible fraud)",
    "09": "Card/account is not registered for internet banking",
    "10": "Card/account verification failed more than 3 times",
    "11": "Payment window expired, please try again",
    "12": "Card/account is locked",
    "13": "Incorrect transaction OTP",
    "24": "Transaction cancelled by customer",
    "51": "Insufficient account balance",
    "65": "Daily transaction limit exceeded",
    "75": "Paying bank is under maintenance",
    "79": "Payment password entered incorrectly too many times",
    "99": "Other error",
}

# IPN acknowledgement codes returned to VNPay
IPN_SUCCESS = {"RspCode": "00", "Message": "Confirm Success"}
IPN_ORDER_NOT_FOUND = {"RspCode": "01", "Message": "Order not found"}
IPN_ALREADY_CONFIRMED = {"RspCode": "02", "Message": "Order already confirmed"}
IPN_INVALID_AMOUNT = {"RspCode": "04", "Message": "Invalid amount"}
IPN_INVALID_CHECKSUM = {"RspCode": "97", "Message": "Invalid Checksum"}
IPN_UNKNOWN_ERROR = {"RspCode": "99", "Message": "Unknown error"}


@dataclass
class VerificationResult:
    """Decoded and verified gateway callback."""

    is_valid: bool
    order_ref: Optional[str]
    amount: Decimal
    response_code: Optional[str]
    transaction_no: Optional[str]
    bank_code: Optional[str]
    pay_date: Optional[str]
    message: str
    simulated: bool = False

    @property
    def is_success(self) -> bool:
        return self.is_valid and self.response_code == SUCCESS_CODE


def response_message(code: Optional[str]) -> str:
    return RESPONSE_MESSAGES.get(code or "", "Unknown error")


def build_sign_data(params: Mapping[str, str]) -> str:
    """Sorted ``key=value`` pairs joined by ``&``, values left unencoded."""
    return "&".join(f"{key}={params[key]}" for key in sorted(params))


def sign_params(params: Mapping[str, str], secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        build_sign_data(params).encode("utf-8"),
        hashlib.sha512,
    ).hexdigest()


class VNPayClient:
    """Builds payment URLs and verifies VNPay callbacks."""

    def __init__(
        self,
        tmn_code: Optional[str] = None,
        hash_secret: Optional[str] = None,
        payment_url: Optional[str] = None,
        return_url: Optional[str] = None,
        use_simulator: Optional[bool] = None,
    ):
        settings = get_settings()
        self.tmn_code = tmn_code or settings.VNPAY_TMN_CODE
        self.hash_secret = hash_secret or settings.VNPAY_HASH_SECRET
        self.payment_url = payment_url or settings.VNPAY_URL
        self.return_url = return_url or settings.VNPAY_RETURN_URL
        self.timezone = settings.VNPAY_TIMEZONE
        self.simulator_url = settings.CLIENT_URL.rstrip("/") + "/payment/vnpay-simulator"
        self.use_simulator = (
            settings.vnpay_simulator_active if use_simulator is None else use_simulator
        )
        if not self.hash_secret:
            raise ValueError("VNPAY_HASH_SECRET is required")

    def build_params(
        self,
        *,
        order_ref: str,
        amount: Decimal,
        ip_addr: str,
        order_info: Optional[str] = None,
        bank_code: Optional[str] = None,
        locale: str = "vn",
    ) -> Dict[str, str]:
        """Unsigned request parameters. ``amount`` is whole VND."""
        description = (order_info or f"Thanh toan don hang {order_ref}")[
            :MAX_ORDER_INFO_LENGTH
        ]
        params = {
            "vnp_Version": VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Locale": locale or "vn",
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order_ref,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Amount": str(int(Decimal(amount).to_integral_value()) * 100),
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": ip_addr or "127.0.0.1",
            "vnp_CreateDate": local_now(self.timezone).strftime("%Y%m%d%H%M%S"),
        }
        if bank_code:
            params["vnp_BankCode"] = bank_code
        return params

    def create_payment_url(self, **kwargs) -> str:
        params = self.build_params(**kwargs)
        params["vnp_SecureHash"] = sign_params(params, self.hash_secret)
        base = self.simulator_url if self.use_simulator else self.payment_url
        logger.info(
            "Created VNPay payment URL for %s (amount=%s, simulator=%s)",
            params["vnp_TxnRef"],
            params["vnp_Amount"],
            self.use_simulator,
        )
        return f"{base}?{urlencode(sorted(params.items()))}"

    def verify(self, query: Mapping[str, str]) -> VerificationResult:
        """Recompute the signature over everything except the hash fields."""
        received_hash = query.get("vnp_SecureHash") or ""
        params = {k: v for k, v in query.items() if k not in HASH_FIELDS}

        simulated = received_hash.startswith(SIMULATED_HASH_PREFIX)
        if simulated:
            is_valid = self.use_simulator
            if not is_valid:
                logger.warning(
                    "Rejected simulated VNPay hash for %s: simulator disabled",
                    params.get("vnp_TxnRef"),
                )
        else:
            expected = sign_params(params, self.hash_secret)
            is_valid = bool(received_hash) and hmac.compare_digest(
                received_hash.lower(), expected.lower()
            )

        try:
            amount = Decimal(params.get("vnp_Amount") or 0) / 100
        except ArithmeticError:
            amount = Decimal("0")
            is_valid = False

        code = params.get("vnp_ResponseCode")
        return VerificationResult(
            is_valid=is_valid,
            order_ref=params.get("vnp_TxnRef"),
            amount=amount,
            response_code=code,
            transaction_no=params.get("vnp_TransactionNo"),
            bank_code=params.get("vnp_BankCode"),
            pay_date=params.get("vnp_PayDate"),
            message=response_message(code),
            simulated=simulated,
        )


def get_vnpay_client() -> VNPayClient:
    """FastAPI dependency; override in tests to pin keys."""
    return VNPayClient()
