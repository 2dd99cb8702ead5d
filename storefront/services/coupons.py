"""Coupon lookup against the backend, applied to the local cart"""

from urllib.parse import quote

from pydantic import ValidationError

from ..api.storefront_client import ApiRequest
from ..auth.credentials import CredentialManager
from ..auth.results import ErrorKind, OperationResult
from ..models.catalog import Coupon
from ..utils.logger import get_logger
from .cart import CartEngine

logger = get_logger(__name__)


class CouponService:
    def __init__(self, credentials: CredentialManager, cart: CartEngine):
        self.credentials = credentials
        self.cart = cart

    async def apply(self, code: str) -> OperationResult:
        """Validate ``code`` with the backend and, if accepted, apply it to the cart."""
        code = (code or "").strip().upper()
        if not code:
            return OperationResult.failure(ErrorKind.VALIDATION, "Coupon code is required")

        result = await self.credentials.send(ApiRequest("GET", f"/coupons/validate/{quote(code, safe='')}"))
        if not result.ok:
            return result

        payload = result.data.get("coupon", result.data) if isinstance(result.data, dict) else None
        try:
            coupon = Coupon.model_validate(payload)
        except ValidationError:
            logger.warning("Malformed coupon response", code=code)
            return OperationResult.failure(ErrorKind.BACKEND_REJECTED, "Invalid coupon")
        if coupon.is_expired():
            return OperationResult.failure(ErrorKind.BACKEND_REJECTED, "Coupon has expired")

        totals = self.cart.apply_coupon(coupon)
        logger.info("Coupon applied", code=coupon.code, discount_percent=coupon.discount_percent)
        return OperationResult.success(totals)

    def remove(self) -> OperationResult:
        return OperationResult.success(self.cart.remove_coupon())
