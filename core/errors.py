"""
Error taxonomy for the checkout, coupon and payment flows.

Every error carries a stable machine ``code`` (what clients branch on), a
human ``detail`` and the HTTP status it maps to. ``main.py`` registers a
handler that renders them as ``{"error": code, "detail": detail}``.
"""
from typing import Any, Optional


class StorefrontError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, detail: Optional[str] = None, *, code: Optional[str] = None, extra: Optional[dict[str, Any]] = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        if code:
            self.code = code
        self.extra = extra or {}
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "detail": self.detail}
        body.update(self.extra)
        return body


class RequestInvalid(StorefrontError):
    """Malformed request"""
    code = "invalid_request"


class InvalidProduct(StorefrontError):
    """Product not found or inactive"""
    code = "invalid_product"


class InvalidVariant(StorefrontError):
    """Variant not found, inactive or not part of the product"""
    code = "invalid_variant"


class InvalidCoupon(StorefrontError):
    """Coupon not found, inactive, expired or fully redeemed"""
    code = "invalid_coupon"


class CouponNotApplicable(StorefrontError):
    """Coupon does not apply to this order"""
    code = "coupon_not_applicable"


class OutOfStock(StorefrontError):
    """Not enough stock"""
    code = "out_of_stock"


class NotFound(StorefrontError):
    """Not found"""
    status_code = 404
    code = "not_found"


class OrderNotPayable(StorefrontError):
    """Order cannot be paid"""
    code = "order_not_payable"


class InvalidStatus(StorefrontError):
    """Operation not allowed in the current status"""
    code = "invalid_status"


class GatewayError(StorefrontError):
    """Payment provider request failed"""
    status_code = 502
    code = "gateway_error"


class SignatureInvalid(StorefrontError):
    """Webhook signature verification failed"""
    status_code = 403
    code = "invalid_signature"


class NotConfigured(StorefrontError):
    """Required setting is missing"""
    status_code = 500
    code = "not_configured"


class Forbidden(StorefrontError):
    """Admin access required"""
    status_code = 403
    code = "forbidden"


class Conflict(StorefrontError):
    """Concurrent update conflict, retry the request"""
    status_code = 409
    code = "conflict"
