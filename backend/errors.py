"""
Taxonomie des erreurs métier.
- Chaque erreur porte un `code` stable et un `status_code` HTTP.
- Les handlers (backend.app_setup.exceptions) les convertissent en {error, code}.
- `message` est destiné au navigateur: jamais de détail interne (driver, SQL, Stripe).
"""
from typing import Optional


class AppError(Exception):
    code = "internal_error"
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InvalidRequest(AppError):
    code = "invalid_request"
    status_code = 400
    message = "Invalid request"


class Unauthenticated(AppError):
    code = "unauthenticated"
    status_code = 401
    message = "Missing or invalid bearer token"


class Forbidden(AppError):
    code = "forbidden"
    status_code = 403
    message = "Forbidden"


class OrderNotFound(AppError):
    code = "order_not_found"
    status_code = 404
    message = "Order not found"


class CartItemNotFound(AppError):
    code = "cart_item_not_found"
    status_code = 404
    message = "Cart item not found"


class CartMismatch(AppError):
    code = "cart_mismatch"
    status_code = 409
    message = "Your cart changed, please refresh and try again"


class EmptyLineItems(AppError):
    code = "empty_line_items"
    status_code = 400
    message = "No purchasable items in cart"


class MetadataTooLarge(AppError):
    code = "metadata_too_large"
    status_code = 422
    message = "Cart is too large to check out in one order"


class InvalidSignature(AppError):
    code = "invalid_signature"
    status_code = 400
    message = "Invalid signature"


class MissingMetadata(AppError):
    # Jamais renvoyée telle quelle: le webhook acquitte (200) sans traiter.
    code = "missing_metadata"
    status_code = 200
    message = "Checkout session is missing required metadata"


class CatalogUnavailable(AppError):
    code = "catalog_unavailable"
    status_code = 503
    message = "Catalog temporarily unavailable, please retry"


class PaymentProcessorError(AppError):
    code = "payment_processor_error"
    status_code = 502
    message = "Payment provider error, please retry"


class InternalInconsistency(AppError):
    code = "internal_inconsistency"
    status_code = 500
    message = "Internal server error"


class RateLimited(AppError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests, please slow down"
