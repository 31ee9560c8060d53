"""Error taxonomy for the order mirror.

Every error carries a stable ``code`` (used in API payloads) and the HTTP
status the API layer answers with.
"""

from __future__ import annotations


class PopmartError(Exception):
    """Base exception for all mirror errors."""

    code = "POPMART_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, *, code: str | None = None):
        if code:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(PopmartError):
    code = "VALIDATION_ERROR"
    http_status = 400


class EmptyCart(ValidationError):
    code = "EMPTY_CART"

    def __init__(self):
        super().__init__("Your cart is empty.")


class InvalidFile(ValidationError):
    code = "INVALID_FILE"

    def __init__(self, mimetype: str | None):
        self.mimetype = mimetype
        super().__init__(f"Unsupported proof file type: {mimetype or 'unknown'}")


class NotFoundError(ValidationError):
    code = "NOT_FOUND"
    http_status = 404


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class AuthorizationError(PopmartError):
    code = "AUTHORIZATION_ERROR"
    http_status = 403


class Forbidden(AuthorizationError):
    code = "FORBIDDEN"

    def __init__(self, role: str, expected: str | None = None):
        self.role = role
        self.expected = expected
        msg = f"Only the {role} wallet may perform this action."
        if expected:
            msg = f"Switch to the {role} wallet ({expected}) to perform this action."
        super().__init__(msg)


class SelfTrade(AuthorizationError):
    code = "SELF_TRADE"

    def __init__(self, wallet: str, product_name: str | None = None):
        self.wallet = wallet
        msg = "You cannot buy from your own seller wallet."
        if product_name:
            msg = f"You cannot buy {product_name} from your own seller wallet."
        super().__init__(msg)


class StateConflictError(PopmartError):
    code = "STATE_CONFLICT"
    http_status = 409


class InvalidState(StateConflictError):
    code = "INVALID_STATE"


class AlreadyExists(StateConflictError):
    code = "ALREADY_EXISTS"


class TokenError(PopmartError):
    code = "TOKEN_ERROR"
    http_status = 400


class InvalidToken(TokenError):
    code = "INVALID_TOKEN"


class SignatureMismatch(TokenError):
    code = "SIGNATURE_MISMATCH"

    def __init__(self):
        super().__init__("Token signature does not match its payload.")


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"

    def __init__(self, expiry: int):
        self.expiry = expiry
        super().__init__(f"Token expired at {expiry}.")


class ExternalUnavailable(PopmartError):
    """Chain RPC failure; callers recover by falling back to mirror data."""

    code = "EXTERNAL_UNAVAILABLE"
    http_status = 503

    def __init__(self, message: str | None = None, *, cause: str = ""):
        self.cause = cause
        super().__init__(message or "Chain data is unavailable.")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "cause": self.cause}
