"""Custom exceptions for vastralaya."""


class VastralayaError(Exception):
    """Base exception for all vastralaya errors."""

    pass


class UnauthorizedError(VastralayaError):
    """Raised when a credential or session is missing or invalid."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        msg = "Unauthorized"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidCredentialsError(UnauthorizedError):
    """Raised when a login attempt fails."""

    def __init__(self):
        super().__init__("invalid credentials")


class InvalidSignatureError(UnauthorizedError):
    """Raised when a payment callback carries a missing or wrong signature."""

    def __init__(self):
        super().__init__("invalid payment signature")


class ForbiddenError(VastralayaError):
    """Raised when the caller is authenticated but not allowed to act."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Forbidden: {action}")


class OrderNotFoundError(VastralayaError):
    """Raised when an order ID or tracking identifier doesn't resolve."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Order not found: {identifier}")


class ProductNotFoundError(VastralayaError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class PaymentNotFoundError(VastralayaError):
    """Raised when a transaction ID doesn't exist."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Payment not found: {transaction_id}")


class PaymentAlreadyVerifiedError(VastralayaError):
    """Raised when a payment record has already been settled."""

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Payment {transaction_id} already verified as '{status}'")


class ValidationError(VastralayaError):
    """Raised when a request is well-formed JSON but semantically invalid."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidStatusTransitionError(ValidationError):
    """Raised when transition enforcement is on and the edge isn't allowed."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__("status", f"cannot move from '{current}' to '{requested}'")


class StoreError(VastralayaError):
    """Raised when the key-value store can't be read or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Store failure at {path}: {reason}")


class IdentityProviderError(VastralayaError):
    """Raised when the identity provider fails for reasons other than auth."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        super().__init__(f"Identity provider {operation} failed: {reason}")
