"""Exceptions raised by the checkout service.

Every error carries the HTTP status the API answers with; the exception
handler in ``main`` renders them as ``{"error": message}``.
"""


class ShopError(Exception):
    """Base exception for all checkout errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# --- Validation (4xx, raised before anything is persisted) ---


class ValidationError(ShopError):
    status_code = 400


class EmptyCart(ValidationError):
    def __init__(self):
        super().__init__("Products array is required and cannot be empty")


class InvalidQuantity(ValidationError):
    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Product quantity must be greater than 0, got {quantity}")


class ProductNotOrderable(ValidationError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f'Product "{slug}" is not available for ordering')


class MissingPrice(ValidationError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f'Product "{slug}" has no price')


class InvalidPayer(ValidationError):
    """Raised when the payer type, payment method and payer fields don't match."""


# --- Not found (404) ---


class NotFoundError(ShopError):
    status_code = 404


class ProductNotFound(NotFoundError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f'Product with slug "{slug}" not found')


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order with ID {order_id} not found")


class PaymentNotFound(NotFoundError):
    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Payment not found: {reference}")


# --- State and collaborators ---


class InvalidTransition(ShopError):
    status_code = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move payment from {current} to {target}")


class UpstreamError(ShopError):
    """Raised when an outside service refuses or garbles a request."""

    status_code = 502


class GatewayError(UpstreamError):
    pass


class ConfigurationError(ShopError):
    status_code = 500
