# cart_engine/services/exceptions.py

class ServiceError(Exception):
    """Base class for service-layer errors."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class InvalidQuantityError(ServiceError):
    """Raised when a quantity is invalid (e.g. <= 0 on add)."""
    pass


class DomainValidationError(ServiceError):
    """Invalid domain input."""
    pass


class ResourceNotFoundError(ServiceError):
    """Resource not found."""
    pass


class CartNotFoundError(ResourceNotFoundError):
    pass


class CartItemNotFoundError(ResourceNotFoundError):
    pass


class ProductNotFoundError(ResourceNotFoundError):
    pass


class ConflictError(ServiceError):
    """State conflict for the requested operation."""
    pass


class CartNotActiveError(ConflictError):
    """The cart is converted, abandoned or expired and can no longer be mutated."""
    pass


class StaleCartError(ConflictError):
    """The cart was modified by a concurrent write."""
    pass


class InvalidCouponError(ServiceError):
    """Coupon code is unknown or inactive."""
    pass


class CouponNotFoundError(ResourceNotFoundError, InvalidCouponError):
    pass


class MinimumOrderNotMetError(ServiceError):
    """Cart subtotal is below the coupon's minimum order."""
    pass


class TransactionFailureError(ServiceError):
    """A multi-step transaction was rolled back; the caller may retry it."""
    pass
