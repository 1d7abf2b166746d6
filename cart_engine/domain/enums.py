# cart_engine/domain/enums.py
import enum


class CartStatus(str, enum.Enum):
    active = "active"
    abandoned = "abandoned"
    converted = "converted"
    expired = "expired"


class AbandonmentStage(str, enum.Enum):
    cart = "cart"
    checkout = "checkout"
    payment = "payment"


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"


class IssueSeverity(str, enum.Enum):
    error = "error"
    warning = "warning"
