from . import abandonment
from . import cart

__all__ = [
    "abandonment",
    "cart",
]
