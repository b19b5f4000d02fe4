from .inventory import (
    UNLIMITED_STOCK,
    decrease_stock,
    has_available_stock,
    increase_stock,
)

__all__ = [
    "UNLIMITED_STOCK",
    "decrease_stock",
    "increase_stock",
    "has_available_stock",
]
