from .cart_service import (
    add_item,
    clear_cart,
    get_or_create_cart,
    item_count,
    recompute_total,
    remove_item,
    update_quantity,
)

__all__ = [
    "add_item",
    "clear_cart",
    "get_or_create_cart",
    "item_count",
    "recompute_total",
    "remove_item",
    "update_quantity",
]
