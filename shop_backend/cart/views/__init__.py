from .api import CartItemsView, CartView

__all__ = ["CartView", "CartItemsView"]
