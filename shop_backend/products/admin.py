# products/admin.py
"""
=====================================================
PATH: products/admin.py
=====================================================

Catalog editing happens here (names, prices, sizes/colors, active flag).

Rules:
- Service products are always saved with unlimited stock (-1); the model
  enforces it on save, the admin only shows the effect.
- Stock changes caused by orders go through products.services.inventory,
  never through this form.
"""

from __future__ import annotations

from django.contrib import admin

from products.models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "stock_display", "is_active", "featured")
    list_filter = ("category", "is_active", "featured")
    search_fields = ("name", "description")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("name",)

    @admin.display(description="Stock")
    def stock_display(self, obj: Product) -> str:
        if obj.has_unlimited_stock:
            return "Unlimited"
        return str(obj.stock)
