# cart/admin.py

from django.contrib import admin

from .models import Cart, CartItem

# =====================================================
# CART ITEM INLINE (READ-ONLY)
# =====================================================


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    can_delete = False
    readonly_fields = (
        "product",
        "size",
        "color",
        "quantity",
        "unit_price",
        "line_total",
        "created_at",
    )

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("user", "total_amount", "item_count", "updated_at")
    search_fields = ("user__email",)
    readonly_fields = ("user", "total_amount", "created_at", "updated_at")
    inlines = [CartItemInline]
