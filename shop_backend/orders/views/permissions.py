# orders/views/permissions.py

from rest_framework.permissions import BasePermission


def is_shop_staff(user) -> bool:
    return bool(getattr(user, "is_shop_staff", False))


class IsOrderOwnerOrStaff(BasePermission):
    """
    Object-level: customers only see their own orders; shop staff see all.
    """

    message = "You do not have access to this order."

    def has_object_permission(self, request, view, obj):
        return is_shop_staff(request.user) or obj.user_id == request.user.pk
