# orders/services/__init__.py

"""
Order services.

- order_lifecycle: allowed status transitions (pure rules)
- order_numbers: INF-YYYY-NNNNN allocation with retry
- order_service: stock commit, cancellation, offline payment confirmation
- checkout_orchestrator: cart -> order -> STK push

Import the submodules directly; payments.services depends on this package.
"""
