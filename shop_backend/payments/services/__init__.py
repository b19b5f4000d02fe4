# payments/services/__init__.py

"""
Payment services.

- mpesa: Daraja STK Push adapter (no persistence)
- reconciler: applies callback / timeout outcomes to orders

Import the submodules directly; orders.services depends on this package.
"""
