from .payment_attempt import PaymentAttempt

__all__ = ["PaymentAttempt"]
