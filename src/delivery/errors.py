"""Order error taxonomy.

Business-rule rejections raised by the order pipeline. Each error carries a
stable ``code``, a user-safe ``message`` and a ``detail`` dict with the
actionable data (remaining allowance, product id). ``retryable`` tells the
caller whether resubmitting the same request can succeed.

Input-shape problems are not part of this hierarchy: they are raised as
protean ``ValidationError`` before any side effect happens.
"""

from protean.exceptions import ValidationError


class OrderError(Exception):
    code = "order_error"
    status_code = 400
    retryable = False
    default_message = "The order could not be completed. Please try again."

    def __init__(self, message: str | None = None, **detail):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "detail": self.detail}


class NotEligible(OrderError):
    code = "not_eligible"
    status_code = 403
    default_message = "This account is not verified to place orders."


class UnservedRegion(OrderError):
    code = "unserved_region"
    status_code = 422
    default_message = "We don't deliver to this area yet."


class QuotaExceeded(OrderError):
    code = "quota_exceeded"
    status_code = 422

    def __init__(self, remaining_flower_grams: float, remaining_concentrate_grams: float):
        super().__init__(
            (
                "Daily purchase limit reached. Remaining today: "
                f"{remaining_flower_grams:.2f}g flower, {remaining_concentrate_grams:.2f}g concentrate."
            ),
            remaining_flower_grams=round(remaining_flower_grams, 2),
            remaining_concentrate_grams=round(remaining_concentrate_grams, 2),
        )


class InsufficientStock(OrderError):
    code = "insufficient_stock"
    status_code = 422

    def __init__(self, product_id: str, available: int = 0, product_name: str | None = None):
        label = product_name or product_id
        super().__init__(
            f"Only {available} of {label} available.",
            product_id=product_id,
            available=available,
        )


class AlreadyClaimed(OrderError):
    code = "already_claimed"
    status_code = 409
    default_message = "This order was already claimed by another courier."


class OrderInProgress(OrderError):
    code = "order_in_progress"
    status_code = 409
    retryable = True
    default_message = "This order is still being processed. Please retry shortly."


class PersistenceFailure(OrderError):
    code = "persistence_failure"
    status_code = 503
    retryable = True


class CreationTimedOut(PersistenceFailure):
    code = "creation_timed_out"


class RateLimited(OrderError):
    code = "rate_limited"
    status_code = 429
    retryable = True
    default_message = "Too many requests. Please slow down."


class InvalidTransition(ValidationError):
    """A status change the order state machine does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})


class StaleOrder(OrderError):
    code = "order_changed"
    status_code = 409
    retryable = True
    default_message = "The order changed while you were updating it. Refresh and try again."
