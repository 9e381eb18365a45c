"""
Domain errors of the order/payment lifecycle.
Services raise these; app.main maps them to HTTP responses.
"""


class PaymentError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidPaymentRequest(PaymentError):
    status_code = 400


class RateLimited(PaymentError):
    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many payment requests. Please try again later.") -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))


class OrderNotFound(PaymentError):
    status_code = 404

    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(message)


class InvalidOrderTransition(PaymentError):
    """The order is not in a state the requested transition may start from."""

    status_code = 409


class OutOfStock(PaymentError):
    status_code = 409

    def __init__(self, message: str = "This job account is out of stock") -> None:
        super().__init__(message)


class ProviderRejected(PaymentError):
    """M-Pesa answered, but did not accept the push (ResponseCode != "0")."""

    status_code = 400

    def __init__(self, message: str = "Payment request failed. Please try again.", response_code: str | None = None) -> None:
        super().__init__(message)
        self.response_code = response_code


class ProviderUnavailable(PaymentError):
    """Auth/network failure or open circuit breaker."""

    status_code = 500

    def __init__(self, message: str = "Payment service temporarily unavailable") -> None:
        super().__init__(message)


class JobAccountNotFound(PaymentError):
    status_code = 404

    def __init__(self, message: str = "Job account not found") -> None:
        super().__init__(message)
