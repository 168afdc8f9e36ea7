"""
Domain exceptions for the auto-trader.

Services raise these instead of fastapi.HTTPException to avoid coupling
the trading core to the web framework. A global exception handler in
main.py translates them into JSON error responses carrying a stable
machine-readable code.
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    code = "app_error"

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ConfigurationError(AppError):
    """Missing settings or credentials, or a disabled feature (400).

    Not retryable without user action.
    """

    code = "configuration_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class LimitExceededError(AppError):
    """Policy rejection: daily trade cap or position size cap (403)."""

    code = "limit_exceeded"

    def __init__(self, message: str):
        super().__init__(message, status_code=403)


class ExchangeError(AppError):
    """The exchange rejected the request or could not be reached (502).

    exchange_status is the HTTP status returned by the exchange, or 0 for
    transport failures (timeout, connection refused).
    """

    code = "exchange_error"

    def __init__(self, message: str, exchange_status: int = 0, body: str = ""):
        self.exchange_status = exchange_status
        self.body = body
        super().__init__(message, status_code=502)


class PersistenceError(AppError):
    """Ledger write failed after the exchange accepted the order (500).

    The exchange-side order is NOT rolled back.
    """

    code = "persistence_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class InvalidActionError(AppError):
    """Unrecognized action or endpoint (400)."""

    code = "invalid_action"

    def __init__(self, message: str = "Invalid action"):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """Resource not found (404)."""

    code = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)
