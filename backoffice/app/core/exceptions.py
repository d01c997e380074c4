"""
Purchasing domain exceptions.

Services raise these; the API layer maps them to HTTP status codes.
"""
from __future__ import annotations


class PurchasingError(Exception):
    """Base exception for the purchasing engine"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PurchasingError):
    """Raised when input is missing or invalid (before any write)"""

    status_code = 400


class NotFoundError(PurchasingError):
    """Raised when an order, item or receipt does not exist"""

    status_code = 404


class InvalidTransitionError(PurchasingError):
    """Raised when an operation is not allowed from the current status"""

    status_code = 409

    def __init__(self, message: str, *, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class NumberingError(PurchasingError):
    """Raised when no purchase order number could be allocated"""

    status_code = 409
