"""
Error taxonomy for the payment confirmation service.

Each class carries the HTTP status it maps to and the ``status`` word used in
the JSON body, so the handlers in ``app.main`` stay declarative.
"""
from typing import Any, Optional


class PaymentServiceError(Exception):
    status_code = 500
    status = "error"

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_body(self) -> dict:
        body = {"status": self.status, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


class AuthenticationError(PaymentServiceError):
    """Missing or wrong webhook signature."""
    status_code = 401


class ValidationError(PaymentServiceError):
    status_code = 400


class ConfigurationError(PaymentServiceError):
    """A server-held secret is absent; a deployment problem, not a user one."""
    status_code = 500


class ProviderVerificationError(PaymentServiceError):
    """The provider did not confirm the payment, or confirmed different values."""
    status_code = 400
    status = "failed"


class StoreError(PaymentServiceError):
    status_code = 500


class DuplicateOrderError(StoreError):
    """An order for this transaction id already exists (uniqueness constraint)."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Order for transaction {transaction_id} already exists")
        self.transaction_id = transaction_id
