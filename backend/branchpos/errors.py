# Overview: Business error taxonomy shared by services and routes.

from __future__ import annotations


class PosError(Exception):
    """
    Base class for business errors.

    Every error carries a human-readable message, a stable classification
    code and the HTTP status the API layer maps it to.
    """
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        rv = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            rv["details"] = self.details
        return rv


class ValidationError(PosError):
    """400-level input problem (empty sale, missing field, bad quantity)."""
    status_code = 400
    code = "VALIDATION_ERROR"


class InsufficientStockError(PosError):
    """Requested quantity exceeds what the branch has on hand."""
    status_code = 400
    code = "INSUFFICIENT_STOCK"


class InvalidFileFormatError(PosError):
    """Import source could not be read at all."""
    status_code = 400
    code = "INVALID_FILE_FORMAT"


class NotFoundError(PosError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(PosError):
    """409-level business rule conflict (shift already open, duplicate barcode)."""
    status_code = 409
    code = "CONFLICT"


class PaymentFailedError(PosError):
    """The card terminal answered but declined the charge."""
    status_code = 502
    code = "PAYMENT_FAILED"


class PaymentGatewayUnavailableError(PosError):
    """The card terminal could not be reached or did not answer in time."""
    status_code = 504
    code = "PAYMENT_GATEWAY_UNAVAILABLE"


class AuthError(PosError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(PosError):
    status_code = 403
    code = "PERMISSION_DENIED"
