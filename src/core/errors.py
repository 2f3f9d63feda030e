"""Domain error taxonomy shared by the enrollment engine.

Services raise these; the application maps them to HTTP responses in one
place (see ``src.main``) so every failure carries a stable ``kind``.
"""

from fastapi import status


class DomainError(Exception):
    """Base domain error."""

    def __init__(self, message: str, code: str = "domain_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(DomainError):
    """Malformed input (zero-question quiz, negative watch time...)."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, "validation_error")


class NotFoundError(DomainError):
    """Enrollment, course, module, lesson or payment absent or mismatched."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class ForbiddenError(DomainError):
    """Access not granted or role not permitted."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, "forbidden")


class ConflictError(DomainError):
    """Idempotency violation or lost optimistic update."""

    def __init__(self, message: str = "Conflicting update"):
        super().__init__(message, "conflict")


class ExternalVerificationError(DomainError):
    """Payment gateway rejected or could not verify a payment."""

    def __init__(self, message: str = "Payment verification failed"):
        super().__init__(message, "external_verification_failed")


ERROR_STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_409_CONFLICT,
    "external_verification_failed": status.HTTP_402_PAYMENT_REQUIRED,
}


def status_for_error(error: DomainError) -> int:
    """HTTP status code for a domain error (500 for unknown codes)."""
    return ERROR_STATUS_MAP.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


__all__ = [
    "ERROR_STATUS_MAP",
    "ConflictError",
    "DomainError",
    "ExternalVerificationError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "status_for_error",
]
