# Overview: Base error types shared by services and routes.

"""
Every service failure derives from ServiceError and carries:
- message: short human-readable reason (returned as "error")
- details: structured context for API clients (returned as "details")
- status_code: HTTP status the routes answer with

Service-specific subclasses live beside the service that raises them.
"""


class ServiceError(Exception):
    """Raised for business-rule failures that map to a client-visible response."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400


class TransactionError(ServiceError):
    """Unexpected database failure; the whole unit of work was rolled back."""
    status_code = 503
