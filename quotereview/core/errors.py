"""
Domain error taxonomy for the quotation workflow.

Services raise these; the API layer maps them onto HTTP responses through
exception handlers registered in ``quotereview.main``.
"""
from typing import Optional


class QuotationError(Exception):
    """Base class for every rejection raised by the workflow services."""

    status_code = 400

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(QuotationError):
    """Missing required field or malformed value."""

    status_code = 400


class NotFoundError(QuotationError):
    """Unknown quotation, supplier or user."""

    status_code = 404


class AccessDeniedError(QuotationError):
    """Role or ownership mismatch."""

    status_code = 403


class ConflictError(QuotationError):
    """Mutation rejected because of the current state (approved, concurrent write)."""

    status_code = 409


class DependencyFailure(QuotationError):
    """An external collaborator (renderer, storage) failed and the operation was aborted."""

    status_code = 502
