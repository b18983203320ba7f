# Overview: Domain error types shared by services and routes.

from __future__ import annotations


class PosError(Exception):
    """Base class for domain rejections. Carries structured details for the caller."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(PosError, ValueError):
    """400-level input problem."""
    status_code = 400


class ConflictError(PosError, ValueError):
    """409-level business rule conflict (e.g., table already active, duplicate name)."""
    status_code = 409


class NotFoundError(PosError):
    status_code = 404


class InvalidStateError(PosError):
    """Operation not legal in the entity's current state."""
    status_code = 400


class InsufficientStockError(PosError):
    """
    Stock check failed. details["items"] lists every short product with
    required and available quantities; nothing was deducted.
    """
    status_code = 409
