"""
core/errors.py -- Failure taxonomy shared by auth/ and catalog/.

Core components raise these; they never build HTTP responses. The transport
layer (api/main.py) maps each class onto a status code and the ErrorResponse
envelope.

  ValidationError    -- malformed or missing input, detected before the store
  ConflictError      -- duplicate username / category name / product name
  NotFoundError      -- a referenced entity does not exist
  StoreError         -- the persistence layer rejected or failed an operation
  RegistrationError  -- user creation was rejected (aggregated reasons)
  ConfigurationError -- fatal startup problem (e.g. no signing key)

Insufficient stock is deliberately absent: Purchase returns False for it.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected failures raised by core components."""

    code = "service_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Input failed validation. `field` names the offending input."""

    code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(ServiceError):
    code = "conflict"


class NotFoundError(ServiceError):
    code = "not_found"


class StoreError(ServiceError):
    code = "store_error"


class RegistrationError(ServiceError):
    """User creation was rejected; `reasons` lists every underlying cause."""

    code = "registration_failed"

    def __init__(self, reasons: list[str]) -> None:
        super().__init__(f"Error while registering the user: {', '.join(reasons)}")
        self.reasons = reasons


class ConfigurationError(RuntimeError):
    """Fatal configuration problem. Raised at startup, never per request."""
