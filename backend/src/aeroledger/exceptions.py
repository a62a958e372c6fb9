"""Typed billing exceptions.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer renders it with. Services raise these; ``main.py`` maps them to the
structured ``ErrorResponse`` body.

    BillingError
    +-- ValidationError          400  user-correctable input problem
    +-- NotFoundError            404  referenced entity does not exist
    |   +-- RateNotConfiguredError    configuration gap, not a data error
    +-- AuthorizationError       403  role or ownership check failed
    +-- ImmutabilityError        409  write against a paid invoice / applied credit note
    +-- ConsistencyError         500  aggregate recompute or atomic step failed
"""
from typing import Any


class BillingError(Exception):
    """Base class for all billing errors."""

    code = "billing_error"
    status_code = 500

    def __init__(self, message: str, *, remediation: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        self.details = details


class ValidationError(BillingError):
    """Malformed or order-violating input."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field


class NotFoundError(BillingError):
    """A referenced entity is missing."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: Any = None, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message or f"{entity} {identifier} not found", **kwargs)
        self.entity = entity
        self.identifier = identifier


class RateNotConfiguredError(NotFoundError):
    """No charge rate is configured for the billing context."""

    code = "rate_not_configured"

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            "rate",
            message=message,
            remediation="Configure a charge rate for this aircraft and flight type",
            **kwargs,
        )


class AuthorizationError(BillingError):
    """Role or ownership check failed."""

    code = "forbidden"
    status_code = 403


class ImmutabilityError(BillingError):
    """Write attempted against a record that can no longer change."""

    code = "immutable"
    status_code = 409


class ConsistencyError(BillingError):
    """An aggregate recompute or atomic procedure failed."""

    code = "consistency_error"
    status_code = 500
