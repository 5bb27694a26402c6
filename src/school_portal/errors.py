"""Error taxonomy surfaced to the administrator.

Every error names the record and the rule it violated so the admin, who is
the only recovery path, knows what to fix before re-submitting.
"""
from typing import Any, Optional


class PortalError(Exception):
    """Base class for all domain errors."""

    code = "portal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(PortalError):
    """A required field is missing or malformed."""

    code = "validation_error"


class NotFound(PortalError):
    """A referenced record is absent from the expected collection."""

    code = "not_found"


class PreconditionFailed(PortalError):
    """The record is not in a state that permits the operation."""

    code = "precondition_failed"


class Forbidden(PortalError):
    code = "forbidden"
