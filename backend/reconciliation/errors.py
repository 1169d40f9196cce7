"""
Reconciliation error taxonomy.

Every error carries a structured body so the HTTP layer can surface it
unchanged:
{
    "error": "not_found" | "invalid_state" | "validation_error",
    "message": "...",
    "parameter": "document_type"   # optional
}
"""

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base class for reconciliation failures surfaced to callers."""

    error_code = "reconciliation_error"

    def __init__(self, message: str, parameter: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.parameter = parameter

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.parameter:
            body["parameter"] = self.parameter
        return body


class NotFoundError(ReconciliationError):
    """Folder, transaction or document does not exist."""

    error_code = "not_found"


class InvalidStateError(ReconciliationError):
    """Operation is meaningless for the current state of a record."""

    error_code = "invalid_state"


class ValidationError(ReconciliationError):
    """Malformed arguments to an override operation."""

    error_code = "validation_error"
