"""
Utils Package

Provides utility modules for:
- validation_errors: Structured HTTP error bodies for validation and reconciliation errors
"""

from .validation_errors import (
    ValidationErrorResponse,
    raise_missing_parameter,
    raise_invalid_parameter,
    http_error_for,
    validate_required_uuid,
)

__all__ = [
    'ValidationErrorResponse',
    'raise_missing_parameter',
    'raise_invalid_parameter',
    'http_error_for',
    'validate_required_uuid',
]
