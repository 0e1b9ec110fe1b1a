"""
Custom exception classes for the user forms app.

This module provides the error taxonomy shared by the stores, the
validation engine and the screen workflows. Every error carries a
message, context information and recovery suggestions so the UI can
explain what went wrong without inspecting the exception type.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class UserFormsError(Exception):
    """
    Base exception for user forms errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class RecordValidationError(UserFormsError):
    """
    Raised when a user record fails field-level validation.

    Recoverable: the errors are shown inline and the backend is never called.
    """

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)

        if message is None:
            message = "Please fix the errors in the form"

        context = {
            'invalid_fields': list(self.errors.keys()),
            'error_count': len(self.errors)
        }

        recovery_suggestions = [
            "Review the highlighted fields",
            "Fill in every required field"
        ]

        super().__init__(message, context, recovery_suggestions)


class FieldDefinitionError(UserFormsError):
    """Raised when a draft field definition is malformed."""

    def __init__(self, problems: List[str], message: Optional[str] = None):
        self.problems = list(problems)

        if message is None:
            message = self.problems[0] if self.problems else "Invalid field definition"

        super().__init__(
            message,
            {'problems': self.problems},
            ["Check the field name, label and validation rules"]
        )


class DuplicateFieldNameError(UserFormsError):
    """
    Raised when a new field would reuse a name already visible to the record.

    Field names are keys into the record, so they must be unique across the
    effective field list.
    """

    def __init__(self, field_name: str, message: Optional[str] = None):
        self.field_name = field_name

        if message is None:
            message = "A field with this name already exists"

        super().__init__(
            message,
            {'field_name': field_name},
            [f"Choose a name other than '{field_name}'"]
        )


class FieldNotFoundError(UserFormsError):
    """Raised when a field id does not exist in the global field list."""

    def __init__(self, field_id: str, message: Optional[str] = None):
        self.field_id = field_id

        if message is None:
            message = f"Field not found: {field_id}"

        super().__init__(
            message,
            {'field_id': field_id},
            ["Reload the field list and try again"]
        )


class BackendFailure(UserFormsError):
    """
    Raised when the persistence backend fails (network or storage).

    There is no automatic retry; callers leave their state untouched and
    let the user try again.
    """

    def __init__(self, operation: str, original_error: Optional[Exception] = None,
                 message: Optional[str] = None):
        self.operation = operation
        self.original_error = original_error

        if message is None:
            if original_error is not None:
                message = f"Failed to {operation}: {original_error}"
            else:
                message = f"Failed to {operation}"

        context = {
            'operation': operation,
            'original_error_type': type(original_error).__name__ if original_error else None,
            'original_error_message': str(original_error) if original_error else None
        }

        recovery_suggestions = [
            "Check that the storage backend is reachable",
            "Try the operation again"
        ]

        super().__init__(message, context, recovery_suggestions)


def log_error_with_context(error: UserFormsError, operation: str) -> None:
    """
    Log error with full context information.

    Args:
        error: UserFormsError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Error during {operation}: {type(error).__name__}: {error.message}")

    if error.context:
        for key, value in error.context.items():
            logger.debug(f"  {key}: {value}")

    for i, suggestion in enumerate(error.recovery_suggestions, 1):
        logger.info(f"  Recovery suggestion {i}: {suggestion}")


def create_user_friendly_error_message(error: UserFormsError) -> Dict[str, Any]:
    """
    Create user-friendly error message for display in UI.

    Args:
        error: UserFormsError instance

    Returns:
        Dictionary with formatted error information for UI display
    """
    error_details = error.get_full_details()

    error_type_info = {
        'RecordValidationError': {
            'title': 'Validation Error',
            'icon': '✅',
            'severity': 'warning'
        },
        'FieldDefinitionError': {
            'title': 'Validation Error',
            'icon': '📋',
            'severity': 'warning'
        },
        'DuplicateFieldNameError': {
            'title': 'Duplicate Field',
            'icon': '📋',
            'severity': 'warning'
        },
        'FieldNotFoundError': {
            'title': 'Field Not Found',
            'icon': '🔍',
            'severity': 'warning'
        },
        'BackendFailure': {
            'title': 'Storage Error',
            'icon': '💾',
            'severity': 'error'
        }
    }

    error_type = error_details['error_type']
    type_info = error_type_info.get(error_type, {
        'title': 'Error',
        'icon': '❌',
        'severity': 'error'
    })

    return {
        'title': f"{type_info['icon']} {type_info['title']}",
        'message': error_details['message'],
        'severity': type_info['severity'],
        'recovery_suggestions': error_details['recovery_suggestions']
    }
