"""
Error handling utilities for the user forms app.
Turns store and validation errors into user-friendly messages and logs them with context.
"""

import streamlit as st
import logging
from typing import Any, Callable, Optional

from .exceptions import (
    BackendFailure,
    DuplicateFieldNameError,
    FieldDefinitionError,
    FieldNotFoundError,
    RecordValidationError,
    UserFormsError,
    create_user_friendly_error_message,
    log_error_with_context,
)

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    STORAGE = "storage"
    SCHEMA = "schema"
    VALIDATION = "validation"
    USER_INPUT = "user_input"
    SYSTEM = "system"


class ErrorHandler:
    """Error handling for the user forms screens."""

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        show_details: bool = False
    ) -> None:
        """
        Handle errors with user-friendly messages.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants)
            user_message: Custom user-friendly message
            show_details: Whether to show technical details
        """
        if isinstance(error, UserFormsError):
            log_error_with_context(error, context)
        else:
            logger.error(f"Error in {context}: {str(error)}", exc_info=True)

        if not user_message:
            user_message = ErrorHandler.get_user_friendly_message(error, error_type)

        st.error(user_message)

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {str(error)}")
                if isinstance(error, UserFormsError):
                    for suggestion in error.recovery_suggestions:
                        st.write(f"• {suggestion}")

    @staticmethod
    def get_user_friendly_message(error: Exception, error_type: str = ErrorType.SYSTEM) -> str:
        """Generate user-friendly error messages based on the exception and error type."""
        if isinstance(error, (RecordValidationError, FieldDefinitionError,
                              DuplicateFieldNameError, FieldNotFoundError)):
            info = create_user_friendly_error_message(error)
            return f"{info['title']}: {info['message']}"

        if isinstance(error, BackendFailure):
            return f"💾 {error.message}. Please try again."

        error_messages = {
            ErrorType.STORAGE: "💾 Storage error occurred. Please check the backend and try again.",
            ErrorType.SCHEMA: "📋 Form field configuration error. Please review the field list.",
            ErrorType.VALIDATION: "✅ Validation error occurred. Please review your data and try again.",
            ErrorType.USER_INPUT: "⚠️ Input error. Please review your data and try again.",
            ErrorType.SYSTEM: "💻 System error occurred. Please try again or contact support."
        }
        return error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

    @staticmethod
    def with_error_handling(
        func: Callable[[], Any],
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        default_return: Any = None
    ) -> Any:
        """
        Run an operation and report any failure to the user.

        Returns:
            Function result or default_return on error
        """
        try:
            return func()
        except Exception as e:
            ErrorHandler.handle_error(e, context, error_type, user_message)
            return default_return
