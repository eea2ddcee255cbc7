"""User-facing copy for client errors."""

from __future__ import annotations

from vcarpool.exceptions import (
    ApiError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    ValidationError,
)


def get_user_friendly_message(error: BaseException) -> str:
    """One fixed message per error kind; validation errors speak for themselves."""
    if isinstance(error, NetworkError):
        return "Unable to connect to the server. Please check your internet connection and try again."
    if isinstance(error, AuthenticationError):
        return "Your session has expired. Please log in again."
    if isinstance(error, AuthorizationError):
        return "You do not have permission to perform this action."
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, AppError):
        return error.message
    return "An unexpected error occurred. Please try again or contact support if the problem persists."


def handle_form_error(error: BaseException) -> str:
    """Message to show under a form that failed to submit."""
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, AuthenticationError):
        return "Please log in to continue."
    if isinstance(error, AuthorizationError):
        return "You do not have permission to perform this action."
    if isinstance(error, NetworkError):
        return "Unable to connect to the server. Please check your connection and try again."
    if isinstance(error, ApiError):
        if error.status == 409:
            return "This action conflicts with existing data. Please refresh and try again."
        if error.status == 429:
            return "Too many requests. Please wait a moment and try again."
        if error.status >= 500:
            return "Server error. Please try again later."
        return error.message
    return "An unexpected error occurred. Please try again."


def is_recoverable_error(error: BaseException) -> bool:
    """Whether the UI should offer a retry."""
    if isinstance(error, AppError):
        return error.is_retryable
    return False
