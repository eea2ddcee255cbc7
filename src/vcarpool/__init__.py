"""vcarpool client: typed errors, token refresh and requests for the carpool API."""

from vcarpool.auth import (
    Credentials,
    FileTokenStorage,
    MemoryTokenStorage,
    RefreshState,
    TokenRefreshCoordinator,
    TokenStorage,
)
from vcarpool.classifier import ResponseShape, classify_exception, classify_response, shape_from_httpx
from vcarpool.client import ApiInterceptors, CarpoolClient, RequestOptions, RetryContext
from vcarpool.config import ClientSettings
from vcarpool.exceptions import (
    ApiError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    RequestCancelled,
    Severity,
    TimeoutError,
    ValidationError,
)
from vcarpool.messages import get_user_friendly_message, handle_form_error, is_recoverable_error
from vcarpool.reporting import (
    ConsoleErrorReporter,
    ErrorHandler,
    ErrorReporter,
    ProductionErrorReporter,
    build_report,
)
from vcarpool.types import (
    ApiResponse,
    AuthResponse,
    AuthTokens,
    ErrorContext,
    ErrorReport,
    LoginRequest,
    PaginatedResponse,
    Pagination,
)

__all__ = [
    # Client
    "CarpoolClient",
    "ClientSettings",
    "RequestOptions",
    "RetryContext",
    "ApiInterceptors",
    # Session
    "Credentials",
    "TokenStorage",
    "MemoryTokenStorage",
    "FileTokenStorage",
    "RefreshState",
    "TokenRefreshCoordinator",
    # Classification
    "ResponseShape",
    "classify_response",
    "classify_exception",
    "shape_from_httpx",
    # Reporting
    "ErrorHandler",
    "ErrorReporter",
    "ConsoleErrorReporter",
    "ProductionErrorReporter",
    "build_report",
    # User-facing copy
    "get_user_friendly_message",
    "handle_form_error",
    "is_recoverable_error",
    # Types
    "ApiResponse",
    "PaginatedResponse",
    "Pagination",
    "AuthResponse",
    "AuthTokens",
    "LoginRequest",
    "ErrorContext",
    "ErrorReport",
    # Exceptions
    "Severity",
    "AppError",
    "NetworkError",
    "TimeoutError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "ApiError",
    "RequestCancelled",
]
