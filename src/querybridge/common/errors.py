from enum import Enum
from typing import Optional, Any, Dict
from pydantic import BaseModel, ConfigDict


class ErrorSeverity(str, Enum):
    """Severity levels for query errors."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCode(str, Enum):
    """Standardized error codes reported per query."""
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INSTANCE_DISPOSED = "INSTANCE_DISPOSED"
    INVALID_QUERY = "INVALID_QUERY"
    BACKEND_ERROR = "BACKEND_ERROR"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


FATAL_ERRORS = {
    ErrorCode.CONFIGURATION_ERROR,
    ErrorCode.AUTH_ERROR,
    ErrorCode.INVALID_QUERY,
    ErrorCode.BACKEND_ERROR,
    ErrorCode.CANCELLED,
}

SAFE_ERROR_MESSAGES = {
    ErrorCode.AUTH_ERROR: "The datasource rejected the supplied credentials.",
    ErrorCode.CONNECTION_ERROR: "The datasource could not be reached.",
    ErrorCode.SERVICE_UNAVAILABLE: "The datasource is temporarily unavailable.",
    ErrorCode.INTERNAL_ERROR: "The query service encountered an unexpected error.",
}


class QueryError(BaseModel):
    """Represents a structured error attached to a single query result.

    Attributes:
        message (str): A human-readable error message.
        severity (ErrorSeverity): The severity of the error.
        error_code (ErrorCode): The standardized error code.
        stack_trace (Optional[str]): Stack trace if applicable.
        details (Optional[Any]): Additional context or metadata.
    """
    model_config = ConfigDict(extra="ignore")

    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: ErrorCode
    stack_trace: Optional[str] = None
    details: Optional[Any] = None

    @property
    def is_retryable(self) -> bool:
        """Whether resubmitting the same query may succeed."""
        if self.severity == ErrorSeverity.CRITICAL:
            return False
        return self.error_code not in FATAL_ERRORS

    def get_safe_message(self) -> str:
        """Returns a sanitized error message safe for exposure to users.

        If a safe mapping exists for the error code, it is returned.
        Otherwise, the original message is used.

        Returns:
            str: The sanitized error message.
        """
        return SAFE_ERROR_MESSAGES.get(self.error_code, self.message)

    def redacted(self) -> "QueryError":
        """Copy for untrusted callers: safe message and no stack trace."""
        return self.model_copy(update={"message": self.get_safe_message(), "stack_trace": None})


class QueryBridgeError(Exception):
    """Base class for every error raised while serving a query."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_query_error(self, stack_trace: Optional[str] = None) -> QueryError:
        return QueryError(
            message=self.message,
            severity=self.severity,
            error_code=self.error_code,
            stack_trace=stack_trace,
            details=self.details,
        )


class ConfigurationError(QueryBridgeError):
    """Datasource settings are missing or malformed."""
    error_code = ErrorCode.CONFIGURATION_ERROR
    severity = ErrorSeverity.CRITICAL


class AuthError(QueryBridgeError):
    """The backend rejected the credentials."""
    error_code = ErrorCode.AUTH_ERROR


class BackendConnectionError(QueryBridgeError):
    """The backend could not be reached or the connection broke."""
    error_code = ErrorCode.CONNECTION_ERROR


class ServiceUnavailableError(BackendConnectionError):
    """The datasource circuit breaker is open."""
    error_code = ErrorCode.SERVICE_UNAVAILABLE


class InstanceDisposedError(BackendConnectionError):
    """The instance manager was disposed, usually after a settings change."""
    error_code = ErrorCode.INSTANCE_DISPOSED


class InvalidQueryError(QueryBridgeError):
    """The query is malformed or unsupported by the target backend."""
    error_code = ErrorCode.INVALID_QUERY


class BackendError(QueryBridgeError):
    """The backend accepted the request but reported a failure."""
    error_code = ErrorCode.BACKEND_ERROR


class QueryCancelledError(QueryBridgeError):
    error_code = ErrorCode.CANCELLED
    severity = ErrorSeverity.WARNING


class QueryTimeoutError(QueryBridgeError):
    error_code = ErrorCode.TIMEOUT
    severity = ErrorSeverity.WARNING
