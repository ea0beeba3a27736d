"""
Standardized exception hierarchy for ecoquest
Provides rich context, consistent logging, and user-friendly error messages

Ledger validation outcomes (invalid amount, duplicate badge) are NOT exceptions;
they are returned as MutationResult values by the ledger. Everything here is
raised across a boundary: hydration, persistence, storage, auth, config.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class EcoQuestError(Exception):
    """
    Base exception for all ecoquest errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise EcoQuestError(
            message="Failed to save ledger snapshot",
            user_id="5f0c...",
            operation="save_snapshot",
            context={"points": 510}
        )
    """

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for UI toasts / API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(EcoQuestError):
    """
    Raised when input fails validation

    Examples:
    - Profile name with forbidden characters
    - Avatar larger than 5MB
    - Negative completions count passed to the unlock gate
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Ledger Session Errors
# ==========================================

class LedgerError(EcoQuestError):
    """Base class for ledger session errors"""
    pass


class LedgerNotHydrated(LedgerError):
    """Ledger was read or mutated before hydration completed"""

    def __init__(self, message: str = "Ledger is not hydrated yet", **kwargs):
        super().__init__(
            message=message,
            user_message="Your progress is still loading. Please wait a moment.",
            **kwargs
        )


class HydrationFailed(LedgerError):
    """The initial ledger snapshot could not be fetched"""

    def __init__(self, message: str = "Could not load ledger snapshot", **kwargs):
        super().__init__(
            message=message,
            user_message="We couldn't load your points and badges. Please try again.",
            **kwargs
        )


class PersistenceDivergence(LedgerError):
    """
    In-memory mutation succeeded but the write-through failed

    The in-memory ledger is ahead of the durable store until
    LedgerSession.retry_persistence() succeeds.
    """

    def __init__(
        self,
        message: str = "Ledger changes were not saved",
        pending_operation: Optional[str] = None,
        **kwargs
    ):
        self.pending_operation = pending_operation
        super().__init__(
            message=message,
            user_message="Your progress was updated but not saved yet. Tap retry to save it.",
            context={"pending_operation": pending_operation},
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(EcoQuestError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the server. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context={"query": query},
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested database record does not exist"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Object Storage Errors
# ==========================================

class StorageError(EcoQuestError):
    """Object storage upload or lookup failed"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.path = path
        self.status_code = status_code
        super().__init__(
            message=message,
            user_message="We couldn't upload your image. Please try again later.",
            context={"path": path, "status_code": status_code},
            **kwargs
        )


# ==========================================
# Authentication & Authorization
# ==========================================

class AuthenticationError(EcoQuestError):
    """Authentication failed or no user is signed in"""

    def __init__(
        self,
        message: str = "Authentication failed",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="Please sign in to continue.",
            **kwargs
        )


class AuthorizationError(EcoQuestError):
    """User lacks permission for requested operation"""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        resource: Optional[str] = None,
        **kwargs
    ):
        self.resource = resource
        super().__init__(
            message=message,
            user_message=f"You don't have permission to access {resource or 'this resource'}.",
            context={"resource": resource},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(EcoQuestError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> EcoQuestError:
    """
    Wrap external exceptions (psycopg, httpx) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate EcoQuestError subclass

    Example:
        try:
            await store.save_snapshot(snapshot)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_snapshot", user_id=user_id)
    """
    # Import here to avoid circular dependencies
    import httpx
    import psycopg

    if isinstance(error, EcoQuestError):
        return error

    # Database errors
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # HTTP errors (object storage)
    elif isinstance(error, httpx.TimeoutException):
        return StorageError(
            message=f"Storage request timed out: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, httpx.HTTPStatusError):
        return StorageError(
            message=f"Storage returned error: {error.response.status_code}",
            status_code=error.response.status_code,
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, httpx.HTTPError):
        return StorageError(
            message=f"Storage request failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # Generic fallback
    else:
        return EcoQuestError(
            message=f"{operation} failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
