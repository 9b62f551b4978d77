"""
Standardized exception hierarchy for the hunter progression engine
Provides rich context, consistent logging, and user-friendly error messages

Propagation policy:
- NotFoundError / InvalidInputError are terminal for the call and carry a
  user-visible message
- ConcurrencyConflictError / CollaboratorUnavailableError are retryable:
  the caller re-reads and re-drives the same logical operation
- QueryError is a statement the database rejected; it is not retried
- InvariantViolationError is a programming-contract violation, never a
  user error
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class HunterEngineError(Exception):
    """
    Base exception for all progression engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise HunterEngineError(
            message="Failed to save profile",
            user_id="hunter-1",
            operation="apply_xp",
            context={"delta": 25}
        )
    """

    retryable: bool = False

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
        self.user_message = user_message or "An error occurred. Please try again."
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
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat()
        }

        # Expected user errors are not worth an ERROR line
        level = logging.WARNING if isinstance(self, (InvalidInputError, NotFoundError)) else logging.ERROR

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for the UI layer"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Terminal Errors (reported to the user)
# ==========================================

class NotFoundError(HunterEngineError):
    """Profile, mission or raid does not exist"""

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


class InvalidInputError(HunterEngineError):
    """
    Raised when input is rejected before any state mutation

    Examples:
    - Non-positive progress amount
    - Unknown stat key
    - No available stat points

    Example:
        raise InvalidInputError(
            message="Amount must be positive",
            field="amount",
            value=-5,
            user_id="hunter-1"
        )
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
# Retryable Errors
# ==========================================

class ConcurrencyConflictError(HunterEngineError):
    """Persisted state changed since it was read"""

    retryable = True

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(
            message=message,
            user_message="Your progress changed while we were saving. Please try again.",
            context={
                "record_type": record_type,
                "record_id": record_id,
                "expected_version": expected_version,
            },
            **kwargs
        )


class CollaboratorUnavailableError(HunterEngineError):
    """Transient I/O failure at the persistence boundary, nothing committed"""

    retryable = True

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        **kwargs
    ):
        self.service = service
        context = kwargs.pop("context", None) or {}
        context.setdefault("service", service)
        kwargs.setdefault(
            "user_message",
            f"We're having trouble reaching {service or 'storage'}. Please try again in a moment."
        )
        super().__init__(message=message, context=context, **kwargs)


class RewardPendingError(CollaboratorUnavailableError):
    """
    A completion was persisted but its XP grant failed

    The completion itself is safe; the caller retries the grant with
    MissionTracker.grant_pending_reward / BossRaidTracker.grant_pending_reward.
    """

    def __init__(
        self,
        message: str,
        record_type: str,
        record_id: str,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message="Your progress was saved but the reward is still pending. Please try again.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Programming Errors
# ==========================================

class InvariantViolationError(HunterEngineError):
    """A profile state broke the XP/points contract"""

    def __init__(self, message: str, state: Optional[Dict[str, Any]] = None, **kwargs):
        self.state = state or {}
        super().__init__(
            message=message,
            user_message="Something went wrong with your progress. Please contact support.",
            context={"state": self.state},
            **kwargs
        )


class ConfigurationError(HunterEngineError):
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


class QueryError(HunterEngineError):
    """The database rejected a statement; re-running it would fail the same way"""

    def __init__(
        self,
        message: str,
        sqlstate: Optional[str] = None,
        **kwargs
    ):
        self.sqlstate = sqlstate
        context = kwargs.pop("context", None) or {}
        context.setdefault("sqlstate", sqlstate)
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your progress.",
            context=context,
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
) -> HunterEngineError:
    """
    Wrap persistence driver exceptions into our exception hierarchy

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_profile", user_id=user_id)
    """
    import psycopg

    if isinstance(error, HunterEngineError):
        return error

    if isinstance(error, psycopg.OperationalError):
        return CollaboratorUnavailableError(
            message=f"Database connection failed: {str(error)}",
            service="database",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            sqlstate=error.sqlstate,
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return HunterEngineError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
