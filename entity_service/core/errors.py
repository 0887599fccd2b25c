"""Error Hierarchy — typed, categorized exceptions for every service failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Caller-input errors (400-level) are recoverable; configuration/storage errors (500-level) are critical
    - http_status is informational: mapping to responses belongs to the HTTP layer
    - to_response() produces a REST-shaped envelope without internal details

Design Decisions:
    - Single hierarchy with ServiceError base: callers catch one type, inspect code/category
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"
    DATABASE = "database"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    service: str | None = None
    operation: str | None = None
    debug_info: dict[str, Any] | None = None


class ServiceError(Exception):
    """Base exception for all entity service errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "service": self.context.service,
                    "operation": self.context.operation,
                },
            }
        }


# ─── Row Cardinality Errors ─────────────────────────────────────

class NoRowsError(ServiceError):
    """A lookup expected at least one row and found none."""
    def __init__(self, message: str = "There are no rows.", context: ErrorContext | None = None):
        super().__init__(
            message, "NO_ROWS", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class NoRowError(ServiceError):
    """A row handed to a check does not exist."""
    def __init__(self, message: str = "There is no row.", context: ErrorContext | None = None):
        super().__init__(
            message, "NO_ROW", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ManyRowsError(ServiceError):
    """A lookup expected at most one row and found several."""
    def __init__(
        self, length: int, message: str = "There are many rows.",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "MANY_ROWS", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )
        self.length = length


class DisabledRowError(ServiceError):
    """The row exists but its is_enabled flag is off."""
    def __init__(self, message: str = "Object is disabled.", context: ErrorContext | None = None):
        super().__init__(
            message, "DISABLED_ROW", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Caller Input Errors (400-level) ────────────────────────────

class CheckError(ServiceError):
    """Caller input violates a rule (missing, forbidden or malformed field)."""
    def __init__(self, message: str, field: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "CHECK_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class InvalidValueError(ServiceError):
    """A lookup key has an unusable value (e.g. None)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_VALUE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class ConflictError(ServiceError):
    """A write would break a uniqueness rule."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Configuration / Infrastructure Errors (500-level) ──────────

class ConfigurationError(ServiceError):
    """Requested behavior is not supported by the service or its collaborators."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )


class DatabaseError(ServiceError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class IntegrityViolationError(DatabaseError):
    """A write broke a unique or foreign-key constraint."""
    def __init__(self, operation: str = "commit", context: ErrorContext | None = None):
        super().__init__("Integrity constraint violated", operation, context)
        self.code = "INTEGRITY_VIOLATION"
        self.category = ErrorCategory.CONFLICT
        self.http_status = 409
