"""
Custom exception classes for the assessment catalog.

Provides structured error handling with user-friendly messages and enough
context (operation name, assessment id) to diagnose a failure without
re-scanning the store.
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base exception for all catalog errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(CatalogError):
    """Raised when input validation fails."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class MultipleValidationError(CatalogError):
    """Raised when multiple validation errors occur."""

    def __init__(self, errors: list[ValidationError]):
        self.validation_errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(
            message=f"Multiple validation errors: {'; '.join(messages)}",
            details={
                "errors": [
                    {"field": e.field, "message": e.message, "value": e.value} for e in errors
                ]
            },
            user_message="Please correct the following errors and try again.",
        )

    def _get_default_user_message(self) -> str:
        return f"Please correct {len(self.validation_errors)} validation errors and try again."


class AssessmentNotFoundError(CatalogError):
    """Raised when update/delete/verify targets an assessment that does not exist."""

    def __init__(self, assessment_id: str, operation: str):
        self.assessment_id = assessment_id
        self.operation = operation
        super().__init__(
            message=f"Assessment {assessment_id} not found during {operation}",
            details={"assessment_id": assessment_id, "operation": operation},
        )

    def _get_default_user_message(self) -> str:
        return "The selected assessment could not be found. Please refresh and try again."


class AllocationExhaustedError(CatalogError):
    """Raised when no free assessment identifier was found within the retry bound."""

    def __init__(
        self,
        category_code: str,
        scope: str,
        attempts: int,
        last_candidate: str | None = None,
    ):
        self.category_code = category_code
        self.scope = scope
        self.attempts = attempts
        self.last_candidate = last_candidate
        super().__init__(
            message=(
                f"Unable to generate a unique assessment ID for category {category_code} "
                f"in scope {scope} after {attempts} attempts"
            ),
            details={
                "operation": "create_assessment",
                "category_code": category_code,
                "scope": scope,
                "attempts": attempts,
                "last_candidate": last_candidate,
            },
        )

    def _get_default_user_message(self) -> str:
        return "Could not reserve an assessment ID right now. Please retry the request."


class StoreError(CatalogError):
    """Raised when a key-value store operation fails."""

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Store error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="A storage error occurred. Please try again in a moment.",
        )

    def _get_default_user_message(self) -> str:
        return "Unable to save your changes. Please try again."

    def add_context(self, **context: Any) -> StoreError:
        """Attach catalog-level context (operation, assessment id) to the error."""
        for key, value in context.items():
            if value is not None:
                self.details.setdefault(key, value)
        return self


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)

    def _get_default_user_message(self) -> str:
        return "The assessment store is unavailable. Please try again shortly."


class ConditionalWriteError(StoreError):
    """Raised when a conditional (put-if-absent) write finds an existing record."""

    def __init__(
        self,
        message: str,
        key: tuple[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.key = key
        super().__init__(
            message=message,
            operation="conditional_write",
            details=details or {"key": list(key) if key else None},
        )

    def _get_default_user_message(self) -> str:
        return "This item already exists. Please retry the request."


class ConfigurationError(CatalogError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


def handle_store_error(
    e: Exception, operation: str = "store operation", details: dict[str, Any] | None = None
) -> StoreError:
    """
    Convert driver/ORM exceptions to the catalog's store exceptions.

    Args:
        e: The original exception
        operation: Description of the store call that failed
        details: Extra context such as the record key

    Returns:
        Appropriate StoreError subclass

    Example:
        >>> try:
        ...     session.commit()
        >>> except SQLAlchemyError as e:
        ...     raise handle_store_error(e, "put_item") from e
    """
    error_msg = str(e).lower()
    context = {"operation": operation, **(details or {})}

    if "connection" in error_msg or "timeout" in error_msg or "unable to open" in error_msg:
        return StoreUnavailableError(str(e), details=context)
    elif "unique constraint" in error_msg or "duplicate" in error_msg:
        return ConditionalWriteError(str(e), details=context)
    else:
        return StoreError(str(e), operation, details=context)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = ValidationError("title", "cannot be empty")
        >>> create_user_friendly_error_message(error)
        'Invalid title: cannot be empty'
    """
    if isinstance(error, CatalogError):
        return error.user_message

    error_type = type(error).__name__
    messages = {
        "ValueError": "Invalid input provided. Please check your data and try again.",
        "KeyError": "Required information is missing. Please check your input.",
        "TypeError": "Incorrect data type provided. Please check your input format.",
    }
    return messages.get(
        error_type, "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Args:
        error: The exception to log
        context: Additional context information

    Returns:
        Dictionary with structured error details
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, CatalogError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details
