"""
Custom exception classes for the feedback engine.

Provides structured error handling with user-friendly messages and proper
error categorization for template editing, grant resolution, answer
validation and submission.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class FeedbackEngineError(Exception):
    """Base exception for all application errors."""

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
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(FeedbackEngineError):
    """Raised when plain input validation fails."""

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


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class NotFoundError(FeedbackEngineError):
    """Raised when a template, version, category or subject does not exist."""

    def _get_default_user_message(self) -> str:
        return "The requested item could not be found."


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: int | None = None, kind: str | None = None):
        self.template_id = template_id
        self.kind = kind
        target = f"ID {template_id}" if template_id is not None else f"kind '{kind}'"
        super().__init__(
            message=f"Template with {target} not found",
            details={"template_id": template_id, "kind": kind},
        )

    def _get_default_user_message(self) -> str:
        return "The form template could not be found."


class TemplateVersionNotFoundError(NotFoundError):
    def __init__(self, template_id: int, version: int):
        self.template_id = template_id
        self.version = version
        super().__init__(
            message=f"Template {template_id} has no version {version}",
            details={"template_id": template_id, "version": version},
        )


class CategoryNotFoundError(NotFoundError):
    def __init__(self, template_id: int, category_id: int):
        self.template_id = template_id
        self.category_id = category_id
        super().__init__(
            message=f"Category {category_id} is not part of template {template_id}",
            details={"template_id": template_id, "category_id": category_id},
        )


class SubjectNotFoundError(NotFoundError):
    def __init__(self, subject_id: int):
        self.subject_id = subject_id
        super().__init__(
            message=f"Subject with ID {subject_id} not found",
            details={"subject_id": subject_id},
        )

    def _get_default_user_message(self) -> str:
        return "The OJT placement could not be found."


# ---------------------------------------------------------------------------
# Grant resolution
# ---------------------------------------------------------------------------


class GrantError(FeedbackEngineError):
    """Raised when an access code cannot be used. Never retryable with the same code."""

    def __init__(self, message: str, code: str | None = None, user_message: str | None = None):
        self.code = code
        super().__init__(message=message, details={}, user_message=user_message)


class InvalidCodeError(GrantError):
    def __init__(self, code: str | None = None):
        super().__init__("Access code not recognised", code=code)

    def _get_default_user_message(self) -> str:
        return "This access code is not valid. Please check the link you received."


class GrantExpiredError(GrantError):
    def __init__(self, code: str | None = None):
        super().__init__("Access code has expired", code=code)

    def _get_default_user_message(self) -> str:
        return "This access code has expired. Please ask for a new link."


class GrantAlreadyConsumedError(GrantError):
    def __init__(self, code: str | None = None):
        super().__init__("Access code has already been used", code=code)

    def _get_default_user_message(self) -> str:
        return "This form has already been submitted. Thank you!"


class AlreadySubmittedError(FeedbackEngineError):
    """
    Raised when a submission targets a grant that is no longer pending.

    Callers treat this as "nothing to do": a response for the grant exists
    or the grant was consumed by a concurrent submission.
    """

    def __init__(self, code: str | None = None):
        self.code = code
        super().__init__(message="A response has already been recorded for this access code")

    def _get_default_user_message(self) -> str:
        return "This form has already been submitted. Thank you!"


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------


class AnswerValidationError(FeedbackEngineError):
    """Raised when a candidate response does not satisfy its form contract."""

    question_ids: list[int]

    def _get_default_user_message(self) -> str:
        return "Please review your answers and try again."


class MissingAnswersError(AnswerValidationError):
    def __init__(self, question_ids: Sequence[int]):
        self.question_ids = list(question_ids)
        super().__init__(
            message=f"Missing answers for questions {self.question_ids}",
            details={"question_ids": self.question_ids},
            user_message="Please answer every question before submitting.",
        )


class InvalidAnswerValueError(AnswerValidationError):
    def __init__(self, question_id: int, value: Any = None, question_ids: Sequence[int] = ()):
        self.question_id = question_id
        self.value = value
        self.question_ids = list(question_ids) or [question_id]
        super().__init__(
            message=f"Invalid answer {value!r} for question {question_id}",
            details={"question_id": question_id, "question_ids": self.question_ids},
            user_message="One or more answers are not valid choices.",
        )


class UnexpectedAnswersError(AnswerValidationError):
    def __init__(self, question_ids: Sequence[int]):
        self.question_ids = list(question_ids)
        super().__init__(
            message=f"Answers given for questions not on the form: {self.question_ids}",
            details={"question_ids": self.question_ids},
            user_message="The form has changed. Please reload it and try again.",
        )


class MissingSignatureError(AnswerValidationError):
    def __init__(self) -> None:
        self.question_ids = []
        super().__init__(
            message="A signature is required",
            user_message="Please sign the form before submitting.",
        )


# ---------------------------------------------------------------------------
# Template editing
# ---------------------------------------------------------------------------


class TemplateEditError(FeedbackEngineError):
    """Raised when an editor mutation is malformed."""

    def _get_default_user_message(self) -> str:
        return "The template change could not be applied. Please review it and try again."


class InvalidOrderError(TemplateEditError):
    def __init__(self, expected: Sequence[int], given: Sequence[int]):
        self.expected = sorted(expected)
        self.given = list(given)
        super().__init__(
            message=f"Category order {self.given} does not match categories {self.expected}",
            details={"expected": self.expected, "given": self.given},
            user_message="The category order must list every category exactly once.",
        )


class InvalidQuestionError(TemplateEditError):
    def __init__(self, message: str, position: int | None = None):
        self.position = position
        super().__init__(
            message=message,
            details={"position": position},
            user_message="Questions cannot be empty.",
        )


class InvalidCategoryError(TemplateEditError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, details=details, user_message=message)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class DatabaseError(FeedbackEngineError):
    """Raised when database operations fail."""

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Database error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="A database error occurred. Please try again in a moment.",
        )


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)


class IntegrityError(DatabaseError):
    """Raised when database integrity constraints are violated."""

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint
        super().__init__(
            message=message,
            operation="integrity_check",
            details=details or {"constraint": constraint},
        )
        self.user_message = self._constraint_message()

    def _constraint_message(self) -> str:
        if self.constraint:
            if "unique" in self.constraint.lower():
                return "This item already exists (unique constraint)."
            elif "foreign" in self.constraint.lower():
                return "Referenced item no longer exists. Please refresh and try again."
        return "Data integrity error. Please check your input and try again."


class ConfigurationError(FeedbackEngineError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, config_key: str | None = None):
        self.config_key = config_key
        super().__init__(
            message=message,
            details={"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


class PermissionError(FeedbackEngineError):
    """Raised when the acting user lacks a required role."""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(
            message=message,
            details={"operation": operation},
            user_message="You don't have permission to perform this operation.",
        )


class StorageError(FeedbackEngineError):
    """Raised when a blob cannot be stored or resolved."""

    def __init__(self, message: str, ref: str | None = None):
        self.ref = ref
        super().__init__(
            message=message,
            details={"ref": ref},
            user_message="The uploaded file could not be processed.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> DatabaseError:
    """
    Convert generic database exceptions to appropriate custom exceptions.

    Example:
        >>> try:
        ...     session.commit()
        >>> except Exception as e:
        ...     raise handle_database_error(e, "commit transaction")
    """
    error_msg = str(e).lower()

    if "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    elif "foreign key" in error_msg or "foreign_key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    elif "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    elif "connection" in error_msg or "timeout" in error_msg:
        return ConnectionError(str(e))
    else:
        return DatabaseError(str(e), operation)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> create_user_friendly_error_message(GrantExpiredError())
        'This access code has expired. Please ask for a new link.'
    """
    if isinstance(error, FeedbackEngineError):
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
    """Create structured error details for logging."""
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, FeedbackEngineError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details
