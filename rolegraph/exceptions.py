# -*- coding: utf-8 -*-
"""rolegraph Exception Hierarchy.

Every error raised by the authorization engine derives from
``RBACException`` and carries rich context for logging and for hosts that
translate engine errors into their own responses.

Exception Hierarchy:
    RBACException (base)
    ├── NotFoundError            unresolved permission/role/request id
    ├── ValidationError          malformed input (priority, name, dates, ...)
    ├── CycleError               hierarchy edge would violate acyclicity
    └── AccessRequestStateError  illegal access-request state transition

All exceptions include:
- error_code: Unique error identifier (e.g. "RG_CYCLE_ERROR")
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Example:
    >>> from rolegraph.exceptions import NotFoundError
    >>> raise NotFoundError("role", "role_123")
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class RBACException(Exception):
    """Base exception for all rolegraph errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "RG_NOT_FOUND_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "RG"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "RG_VALIDATION_ERROR"
        """
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Engine Exceptions
# ==============================================================================

class NotFoundError(RBACException):
    """An id could not be resolved.

    Example:
        >>> raise NotFoundError("permission", "perm_42")
    """

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize not-found error.

        Args:
            entity: Kind of record that was looked up ("role", "permission", ...)
            entity_id: The id that did not resolve
            message: Optional override message
            context: Error context
        """
        context = context or {}
        context["entity"] = entity
        context["entity_id"] = entity_id
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity.capitalize()} not found: {entity_id}",
            context=context,
        )


class ValidationError(RBACException):
    """Input validation failed.

    Example:
        >>> raise ValidationError(
        ...     "Role priority out of range",
        ...     invalid_fields={"priority": "must be between 1 and 100"},
        ... )
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        invalid_fields: Optional[Dict[str, str]] = None,
    ):
        """Initialize validation error.

        Args:
            message: Error message
            context: Error context
            invalid_fields: Dictionary of field_name -> reason
        """
        if invalid_fields:
            context = context or {}
            context["invalid_fields"] = invalid_fields
        self.invalid_fields = invalid_fields or {}
        super().__init__(message, context=context)


class CycleError(RBACException):
    """A hierarchy edge would make the role graph cyclic."""

    def __init__(
        self,
        parent_id: str,
        child_id: str,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize cycle error.

        Args:
            parent_id: Parent role of the rejected edge
            child_id: Child role of the rejected edge
            message: Optional override message
            context: Error context
        """
        context = context or {}
        context["parent_id"] = parent_id
        context["child_id"] = child_id
        self.parent_id = parent_id
        self.child_id = child_id
        super().__init__(
            message or (
                f"Edge {parent_id} -> {child_id} would create a cycle "
                f"in the role hierarchy"
            ),
            context=context,
        )


class AccessRequestStateError(RBACException):
    """An access request transition is not legal from its current state."""

    def __init__(
        self,
        request_id: str,
        current_status: str,
        attempted: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize state error.

        Args:
            request_id: Access request identifier
            current_status: Status the request is in
            attempted: Transition that was attempted ("approve", "reject")
            context: Error context
        """
        context = context or {}
        context["request_id"] = request_id
        context["current_status"] = current_status
        context["attempted"] = attempted
        self.request_id = request_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} access request {request_id}: "
            f"status is '{current_status}', expected 'pending'",
            context=context,
        )


# ==============================================================================
# Exception Utilities
# ==============================================================================

def format_exception_chain(exc: Exception) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, RBACException):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = getattr(current, "__cause__", None)

    return "\n".join(lines)


def from_pydantic(exc: Any, message: str) -> ValidationError:
    """Translate a pydantic ``ValidationError`` into a rolegraph one.

    Args:
        exc: The pydantic validation error
        message: Summary message for the engine error

    Returns:
        ValidationError with one invalid_fields entry per failing location
    """
    invalid: Dict[str, str] = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        invalid[loc] = error.get("msg", "invalid value")
    return ValidationError(message, invalid_fields=invalid)


__all__ = [
    "RBACException",
    "NotFoundError",
    "ValidationError",
    "CycleError",
    "AccessRequestStateError",
    "format_exception_chain",
    "from_pydantic",
]
