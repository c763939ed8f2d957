"""Tests for the rolegraph exception hierarchy.

Covers:
- Error code generation
- Rich error context per subclass
- Serialization
- Pydantic error translation
- Exception chain formatting
"""

import json
from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from rolegraph.exceptions import (
    AccessRequestStateError,
    CycleError,
    NotFoundError,
    RBACException,
    ValidationError,
    format_exception_chain,
    from_pydantic,
)
from rolegraph.models import Role


# ==============================================================================
# Base Exception Tests
# ==============================================================================

class TestRBACException:
    """Tests for the base RBACException."""

    def test_create_basic_exception(self):
        """Can create basic exception with message."""
        exc = RBACException("Something went wrong")

        assert exc.message == "Something went wrong"
        assert exc.error_code.startswith("RG_")
        assert exc.context == {}
        assert isinstance(exc.timestamp, datetime)
        assert exc.timestamp.tzinfo is not None

    def test_explicit_error_code_wins(self):
        """An explicit error code is kept as given."""
        exc = RBACException("Test error", error_code="RG_TEST_001")
        assert exc.error_code == "RG_TEST_001"
        assert str(exc) == "[RG_TEST_001] - Test error"

    def test_to_dict_and_json(self):
        """Exception serializes to dict and JSON."""
        exc = RBACException("boom", context={"key": "value"})

        data = exc.to_dict()
        assert data["error_type"] == "RBACException"
        assert data["message"] == "boom"
        assert data["context"] == {"key": "value"}

        parsed = json.loads(exc.to_json())
        assert parsed["error_code"] == exc.error_code

    def test_subclasses_are_rbac_exceptions(self):
        """Every engine error can be caught as RBACException."""
        for exc in (
            NotFoundError("role", "r1"),
            ValidationError("bad"),
            CycleError("a", "b"),
            AccessRequestStateError("req", "approved", "approve"),
        ):
            assert isinstance(exc, RBACException)


# ==============================================================================
# Subclass Tests
# ==============================================================================

class TestEngineExceptions:
    """Tests for the engine error kinds."""

    def test_not_found_error(self):
        """NotFoundError records the entity and id."""
        exc = NotFoundError("permission", "perm_42")

        assert exc.error_code == "RG_NOT_FOUND_ERROR"
        assert exc.entity == "permission"
        assert exc.entity_id == "perm_42"
        assert exc.context["entity_id"] == "perm_42"
        assert "perm_42" in exc.message

    def test_validation_error_invalid_fields(self):
        """ValidationError exposes invalid fields."""
        exc = ValidationError(
            "Role priority out of range",
            invalid_fields={"priority": "must be between 1 and 100"},
        )

        assert exc.error_code == "RG_VALIDATION_ERROR"
        assert exc.invalid_fields == {"priority": "must be between 1 and 100"}
        assert exc.context["invalid_fields"]["priority"]

    def test_cycle_error(self):
        """CycleError names both ends of the rejected edge."""
        exc = CycleError("role_a", "role_b")

        assert exc.error_code == "RG_CYCLE_ERROR"
        assert exc.parent_id == "role_a"
        assert exc.child_id == "role_b"
        assert "cycle" in exc.message

    def test_access_request_state_error(self):
        """AccessRequestStateError records the refused transition."""
        exc = AccessRequestStateError("req_1", "approved", "approve")

        assert exc.error_code == "RG_ACCESS_REQUEST_STATE_ERROR"
        assert exc.current_status == "approved"
        assert exc.attempted == "approve"
        assert exc.context["request_id"] == "req_1"


# ==============================================================================
# Utility Tests
# ==============================================================================

class TestExceptionUtilities:
    """Tests for exception helpers."""

    def test_from_pydantic_maps_locations(self):
        """Pydantic errors become invalid_fields keyed by location."""
        with pytest.raises(PydanticValidationError) as info:
            Role(name="Operators", priority=0)

        exc = from_pydantic(info.value, "Invalid role")
        assert isinstance(exc, ValidationError)
        assert exc.message == "Invalid role"
        assert "priority" in exc.invalid_fields

    def test_format_exception_chain(self):
        """Chained exceptions are all rendered."""
        try:
            try:
                raise KeyError("role_x")
            except KeyError as inner:
                raise NotFoundError("role", "role_x") from inner
        except NotFoundError as outer:
            text = format_exception_chain(outer)

        assert "RG_NOT_FOUND_ERROR" in text
        assert "KeyError" in text
