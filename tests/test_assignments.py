"""Tests for user role assignments."""

from datetime import timedelta

import pytest

from rolegraph.exceptions import NotFoundError, ValidationError


class TestAssign:
    """Granting roles."""

    def test_assign_creates_record(self, service, clock):
        """An assignment is stamped with the engine clock."""
        role = service.create_role("Viewer")
        assignment = service.assign_role("u1", role.id, assigned_by="admin")

        assert assignment.id.startswith("ur_")
        assert assignment.assigned_by == "admin"
        assert assignment.assigned_at == clock.now()
        assert assignment.is_active
        assert assignment.is_effective(clock.now())

    def test_assign_unknown_role(self, service):
        """Roles must exist."""
        with pytest.raises(NotFoundError):
            service.assign_role("u1", "role_missing")

    def test_assign_empty_user(self, service):
        """A user id is required."""
        role = service.create_role("Viewer")
        with pytest.raises(ValidationError):
            service.assign_role("", role.id)

    def test_expiry_must_be_future(self, service, clock):
        """An already elapsed expiry is rejected."""
        role = service.create_role("Viewer")
        with pytest.raises(ValidationError):
            service.assign_role("u1", role.id, expires_at=clock.now() - timedelta(days=1))

    def test_no_deduplication(self, service):
        """Several records may exist for one user/role pair."""
        role = service.create_role("Viewer")
        service.assign_role("u1", role.id)
        service.assign_role("u1", role.id)

        assert len(service.get_user_assignments("u1")) == 2
        assert [r.id for r in service.get_roles_by_user("u1")] == [role.id]

    def test_max_users_constraint(self, service):
        """A role's max_users cap is enforced on assignment."""
        role = service.create_role("Supervisor", constraints={"max_users": 1})
        service.assign_role("u1", role.id)
        service.assign_role("u1", role.id)

        with pytest.raises(ValidationError):
            service.assign_role("u2", role.id)

    def test_assignment_conditions_are_coerced(self, service):
        """Assignment conditions use the same coercion as permissions."""
        role = service.create_role("Viewer")
        assignment = service.assign_role("u1", role.id, conditions={"site": ["north"]})
        assert assignment.conditions["site"].values == ["north"]


class TestEffectiveness:
    """Logical expiry."""

    def test_expiry_is_logical(self, service, clock):
        """An expired assignment stays active but is no longer effective."""
        role = service.create_role("Temp")
        service.assign_role("u1", role.id, expires_at=clock.now() + timedelta(hours=1))
        assert len(service.assignments.list_effective("u1")) == 1

        clock.advance(hours=1)

        assert service.assignments.list_effective("u1") == []
        records = service.get_user_assignments("u1")
        assert records[0].is_active
        assert records[0].is_expired(clock.now())


class TestUnassign:
    """Revoking roles."""

    def test_unassign_most_recent_active(self, service, clock):
        """Only the latest active record is deactivated."""
        role = service.create_role("Viewer")
        first = service.assign_role("u1", role.id)
        clock.advance(minutes=5)
        second = service.assign_role("u1", role.id)

        revoked = service.unassign_role("u1", role.id)

        assert revoked.id == second.id
        assert not revoked.is_active
        assert service.assignments.get(first.id).is_active

    def test_unassign_without_active_assignment(self, service):
        """Unassigning nothing raises NotFoundError."""
        role = service.create_role("Viewer")
        with pytest.raises(NotFoundError):
            service.unassign_role("u1", role.id)

    def test_history_is_kept(self, service):
        """Deactivated records stay queryable."""
        role = service.create_role("Viewer")
        service.assign_role("u1", role.id)
        service.unassign_role("u1", role.id)

        assert service.get_user_assignments("u1") == []
        assert len(service.get_user_assignments("u1", include_inactive=True)) == 1


class TestBulkOperations:
    """Bulk grant and revoke."""

    def test_bulk_assign(self, service):
        """Every pair is granted."""
        a = service.create_role("A")
        b = service.create_role("B")
        created = service.bulk_assign_roles([("u1", a.id), ("u2", b.id)], assigned_by="admin")

        assert [(x.user_id, x.role_id) for x in created] == [("u1", a.id), ("u2", b.id)]
        assert all(x.assigned_by == "admin" for x in created)

    def test_bulk_assign_per_item_expiry(self, service, clock):
        """An item's own expiry overrides the batch expiry."""
        a = service.create_role("A")
        soon = clock.now() + timedelta(hours=1)
        later = clock.now() + timedelta(days=1)

        created = service.bulk_assign_roles(
            [("u1", a.id, soon), ("u2", a.id), ("u3", a.id, None)], expires_at=later,
        )

        assert [x.expires_at for x in created] == [soon, later, later]

    def test_bulk_assign_malformed_item(self, service):
        """Items must carry two or three fields."""
        a = service.create_role("A")
        with pytest.raises(ValidationError):
            service.bulk_assign_roles([("u1", a.id), ("u2",)])
        assert service.assignments.list() == []

    def test_bulk_assign_is_all_or_nothing(self, service):
        """One bad item leaves storage untouched."""
        a = service.create_role("A")
        with pytest.raises(NotFoundError):
            service.bulk_assign_roles([("u1", a.id), ("u2", "role_missing")])
        assert service.assignments.list() == []

    def test_bulk_assign_respects_capacity(self, service):
        """Items in the same batch count toward max_users."""
        role = service.create_role("Lead", constraints={"max_users": 1})
        with pytest.raises(ValidationError):
            service.bulk_assign_roles([("u1", role.id), ("u2", role.id)])
        assert service.assignments.list() == []

    def test_bulk_unassign(self, service):
        """Every pair is revoked."""
        role = service.create_role("Viewer")
        service.bulk_assign_roles([("u1", role.id), ("u2", role.id)])

        revoked = service.bulk_unassign_roles([("u1", role.id), ("u2", role.id)])

        assert len(revoked) == 2
        assert service.get_roles_by_user("u1") == []
        assert service.get_roles_by_user("u2") == []

    def test_bulk_unassign_is_all_or_nothing(self, service):
        """A missing pair aborts the whole batch."""
        role = service.create_role("Viewer")
        service.assign_role("u1", role.id)
        with pytest.raises(NotFoundError):
            service.bulk_unassign_roles([("u1", role.id), ("u2", role.id)])
        assert len(service.get_user_assignments("u1")) == 1

    def test_bulk_unassign_duplicate_pair_needs_two_records(self, service):
        """Repeating a pair revokes one record per occurrence."""
        role = service.create_role("Viewer")
        service.assign_role("u1", role.id)
        with pytest.raises(NotFoundError):
            service.bulk_unassign_roles([("u1", role.id), ("u1", role.id)])

        service.assign_role("u1", role.id)
        assert len(service.bulk_unassign_roles([("u1", role.id), ("u1", role.id)])) == 2
