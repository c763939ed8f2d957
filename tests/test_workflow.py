"""Tests for the access request workflow."""

from datetime import timedelta

import pytest

from rolegraph.config import RBACConfig
from rolegraph.exceptions import AccessRequestStateError, NotFoundError, ValidationError
from rolegraph.models import AccessRequestStatus
from rolegraph.service import RBACService


@pytest.fixture
def viewer(service, plant_read):
    return service.create_role("Viewer", permissions=[plant_read.id])


class TestCreateRequest:
    """Filing requests."""

    def test_create_defaults(self, service, clock, viewer):
        """A request starts pending with a 30 day lifetime."""
        request = service.create_access_request(
            "u1", requested_roles=[viewer.id], justification="shift cover",
        )

        assert request.id.startswith("req_")
        assert request.status is AccessRequestStatus.PENDING
        assert request.requested_by == "u1"
        assert request.requested_at == clock.now()
        assert request.expires_at == clock.now() + timedelta(days=30)

    def test_configured_lifetime(self, clock):
        """The default lifetime follows the configuration."""
        svc = RBACService(config=RBACConfig(access_request_ttl_days=7), clock=clock)
        role = svc.create_role("Viewer")
        request = svc.create_access_request("u1", requested_roles=[role.id])
        assert request.expires_at == clock.now() + timedelta(days=7)

    def test_nothing_requested(self, service):
        """At least one role or permission must be named."""
        with pytest.raises(ValidationError):
            service.create_access_request("u1")

    def test_unknown_role(self, service):
        """Requested roles must exist."""
        with pytest.raises(NotFoundError):
            service.create_access_request("u1", requested_roles=["role_missing"])

    def test_unknown_permission(self, service):
        """Requested permissions must exist."""
        with pytest.raises(NotFoundError):
            service.create_access_request("u1", requested_permissions=["perm_missing"])

    def test_expiry_in_past(self, service, clock, viewer):
        """An explicit expiry must lie in the future."""
        with pytest.raises(ValidationError):
            service.create_access_request(
                "u1", requested_roles=[viewer.id], expires_at=clock.now(),
            )

    def test_duplicate_roles_collapse(self, service, viewer):
        """Repeated role ids are requested once."""
        request = service.create_access_request(
            "u1", requested_roles=[viewer.id, viewer.id],
        )
        assert request.requested_roles == [viewer.id]


class TestReview:
    """Approving and rejecting."""

    def test_approve_grants_requested_roles(self, service, clock, viewer):
        """Approval assigns exactly the requested roles."""
        request = service.create_access_request("u1", requested_roles=[viewer.id])

        approved = service.approve_access_request(request.id, "manager", "ok")

        assert approved.status is AccessRequestStatus.APPROVED
        assert approved.reviewed_by == "manager"
        assert approved.reviewed_at == clock.now()
        assert approved.review_comments == "ok"
        assignments = service.get_user_assignments("u1")
        assert [(a.role_id, a.assigned_by) for a in assignments] == [(viewer.id, "manager")]
        assert service.has_permission("u1", "plant", "read")

    def test_approve_twice_fails(self, service, viewer):
        """A decided request cannot be approved again."""
        request = service.create_access_request("u1", requested_roles=[viewer.id])
        service.approve_access_request(request.id, "manager")

        with pytest.raises(AccessRequestStateError) as info:
            service.approve_access_request(request.id, "manager")

        assert info.value.current_status == "approved"
        assert len(service.get_user_assignments("u1")) == 1

    def test_reject(self, service, viewer):
        """Rejection records the reviewer and grants nothing."""
        request = service.create_access_request("u1", requested_roles=[viewer.id])

        rejected = service.reject_access_request(request.id, "manager", "no")

        assert rejected.status is AccessRequestStatus.REJECTED
        assert service.get_user_assignments("u1") == []
        with pytest.raises(AccessRequestStateError):
            service.approve_access_request(request.id, "manager")

    def test_permission_only_request(self, service, plant_read):
        """Requested permissions are recorded but not granted."""
        request = service.create_access_request(
            "u1", requested_permissions=[plant_read.id],
        )
        service.approve_access_request(request.id, "manager")

        assert service.get_user_assignments("u1") == []
        assert not service.has_permission("u1", "plant", "read")

    def test_unknown_request(self, service):
        """Reviewing a missing request raises NotFoundError."""
        with pytest.raises(NotFoundError):
            service.reject_access_request("req_missing", "manager")

    def test_failed_approval_stays_pending(self, service):
        """If granting fails the request is left untouched."""
        role = service.create_role("Lead", constraints={"max_users": 1})
        service.assign_role("u0", role.id)
        request = service.create_access_request("u1", requested_roles=[role.id])

        with pytest.raises(ValidationError):
            service.approve_access_request(request.id, "manager")

        assert service.get_access_request(request.id).status is AccessRequestStatus.PENDING


class TestExpiry:
    """Lazy reclassification of lapsed requests."""

    def test_lapsed_request_reads_as_expired(self, service, clock, viewer):
        """No caller sees a pending request past its expiry."""
        request = service.create_access_request(
            "u1", requested_roles=[viewer.id],
            expires_at=clock.now() + timedelta(hours=1),
        )
        clock.advance(hours=1)

        assert service.get_access_request(request.id).status is AccessRequestStatus.EXPIRED
        assert service.get_pending_access_requests() == []

    def test_approve_lapsed_request_fails(self, service, clock, viewer):
        """A lapsed request cannot be approved."""
        request = service.create_access_request("u1", requested_roles=[viewer.id])
        clock.advance(days=31)

        with pytest.raises(AccessRequestStateError) as info:
            service.approve_access_request(request.id, "manager")

        assert info.value.current_status == "expired"
        assert service.get_user_assignments("u1") == []

    def test_expire_overdue_counts(self, service, clock, viewer):
        """The sweep reports how many requests it expired."""
        service.create_access_request(
            "u1", requested_roles=[viewer.id],
            expires_at=clock.now() + timedelta(days=1),
        )
        service.create_access_request("u2", requested_roles=[viewer.id])
        decided = service.create_access_request("u3", requested_roles=[viewer.id])
        service.reject_access_request(decided.id, "manager")

        clock.advance(days=2)

        assert service.expire_access_requests() == 1
        assert service.expire_access_requests() == 0
        assert len(service.get_pending_access_requests()) == 1

    def test_list_for_user(self, service, viewer):
        """Requests are listed per user."""
        service.create_access_request("u1", requested_roles=[viewer.id])
        service.create_access_request("u2", requested_roles=[viewer.id])

        requests = service.get_user_access_requests("u1")

        assert [r.user_id for r in requests] == ["u1"]
