"""Tests for the RBACService facade."""

import threading
from datetime import timedelta

import pytest

from rolegraph.config import RBACConfig, set_config
from rolegraph.defaults import DEFAULT_PERMISSIONS, DEFAULT_ROLES, seed_defaults
from rolegraph.service import RBACService, get_service, reset_service


# ==============================================================================
# Role membership
# ==============================================================================

class TestRoleMembership:
    """has_role and has_any_role."""

    def test_has_role_by_name_or_id(self, service):
        """Roles match on either name or id."""
        role = service.create_role("Operator")
        service.assign_role("u1", role.id)

        assert service.has_role("u1", "Operator")
        assert service.has_role("u1", role.id)
        assert not service.has_role("u1", "Engineer")
        assert not service.has_role("u2", "Operator")

    def test_has_any_role(self, service):
        """Any one held role is enough."""
        role = service.create_role("Operator")
        service.assign_role("u1", role.id)

        assert service.has_any_role("u1", ["Engineer", "Operator"])
        assert not service.has_any_role("u1", ["Engineer", "Manager"])
        assert not service.has_any_role("u1", [])

    def test_inactive_or_expired_roles_do_not_count(self, service, clock):
        """Only effective, active roles are held."""
        dormant = service.create_role("Dormant", is_active=False)
        temp = service.create_role("Temp")
        service.assign_role("u1", dormant.id)
        service.assign_role("u1", temp.id, expires_at=clock.now() + timedelta(hours=1))
        clock.advance(hours=1)

        assert not service.has_any_role("u1", ["Dormant", "Temp"])

    def test_available_roles(self, service):
        """Active roles not yet held are offered."""
        held = service.create_role("Held")
        free = service.create_role("Free")
        service.create_role("Dormant", is_active=False)
        service.assign_role("u1", held.id)

        assert [r.id for r in service.get_available_roles_for_user("u1")] == [free.id]

    def test_can_perform_action_alias(self, service, plant_read):
        """can_perform_action decides like has_permission."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)

        assert service.can_perform_action("u1", "plant", "read")
        assert not service.can_perform_action("u1", "plant", "update")


# ==============================================================================
# Metrics
# ==============================================================================

class TestMetrics:
    """get_metrics."""

    def test_decision_counters(self, service, plant_read):
        """Allowed and denied decisions are counted."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        service.has_permission("u1", "plant", "read")
        service.has_permission("u1", "plant", "update")
        service.has_permission("u1", "plant", "read")

        metrics = service.get_metrics()

        assert metrics["total_checks"] == 3
        assert metrics["allowed_checks"] == 2
        assert metrics["denied_checks"] == 1
        assert metrics["cache_hits"] == 2
        assert metrics["cache_misses"] == 1
        assert metrics["roles"] == 1
        assert metrics["assignments"] == 1
        assert metrics["cache_enabled"] is True

    def test_empty_metrics(self, service):
        """A fresh service reports zeros."""
        metrics = service.get_metrics()
        assert metrics["total_checks"] == 0
        assert metrics["allow_rate"] == 0


# ==============================================================================
# Defaults and singleton
# ==============================================================================

class TestDefaults:
    """Default catalog seeding."""

    def test_seed_from_config(self, clock):
        """seed_defaults installs the stock catalog and system roles."""
        svc = RBACService(config=RBACConfig(seed_defaults=True), clock=clock)

        assert len(svc.list_permissions()) == len(DEFAULT_PERMISSIONS)
        roles = svc.list_roles()
        assert len(roles) == len(DEFAULT_ROLES)
        assert all(r.is_system_role for r in roles)
        assert len(svc.get_permissions_by_category("Plant Operations")) == 4

    def test_seed_skips_populated_stores(self, service, plant_read):
        """Seeding never touches a store that already has records."""
        created = seed_defaults(service)

        assert created["permissions"] == 0
        assert created["roles"] == len(DEFAULT_ROLES)
        assert service.list_permissions() == [plant_read]


class TestServiceSingleton:
    """get_service / reset_service."""

    def test_singleton(self):
        """The process-wide service is reused until reset."""
        set_config(RBACConfig())
        first = get_service()
        assert get_service() is first

        reset_service()
        assert get_service() is not first


# ==============================================================================
# Concurrency
# ==============================================================================

class TestConcurrency:
    """Concurrent readers and writers."""

    def test_concurrent_checks_and_mutations(self, service, plant_read):
        """Decisions stay consistent while roles are being assigned."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        errors = []

        def writer(index):
            try:
                service.assign_role(f"user-{index}", role.id)
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        def reader(index):
            try:
                for _ in range(20):
                    service.has_permission(f"user-{index}", "plant", "read")
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(10)]
        threads += [threading.Thread(target=reader, args=(i,)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert service.get_metrics()["total_checks"] == 200
        for index in range(10):
            assert service.has_permission(f"user-{index}", "plant", "read")

    def test_lock_is_reentrant(self, service, plant_read):
        """Hosts can batch calls under the service lock."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        with service.lock:
            service.assign_role("u1", role.id)
            assert service.has_permission("u1", "plant", "read")


@pytest.mark.parametrize("ttl", [0, 30])
def test_cache_disabled_still_decides(clock, ttl):
    """Decisions are identical with the cache turned off."""
    svc = RBACService(
        config=RBACConfig(cache_enabled=False, matrix_cache_ttl_seconds=ttl), clock=clock,
    )
    perm = svc.create_permission("Read", "plant", "read")
    role = svc.create_role("Viewer", permissions=[perm.id])
    svc.assign_role("u1", role.id)

    assert svc.has_permission("u1", "plant", "read")
    assert svc.cache.size == 0
