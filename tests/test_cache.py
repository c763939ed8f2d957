"""Tests for the permission matrix cache and its coherency with mutations."""

from datetime import timedelta

from rolegraph.cache import PermissionCache
from rolegraph.config import RBACConfig
from rolegraph.models import PermissionMatrix
from rolegraph.service import RBACService


class TestPermissionCache:
    """The cache in isolation."""

    def test_get_or_compute_memoizes(self, clock):
        """A second read is served without recomputing."""
        cache = PermissionCache(clock=clock)
        calls = []

        def compute(user_id):
            calls.append(user_id)
            return PermissionMatrix(user_id=user_id)

        first = cache.get_or_compute("u1", compute)
        second = cache.get_or_compute("u1", compute)

        assert first is second
        assert calls == ["u1"]
        assert cache.size == 1
        assert cache.get_stats()["hits"] == 1

    def test_invalidate_one_user(self, clock):
        """invalidate drops only that user's entry."""
        cache = PermissionCache(clock=clock)
        cache.get_or_compute("u1", lambda u: PermissionMatrix(user_id=u))
        cache.get_or_compute("u2", lambda u: PermissionMatrix(user_id=u))

        cache.invalidate("u1")

        assert not cache.contains("u1")
        assert cache.contains("u2")

    def test_invalidate_all(self, clock):
        """invalidate_all drops everything."""
        cache = PermissionCache(clock=clock)
        cache.get_or_compute("u1", lambda u: PermissionMatrix(user_id=u))
        cache.invalidate_all()
        assert cache.size == 0

    def test_failure_degrades_to_empty_and_is_not_stored(self, clock):
        """A failing computation yields an empty matrix that is not cached."""
        cache = PermissionCache(clock=clock)

        def broken(user_id):
            raise ValueError("corrupted graph")

        matrix = cache.get_or_compute("u1", broken)

        assert matrix.is_empty()
        assert matrix.user_id == "u1"
        assert not cache.contains("u1")

    def test_ttl_expiry(self, clock):
        """Entries older than the TTL are recomputed."""
        cache = PermissionCache(clock=clock, ttl_seconds=60)
        cache.get_or_compute("u1", lambda u: PermissionMatrix(user_id=u))
        assert cache.contains("u1")

        clock.advance(seconds=61)
        assert not cache.contains("u1")

    def test_matrix_validity_bound(self, clock):
        """A matrix built from an expiring assignment goes stale with it."""
        cache = PermissionCache(clock=clock)
        cache.get_or_compute(
            "u1",
            lambda u: PermissionMatrix(
                user_id=u, valid_until=clock.now() + timedelta(minutes=5),
            ),
        )
        clock.advance(minutes=5)
        assert not cache.contains("u1")

    def test_disabled_cache_stores_nothing(self, clock):
        """With caching disabled every read computes."""
        cache = PermissionCache(clock=clock, enabled=False)
        cache.get_or_compute("u1", lambda u: PermissionMatrix(user_id=u))
        assert cache.size == 0


class TestCacheCoherency:
    """The next read after any mutation reflects the new state."""

    def test_role_permission_change_is_visible(self, service, plant_read, plant_update):
        """Adding a permission to a held role is seen immediately."""
        role = service.create_role("Operator", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        assert not service.has_permission("u1", "plant", "update")
        assert service.cache.contains("u1")

        service.add_permission_to_role(role.id, plant_update.id)

        assert service.has_permission("u1", "plant", "update")

    def test_hierarchy_change_is_visible(self, service, plant_read):
        """New and removed edges are seen immediately."""
        parent = service.create_role("Parent", permissions=[plant_read.id])
        child = service.create_role("Child")
        service.assign_role("u1", child.id)
        assert not service.has_permission("u1", "plant", "read")

        service.add_hierarchy_edge(parent.id, child.id)
        assert service.has_permission("u1", "plant", "read")

        service.remove_hierarchy_edge(parent.id, child.id)
        assert not service.has_permission("u1", "plant", "read")

    def test_role_deactivation_is_visible(self, service, plant_read):
        """Deactivating a role revokes on the next read."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        assert service.has_permission("u1", "plant", "read")

        service.update_role(role.id, is_active=False)

        assert not service.has_permission("u1", "plant", "read")

    def test_permission_condition_change_is_visible(self, service, plant_read):
        """Changing a permission's conditions is seen immediately."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        assert service.has_permission("u1", "plant", "read")

        service.update_permission(plant_read.id, conditions={"dept": "ops"})

        assert not service.has_permission("u1", "plant", "read")
        assert service.has_permission("u1", "plant", "read", {"dept": "ops"})

    def test_refresh_recomputes(self, service, plant_read):
        """refresh drops and rebuilds one user's matrix."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        service.has_permission("u1", "plant", "read")
        misses = service.cache.misses

        matrix = service.refresh("u1")

        assert matrix.get("plant", "read") is not None
        assert service.cache.misses == misses + 1

    def test_clear_all(self, service, plant_read):
        """clear_all empties the cache."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        service.assign_role("u1", role.id)
        service.has_permission("u1", "plant", "read")
        service.has_permission("u2", "plant", "read")

        service.clear_all()

        assert service.cache.size == 0

    def test_bulk_assign_invalidates_once(self, service, plant_read):
        """Bulk operations flush the cache a single time."""
        role = service.create_role("Viewer", permissions=[plant_read.id])
        before = service.cache.invalidations

        service.bulk_assign_roles([("u1", role.id), ("u2", role.id), ("u3", role.id)])

        assert service.cache.invalidations == before + 1
        assert service.has_permission("u3", "plant", "read")

    def test_ttl_from_config(self, clock):
        """The service wires the configured TTL into its cache."""
        svc = RBACService(config=RBACConfig(matrix_cache_ttl_seconds=30), clock=clock)
        assert svc.cache.ttl_seconds == 30
