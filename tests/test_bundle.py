"""Tests for bundle export and import."""

import json

import pytest

from rolegraph.config import RBACConfig
from rolegraph.exceptions import ValidationError
from rolegraph.models import InheritanceType
from rolegraph.service import RBACService


@pytest.fixture
def populated(service, plant_read, plant_update, reports_read):
    parent = service.create_role("Parent", permissions=[plant_read.id, plant_update.id])
    child = service.create_role("Child")
    service.add_hierarchy_edge(parent.id, child.id, InheritanceType.PARTIAL, [plant_read.id])
    service.create_role_template("Operator", permissions=[plant_read.id])
    return service


class TestExport:
    """Snapshots."""

    def test_export_contents(self, populated, clock):
        """The bundle carries catalog, roles, edges and templates."""
        bundle = populated.export_bundle()

        assert bundle.version == "1.0"
        assert bundle.exported_at == clock.now()
        assert len(bundle.permissions) == 3
        assert len(bundle.roles) == 2
        assert len(bundle.hierarchy_edges) == 1
        assert len(bundle.role_templates) == 1

    def test_export_is_detached(self, populated):
        """Mutating the bundle does not touch storage."""
        bundle = populated.export_bundle()
        bundle.roles[0].permissions.clear()
        assert populated.get_role(bundle.roles[0].id).permissions


class TestImport:
    """Additive import."""

    def test_round_trip_into_empty_service(self, populated, clock):
        """A JSON export restores the same records elsewhere."""
        document = populated.export_bundle().model_dump_json()
        target = RBACService(config=RBACConfig(), clock=clock)

        counts = target.import_bundle(document)

        assert counts == {
            "permissions": 3, "roles": 2, "hierarchy_edges": 1, "role_templates": 1,
        }
        child = target.list_roles()[1]
        assert len(target.calculate_inherited_permissions(child.id)) == 1
        assert target.list_role_templates()[0].name == "Operator"

    def test_import_appends_duplicates(self, populated):
        """Re-importing keeps both copies; lookups resolve to the first."""
        bundle = populated.export_bundle()
        original = populated.get_role(bundle.roles[0].id)

        changed = bundle.model_copy(deep=True)
        changed.roles[0].description = "imported copy"
        populated.import_bundle(changed)

        assert len(populated.list_roles()) == 4
        assert populated.get_role(original.id).description == original.description

    def test_cascade_leaves_local_record_intact(self, populated, plant_update):
        """Deleting a permission rewrites each copy in place, not the first one."""
        parent_id = populated.list_roles()[0].id
        bundle = populated.export_bundle()
        populated.update_role(parent_id, name="Local", priority=90)
        populated.import_bundle(bundle)

        populated.delete_permission(plant_update.id)

        local = populated.get_role(parent_id)
        assert (local.name, local.priority) == ("Local", 90)
        assert plant_update.id not in local.permissions
        imported = populated.list_roles()[2]
        assert (imported.id, imported.name) == (parent_id, "Parent")
        assert plant_update.id not in imported.permissions

    def test_import_mapping(self, service, clock):
        """Plain mappings are accepted."""
        counts = service.import_bundle({
            "version": "1.0",
            "permissions": [{"name": "Read", "resource": "docs", "action": "read"}],
        })
        assert counts["permissions"] == 1
        assert service.list_permissions()[-1].resource == "docs"

    def test_version_mismatch(self, service):
        """Other bundle versions are rejected before anything is stored."""
        with pytest.raises(ValidationError) as info:
            service.import_bundle({"version": "2.0", "permissions": []})
        assert "version" in info.value.invalid_fields

    def test_invalid_json(self, service):
        """Malformed documents raise ValidationError."""
        with pytest.raises(ValidationError):
            service.import_bundle("{not json")

    def test_non_object_json(self, service):
        """The document must be an object."""
        with pytest.raises(ValidationError):
            service.import_bundle(json.dumps(["1.0"]))

    def test_invalid_record(self, service):
        """Schema errors surface as ValidationError and store nothing."""
        with pytest.raises(ValidationError):
            service.import_bundle({"version": "1.0", "roles": [{"priority": 5}]})
        assert service.list_roles() == []

    def test_import_invalidates_cache(self, service, plant_read):
        """Imported hierarchy changes are visible on the next read."""
        parent = service.create_role("Parent", permissions=[plant_read.id])
        child = service.create_role("Child")
        service.assign_role("u1", child.id)
        assert not service.has_permission("u1", "plant", "read")

        service.import_bundle({
            "version": "1.0",
            "hierarchy_edges": [{"parent_id": parent.id, "child_id": child.id}],
        })

        assert service.has_permission("u1", "plant", "read")
