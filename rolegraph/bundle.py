# -*- coding: utf-8 -*-
"""
Import / export bundle.

A bundle is a portable snapshot of the catalog, the roles, the hierarchy
edges and the role templates::

    {permissions[], roles[], hierarchy_edges[], role_templates[],
     exported_at, version}

Import is additive only: records are appended as they are, never merged by
identity or replaced. Ids that already exist are kept twice and lookups
resolve to the first stored record. Hosts that need replace semantics must
clear their repositories first.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError as PydanticValidationError

from rolegraph.cache import PermissionCache
from rolegraph.clock import Clock
from rolegraph.exceptions import ValidationError, from_pydantic
from rolegraph.models import ExportBundle
from rolegraph.repository import RepositorySet

logger = logging.getLogger(__name__)

BundleInput = Union[ExportBundle, Mapping[str, Any], str, bytes]


def export_bundle(
    repos: RepositorySet,
    lock: Any,
    clock: Clock,
    version: str = "1.0",
) -> ExportBundle:
    """Snapshot every exportable record into a bundle."""
    with lock:
        bundle = ExportBundle(
            permissions=[p.model_copy(deep=True) for p in repos.permissions.list()],
            roles=[r.model_copy(deep=True) for r in repos.roles.list()],
            hierarchy_edges=[e.model_copy(deep=True) for e in repos.edges.list()],
            role_templates=[t.model_copy(deep=True) for t in repos.templates.list()],
            exported_at=clock.now(),
            version=version,
        )
    logger.info(
        "Exported bundle v%s: %d permissions, %d roles, %d edges, %d templates",
        version, len(bundle.permissions), len(bundle.roles),
        len(bundle.hierarchy_edges), len(bundle.role_templates),
    )
    return bundle


def parse_bundle(raw: BundleInput, version: str = "1.0") -> ExportBundle:
    """Validate a bundle given as a model, a mapping or a JSON document.

    Raises:
        ValidationError: If the document is malformed or its ``version`` is
            not the supported one.
    """
    if isinstance(raw, ExportBundle):
        data: Any = raw
        found = raw.version
    else:
        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except ValueError as exc:
                raise ValidationError(
                    f"Bundle is not valid JSON: {exc}",
                    invalid_fields={"bundle": "invalid JSON"},
                ) from exc
        else:
            data = dict(raw)
        if not isinstance(data, dict):
            raise ValidationError(
                "Bundle must be a JSON object",
                invalid_fields={"bundle": "not an object"},
            )
        found = data.get("version")

    if found != version:
        raise ValidationError(
            f"Unsupported bundle version: {found!r} (expected {version!r})",
            invalid_fields={"version": "unsupported"},
        )

    if isinstance(data, ExportBundle):
        return data
    try:
        return ExportBundle.model_validate(data)
    except PydanticValidationError as exc:
        raise from_pydantic(exc, "Invalid bundle") from exc


def import_bundle(
    repos: RepositorySet,
    cache: PermissionCache,
    lock: Any,
    raw: BundleInput,
    version: str = "1.0",
) -> Dict[str, int]:
    """Append every record of a bundle to the repositories.

    Args:
        repos: Target repositories.
        cache: Matrix cache, flushed once after the import.
        lock: Service lock held for the whole import.
        raw: Bundle model, mapping or JSON document.
        version: The only accepted bundle version.

    Returns:
        Number of records appended per kind.

    Raises:
        ValidationError: If the bundle is malformed or of another version.
    """
    bundle = parse_bundle(raw, version)

    with lock:
        for permission in bundle.permissions:
            repos.permissions.add(permission)
        for role in bundle.roles:
            repos.roles.add(role)
        for edge in bundle.hierarchy_edges:
            repos.edges.add(edge)
        for template in bundle.role_templates:
            repos.templates.add(template)
        cache.invalidate_all()

    counts = {
        "permissions": len(bundle.permissions),
        "roles": len(bundle.roles),
        "hierarchy_edges": len(bundle.hierarchy_edges),
        "role_templates": len(bundle.role_templates),
    }
    logger.info("Imported bundle v%s: %s", bundle.version, counts)
    return counts


__all__ = ["BundleInput", "export_bundle", "parse_bundle", "import_bundle"]
