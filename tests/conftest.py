# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest

from rolegraph.clock import Clock
from rolegraph.config import RBACConfig, reset_config
from rolegraph.service import RBACService, reset_service

FROZEN_NOW = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep process-wide config and service out of other tests."""
    yield
    reset_config()
    reset_service()


@pytest.fixture
def clock():
    """A clock frozen at a fixed instant."""
    return Clock(frozen_time=FROZEN_NOW)


@pytest.fixture
def config():
    return RBACConfig()


@pytest.fixture
def service(config, clock):
    """Fresh in-memory service per test."""
    return RBACService(config=config, clock=clock)


@pytest.fixture
def plant_read(service):
    return service.create_permission(
        "View Plant Data", "plant", "read", category="Plant Operations",
    )


@pytest.fixture
def plant_update(service):
    return service.create_permission(
        "Edit Plant Data", "plant", "update", category="Plant Operations",
    )


@pytest.fixture
def reports_read(service):
    return service.create_permission(
        "View Reports", "reports", "read", category="Reports",
    )
