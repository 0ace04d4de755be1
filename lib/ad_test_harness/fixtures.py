# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Pytest fixtures wiring the harness into the test lifecycle.

The clients are built once per session and closed at the end of it. `wipe_indices` runs
the cluster state reset after each test using it, and `fault_tolerance_disabled` scopes
the fault tolerance cluster settings to the tests requesting it, or to the whole session
with `suite_fault_tolerance_disabled`.
"""
import logging

import pytest

from ad_test_harness.models import RuntimeFlags
from ad_test_harness.opensearch_bootstrap import admin_client, client
from ad_test_harness.opensearch_cluster import (
    resource_not_found_fault_tolerance_disabled,
    wipe_all_indices,
)
from ad_test_harness.opensearch_exceptions import OpenSearchHttpError

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session")
def runtime_flags() -> RuntimeFlags:
    """Runtime flags read from the environment."""
    return RuntimeFlags.from_env()


@pytest.fixture(scope="session")
def resources_dir(runtime_flags):
    """Root directory of the fixture resources."""
    return runtime_flags.resources_dir


@pytest.fixture(scope="session")
def rest_client(runtime_flags):
    """REST client used by the test bodies."""
    rest = client(runtime_flags)
    yield rest
    rest.close()


@pytest.fixture(scope="session")
def admin_rest_client(runtime_flags):
    """Privileged REST client, used for cleanup and cluster settings."""
    rest = admin_client(runtime_flags)
    yield rest
    rest.close()


@pytest.fixture(scope="function")
def wipe_indices(admin_rest_client):
    """Deletes every index but the security one at the end of the test."""
    yield
    logger.info("Wiping indices after test.")
    try:
        wipe_all_indices(admin_rest_client)
    except OpenSearchHttpError as e:
        logger.error("Failed to reset the cluster state: %s", e)
        raise


@pytest.fixture(scope="function")
def fault_tolerance_disabled(admin_rest_client):
    """Disables the node muting fault tolerance for the duration of the test."""
    with resource_not_found_fault_tolerance_disabled(admin_rest_client) as previous:
        yield previous


@pytest.fixture(scope="session")
def suite_fault_tolerance_disabled(admin_rest_client):
    """Disables the node muting fault tolerance once, restored at the end of the session."""
    with resource_not_found_fault_tolerance_disabled(admin_rest_client) as previous:
        yield previous
