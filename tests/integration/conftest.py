# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
import os
from pathlib import Path

import pytest
from ad_test_harness.constants import ENV_CLUSTER, ENV_RESOURCES_DIR
from ad_test_harness.fixtures import (  # noqa: F401
    admin_rest_client,
    fault_tolerance_disabled,
    resources_dir,
    rest_client,
    suite_fault_tolerance_disabled,
    wipe_indices,
)
from ad_test_harness.models import RuntimeFlags

RESOURCES_DIR = Path(__file__).parent.parent / "resources"


def pytest_collection_modifyitems(config, items):
    """Integration tests need an external cluster, skip them when none is configured."""
    if os.environ.get(ENV_CLUSTER):
        return

    skip = pytest.mark.skip(reason=f"{ENV_CLUSTER} is not set, no cluster to test against")
    for item in items:
        if item.get_closest_marker("integration"):
            item.add_marker(skip)


@pytest.fixture(scope="session")
def runtime_flags() -> RuntimeFlags:
    """Runtime flags, the resources shipped with the tests unless overridden."""
    flags = RuntimeFlags.from_env()
    if not os.environ.get(ENV_RESOURCES_DIR):
        flags = flags.model_copy(update={"resources_dir": RESOURCES_DIR})
    return flags


@pytest.fixture(autouse=True)
def clean_cluster(wipe_indices):  # noqa: F811
    """Every test starts from and leaves a cluster holding the security index only."""
    yield
