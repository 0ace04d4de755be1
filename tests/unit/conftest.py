# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.
from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from tests.unit.lib.fixtures_cluster import FakeCluster

RESOURCES_DIR = Path(__file__).parent.parent / "resources"


@pytest.fixture(autouse=True)
def no_sleep():
    """Pacing waits are irrelevant without a cluster."""
    with patch("time.sleep") as sleep:
        yield sleep


@pytest.fixture
def resources_dir() -> Path:
    return RESOURCES_DIR


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()
