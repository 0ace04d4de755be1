# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Utility functions for reading the fixture datasets."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from ad_test_harness.constants import DATA_NAMESPACE, DATASET_RESOURCE_FORMAT
from ad_test_harness.opensearch_exceptions import OpenSearchFixtureError

logger = logging.getLogger(__name__)


def dataset_resource_path(dataset_name: str, namespace: str = DATA_NAMESPACE) -> str:
    """Resource name of a dataset: <namespace>/data/<dataset-name>.data"""
    return DATASET_RESOURCE_FORMAT.format(namespace=namespace, dataset=dataset_name)


def read_json_array_with_limit(
    resource: str, limit: int, resources_dir: Union[str, Path]
) -> List[Dict[str, Any]]:
    """Read the head of a JSON array resource.

    Args:
        resource: resource name, relative to the resources dir
        limit: maximum number of elements to read
        resources_dir: root directory of the resources

    Returns:
        The first min(limit, len(array)) objects of the array, in file order.

    Raises:
        OpenSearchFixtureError: if the resource is missing, unreadable or is not a
            JSON array of objects.
    """
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")

    path = Path(resources_dir) / resource
    try:
        with open(path, "r", encoding="utf-8") as file:
            records = json.load(file)
    except FileNotFoundError as e:
        raise OpenSearchFixtureError(
            f"Fixture resource {resource} not found in {resources_dir}"
        ) from e
    except OSError as e:
        raise OpenSearchFixtureError(f"Cannot read fixture resource {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise OpenSearchFixtureError(f"Fixture resource {path} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise OpenSearchFixtureError(f"Malformed JSON in fixture resource {path}: {e}") from e

    if not isinstance(records, list):
        raise OpenSearchFixtureError(
            f"Fixture resource {path} must hold a JSON array, got {type(records).__name__}"
        )

    head = records[:limit]
    for position, record in enumerate(head):
        if not isinstance(record, dict):
            raise OpenSearchFixtureError(
                f"Element {position} of fixture resource {path} is not a JSON object"
            )

    logger.debug("Read %s of %s records from %s", len(head), len(records), path)
    return head
