# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Cluster wide operations: cleanup between tests and cluster settings."""
import logging
import time
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, Iterator, List

from ad_test_harness.constants import (
    BACKOFF_MINUTES,
    CLUSTER_SETTINGS_SETTLE_SECONDS,
    MAX_RETRY_FOR_UNRESPONSIVE_NODE,
    PROTECTED_INDICES,
)
from ad_test_harness.models import IndexListing
from ad_test_harness.opensearch_exceptions import OpenSearchHttpError
from ad_test_harness.opensearch_rest_client import OpenSearchRestClient

logger = logging.getLogger(__name__)


def list_indices(admin_client: OpenSearchRestClient) -> IndexListing:
    """Every index of the cluster, hidden and system ones included."""
    response = admin_client.request(
        "GET", "_cat/indices", params={"format": "json", "expand_wildcards": "all"}
    )
    return IndexListing.from_response(response)


def wipe_all_indices(admin_client: OpenSearchRestClient) -> List[str]:
    """Delete every index but the security one.

    The security index cannot be deleted, and is needed by the following tests.

    Returns:
        The names of the deleted indices.
    """
    deleted = []
    for index_name in list_indices(admin_client).names:
        if index_name in PROTECTED_INDICES:
            continue

        delete_index_with_admin_client(admin_client, index_name)
        deleted.append(index_name)

    if deleted:
        logger.info("Deleted indices: %s", deleted)
    return deleted


def delete_index_with_admin_client(admin_client: OpenSearchRestClient, name: str) -> None:
    """Delete an index, system indices included."""
    admin_client.request("DELETE", name)


def index_exists_with_admin_client(admin_client: OpenSearchRestClient, name: str) -> bool:
    """Whether an index exists, system indices included."""
    status = admin_client.request("HEAD", name, resp_status_code=True)
    if status == 200:
        return True
    if status == 404:
        return False

    raise OpenSearchHttpError(
        response_code=status, response_text=f"Unexpected status checking index {name}"
    )


def get_persistent_settings(client: OpenSearchRestClient) -> Dict[str, Any]:
    """The persistent cluster settings, with flat keys."""
    response = client.request("GET", "_cluster/settings", params={"flat_settings": "true"})
    return response.get("persistent", {})


def put_persistent_settings(client: OpenSearchRestClient, settings: Dict[str, Any]) -> None:
    """Update persistent cluster settings, None values reset a setting to its default."""
    response = client.request("PUT", "_cluster/settings", {"persistent": settings})
    if not response.get("acknowledged"):
        raise OpenSearchHttpError(
            response_body=response, response_text="Cluster settings update not acknowledged."
        )


def update_cluster_settings(
    client: OpenSearchRestClient,
    setting_key: str,
    value: Any,
    settle_interval: float = CLUSTER_SETTINGS_SETTLE_SECONDS,
) -> None:
    """Update a single persistent cluster setting."""
    status = client.request(
        "PUT", "_cluster/settings", {"persistent": {setting_key: value}}, resp_status_code=True
    )
    if status != 200:
        raise OpenSearchHttpError(
            response_code=status, response_text=f"Failed to update cluster setting {setting_key}"
        )

    # let the nodes apply the new value
    time.sleep(settle_interval)


@contextmanager
def persistent_cluster_settings(
    client: OpenSearchRestClient, settings: Dict[str, Any]
) -> Iterator[Dict[str, Any]]:
    """Apply persistent cluster settings for the duration of the context only.

    Yields:
        The values the settings had before, None for the unset ones.
    """
    current = get_persistent_settings(client)
    previous = {key: current.get(key) for key in settings}

    logger.info("Applying cluster settings %s", settings)
    put_persistent_settings(client, settings)
    try:
        yield previous
    finally:
        logger.info("Restoring cluster settings %s", previous)
        put_persistent_settings(client, previous)


def resource_not_found_fault_tolerance_disabled(
    admin_client: OpenSearchRestClient,
) -> ContextManager[Dict[str, Any]]:
    """Disable the muting of nodes repeatedly failing to find a model.

    Real time detection mutes a node after a few ResourceNotFoundException in a row. With
    a single node cluster and a lot of quick requests, cold start cannot complete before the
    node is muted and there is no other node to fall back on.
    """
    return persistent_cluster_settings(
        admin_client,
        {MAX_RETRY_FOR_UNRESPONSIVE_NODE: 100_000, BACKOFF_MINUTES: 0},
    )
