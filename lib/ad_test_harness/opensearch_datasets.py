# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Loading of the synthetic datasets used by the anomaly detection tests.

A dataset is loaded in three steps:
    - the fixture records are read from their resource (see helper_fixtures)
    - the index is created with its mapping and the first `train_test_split` records are
      written in a single bulk request, each under the id of its position
    - the index is polled until the last written document is the most recent visible one

The search backend is only eventually consistent: a refresh is requested between every
polling attempt, and the polling budget is bounded. Running out of attempts is reported as
`PollOutcome.EXHAUSTED` and escalated to `OpenSearchIngestTimeoutError` by the loaders.
"""
import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from ad_test_harness.constants import (
    BULK_USER_AGENT,
    MAX_WAIT_CYCLES,
    POLL_INTERVAL_SECONDS,
    RULE_DATA_MAPPING,
    RULE_DATASET_NAME,
    SETTLE_INTERVAL_SECONDS,
    SYNTHETIC_DATA_MAPPING,
    SYNTHETIC_DATASET_NAME,
    TIMESTAMP_FIELD,
)
from ad_test_harness.helper_fixtures import dataset_resource_path, read_json_array_with_limit
from ad_test_harness.helper_time import parse_timestamp
from ad_test_harness.models import DatasetDefinition, PollOutcome
from ad_test_harness.opensearch_exceptions import (
    OpenSearchIngestError,
    OpenSearchIngestTimeoutError,
)
from ad_test_harness.opensearch_rest_client import OpenSearchRestClient

logger = logging.getLogger(__name__)


SYNTHETIC_DATASET = DatasetDefinition(name=SYNTHETIC_DATASET_NAME, mapping=SYNTHETIC_DATA_MAPPING)
RULE_DATASET = DatasetDefinition(name=RULE_DATASET_NAME, mapping=RULE_DATA_MAPPING)

LATEST_DOCUMENT_QUERY = {
    "query": {"match_all": {}},
    "size": 1,
    "sort": [{TIMESTAMP_FIELD: {"order": "desc"}}],
}


def parse_hits(response: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Hits of a search response, None if the response has no hits section."""
    hits = response.get("hits")
    if hits is None:
        return None
    return hits.get("hits")


def get_hits(
    client: OpenSearchRestClient, dataset_name: str, query: Dict[str, Any]
) -> Optional[List[Dict[str, Any]]]:
    """Run a search against the dataset index and return its hits."""
    return parse_hits(client.request("POST", f"{dataset_name}/_search", query))


def wait_all_synthetic_data_ingested(
    client: OpenSearchRestClient,
    expected_size: int,
    dataset_name: str,
    max_wait_cycles: int = MAX_WAIT_CYCLES,
    interval: float = POLL_INTERVAL_SECONDS,
) -> PollOutcome:
    """Wait until the last of `expected_size` documents is the most recent visible one.

    Args:
        client: client of the cluster holding the dataset
        expected_size: number of documents written, ids 0 to expected_size - 1
        dataset_name: name of the dataset index
        max_wait_cycles: attempts allowed after the first one
        interval: seconds to wait between attempts

    Returns:
        CONFIRMED as soon as the latest document has id expected_size - 1,
        EXHAUSTED if that never happened within the attempts budget.
    """
    expected_id = str(expected_size - 1)

    def _latest_document_visible() -> bool:
        hits = get_hits(client, dataset_name, LATEST_DOCUMENT_QUERY)
        logger.info("Latest %s data: %s", dataset_name, hits)
        if hits and len(hits) == 1 and str(hits[0].get("_id")) == expected_id:
            return True

        # make pending writes searchable before the next attempt
        client.request("POST", f"{dataset_name}/_refresh")
        return False

    visible = Retrying(
        stop=stop_after_attempt(max_wait_cycles + 1),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: result is False),
        retry_error_callback=lambda retry_state: False,
    )(_latest_document_visible)

    if not visible:
        logger.error(
            "Document %s of %s not visible after %s attempts.",
            expected_id,
            dataset_name,
            max_wait_cycles + 1,
        )
        return PollOutcome.EXHAUSTED

    return PollOutcome.CONFIRMED


def create_index(
    client: OpenSearchRestClient,
    dataset_name: str,
    mapping: Dict[str, Any],
    settle_interval: float = SETTLE_INTERVAL_SECONDS,
) -> None:
    """Create the dataset index with its mapping. The index must not exist yet."""
    client.request("PUT", dataset_name, mapping, strict_deprecation_mode=False)
    logger.info("Created index %s", dataset_name)
    time.sleep(settle_interval)


def bulk_encode(records: List[Dict[str, Any]], index_name: str, train_test_split: int) -> str:
    """Encode the first `train_test_split` records as a bulk request body."""
    lines = []
    for position, record in enumerate(records[:train_test_split]):
        lines.append(json.dumps({"index": {"_index": index_name, "_id": str(position)}}))
        lines.append(json.dumps(record))

    return "\n".join(lines) + "\n"


def _bulk_failures(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Errors of the failed items of a bulk response."""
    failures = []
    for item in response.get("items", []):
        for result in item.values():
            if result.get("error"):
                failures.append({"_id": result.get("_id"), "error": result["error"]})
    return failures


def bulk_index_train_data(
    client: OpenSearchRestClient,
    dataset_name: str,
    records: List[Dict[str, Any]],
    train_test_split: int,
    mapping: Dict[str, Any],
    settle_interval: float = SETTLE_INTERVAL_SECONDS,
    max_wait_cycles: int = MAX_WAIT_CYCLES,
    interval: float = POLL_INTERVAL_SECONDS,
) -> PollOutcome:
    """Create the dataset index and write the training records to it.

    Raises:
        OpenSearchIngestError: on empty input, a split larger than the records or
            failed bulk items.
        OpenSearchHttpError: if the index creation or the bulk request fail.
    """
    if not records:
        raise OpenSearchIngestError(f"No records to ingest into {dataset_name}.")
    if not 0 < train_test_split <= len(records):
        raise OpenSearchIngestError(
            f"Cannot ingest {train_test_split} records into {dataset_name}, "
            f"only {len(records)} were loaded."
        )

    create_index(client, dataset_name, mapping, settle_interval=settle_interval)

    response = client.request(
        "POST",
        "_bulk",
        bulk_encode(records, dataset_name, train_test_split),
        params={"refresh": "true"},
        headers={"User-Agent": BULK_USER_AGENT, "Content-Type": "application/x-ndjson"},
    )
    if response.get("errors"):
        failures = _bulk_failures(response)
        raise OpenSearchIngestError(
            f"{len(failures)} documents failed to be indexed in {dataset_name}: {failures[:3]}"
        )
    logger.info("Bulk indexed %s documents in %s", train_test_split, dataset_name)

    time.sleep(settle_interval)
    return wait_all_synthetic_data_ingested(
        client,
        train_test_split,
        dataset_name,
        max_wait_cycles=max_wait_cycles,
        interval=interval,
    )


def train_time(records: List[Dict[str, Any]], train_test_split: int) -> datetime:
    """Timestamp of the last training record."""
    raw = records[train_test_split - 1].get(TIMESTAMP_FIELD)
    if raw is None:
        raise OpenSearchIngestError(f"Record {train_test_split - 1} has no {TIMESTAMP_FIELD}.")

    try:
        return parse_timestamp(raw)
    except ValueError as e:
        raise OpenSearchIngestError(f"Invalid {TIMESTAMP_FIELD} {raw!r}: {e}") from e


def load_data(
    client: OpenSearchRestClient,
    dataset: DatasetDefinition,
    train_test_split: int,
    resources_dir: Union[str, Path],
    **kwargs,
) -> datetime:
    """Load a dataset and wait for it to be visible.

    Args:
        client: client of the cluster to load the dataset into
        dataset: the dataset to load
        train_test_split: the number of records of the training data
        resources_dir: root directory of the fixture resources
        kwargs: pacing overrides passed to `bulk_index_train_data`

    Returns:
        The train time, i.e. the timestamp of the last training record.

    Raises:
        OpenSearchIngestTimeoutError: if the data did not become visible in time.
    """
    data = read_json_array_with_limit(
        dataset_resource_path(dataset.name), train_test_split, resources_dir
    )

    outcome = bulk_index_train_data(
        client, dataset.name, data, train_test_split, dataset.mapping, **kwargs
    )
    if outcome is not PollOutcome.CONFIRMED:
        raise OpenSearchIngestTimeoutError(
            f"{train_test_split} documents of {dataset.name} not visible after ingestion."
        )

    return train_time(data, train_test_split)


def load_synthetic_data(
    client: OpenSearchRestClient, train_test_split: int, resources_dir: Union[str, Path], **kwargs
) -> datetime:
    """Load the synthetic dataset: timestamp and two double features."""
    return load_data(client, SYNTHETIC_DATASET, train_test_split, resources_dir, **kwargs)


def load_rule_data(
    client: OpenSearchRestClient, train_test_split: int, resources_dir: Union[str, Path], **kwargs
) -> datetime:
    """Load the rule dataset: timestamp, document count and component name."""
    return load_data(client, RULE_DATASET, train_test_split, resources_dir, **kwargs)
