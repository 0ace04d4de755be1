# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Calls into the anomaly detection plugin API used by the data dependent tests."""
import itertools
import logging
from typing import Any, Dict, Iterable, List

from ad_test_harness.constants import (
    AD_BASE_DETECTORS_URI,
    SPARSE_DATA_MESSAGE,
    TIMESTAMP_FIELD,
    VALIDATE,
)
from ad_test_harness.opensearch_rest_client import OpenSearchRestClient

logger = logging.getLogger(__name__)


def validate_detector(
    client: OpenSearchRestClient, detector: Dict[str, Any], validation_type: str = "model"
) -> Dict[str, Any]:
    """Run the validate API of the plugin against a detector definition."""
    response = client.request(
        "POST", f"{AD_BASE_DETECTORS_URI}/{VALIDATE}/{validation_type}", detector
    )
    logger.debug("Validation of %s: %s", detector.get("name"), response)
    return response


def filtered_max_feature(
    name: str, field: str, before_ms: int, filter_name: str
) -> Dict[str, Any]:
    """Feature taking the max of a field over the documents older than `before_ms`."""
    return {
        "feature_id": name,
        "feature_name": name,
        "feature_enabled": True,
        "importance": 1,
        "aggregation_query": {
            filter_name: {
                "filter": {"bool": {"must": [{"range": {TIMESTAMP_FIELD: {"lt": before_ms}}}]}},
                "aggregations": {name: {"max": {"field": field}}},
            }
        },
    }


def two_feature_sparse_detector(
    index: str, feature_filter_ms: int, window_delay_minutes: int
) -> Dict[str, Any]:
    """Detector whose two features only see the data older than `feature_filter_ms`."""
    return {
        "name": "Second-Test-Detector-4",
        "description": "ok rate",
        "time_field": TIMESTAMP_FIELD,
        "indices": [index],
        "feature_attributes": [
            filtered_max_feature(
                "max1", "transform._doc_count", feature_filter_ms, "filtered_max_1"
            ),
            filtered_max_feature(
                "max2", "transform._doc_count", feature_filter_ms, "filtered_max_2"
            ),
        ],
        "window_delay": {"period": {"interval": window_delay_minutes, "unit": "MINUTES"}},
        "ui_metadata": {"aabb": {"ab": "bb"}},
        "schema_version": 2,
        "detection_interval": {"period": {"interval": 10, "unit": "MINUTES"}},
    }


def sparse_feature_messages(feature_names: Iterable[str]) -> List[str]:
    """Every accepted combined sparsity message, features are reported in any order."""
    return [
        ", ".join(f"{SPARSE_DATA_MESSAGE}: {name}" for name in ordering)
        for ordering in itertools.permutations(feature_names)
    ]
