# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""In this file we declare the constants used by the test harness."""

# Datasets
SYNTHETIC_DATASET_NAME = "synthetic"
RULE_DATASET_NAME = "rule"
DATA_NAMESPACE = "ad/e2e"
DATASET_RESOURCE_FORMAT = "{namespace}/data/{dataset}.data"
TIMESTAMP_FIELD = "timestamp"

SYNTHETIC_DATA_MAPPING = {
    "mappings": {
        "properties": {
            "timestamp": {"type": "date"},
            "Feature1": {"type": "double"},
            "Feature2": {"type": "double"},
        }
    }
}
RULE_DATA_MAPPING = {
    "mappings": {
        "properties": {
            "timestamp": {"type": "date"},
            "transform._doc_count": {"type": "integer"},
            "componentName": {"type": "keyword"},
        }
    }
}

# Ingestion
BULK_USER_AGENT = "Kibana"
MAX_WAIT_CYCLES = 3
POLL_INTERVAL_SECONDS = 1.0
SETTLE_INTERVAL_SECONDS = 1.0
CLUSTER_SETTINGS_SETTLE_SECONDS = 2.0

# Cluster
SECURITY_INDEX = ".opendistro_security"
PROTECTED_INDICES = frozenset({SECURITY_INDEX})
DEFAULT_HOST = "localhost:9200"
MAX_RETRY_FOR_UNRESPONSIVE_NODE = "plugins.timeseries.max_retry_for_unresponsive_node"
BACKOFF_MINUTES = "plugins.timeseries.backoff_minutes"

# Client
DEFAULT_SOCKET_TIMEOUT = "60s"
DEFAULT_MAX_CONN_PER_ROUTE = 10
DEFAULT_MAX_CONN_TOTAL = 30
CLIENT_SOCKET_TIMEOUT = "client.socket.timeout"
CLIENT_PATH_PREFIX = "client.path.prefix"

# Trust material, relative to the resources directory
SECURITY_DIR = "security"
SECURITY_CA_PEM = "sample.pem"
SECURITY_ADMIN_CERT = "kirk.pem"
SECURITY_ADMIN_KEY = "kirk-key.pem"

# Environment variables read at bootstrap
ENV_HTTPS = "HTTPS"
ENV_CLUSTER = "TESTS_REST_CLUSTER"
ENV_USER = "OPENSEARCH_USER"
ENV_PASSWORD = "OPENSEARCH_PASSWORD"
ENV_SOCKET_TIMEOUT = "CLIENT_SOCKET_TIMEOUT"
ENV_PATH_PREFIX = "CLIENT_PATH_PREFIX"
ENV_RESOURCES_DIR = "TESTS_RESOURCES_DIR"

# Anomaly detection plugin
AD_BASE_DETECTORS_URI = "/_plugins/_anomaly_detection/detectors"
VALIDATE = "_validate"
SPARSE_DATA_MESSAGE = (
    "Data is most likely too sparse when given feature queries are applied. "
    "Consider revising feature queries"
)
