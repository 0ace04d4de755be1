# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Integration-test harness for the OpenSearch anomaly detection plugin."""
