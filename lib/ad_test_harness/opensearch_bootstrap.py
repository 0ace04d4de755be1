# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Builds the REST clients used by the tests, against a plain or a security enabled cluster.

The runtime flags are turned into a `ClientSettings` carrying one of three transports:
`PlainTransport`, `SecuredWithKeystore` (admin client with trust material on disk) or
`SecuredWithBasicAuth` (trust all certificates + user / password). `build_client` is the
single place consuming that configuration.
"""
import logging
from typing import Optional

from ad_test_harness.constants import (
    CLIENT_SOCKET_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_SOCKET_TIMEOUT,
)
from ad_test_harness.helper_security import keystore_material
from ad_test_harness.helper_time import parse_time_value
from ad_test_harness.models import (
    ClientSettings,
    PlainTransport,
    RuntimeFlags,
    SecuredWithBasicAuth,
)
from ad_test_harness.opensearch_exceptions import OpenSearchConfigurationError
from ad_test_harness.opensearch_rest_client import OpenSearchRestClient

logger = logging.getLogger(__name__)


def is_https(flags: RuntimeFlags) -> bool:
    """Whether the cluster under test has security enabled.

    Raises:
        OpenSearchConfigurationError: if security is enabled but no cluster address is set,
            only external clusters are supported for security enabled testing.
    """
    if flags.https and not flags.hosts:
        raise OpenSearchConfigurationError(
            "cluster url should be provided for security enabled testing"
        )

    return flags.https


def basic_auth_transport(flags: RuntimeFlags) -> SecuredWithBasicAuth:
    """Trust-all transport authenticated with the runtime supplied credentials."""
    if not flags.user:
        raise OpenSearchConfigurationError("user name is missing")
    if flags.password is None or not flags.password.get_secret_value():
        raise OpenSearchConfigurationError("password is missing")

    return SecuredWithBasicAuth(username=flags.user, password=flags.password)


def client_settings(flags: RuntimeFlags, admin: bool = False) -> ClientSettings:
    """Build the settings of the regular or of the admin client.

    The admin client is only used for cleanup and privileged calls: deprecation warnings
    are not fatal for it, and it authenticates with the admin certificate when the
    keystore material is available.
    """
    secured = is_https(flags)
    if not secured:
        transport = PlainTransport()
    elif admin and (keystore := keystore_material(flags.resources_dir)):
        logger.info("Using keystore material from %s for the admin client", flags.resources_dir)
        transport = keystore
    else:
        transport = basic_auth_transport(flags)

    socket_timeout = parse_time_value(
        flags.socket_timeout or DEFAULT_SOCKET_TIMEOUT, CLIENT_SOCKET_TIMEOUT
    )

    return ClientSettings(
        hosts=flags.hosts or [DEFAULT_HOST],
        transport=transport,
        strict_deprecation_mode=not admin,
        socket_timeout=socket_timeout,
        path_prefix=flags.path_prefix,
    )


def build_client(settings: ClientSettings) -> OpenSearchRestClient:
    """Create a REST client from its settings."""
    logger.info(
        "Building %s REST client for %s (strict deprecation mode: %s)",
        settings.transport.mode,
        settings.hosts,
        settings.strict_deprecation_mode,
    )
    return OpenSearchRestClient(settings)


def client(flags: Optional[RuntimeFlags] = None) -> OpenSearchRestClient:
    """REST client for the tests, built from the environment when no flags are given."""
    return build_client(client_settings(flags or RuntimeFlags.from_env()))


def admin_client(flags: Optional[RuntimeFlags] = None) -> OpenSearchRestClient:
    """Privileged REST client for cleanup and cluster wide operations."""
    return build_client(client_settings(flags or RuntimeFlags.from_env(), admin=True))
