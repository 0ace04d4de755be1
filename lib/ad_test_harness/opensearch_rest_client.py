# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Implements the REST client used by the tests to talk to the cluster.

The client is a thin layer on top of a pooled `requests.Session`: every call goes through
`request`, which fails over between the configured hosts on connection errors, turns non 2xx
responses into `OpenSearchHttpError` and enforces the deprecation warnings strictness.
"""
import json
import logging
import ssl
import warnings
from typing import Any, Dict, List, Optional, Union

import requests
import urllib3
from requests.adapters import HTTPAdapter

from ad_test_harness.helper_security import tls_context
from ad_test_harness.models import (
    ClientSettings,
    PlainTransport,
    SecuredWithBasicAuth,
)
from ad_test_harness.opensearch_exceptions import (
    OpenSearchDeprecationWarningError,
    OpenSearchHttpError,
)

logger = logging.getLogger(__name__)


class PoolingTlsAdapter(HTTPAdapter):
    """Transport adapter applying the pool limits and TLS context of the client settings."""

    def __init__(
        self,
        pool_connections: int,
        pool_maxsize: int,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self.ssl_context = ssl_context
        super().__init__(
            pool_connections=pool_connections, pool_maxsize=pool_maxsize, max_retries=0
        )

    def init_poolmanager(self, *args, **kwargs):
        """Hand the TLS context over to the urllib3 pools."""
        if self.ssl_context is not None:
            kwargs["ssl_context"] = self.ssl_context
            if not self.ssl_context.check_hostname:
                kwargs["assert_hostname"] = False
        return super().init_poolmanager(*args, **kwargs)


class OpenSearchRestClient:
    """REST client bound to the cluster under test."""

    def __init__(self, settings: ClientSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self._base_urls = settings.base_urls
        self._current_host = 0
        # per request, a CA bundle from the environment overrides session.verify
        self._trust_all = isinstance(settings.transport, SecuredWithBasicAuth)
        self._session = session or self._build_session(settings)

    @staticmethod
    def _build_session(settings: ClientSettings) -> requests.Session:
        """Create the pooled session matching the transport of the settings."""
        transport = settings.transport
        session = requests.Session()
        session.headers.update(settings.default_headers)

        ssl_context = None
        if not isinstance(transport, PlainTransport):
            ssl_context = tls_context(transport)

        if isinstance(transport, SecuredWithBasicAuth):
            session.auth = (transport.username, transport.password.get_secret_value())
            session.verify = False

        adapter = PoolingTlsAdapter(
            pool_connections=max(1, settings.max_conn_total // settings.max_conn_per_route),
            pool_maxsize=settings.max_conn_per_route,
            ssl_context=ssl_context,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @property
    def hosts(self) -> List[str]:
        """Base URLs of the hosts this client talks to."""
        return list(self._base_urls)

    def close(self) -> None:
        """Release the pooled connections."""
        logger.debug("Closing REST client for %s", self._base_urls)
        self._session.close()

    def __enter__(self) -> "OpenSearchRestClient":
        """Enter the runtime context."""
        return self

    def __exit__(self, *exc) -> None:
        """Close the client when leaving the runtime context."""
        self.close()

    def request(  # noqa: C901
        self,
        method: str,
        endpoint: str,
        payload: Optional[Union[Dict[str, Any], List[Any], str, bytes]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        resp_status_code: bool = False,
        json_resp: bool = True,
        strict_deprecation_mode: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> Union[Dict[str, Any], List[Any], int, requests.Response]:
        """Make an HTTP request against the cluster.

        Args:
            method: matching the known http methods.
            endpoint: relative to the base uri.
            payload: JSON / map body payload, or a raw str / bytes body.
            params: query string parameters.
            headers: extra headers for this request only.
            resp_status_code: whether to only return the HTTP code from the response.
            json_resp: return a json response or the raw response object.
            strict_deprecation_mode: override of the client wide warnings strictness.
            timeout: override of the client socket timeout, in seconds.

        Raises:
            OpenSearchHttpError: on connection failures and non 2xx responses.
            OpenSearchDeprecationWarningError: on responses carrying warnings in strict mode.
        """
        if None in [endpoint, method]:
            raise ValueError("endpoint or method missing")

        endpoint = endpoint.lstrip("/")

        request_kwargs = {
            "params": params,
            "headers": {"Accept": "application/json", **(headers or {})},
            "timeout": _timeout(self.settings.socket_timeout if timeout is None else timeout),
        }
        if self._trust_all:
            request_kwargs["verify"] = False
        if isinstance(payload, (str, bytes)):
            request_kwargs["data"] = payload
            request_kwargs["headers"].setdefault("Content-Type", "application/json")
        elif payload is not None:
            request_kwargs["data"] = json.dumps(payload)
            request_kwargs["headers"]["Content-Type"] = "application/json"

        response = self._send(method.upper(), endpoint, request_kwargs)

        if resp_status_code:
            return response.status_code

        if not response.ok:
            raise OpenSearchHttpError(
                response_body=_json_or_empty(response),
                response_code=response.status_code,
                response_text=response.text,
            )

        response_warnings = _response_warnings(response)
        if response_warnings:
            strict = (
                self.settings.strict_deprecation_mode
                if strict_deprecation_mode is None
                else strict_deprecation_mode
            )
            if strict:
                raise OpenSearchDeprecationWarningError(response_warnings, response.status_code)
            logger.warning(
                "%s /%s returned warnings: %s", method.upper(), endpoint, response_warnings
            )

        if not json_resp:
            return response

        return response.json() if response.content else {}

    def _send(self, method: str, endpoint: str, request_kwargs: Dict[str, Any]):
        """Send the request, failing over to the next host on connection errors."""
        last_error = None
        for offset in range(len(self._base_urls)):
            index = (self._current_host + offset) % len(self._base_urls)
            url = f"{self._base_urls[index]}/{endpoint}"
            logger.debug("%s %s", method, url)
            try:
                with warnings.catch_warnings():
                    if self._trust_all:
                        warnings.simplefilter("ignore", urllib3.exceptions.InsecureRequestWarning)
                    response = self._session.request(method, url, **request_kwargs)
            except requests.ConnectionError as e:
                logger.warning("Request %s %s failed: %s", method, url, e)
                last_error = e
                continue
            except requests.Timeout as e:
                raise OpenSearchHttpError(response_text=str(e)) from e

            self._current_host = index
            return response

        raise OpenSearchHttpError(response_text=str(last_error)) from last_error


def _json_or_empty(response: requests.Response) -> Union[Dict[str, Any], List[Any]]:
    """Decode a JSON body, empty bodies and non JSON bodies decode to an empty dict."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}


def _response_warnings(response: requests.Response) -> List[str]:
    """Every `Warning` header of the response."""
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Warning"))

    warning = response.headers.get("Warning")
    return [warning] if warning else []


def _timeout(seconds: Optional[float]) -> Optional[float]:
    """Zero means no timeout, as for the socket timeout setting of the cluster clients."""
    return seconds or None
