# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""File containing all OpenSearch test harness related exceptions."""
from typing import Any, Optional


class OpenSearchError(Exception):
    """Base exception class for OpenSearch test harness errors."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.message = message


class OpenSearchConfigurationError(OpenSearchError):
    """Exception thrown when the runtime configuration is invalid or incomplete."""


class OpenSearchFixtureError(OpenSearchError):
    """Exception thrown when a fixture resource cannot be read or parsed."""


class OpenSearchIngestError(OpenSearchError):
    """Exception thrown when a dataset cannot be ingested."""


class OpenSearchIngestTimeoutError(OpenSearchIngestError):
    """Exception thrown when an ingested dataset did not become visible in time."""


class OpenSearchHttpError(OpenSearchError):
    """Exception thrown when an OpenSearch REST call fails."""

    def __init__(
        self,
        response_body: Optional[Any] = None,
        response_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ):
        self.response_body = response_body or {}
        self.response_code = response_code
        self.response_text = response_text
        super().__init__(f"HTTP error {response_code=}\n{response_text=}")

    @property
    def error_type(self) -> Optional[str]:
        """Type of the OpenSearch error, if the body carries one."""
        if not isinstance(self.response_body, dict):
            return None
        return (self.response_body.get("error") or {}).get("type")


class OpenSearchDeprecationWarningError(OpenSearchHttpError):
    """Exception thrown when a response carries warnings while in strict deprecation mode."""

    def __init__(self, warnings: list[str], response_code: Optional[int] = None):
        self.warnings = warnings
        super().__init__(response_code=response_code, response_text="\n".join(warnings))
