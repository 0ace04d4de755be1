# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Harness-related data structures / model classes."""
import json
import logging
import os
from abc import ABC
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from ad_test_harness.constants import (
    DEFAULT_MAX_CONN_PER_ROUTE,
    DEFAULT_MAX_CONN_TOTAL,
    ENV_CLUSTER,
    ENV_HTTPS,
    ENV_PASSWORD,
    ENV_PATH_PREFIX,
    ENV_RESOURCES_DIR,
    ENV_SOCKET_TIMEOUT,
    ENV_USER,
)

logger = logging.getLogger(__name__)


class BaseStrEnum(str, Enum):
    """Base class for string enums."""

    def __str__(self) -> str:
        """Returns the value of the enum."""
        return self.value


class Model(ABC, BaseModel):
    """Base model class."""

    def to_str(self, by_alias: bool = False) -> str:
        """Deserialize object into a string."""
        return json.dumps(self.to_dict(by_alias=by_alias), sort_keys=True)

    def to_dict(self, by_alias: bool = False) -> Dict[str, Any]:
        """Deserialize object into a dict."""
        return self.model_dump(mode="json", by_alias=by_alias)

    @classmethod
    def from_dict(cls, input_dict: Optional[Dict[str, Any]]):
        """Create a new instance of this class from a json/dict repr."""
        if not input_dict:  # to handle when classes defined defaults
            return cls()
        return cls(**input_dict)

    @classmethod
    def from_str(cls, input_str_dict: str):
        """Create a new instance of this class from a stringified json/dict repr."""
        return cls.model_validate_json(input_str_dict)


class PlainTransport(Model):
    """Plain HTTP access, no TLS and no credentials."""

    mode: Literal["plain"] = "plain"

    @property
    def scheme(self) -> str:
        """URL scheme of this transport."""
        return "http"


class SecuredWithKeystore(Model):
    """TLS access authenticated by a client certificate, trusting the given CA."""

    mode: Literal["secured-keystore"] = "secured-keystore"
    ca_cert: Path
    client_cert: Path
    client_key: Path
    verify_hostname: bool = False

    @property
    def scheme(self) -> str:
        """URL scheme of this transport."""
        return "https"


class SecuredWithBasicAuth(Model):
    """TLS access with basic credentials, trusting every certificate.

    Test clusters run on self-signed certificates, this must never be used
    outside of tests.
    """

    mode: Literal["secured-basic-auth"] = "secured-basic-auth"
    username: str
    password: SecretStr

    @field_validator("username")
    @classmethod
    def username_set(cls, v: str) -> str:
        """Reject blank user names."""
        if not v.strip():
            raise ValueError("user name is missing")
        return v

    @property
    def scheme(self) -> str:
        """URL scheme of this transport."""
        return "https"


Transport = Annotated[
    Union[PlainTransport, SecuredWithKeystore, SecuredWithBasicAuth],
    Field(discriminator="mode"),
]


class ClientSettings(Model):
    """Everything needed to build a REST client against the cluster under test."""

    hosts: List[str]
    transport: Transport = Field(default_factory=PlainTransport)
    strict_deprecation_mode: bool = True
    socket_timeout: Optional[float] = 60.0
    path_prefix: Optional[str] = None
    max_conn_per_route: int = DEFAULT_MAX_CONN_PER_ROUTE
    max_conn_total: int = DEFAULT_MAX_CONN_TOTAL
    default_headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("hosts")
    @classmethod
    def hosts_set(cls, v: List[str]) -> List[str]:
        """At least one host is required."""
        hosts = [host.strip() for host in v if host and host.strip()]
        if not hosts:
            raise ValueError("at least one host must be provided")
        return hosts

    @field_validator("socket_timeout")
    @classmethod
    def no_timeout_when_zero(cls, v: Optional[float]) -> Optional[float]:
        """A zero socket timeout disables the timeout."""
        if v is not None and v < 0:
            raise ValueError("socket_timeout cannot be negative")
        return v or None

    @field_validator("path_prefix")
    @classmethod
    def normalize_path_prefix(cls, v: Optional[str]) -> Optional[str]:
        """Path prefixes start with a single slash and have no trailing one."""
        if not v or not v.strip("/"):
            return None
        return "/" + v.strip("/")

    @model_validator(mode="after")
    def pool_limits(self) -> "ClientSettings":
        """The per route limit cannot exceed the total pool size."""
        if self.max_conn_per_route <= 0 or self.max_conn_total <= 0:
            raise ValueError("connection pool limits must be positive")
        if self.max_conn_per_route > self.max_conn_total:
            raise ValueError("max_conn_per_route cannot exceed max_conn_total")
        return self

    @property
    def base_urls(self) -> List[str]:
        """Base URL of every host, path prefix included."""
        prefix = self.path_prefix or ""
        urls = []
        for host in self.hosts:
            if "://" not in host:
                host = f"{self.transport.scheme}://{host}"
            urls.append(f"{host.rstrip('/')}{prefix}")
        return urls


class RuntimeFlags(Model):
    """Runtime supplied configuration, consumed at client bootstrap time."""

    https: bool = False
    cluster: Optional[str] = None
    user: Optional[str] = None
    password: Optional[SecretStr] = None
    socket_timeout: Optional[str] = None
    path_prefix: Optional[str] = None
    resources_dir: Path = Path("tests/resources")

    @field_validator("cluster", "user", "socket_timeout", "path_prefix", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Empty environment variables count as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def hosts(self) -> List[str]:
        """The configured cluster addresses."""
        if not self.cluster:
            return []
        return [host.strip() for host in self.cluster.split(",") if host.strip()]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeFlags":
        """Read the runtime flags from the environment."""
        environ = os.environ if environ is None else environ
        flags = {
            "https": environ.get(ENV_HTTPS, "").strip().lower() == "true",
            "cluster": environ.get(ENV_CLUSTER),
            "user": environ.get(ENV_USER),
            "password": environ.get(ENV_PASSWORD),
            "socket_timeout": environ.get(ENV_SOCKET_TIMEOUT),
            "path_prefix": environ.get(ENV_PATH_PREFIX),
        }
        if resources_dir := environ.get(ENV_RESOURCES_DIR):
            flags["resources_dir"] = Path(resources_dir)

        return cls(**flags)


class PollOutcome(BaseStrEnum):
    """Result of waiting for an ingested dataset to become visible."""

    CONFIRMED = "confirmed"
    EXHAUSTED = "exhausted"


class IndexInfo(Model):
    """One row of the _cat/indices listing."""

    index: Optional[str] = None
    health: Optional[str] = None
    status: Optional[str] = None
    docs_count: Optional[str] = Field(default=None, alias="docs.count")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class IndexListing(Model):
    """The _cat/indices listing, a JSON array or a single object depending on cardinality."""

    indices: List[IndexInfo] = Field(default_factory=list)

    @classmethod
    def from_response(cls, payload: Union[List[Dict[str, Any]], Dict[str, Any]]) -> "IndexListing":
        """Normalize both response shapes into a listing."""
        if isinstance(payload, dict):
            payload = [payload] if payload else []
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected _cat/indices response: {payload!r}")

        return cls(indices=[IndexInfo.model_validate(row) for row in payload])

    @property
    def names(self) -> List[str]:
        """Names of the listed indices."""
        return [info.index for info in self.indices if info.index]


class DatasetDefinition(Model):
    """A named index and its mapping."""

    name: str
    mapping: Dict[str, Any]
