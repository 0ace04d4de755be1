# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Helpers for security related operations, such as trust material and TLS contexts."""
import logging
import math
import ssl
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from cryptography import x509

from ad_test_harness.constants import (
    SECURITY_ADMIN_CERT,
    SECURITY_ADMIN_KEY,
    SECURITY_CA_PEM,
    SECURITY_DIR,
)
from ad_test_harness.models import SecuredWithBasicAuth, SecuredWithKeystore
from ad_test_harness.opensearch_exceptions import OpenSearchConfigurationError

logger = logging.getLogger(__name__)


CERT_EXPIRATION_WARNING_HOURS = 24


def split_ca_chain(pem_content: str) -> list[str]:
    """Split PEM chain into individual certificates."""
    end_cert_marker = "-----END CERTIFICATE-----"
    parts = [part.strip() for part in pem_content.split(end_cert_marker) if part.strip()]
    return [f"{part}\n{end_cert_marker}" for part in parts]


def cert_expiration_remaining_hours(cert: Union[str, x509.Certificate]) -> int:
    """Returns the remaining hours for the cert to expire."""
    if isinstance(cert, str):
        cert = x509.load_pem_x509_certificate(data=cert.encode())
    time_difference = cert.not_valid_after_utc - datetime.now(timezone.utc)

    return math.floor(time_difference.total_seconds() / 3600)


def keystore_material(resources_dir: Union[str, Path]) -> Optional[SecuredWithKeystore]:
    """Returns the admin trust material if all of it is present under the resources dir."""
    security_dir = Path(resources_dir) / SECURITY_DIR
    ca_cert = security_dir / SECURITY_CA_PEM
    client_cert = security_dir / SECURITY_ADMIN_CERT
    client_key = security_dir / SECURITY_ADMIN_KEY

    missing = [path.name for path in (ca_cert, client_cert, client_key) if not path.is_file()]
    if missing:
        logger.debug("No keystore material in %s, missing: %s", security_dir, missing)
        return None

    return SecuredWithKeystore(
        ca_cert=ca_cert.absolute(),
        client_cert=client_cert.absolute(),
        client_key=client_key.absolute(),
    )


def load_certificates(path: Path) -> List[x509.Certificate]:
    """Load every certificate of a PEM file.

    Raises:
        OpenSearchConfigurationError: if the file cannot be read or holds no valid certificate.
    """
    try:
        chain = split_ca_chain(path.read_text())
        certs = [x509.load_pem_x509_certificate(pem.encode()) for pem in chain]
    except (OSError, ValueError) as e:
        raise OpenSearchConfigurationError(f"Invalid certificate file {path}: {e}") from e

    if not certs:
        raise OpenSearchConfigurationError(f"No certificate found in {path}")

    return certs


def check_trust_material(transport: SecuredWithKeystore) -> None:
    """Validate the CA and client certificates, warning about the ones close to expiry."""
    for path in (transport.ca_cert, transport.client_cert):
        for cert in load_certificates(path):
            remaining = cert_expiration_remaining_hours(cert)
            if remaining < 0:
                raise OpenSearchConfigurationError(
                    f"Certificate {cert.subject.rfc4514_string()} in {path} has expired."
                )
            if remaining < CERT_EXPIRATION_WARNING_HOURS:
                logger.warning(
                    "Certificate %s in %s expires in %s hours.",
                    cert.subject.rfc4514_string(),
                    path,
                    remaining,
                )


def tls_context(transport: Union[SecuredWithKeystore, SecuredWithBasicAuth]) -> ssl.SSLContext:
    """Build the TLS context of a secured transport."""
    if isinstance(transport, SecuredWithKeystore):
        check_trust_material(transport)
        context = ssl.create_default_context(cafile=str(transport.ca_cert))
        context.check_hostname = transport.verify_hostname
        try:
            context.load_cert_chain(
                certfile=str(transport.client_cert), keyfile=str(transport.client_key)
            )
        except (OSError, ssl.SSLError) as e:
            raise OpenSearchConfigurationError(
                f"Cannot load client certificate {transport.client_cert}: {e}"
            ) from e
        return context

    # trust all certificates, test clusters only
    logger.warning("TLS certificate and hostname verification are disabled.")
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
