# ABOUTME: Credential resolution for the Elasticsearch admin client
# ABOUTME: Service-account token reading and admin certificate staging from Kubernetes Secrets

"""
Credential resolution for both authentication schemes.

=============================================================================
TWO SCHEMES
=============================================================================

TOKEN (tried first):
    The pod's service-account token is sent in ``x-forwarded-access-token``.
    The Elasticsearch proxy maps it to a user. The file is read on EVERY call
    because Kubernetes rotates projected tokens underneath running pods.

CERTIFICATE (fallback):
    Mutual TLS with the cluster's admin certificate. The certificate lives in
    a Kubernetes Secret named after the cluster, with three keys::

        admin-ca    CA bundle that signed the Elasticsearch server cert
        admin-cert  client certificate
        admin-key   client private key

    A SecretMaterializer copies those keys to ``<cert_root>/<cluster>/`` and
    the provider hands the file paths to the transport.

=============================================================================
BEST EFFORT BY CONTRACT
=============================================================================

Nothing in this module raises for missing credentials. A missing token means
no header is sent; missing certificate files mean an empty bundle. The
cluster then rejects the request (or the TLS handshake fails), which is
reported through the normal response/transport path instead of a second
error channel.
"""

from __future__ import annotations

import base64
import binascii
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog
import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

if TYPE_CHECKING:
    from es_admin.config import CredentialSettings, ElasticsearchCluster

logger = structlog.get_logger(__name__)

# Secret keys, also used as the staged file names.
ADMIN_CA = "admin-ca"
ADMIN_CERT = "admin-cert"
ADMIN_KEY = "admin-key"
ADMIN_SECRET_KEYS = (ADMIN_CA, ADMIN_CERT, ADMIN_KEY)


# =============================================================================
# CREDENTIAL BUNDLE
# =============================================================================


@dataclass(frozen=True)
class CredentialBundle:
    """
    Certificate material for one mutual-TLS attempt.

    Every field is optional: an empty bundle is valid and simply produces a
    TLS context that trusts the system CAs and presents no client cert.
    """

    ca_file: Path | None = None
    cert_file: Path | None = None
    key_file: Path | None = None

    @property
    def is_empty(self) -> bool:
        return self.ca_file is None and self.cert_file is None and self.key_file is None

    def ssl_context(self) -> ssl.SSLContext:
        """
        Build a verifying TLS context from the bundle.

        Unreadable or malformed files are logged and skipped; the handshake
        then fails on its own.
        """
        context = ssl.create_default_context()
        if self.ca_file is not None:
            try:
                context.load_verify_locations(cafile=str(self.ca_file))
            except (OSError, ssl.SSLError) as exc:
                logger.error("Unable to load admin CA", path=str(self.ca_file), error=str(exc))
        if self.cert_file is not None and self.key_file is not None:
            try:
                context.load_cert_chain(certfile=str(self.cert_file), keyfile=str(self.key_file))
            except (OSError, ssl.SSLError) as exc:
                logger.error(
                    "Unable to load admin client certificate",
                    cert=str(self.cert_file),
                    key=str(self.key_file),
                    error=str(exc),
                )
        return context


# =============================================================================
# PROTOCOLS
# =============================================================================


class SecretMaterializer(Protocol):
    """Copies a cluster's admin Secret to the local staging directory."""

    def materialize(self, name: str, namespace: str) -> None:
        """Best effort: failures are logged, never raised."""
        ...


class CredentialProvider(Protocol):
    """Source of credentials for the request executor."""

    def resolve_token(self) -> tuple[str, bool]:
        """Return ``(token, True)``, or ``("", False)`` when none is available."""
        ...

    def resolve_cert_bundle(self, cluster: ElasticsearchCluster) -> CredentialBundle:
        """Return the admin certificate material for ``cluster``."""
        ...


# =============================================================================
# KUBERNETES SECRET MATERIALIZER
# =============================================================================


class KubernetesSecretMaterializer:
    """
    Stage admin certificates from a Kubernetes Secret.

    The Kubernetes API client is created lazily on first use: in-cluster
    configuration first, the local kubeconfig as a fallback for running the
    CLI from a workstation.
    """

    def __init__(self, cert_root: Path, api: client.CoreV1Api | None = None) -> None:
        self._cert_root = cert_root
        self._api = api

    def _core_api(self) -> client.CoreV1Api:
        if self._api is None:
            try:
                config.load_incluster_config()
            except ConfigException:
                config.load_kube_config()
            self._api = client.CoreV1Api()
        return self._api

    def materialize(self, name: str, namespace: str) -> None:
        log = logger.bind(secret=name, namespace=namespace)

        try:
            secret = self._core_api().read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as exc:
            if exc.status == 404:
                log.error("Unable to find admin secret")
            else:
                log.error("Error reading admin secret", status=exc.status, reason=exc.reason)
            return
        except (ConfigException, OSError) as exc:
            log.error("Unable to configure Kubernetes client", error=str(exc))
            return
        except urllib3.exceptions.HTTPError as exc:
            log.error("Unable to reach Kubernetes API", error=str(exc))
            return

        target_dir = self._cert_root / name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.error("Error creating certificate directory", path=str(target_dir), error=str(exc))
            return

        data = secret.data or {}
        for key in ADMIN_SECRET_KEYS:
            encoded = data.get(key)
            if encoded is None:
                log.error("Admin secret key not found", key=key)
                continue
            try:
                content = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as exc:
                log.error("Admin secret key is not valid base64", key=key, error=str(exc))
                continue

            path = target_dir / key
            try:
                path.write_bytes(content)
                path.chmod(0o600)
            except OSError as exc:
                log.error("Error writing admin secret key", key=key, path=str(path), error=str(exc))


# =============================================================================
# FILE CREDENTIAL PROVIDER
# =============================================================================


class FileCredentialProvider:
    """
    Credentials read from the local filesystem.

    Nothing is cached: the token and the bundle are resolved again for every
    request so rotated tokens and refreshed certificates are picked up
    without restarting the controller.
    """

    def __init__(
        self,
        token_path: Path,
        cert_root: Path,
        materializer: SecretMaterializer | None = None,
    ) -> None:
        self._token_path = token_path
        self._cert_root = cert_root
        self._materializer = materializer

    @classmethod
    def from_settings(cls, settings: CredentialSettings) -> FileCredentialProvider:
        materializer = (
            KubernetesSecretMaterializer(settings.cert_root) if settings.materialize_secrets else None
        )
        return cls(settings.token_path, settings.cert_root, materializer)

    def resolve_token(self) -> tuple[str, bool]:
        try:
            token = self._token_path.read_text().strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Unable to read auth token", path=str(self._token_path), error=str(exc))
            return "", False

        if not token:
            logger.error("Unable to read auth token: empty token", path=str(self._token_path))
            return "", False

        return token, True

    def resolve_cert_bundle(self, cluster: ElasticsearchCluster) -> CredentialBundle:
        if self._materializer is not None:
            self._materializer.materialize(cluster.name, cluster.namespace)

        directory = self._cert_root / cluster.name

        def staged(key: str) -> Path | None:
            path = directory / key
            return path if path.is_file() else None

        bundle = CredentialBundle(
            ca_file=staged(ADMIN_CA),
            cert_file=staged(ADMIN_CERT),
            key_file=staged(ADMIN_KEY),
        )
        if bundle.is_empty:
            logger.warning("No admin certificates staged", cluster=cluster.name, path=str(directory))
        return bundle
