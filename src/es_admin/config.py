# ABOUTME: Configuration management for the Elasticsearch admin client
# ABOUTME: Handles environment variables, credential locations, and transport tuning

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module holds all configuration for the admin client. It:

1. READS environment variables (like ES_CLUSTER_NAME, ES_ADMIN_TOKEN_PATH)
2. VALIDATES them (non-empty cluster names, valid log levels, numbers)
3. PROVIDES typed access to settings throughout the package

=============================================================================
ARCHITECTURE: FOUR CONFIGURATION CLASSES
=============================================================================

1. ElasticsearchCluster: identity of ONE cluster
   - Kubernetes service name, namespace, HTTP port
   - Turned into https://<name>.<namespace>.svc:<port>

2. CredentialSettings: where credentials come from (ES_ADMIN_ prefix)
   - Mounted service-account token file
   - Staging root holding admin-ca / admin-cert / admin-key per cluster

3. TransportSettings: HTTP connection tuning (ES_ADMIN_TRANSPORT_ prefix)
   - Connect timeout, read timeout, keepalive pool

4. AdminSettings: main configuration container
   - Default target cluster, template pattern, logging, audit log
   - Contains the two settings groups above as nested objects

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

Target cluster:
    ES_CLUSTER_NAME                 -> Elasticsearch service name
    ES_CLUSTER_NAMESPACE            -> Namespace the service lives in

Credentials:
    ES_ADMIN_TOKEN_PATH             -> Service-account token file
    ES_ADMIN_CERT_ROOT              -> Staging root for admin certificates
    ES_ADMIN_MATERIALIZE_SECRETS    -> Refresh certificates from the Secret

Transport:
    ES_ADMIN_TRANSPORT_CONNECT_TIMEOUT          -> TCP connect + TLS handshake
    ES_ADMIN_TRANSPORT_READ_TIMEOUT             -> Unset means wait forever
    ES_ADMIN_TRANSPORT_MAX_KEEPALIVE_CONNECTIONS
    ES_ADMIN_TRANSPORT_KEEPALIVE_EXPIRY

General:
    ES_ADMIN_TEMPLATE_PATTERN       -> Templates managed by replica convergence
    ES_ADMIN_LOG_LEVEL, ES_ADMIN_JSON_LOGS, ES_ADMIN_AUDIT_LOG
"""

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Mounted by Kubernetes into every pod that runs under a service account.
DEFAULT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"

# Elasticsearch HTTP port exposed by the cluster service.
DEFAULT_HTTP_PORT = 9200


# =============================================================================
# CLUSTER IDENTITY
# =============================================================================


class ElasticsearchCluster(BaseModel):
    """
    Identity of a single Elasticsearch cluster.

    The controller addresses clusters by their Kubernetes service, so the
    identity is a (name, namespace) pair rather than a URL. The name doubles
    as the name of the Secret holding the admin certificates and as the
    directory those certificates are staged into.

    USAGE EXAMPLE:
    --------------
        cluster = ElasticsearchCluster(name="elasticsearch", namespace="openshift-logging")
        cluster.base_url  # "https://elasticsearch.openshift-logging.svc:9200"
    """

    model_config = {"extra": "ignore", "frozen": True}

    name: str = Field(description="Elasticsearch service (and admin Secret) name")
    namespace: str = Field(description="Namespace of the Elasticsearch service")
    port: int = Field(default=DEFAULT_HTTP_PORT, description="HTTP port of the service")

    @field_validator("name", "namespace")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """
        Strip whitespace and reject empty identifiers.

        An empty name would produce a host like ".ns.svc", which resolves to
        nothing and only fails much later with a confusing DNS error.
        """
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @property
    def service_host(self) -> str:
        """In-cluster DNS name of the Elasticsearch service."""
        return f"{self.name}.{self.namespace}.svc"

    @property
    def base_url(self) -> str:
        """Root URL every administrative URI is appended to."""
        return f"https://{self.service_host}:{self.port}"


# =============================================================================
# CREDENTIAL SETTINGS
# =============================================================================


class CredentialSettings(BaseSettings):
    """
    Where the two credential schemes find their material.

    TWO CREDENTIAL SCHEMES:
    -----------------------
    1. TOKEN: the pod's service-account token, sent as a header. Re-read on
       every request because Kubernetes rotates projected tokens.

    2. CERTIFICATE: mutual TLS with the cluster's admin certificate. The
       files are staged under <cert_root>/<cluster name>/ by the secret
       materializer before each certificate attempt.
    """

    model_config = SettingsConfigDict(env_prefix="ES_ADMIN_")

    token_path: Path = Field(
        default=Path(DEFAULT_TOKEN_PATH),
        description="Service-account token file",
    )

    cert_root: Path = Field(
        default=Path("/tmp"),
        description="Staging root for admin-ca, admin-cert and admin-key",
    )
    # Each cluster gets its own subdirectory named after the cluster.

    materialize_secrets: bool = Field(
        default=True,
        description="Refresh staged certificates from the Kubernetes Secret",
    )
    # Disable when something else (an init container, a CSI driver) already
    # keeps the staging directory current.


# =============================================================================
# TRANSPORT SETTINGS
# =============================================================================


class TransportSettings(BaseSettings):
    """
    HTTP connection tuning shared by both credential schemes.

    The connect timeout covers both the TCP connect and the TLS handshake.
    There is no read timeout by default: a synced flush on a large cluster can
    legitimately take minutes.
    """

    model_config = SettingsConfigDict(env_prefix="ES_ADMIN_TRANSPORT_")

    connect_timeout: float = Field(default=30.0, gt=0, description="Connect timeout in seconds")
    read_timeout: float | None = Field(default=None, description="Read timeout in seconds")
    max_keepalive_connections: int = Field(default=100, ge=0, description="Idle connections kept")
    keepalive_expiry: float = Field(default=90.0, gt=0, description="Idle connection lifetime")


# =============================================================================
# MAIN SETTINGS
# =============================================================================


class AdminSettings(BaseSettings):
    """
    Main configuration container.

    USAGE:
    ------
        settings = load_settings()
        settings.cluster                   # default ElasticsearchCluster, or None
        settings.credentials.token_path    # nested setting
    """

    model_config = SettingsConfigDict(
        env_prefix="ES_ADMIN_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    cluster_name: str = Field(
        default="",
        validation_alias="ES_CLUSTER_NAME",
        description="Default Elasticsearch service name",
    )

    cluster_namespace: str = Field(
        default="",
        validation_alias="ES_CLUSTER_NAMESPACE",
        description="Default Elasticsearch namespace",
    )

    template_pattern: str = Field(
        default="common.*",
        description="Index templates whose replica count is managed",
    )
    # Templates outside this pattern belong to users and are never touched.

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file for mutating calls",
    )

    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    @property
    def cluster(self) -> ElasticsearchCluster | None:
        """
        Default target cluster, or None when not configured.

        Both the name and the namespace must be set; half a cluster identity
        is treated as no identity at all.
        """
        if not self.cluster_name or not self.cluster_namespace:
            return None
        return ElasticsearchCluster(name=self.cluster_name, namespace=self.cluster_namespace)


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> AdminSettings:
    """
    Load settings from the environment with validation.

    If ES_ADMIN_ENV_FILE is set, additional variables are read from that
    file. Useful for running the CLI against a port-forwarded cluster.

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return AdminSettings(
        _env_file=os.environ.get("ES_ADMIN_ENV_FILE"),
    )
