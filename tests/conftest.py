# ABOUTME: Pytest fixtures and configuration for the Elasticsearch admin client tests
# ABOUTME: Provides shared fixtures for unit and integration tests

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from es_admin.config import ElasticsearchCluster, TransportSettings
from es_admin.utils.client import ElasticsearchAdminClient
from es_admin.utils.credentials import CredentialBundle
from es_admin.utils.logging import AuditLogger

ES_HOST = "elasticsearch.openshift-logging.svc"
BASE_URL = f"https://{ES_HOST}:9200"


class StaticCredentialProvider:
    """Credential provider with fixed material that counts resolutions."""

    def __init__(self, token: str = "test-token", bundle: CredentialBundle | None = None) -> None:
        self.token = token
        self.bundle = bundle or CredentialBundle()
        self.token_requests = 0
        self.bundle_requests: list[ElasticsearchCluster] = []

    def resolve_token(self) -> tuple[str, bool]:
        self.token_requests += 1
        return self.token, bool(self.token)

    def resolve_cert_bundle(self, cluster: ElasticsearchCluster) -> CredentialBundle:
        self.bundle_requests.append(cluster)
        return self.bundle


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo any configure_logging() call made by a test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def cluster() -> ElasticsearchCluster:
    """Target cluster used by respx-based tests."""
    return ElasticsearchCluster(name="elasticsearch", namespace="openshift-logging")


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    """Credential provider returning a fixed token and an empty bundle."""
    return StaticCredentialProvider()


@pytest.fixture
def transport_settings() -> TransportSettings:
    """Transport settings with short timeouts for tests."""
    return TransportSettings(connect_timeout=5.0, read_timeout=5.0)


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    """Audit log file for the admin client fixture."""
    return tmp_path / "audit.json"


@pytest.fixture
def admin_client(
    cluster: ElasticsearchCluster,
    credentials: StaticCredentialProvider,
    transport_settings: TransportSettings,
    audit_path: Path,
) -> Iterator[ElasticsearchAdminClient]:
    """Admin client writing its audit trail to a temporary file."""
    with ElasticsearchAdminClient(
        cluster,
        credentials,
        transport=transport_settings,
        audit_logger=AuditLogger(audit_path),
    ) as client:
        yield client


# Integration test fixtures


@pytest.fixture
def live_cluster() -> ElasticsearchCluster | None:
    """Cluster named by ES_ADMIN_IT_CLUSTER as "<name>.<namespace>"."""
    target = os.environ.get("ES_ADMIN_IT_CLUSTER")
    if not target or "." not in target:
        return None
    name, namespace = target.split(".", 1)
    return ElasticsearchCluster(name=name, namespace=namespace)
