# ABOUTME: Integration tests for the admin client against a live Elasticsearch cluster
# ABOUTME: Requires in-cluster credentials and ES_ADMIN_IT_CLUSTER="<name>.<namespace>"

"""Integration tests for ElasticsearchAdminClient against a live cluster.

These tests require:
- Running inside a pod (or with kubeconfig access) that can reach
  https://<name>.<namespace>.svc:9200
- A service-account token or the cluster's admin Secret
- ES_ADMIN_IT_CLUSTER set to "<name>.<namespace>"

Only read-only accessors plus idempotent writes are exercised: allocation is
set to its current value and replica convergence targets the count the
cluster already has.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from es_admin.config import ElasticsearchCluster, load_settings
from es_admin.replicas import update_replica_count
from es_admin.utils.client import ElasticsearchAdminClient


@pytest.fixture
def live_client(live_cluster: ElasticsearchCluster | None) -> Iterator[ElasticsearchAdminClient]:
    if live_cluster is None:
        pytest.skip("ES_ADMIN_IT_CLUSTER not set")
    with ElasticsearchAdminClient.from_settings(load_settings(), live_cluster) as client:
        yield client


@pytest.mark.integration
class TestLiveCluster:
    """Read-only checks against a live cluster."""

    def test_health(self, live_client: ElasticsearchAdminClient):
        """Test health status and node count are reported."""
        health = live_client.get_cluster_health()

        assert health.status in ("green", "yellow", "red")
        assert health.number_of_nodes >= 1
        assert live_client.get_cluster_node_count() == health.number_of_nodes

    def test_nodes_disk_usage(self, live_client: ElasticsearchAdminClient):
        """Test every node reports disk usage."""
        usage = live_client.get_nodes_disk_usage()

        assert usage
        for node in usage.values():
            assert 0.0 <= node.used_percent <= 100.0

    def test_watermarks(self, live_client: ElasticsearchAdminClient):
        """Test watermarks resolve from the defaults at least."""
        low, high = live_client.get_disk_watermarks()

        assert low is not None
        assert high is not None

    def test_index_health(self, live_client: ElasticsearchAdminClient):
        """Test indices are listed with non-negative counts."""
        for index in live_client.get_index_health().values():
            assert index.primary >= 1
            assert index.replicas >= 0


@pytest.mark.integration
class TestLiveClusterWrites:
    """Writes that leave the cluster as it was."""

    def test_reapply_shard_allocation(self, live_client: ElasticsearchAdminClient):
        """Test re-applying the current allocation state is acknowledged."""
        current = live_client.get_shard_allocation() or "all"

        assert live_client.set_shard_allocation(current) is True
        assert live_client.get_shard_allocation() == current

    def test_converge_to_current_replicas(self, live_client: ElasticsearchAdminClient):
        """Test converging to an already uniform replica count writes nothing."""
        indices = live_client.get_index_health()
        counts = {index.replicas for index in indices.values()}
        if len(counts) != 1:
            pytest.skip("Indices do not share a replica count")

        templates = [
            live_client.get_index_template(name) for name in live_client.list_index_templates()
        ]
        template_counts = {
            str(t["settings"]["index"]["number_of_replicas"])
            for t in templates
            if t and "number_of_replicas" in t.get("settings", {}).get("index", {})
        }
        (replicas,) = counts
        if template_counts - {str(replicas)}:
            pytest.skip("Templates do not match the index replica count")

        result = update_replica_count(live_client, replicas)

        assert result.writes == 0
