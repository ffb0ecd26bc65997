# ABOUTME: Elasticsearch admin client exposing typed settings accessors
# ABOUTME: Composes the request executor and response decoders per admin endpoint

"""
Elasticsearch administrative client.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

The typed surface the controller calls. Each method:

1. builds an OperationDescriptor for one fixed endpoint,
2. hands it to the RequestExecutor,
3. raises the transport/build error if there was one,
4. decodes the fields it needs.

=============================================================================
ENDPOINTS
=============================================================================

    GET  _cluster/settings                      allocation, min master nodes
    PUT  _cluster/settings                      allocation, min master nodes
    GET  _cluster/settings?include_defaults=true   watermarks, threshold flag
    GET  _cluster/health                        health summary
    GET  _cat/nodes?h=name,du,dup               node disk usage (text)
    POST _flush/synced                          synced flush
    GET  _cat/indices?h=health,status,index,pri,rep   index health (text)
    GET  _cat/templates/<pattern>?h=name        template names (text)
    GET  _template/<name>, PUT _template/<name> index templates
    PUT  <index>/_settings                      index replica count

=============================================================================
SUCCESS RULES FOR WRITES
=============================================================================

A write succeeded only when Elasticsearch answered 200 AND reported
``"acknowledged": true``:

    200 + acknowledged      -> True
    any other status        -> False
    200, not acknowledged   -> NotAcknowledgedError
    no answer at all        -> the httpx error is raised

A 200 without acknowledgement means the master accepted the request but did
not confirm the cluster applied it. That is neither success nor an ordinary
refusal, so it gets its own exception.
"""

from __future__ import annotations

import enum
import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from es_admin.config import TransportSettings
from es_admin.errors import ElasticsearchAdminError, NotAcknowledgedError, SyncedFlushError
from es_admin.utils.credentials import FileCredentialProvider
from es_admin.utils.decoding import (
    ClusterHealth,
    IndexHealth,
    NodeDiskUsage,
    effective_setting,
    extract_or,
    normalize_watermark,
    parse_bool_string,
    parse_index_health,
    parse_node_disk_usage,
    parse_template_names,
    raw_results,
    walk_path,
)
from es_admin.utils.logging import AuditLogger
from es_admin.utils.transport import OperationDescriptor, RequestExecutor

if TYPE_CHECKING:
    from es_admin.config import AdminSettings, ElasticsearchCluster
    from es_admin.utils.credentials import CredentialProvider

logger = structlog.get_logger(__name__)

ALLOCATION_SETTING = "cluster.routing.allocation.enable"
MIN_MASTER_NODES_SETTING = "discovery.zen.minimum_master_nodes"
WATERMARK_LOW_SETTING = "cluster.routing.allocation.disk.watermark.low"
WATERMARK_HIGH_SETTING = "cluster.routing.allocation.disk.watermark.high"
THRESHOLD_ENABLED_SETTING = "cluster.routing.allocation.disk.threshold_enabled"


class ShardAllocationState(enum.StrEnum):
    """Values accepted by ``cluster.routing.allocation.enable``."""

    ALL = "all"
    PRIMARIES = "primaries"
    NEW_PRIMARIES = "new_primaries"
    NONE = "none"


def _as_count(value: Any, default: int) -> int:
    # Cluster settings echo numbers back as strings ("2"), health as numbers.
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


# =============================================================================
# ELASTICSEARCH ADMIN CLIENT
# =============================================================================


class ElasticsearchAdminClient:
    """
    Administrative client for one Elasticsearch cluster.

    LIFECYCLE:
    ----------
        with ElasticsearchAdminClient(cluster, credentials) as client:
            health = client.get_cluster_health()

    The context manager closes the pooled token-path connections on exit.
    """

    def __init__(
        self,
        cluster: ElasticsearchCluster,
        credentials: CredentialProvider,
        transport: TransportSettings | None = None,
        audit_logger: AuditLogger | None = None,
        template_pattern: str = "common.*",
    ) -> None:
        """
        Initialize the admin client.

        Args:
            cluster: Target cluster identity.
            credentials: Token and certificate source, re-resolved per request.
            transport: Connection tuning; defaults read from the environment.
            audit_logger: Receives every mutating call; stdout when omitted.
            template_pattern: Index templates listed by list_index_templates().
        """
        self._cluster = cluster
        self._executor = RequestExecutor(credentials, transport or TransportSettings())
        self._audit = audit_logger or AuditLogger()
        self._template_pattern = template_pattern

    @classmethod
    def from_settings(
        cls,
        settings: AdminSettings,
        cluster: ElasticsearchCluster | None = None,
    ) -> ElasticsearchAdminClient:
        """
        Build a client from loaded settings.

        Raises:
            ValueError: when no cluster is given and none is configured.
        """
        target = cluster or settings.cluster
        if target is None:
            raise ValueError("No Elasticsearch cluster configured (ES_CLUSTER_NAME, ES_CLUSTER_NAMESPACE)")
        return cls(
            target,
            FileCredentialProvider.from_settings(settings.credentials),
            transport=settings.transport,
            audit_logger=AuditLogger(settings.audit_log),
            template_pattern=settings.template_pattern,
        )

    def __enter__(self) -> ElasticsearchAdminClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._executor.close()

    @property
    def cluster(self) -> ElasticsearchCluster:
        return self._cluster

    @property
    def template_pattern(self) -> str:
        return self._template_pattern

    def _target(self, item: str | None = None) -> str:
        base = f"{self._cluster.namespace}/{self._cluster.name}"
        return f"{base}/{item}" if item else base

    def _execute(
        self,
        method: str,
        uri: str,
        body: Mapping[str, Any] | None = None,
    ) -> OperationDescriptor:
        """
        Execute one request and raise if it never got an answer.

        Raises:
            httpx.HTTPError: transport failure
            RequestBuildError: the request could not be built
        """
        descriptor = OperationDescriptor(
            method=method,
            uri=uri,
            body=json.dumps(body) if body is not None else None,
        )
        self._executor.execute(self._cluster, descriptor)
        descriptor.raise_for_error()
        return descriptor

    def _write(
        self,
        action: str,
        target: str,
        method: str,
        uri: str,
        body: Mapping[str, Any] | None,
        details: dict[str, Any],
    ) -> bool:
        try:
            descriptor = self._execute(method, uri, body)
        except (httpx.HTTPError, ElasticsearchAdminError) as exc:
            self._audit.log_error(action, target, str(exc))
            raise

        succeeded = descriptor.status_code == 200 and descriptor.acknowledged
        self._audit.log_write(action, target, succeeded, {**details, "status": descriptor.status_code})

        if descriptor.status_code == 200 and not descriptor.acknowledged:
            raise NotAcknowledgedError(200, f"{action} was not acknowledged", target)
        return succeeded

    # =========================================================================
    # SHARD ALLOCATION
    # =========================================================================

    def set_shard_allocation(self, state: ShardAllocationState | str) -> bool:
        """
        Set ``cluster.routing.allocation.enable`` as a transient setting.

        Transient so a full cluster restart falls back to the persistent
        value instead of leaving allocation disabled forever.

        Returns:
            True when the change was acknowledged, False on a non-200 answer.

        Raises:
            NotAcknowledgedError: 200 without acknowledgement.
        """
        value = str(state)
        return self._write(
            "set_shard_allocation",
            self._target(),
            "PUT",
            "_cluster/settings",
            {"transient": {ALLOCATION_SETTING: value}},
            {"state": value},
        )

    def get_shard_allocation(self) -> str:
        """Current transient allocation state, or "" when none is set."""
        descriptor = self._execute("GET", "_cluster/settings")
        return extract_or(f"transient.{ALLOCATION_SETTING}", descriptor.decoded, str)

    # =========================================================================
    # MINIMUM MASTER NODES
    # =========================================================================

    def set_min_master_nodes(self, count: int) -> bool:
        """
        Persist ``discovery.zen.minimum_master_nodes``.

        Same success rules as set_shard_allocation().
        """
        return self._write(
            "set_min_master_nodes",
            self._target(),
            "PUT",
            "_cluster/settings",
            {"persistent": {MIN_MASTER_NODES_SETTING: count}},
            {"count": count},
        )

    def get_min_master_nodes(self) -> int:
        """
        Persistent minimum master nodes, or 0 when unset.

        Accepts both the flat key (``flat_settings``) and the nested layout,
        and both numbers and numeric strings.
        """
        descriptor = self._execute("GET", "_cluster/settings")
        persistent = descriptor.decoded.get("persistent")
        if not isinstance(persistent, Mapping):
            return 0
        value = persistent.get(MIN_MASTER_NODES_SETTING)
        if value is None:
            value = walk_path(MIN_MASTER_NODES_SETTING, persistent)
        return _as_count(value, 0)

    # =========================================================================
    # HEALTH
    # =========================================================================

    def get_cluster_health(self) -> ClusterHealth:
        """Full ``_cluster/health`` summary."""
        descriptor = self._execute("GET", "_cluster/health")
        return ClusterHealth.from_api_response(descriptor.decoded)

    def get_cluster_health_status(self) -> str:
        """Health status (green, yellow or red), or "" when not reported."""
        descriptor = self._execute("GET", "_cluster/health")
        return extract_or("status", descriptor.decoded, str)

    def get_cluster_node_count(self) -> int:
        """Number of nodes in the cluster, or 0 when not reported."""
        descriptor = self._execute("GET", "_cluster/health")
        return extract_or("number_of_nodes", descriptor.decoded, int, default=0)

    # =========================================================================
    # DISK
    # =========================================================================

    def get_nodes_disk_usage(self) -> dict[str, NodeDiskUsage]:
        """Disk usage for every node, keyed by node name."""
        descriptor = self._execute("GET", "_cat/nodes?h=name,du,dup")
        return parse_node_disk_usage(raw_results(descriptor.response))

    def get_node_disk_usage(self, node_name: str) -> tuple[str, float]:
        """
        Disk usage of one node.

        Returns:
            ``(used, used_percent)``, e.g. ``("6.3G", 5.36)``;
            ``("", -1.0)`` when the node is not listed.
        """
        usage = self.get_nodes_disk_usage().get(node_name)
        if usage is None:
            return "", -1.0
        return usage.used, usage.used_percent

    def get_disk_watermarks(self) -> tuple[Any, Any]:
        """
        Effective low and high disk watermarks.

        Percentages come back as floats (90.0), byte sizes as strings
        without the trailing "b" ("500m"). None when a watermark is not
        reported in any scope.
        """
        descriptor = self._execute("GET", "_cluster/settings?include_defaults=true")
        body = descriptor.decoded
        low = normalize_watermark(effective_setting(body, WATERMARK_LOW_SETTING))
        high = normalize_watermark(effective_setting(body, WATERMARK_HIGH_SETTING))
        return low, high

    def get_threshold_enabled(self) -> bool:
        """Effective disk threshold flag; False when absent or unparseable."""
        descriptor = self._execute("GET", "_cluster/settings?include_defaults=true")
        enabled = parse_bool_string(effective_setting(descriptor.decoded, THRESHOLD_ENABLED_SETTING))
        return bool(enabled)

    # =========================================================================
    # FLUSH
    # =========================================================================

    def do_synchronized_flush(self) -> bool:
        """
        Synced flush ahead of a cluster restart.

        Returns:
            True when Elasticsearch answered 200.

        Raises:
            SyncedFlushError: when any shard failed to flush, even if the
                HTTP call itself succeeded.
        """
        action = "do_synchronized_flush"
        try:
            descriptor = self._execute("POST", "_flush/synced")
        except (httpx.HTTPError, ElasticsearchAdminError) as exc:
            self._audit.log_error(action, self._target(), str(exc))
            raise

        failed = extract_or("_shards.failed", descriptor.decoded, int, default=0)
        self._audit.log_write(
            action,
            self._target(),
            descriptor.status_code == 200 and failed <= 0,
            {"status": descriptor.status_code, "failed_shards": failed},
        )

        if failed > 0:
            raise SyncedFlushError(descriptor.status_code, failed)
        return descriptor.status_code == 200

    # =========================================================================
    # INDICES AND TEMPLATES
    # =========================================================================

    def get_index_health(self) -> dict[str, IndexHealth]:
        """Health, status, primaries and replicas of every index."""
        descriptor = self._execute("GET", "_cat/indices?h=health,status,index,pri,rep")
        return parse_index_health(raw_results(descriptor.response))

    def list_index_templates(self, pattern: str | None = None) -> list[str]:
        """Names of templates matching ``pattern`` (default: the managed pattern)."""
        descriptor = self._execute("GET", f"_cat/templates/{pattern or self._template_pattern}?h=name")
        return parse_template_names(raw_results(descriptor.response))

    def get_index_template(self, name: str) -> dict[str, Any] | None:
        """Body of one index template, or None when it does not exist."""
        descriptor = self._execute("GET", f"_template/{name}")
        template = descriptor.decoded.get(name)
        return template if isinstance(template, dict) else None

    def put_index_template(self, name: str, template: Mapping[str, Any]) -> bool:
        """Replace an index template. Same success rules as other writes."""
        return self._write(
            "put_index_template",
            self._target(name),
            "PUT",
            f"_template/{name}",
            template,
            {"template": name},
        )

    def set_index_replicas(self, index: str, replicas: int) -> bool:
        """Set ``index.number_of_replicas`` on one live index."""
        return self._write(
            "set_index_replicas",
            self._target(index),
            "PUT",
            f"{index}/_settings",
            {"index": {"number_of_replicas": str(replicas)}},
            {"replicas": replicas},
        )
