# ABOUTME: Command-line entry point for ad-hoc Elasticsearch admin operations
# ABOUTME: Loads settings, configures logging, and prints results as JSON

"""
es-admin command line.

Usage:
    es-admin health
    es-admin disk [--node NAME]
    es-admin watermarks
    es-admin shard-allocation [--set STATE]
    es-admin flush
    es-admin converge-replicas COUNT

The target cluster comes from ES_CLUSTER_NAME / ES_CLUSTER_NAMESPACE unless
--cluster and --namespace are given.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from es_admin.config import ElasticsearchCluster, load_settings
from es_admin.errors import ElasticsearchAdminError
from es_admin.replicas import update_replica_count
from es_admin.utils.client import ElasticsearchAdminClient, ShardAllocationState
from es_admin.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def cmd_health(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    _emit(dataclasses.asdict(client.get_cluster_health()))
    return 0


def cmd_disk(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    if args.node:
        used, percent = client.get_node_disk_usage(args.node)
        _emit({"name": args.node, "used": used, "used_percent": percent})
        return 0 if percent >= 0 else 1
    _emit({name: dataclasses.asdict(u) for name, u in client.get_nodes_disk_usage().items()})
    return 0


def cmd_watermarks(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    low, high = client.get_disk_watermarks()
    _emit({"low": low, "high": high, "threshold_enabled": client.get_threshold_enabled()})
    return 0


def cmd_shard_allocation(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    if args.set:
        acknowledged = client.set_shard_allocation(ShardAllocationState(args.set))
        _emit({"state": args.set, "acknowledged": acknowledged})
        return 0 if acknowledged else 1
    _emit({"state": client.get_shard_allocation()})
    return 0


def cmd_flush(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    flushed = client.do_synchronized_flush()
    _emit({"flushed": flushed})
    return 0 if flushed else 1


def cmd_converge_replicas(client: ElasticsearchAdminClient, args: argparse.Namespace) -> int:
    result = update_replica_count(client, args.count)
    _emit({**dataclasses.asdict(result), "succeeded": result.succeeded})
    return 0 if result.succeeded else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="es-admin", description="Elasticsearch cluster administration")
    parser.add_argument("--cluster", help="Elasticsearch service name")
    parser.add_argument("--namespace", help="Namespace of the Elasticsearch service")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Show cluster health").set_defaults(func=cmd_health)

    p = sub.add_parser("disk", help="Show node disk usage")
    p.add_argument("--node", help="Only this node")
    p.set_defaults(func=cmd_disk)

    sub.add_parser("watermarks", help="Show effective disk watermarks").set_defaults(func=cmd_watermarks)

    p = sub.add_parser("shard-allocation", help="Show or set shard allocation")
    p.add_argument("--set", choices=[s.value for s in ShardAllocationState])
    p.set_defaults(func=cmd_shard_allocation)

    sub.add_parser("flush", help="Synced flush").set_defaults(func=cmd_flush)

    p = sub.add_parser("converge-replicas", help="Converge template and index replica counts")
    p.add_argument("count", type=int)
    p.set_defaults(func=cmd_converge_replicas)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        cluster = None
        if args.cluster or args.namespace:
            cluster = ElasticsearchCluster(
                name=args.cluster or settings.cluster_name,
                namespace=args.namespace or settings.cluster_namespace,
            )
        configure_logging(level=settings.log_level, json_output=settings.json_logs)
        client = ElasticsearchAdminClient.from_settings(settings, cluster)
    except (ValidationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    with client:
        try:
            return args.func(client, args)
        except (httpx.HTTPError, ElasticsearchAdminError) as e:
            logger.error("Command failed", command=args.command, error=str(e))
            return 1


if __name__ == "__main__":
    sys.exit(main())
