# ABOUTME: Elasticsearch admin client package initialization
# ABOUTME: Exposes version information

"""
es_admin - administrative client for Kubernetes-hosted Elasticsearch clusters.

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

es_admin/
├── __init__.py          <- Package entry point
├── config.py            <- Settings (env vars, cluster identity, transport)
├── errors.py            <- Exception hierarchy
├── replicas.py          <- Replica count convergence
├── cli.py               <- es-admin command line
└── utils/
    ├── client.py        <- Typed admin accessors (ElasticsearchAdminClient)
    ├── transport.py     <- Request executor with credential fallback
    ├── credentials.py   <- Token and admin certificate resolution
    ├── decoding.py      <- JSON path walker and _cat table parsers
    └── logging.py       <- Structured logging and audit trail

Typical use from a controller:

    from es_admin.config import ElasticsearchCluster, load_settings
    from es_admin.utils.client import ElasticsearchAdminClient

    settings = load_settings()
    cluster = ElasticsearchCluster(name="elasticsearch", namespace="openshift-logging")
    with ElasticsearchAdminClient.from_settings(settings, cluster) as client:
        client.set_shard_allocation("primaries")
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
