# ABOUTME: Response decoding for Elasticsearch admin endpoints
# ABOUTME: Dotted-path JSON extraction plus parsers for the flat _cat text tables

"""
Pure decoding helpers for Elasticsearch admin responses.

Elasticsearch answers administrative calls in two shapes:

1. JSON documents (``_cluster/settings``, ``_cluster/health``, ``_template``),
   read here with a dotted-path walker such as
   ``walk_path("transient.cluster.routing.allocation.enable", body)``.

2. Whitespace-aligned text tables from the ``_cat`` endpoints::

       elasticsearch-cm-23bq83d3   6.3gb 5.36
       elasticsearch-cd-ujt4y3n5-1 6.4gb 5.43

   The executor wraps such bodies as ``{"results": "<text>"}`` so both shapes
   travel in the same descriptor field.

Extraction is strict by default (``extract`` raises ``DecodeError``) and
best-effort only where a caller asks for it (``extract_or``), so every
fallback default is visible at the call site.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from es_admin.errors import DecodeError

T = TypeVar("T", str, bool, float, int)

# Key the executor stores non-JSON bodies under.
RAW_RESULTS_KEY = "results"

# Settings scopes in increasing precedence.
SETTING_SCOPES = ("defaults", "persistent", "transient")

# Fallbacks for extract_or when the caller gives none.
BEST_EFFORT_DEFAULTS: dict[type, Any] = {
    str: "",
    bool: False,
    float: -1.0,
    int: -1,
}

_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


# =============================================================================
# BODY DECODING
# =============================================================================


def decode_body(text: str) -> dict[str, Any]:
    """
    Decode a response body.

    JSON objects are returned as-is. Anything else (plain text, an empty
    body, a JSON array) is wrapped under ``RAW_RESULTS_KEY`` so table parsers
    can still read it. Never raises.
    """
    try:
        decoded = json.loads(text)
    except ValueError:
        return {RAW_RESULTS_KEY: text}
    if isinstance(decoded, dict):
        return decoded
    return {RAW_RESULTS_KEY: text}


def raw_results(body: Mapping[str, Any] | None) -> str:
    """Text of a wrapped non-JSON body, or "" when the body was JSON."""
    if not body:
        return ""
    value = body.get(RAW_RESULTS_KEY)
    return value if isinstance(value, str) else ""


# =============================================================================
# PATH WALKING AND TYPED EXTRACTION
# =============================================================================


def walk_path(path: str, body: Mapping[str, Any] | None) -> Any:
    """
    Follow a dotted path through nested mappings.

    Returns the value at the end of the path, or None when a segment is
    missing or an intermediate value is not a mapping.

    Example:
        >>> walk_path("a.b.c", {"a": {"b": {"c": 42}}})
        42
        >>> walk_path("a.b.c", {"a": {"b": {}}}) is None
        True
    """
    current: Any = body
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _coerce(value: Any, kind: type[T]) -> T | None:
    # bool is a subclass of int; never let True pass for a count
    if kind is bool:
        return value if isinstance(value, bool) else None
    if kind is str:
        return value if isinstance(value, str) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # json.loads accepts Infinity and NaN
        if not math.isfinite(value):
            return None
        return kind(value)
    return None


def extract(path: str, body: Mapping[str, Any] | None, kind: type[T]) -> T:
    """
    Strictly extract a typed value.

    Integers are truncated from JSON numbers, matching how Elasticsearch
    counts arrive as floats once decoded by some proxies.

    Raises:
        DecodeError: when the path is absent or holds a different type.
    """
    value = walk_path(path, body)
    coerced = _coerce(value, kind)
    if coerced is None:
        raise DecodeError(path, kind.__name__, value)
    return coerced


def extract_or(
    path: str,
    body: Mapping[str, Any] | None,
    kind: type[T],
    default: T | None = None,
) -> T:
    """
    Best-effort extraction: the typed value, or a fallback on any mismatch.

    Without an explicit default the fallbacks are "", False, -1.0 and -1.
    """
    try:
        return extract(path, body, kind)
    except DecodeError:
        return BEST_EFFORT_DEFAULTS[kind] if default is None else default


def effective_setting(body: Mapping[str, Any] | None, setting: str) -> Any:
    """
    Resolve a cluster setting across scopes.

    Reads ``defaults``, ``persistent`` and ``transient`` in that order and
    keeps the last value found, which is the precedence Elasticsearch itself
    applies.
    """
    resolved = None
    for scope in SETTING_SCOPES:
        value = walk_path(f"{scope}.{setting}", body)
        if value is not None:
            resolved = value
    return resolved


# =============================================================================
# VALUE NORMALIZATION
# =============================================================================


def parse_bool_string(value: Any) -> bool | None:
    """
    Parse a boolean the way cluster settings spell them.

    Settings come back as strings ("true", "false"); real booleans pass
    through. Returns None for anything unrecognised.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    return None


def normalize_watermark(value: Any) -> Any:
    """
    Normalize a disk watermark.

    "90%" -> 90.0, "500mb" -> "500m" (byte unit dropped, magnitude kept),
    anything else unchanged. An unparseable percentage becomes -1.0.
    """
    if not isinstance(value, str):
        return value
    if value.endswith("%"):
        try:
            return float(value[:-1])
        except ValueError:
            return -1.0
    if value.endswith("b"):
        return value[:-1]
    return value


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return -1.0


def _to_int(text: str) -> int:
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        return -1


# =============================================================================
# CAT TABLES
# =============================================================================


def split_table(text: str, columns: int) -> list[list[str]]:
    """
    Split a _cat text table into rows of exactly ``columns`` fields.

    Rows with any other field count (blank lines, wrapped rows, rows with an
    empty column) are dropped silently.
    """
    rows = []
    for line in text.split("\n"):
        fields = line.split()
        if len(fields) == columns:
            rows.append(fields)
    return rows


@dataclass
class NodeDiskUsage:
    """Disk usage of one node as reported by ``_cat/nodes?h=name,du,dup``."""

    name: str
    used: str
    used_percent: float


@dataclass
class IndexHealth:
    """One row of ``_cat/indices?h=health,status,index,pri,rep``."""

    name: str
    health: str
    status: str
    primary: int
    replicas: int


def parse_node_disk_usage(text: str) -> dict[str, NodeDiskUsage]:
    """
    Parse the 3-column node disk table.

    ``used`` is upper-cased with the trailing byte unit dropped ("6.3gb"
    becomes "6.3G"); an unparseable percentage becomes -1.0.
    """
    usage = {}
    for name, used, percent in split_table(text, 3):
        usage[name] = NodeDiskUsage(
            name=name,
            used=used.removesuffix("b").upper(),
            used_percent=_to_float(percent),
        )
    return usage


def parse_index_health(text: str) -> dict[str, IndexHealth]:
    """Parse the 5-column index health table, keyed by index name."""
    indices = {}
    for health, status, name, primary, replicas in split_table(text, 5):
        indices[name] = IndexHealth(
            name=name,
            health=health,
            status=status,
            primary=_to_int(primary),
            replicas=_to_int(replicas),
        )
    return indices


def parse_template_names(text: str) -> list[str]:
    """Parse a 1-column template listing, preserving order."""
    return [fields[0] for fields in split_table(text, 1)]


# =============================================================================
# CLUSTER HEALTH
# =============================================================================


@dataclass
class ClusterHealth:
    """
    Summary of ``GET _cluster/health``.

    Counts are -1 when the cluster reported something that is not a number,
    so "unknown" never reads as a healthy zero.
    """

    status: str
    number_of_nodes: int
    number_of_data_nodes: int
    active_primary_shards: int
    active_shards: int
    relocating_shards: int
    initializing_shards: int
    unassigned_shards: int
    number_of_pending_tasks: int

    @classmethod
    def from_api_response(cls, data: Mapping[str, Any] | None) -> ClusterHealth:
        """Create ClusterHealth from a decoded health body, best effort."""
        return cls(
            status=extract_or("status", data, str),
            number_of_nodes=extract_or("number_of_nodes", data, int),
            number_of_data_nodes=extract_or("number_of_data_nodes", data, int),
            active_primary_shards=extract_or("active_primary_shards", data, int),
            active_shards=extract_or("active_shards", data, int),
            relocating_shards=extract_or("relocating_shards", data, int),
            initializing_shards=extract_or("initializing_shards", data, int),
            unassigned_shards=extract_or("unassigned_shards", data, int),
            number_of_pending_tasks=extract_or("number_of_pending_tasks", data, int),
        )
