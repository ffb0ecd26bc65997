# ABOUTME: Structured logging with correlation IDs for the Elasticsearch admin client
# ABOUTME: Implements the audit trail for mutating administrative calls

"""
Structured logging with correlation IDs and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

1. STRUCTURED LOGGING: every log line is an event name plus key/value
   fields (cluster, namespace, uri, status), rendered as JSON in production
   or as colored text on a terminal.

2. CORRELATION IDs: one identifier shared by every line logged during a
   single logical operation. A replica convergence run issues dozens of
   requests; the correlation ID ties them back together.

3. AUDIT LOGGING: every call that changes cluster state (allocation,
   quorum, templates, index settings, flushes) is recorded with its outcome.

=============================================================================
CONTEXT VARIABLES
=============================================================================

The correlation ID lives in a ContextVar rather than a module global so that
a controller running several reconcilers in threads or tasks keeps their IDs
apart:

    set_correlation_id("aaa")      # this thread/task only
    new_correlation_id()           # fresh ID for a new operation
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path


# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    Code running outside any operation (startup, ad-hoc CLI calls) still
    gets an ID so its logs remain correlatable.

    Returns:
        8-character correlation ID string.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """
    Set correlation ID for current context.

    Args:
        cid: The correlation ID to set. An empty string makes the next
             get_correlation_id() call generate a new one.
    """
    correlation_id.set(cid)


def new_correlation_id() -> str:
    """Start a new operation: discard the current ID and return a fresh one."""
    correlation_id.set("")
    return get_correlation_id()


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """
    Structlog processor adding the correlation ID to every event.

    Args:
        logger: The structlog wrapped logger (unused but required by API)
        method_name: The logging method name (unused but required by API)
        event_dict: Dictionary containing log event data to enrich

    Returns:
        The event_dict with "correlation_id" field added.
    """
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structured logging.

    Call it ONCE at startup. Calling it again reconfigures logging.

    PROCESSOR PIPELINE:
    -------------------
    1. merge_contextvars: Adds any context variables
    2. add_log_level: Adds "level" field
    3. TimeStamper: Adds ISO-format timestamp
    4. add_correlation_id: Adds our correlation ID
    5. Renderer: JSON (controllers in pods) or colored text (terminals)

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL. DEBUG includes every
               request the executor issues.
        json_output: Output JSON lines instead of colored text.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit logger for calls that change cluster state.

    WHAT WE LOG:
    ------------
    - timestamp: When it happened (UTC ISO 8601)
    - correlation_id: Operation identifier
    - action: Administrative call ("set_shard_allocation", "set_index_replicas")
    - target: What was changed ("openshift-logging/elasticsearch/.kibana")
    - result: "success", "failed" (cluster refused) or "error" (no answer)
    - details: Parameters and status codes

    TWO OUTPUT MODES:
    -----------------
    1. FILE: Append one JSON object per line
    2. STDOUT: Through structlog, alongside normal logs

    EXAMPLE AUDIT LOG ENTRY:
    ------------------------
    {"timestamp": "2024-01-15T10:30:00Z", "correlation_id": "abc12345",
     "action": "set_shard_allocation", "target": "openshift-logging/elasticsearch",
     "result": "success", "details": {"state": "primaries", "status": 200}}
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file, or None for stdout. The parent
                      directory must exist; entries are always appended.
        """
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Log an auditable action.

        All specialized methods delegate to this one.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "correlation_id": get_correlation_id(),
            "action": action,
            "target": target,
            "result": result,
        }

        if details:
            entry["details"] = details

        if self._log_path:
            with self._log_path.open("a") as f:
                f.write(json.dumps(entry) + "\n")
        else:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                details=details,
            )

    def log_write(
        self,
        action: str,
        target: str,
        succeeded: bool,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Log a write the cluster answered.

        Args:
            action: The administrative call (e.g., "put_index_template")
            target: What was modified
            succeeded: Whether the cluster accepted and acknowledged the change
            details: Parameters and the HTTP status
        """
        self.log(action, target, "success" if succeeded else "failed", details)

    def log_error(
        self,
        action: str,
        target: str,
        error: str,
    ) -> None:
        """
        Log a write that never got an answer.

        Called for transport failures and requests that could not be built.
        """
        self.log(action, target, "error", {"error": error})
