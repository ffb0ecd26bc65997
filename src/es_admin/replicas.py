# ABOUTME: Replica count convergence across managed index templates and live indices
# ABOUTME: Compare-then-write, so repeated runs against unchanged state issue no writes

"""
Replica convergence.

Two phases, always in this order:

1. TEMPLATES: every template matching the managed pattern (``common.*``)
   whose ``settings.index.number_of_replicas`` differs from the target is
   rewritten, so indices created from now on start with the right count.

2. INDICES: every live index whose replica count differs gets a settings
   update.

Each item is compared before it is written; a second run with the same target
finds nothing to change. Failures of individual writes are collected in the
result instead of aborting the run, so one broken index does not keep the
rest of the cluster from converging. Failing to enumerate templates or
indices at all is raised: there is nothing meaningful to report then.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

from es_admin.errors import ElasticsearchAdminError
from es_admin.utils.decoding import walk_path
from es_admin.utils.logging import new_correlation_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from es_admin.utils.client import ElasticsearchAdminClient

logger = structlog.get_logger(__name__)

TEMPLATE_REPLICAS_PATH = "settings.index.number_of_replicas"


@dataclass
class ReplicaConvergenceResult:
    """Outcome of one convergence run."""

    replicas: int
    templates_updated: list[str] = field(default_factory=list)
    templates_failed: dict[str, str] = field(default_factory=dict)
    indices_updated: list[str] = field(default_factory=list)
    indices_failed: dict[str, str] = field(default_factory=dict)

    @property
    def writes(self) -> int:
        """Number of write attempts, successful or not."""
        return (
            len(self.templates_updated)
            + len(self.templates_failed)
            + len(self.indices_updated)
            + len(self.indices_failed)
        )

    @property
    def succeeded(self) -> bool:
        return not self.templates_failed and not self.indices_failed


class ReplicaConvergence:
    """Drives one cluster's templates and indices to a replica count."""

    def __init__(self, client: ElasticsearchAdminClient) -> None:
        self._client = client

    def converge(self, replicas: int) -> ReplicaConvergenceResult:
        """
        Run both phases for ``replicas``.

        Raises:
            httpx.HTTPError, ElasticsearchAdminError: when templates or
                indices cannot be listed.
        """
        new_correlation_id()
        log = logger.bind(cluster=self._client.cluster.name, replicas=replicas)
        result = ReplicaConvergenceResult(replicas=replicas)

        self._converge_templates(result)
        self._converge_indices(result)

        log.info(
            "Replica convergence finished",
            templates_updated=len(result.templates_updated),
            templates_failed=len(result.templates_failed),
            indices_updated=len(result.indices_updated),
            indices_failed=len(result.indices_failed),
        )
        return result

    def _converge_templates(self, result: ReplicaConvergenceResult) -> None:
        desired = str(result.replicas)

        for name in self._client.list_index_templates():
            try:
                template = self._client.get_index_template(name)
            except (httpx.HTTPError, ElasticsearchAdminError) as exc:
                logger.warning("Unable to read index template", template=name, error=str(exc))
                result.templates_failed[name] = str(exc)
                continue

            current = walk_path(TEMPLATE_REPLICAS_PATH, template)
            if current is None:
                logger.debug("Template does not set replicas", template=name)
                continue
            if str(current) == desired:
                continue

            updated = copy.deepcopy(template)
            updated["settings"]["index"]["number_of_replicas"] = desired
            logger.debug("Updating template replicas", template=name, current=current, desired=desired)
            self._apply(
                name,
                lambda n=name, body=updated: self._client.put_index_template(n, body),
                result.templates_updated,
                result.templates_failed,
            )

    def _converge_indices(self, result: ReplicaConvergenceResult) -> None:
        for name, health in self._client.get_index_health().items():
            if health.replicas == result.replicas:
                continue
            logger.debug(
                "Updating index replicas",
                index=name,
                current=health.replicas,
                desired=result.replicas,
            )
            self._apply(
                name,
                lambda n=name: self._client.set_index_replicas(n, result.replicas),
                result.indices_updated,
                result.indices_failed,
            )

    @staticmethod
    def _apply(
        name: str,
        write: Callable[[], bool],
        updated: list[str],
        failed: dict[str, str],
    ) -> None:
        try:
            accepted = write()
        except (httpx.HTTPError, ElasticsearchAdminError) as exc:
            logger.warning("Replica update failed", item=name, error=str(exc))
            failed[name] = str(exc)
            return

        if accepted:
            updated.append(name)
        else:
            logger.warning("Replica update rejected", item=name)
            failed[name] = "rejected by cluster"


def update_replica_count(client: ElasticsearchAdminClient, replicas: int) -> ReplicaConvergenceResult:
    """Converge ``client``'s cluster to ``replicas``."""
    return ReplicaConvergence(client).converge(replicas)
