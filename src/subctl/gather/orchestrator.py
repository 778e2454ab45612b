"""Multi-cluster diagnostic gather.

Validates ``GatherOptions`` once, then runs the collector against every
cluster in its own worker thread. A cluster's failure is recorded in its
own ``ClusterGatherResult`` and never stops the others; the caller decides
what to do with the aggregated ``GatherReport``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from subctl.errors import InvalidConfiguration
from subctl.models import (
    KNOWN_GATHER_MODULES,
    KNOWN_GATHER_TYPES,
    ClusterGatherResult,
    GatherOptions,
    GatherReport,
)

if TYPE_CHECKING:
    from subctl.cluster import ClusterContext
    from subctl.gather.collector import Collector
    from subctl.reporter import Reporter

    ClusterSource = Sequence[ClusterContext] | Callable[[], Sequence[ClusterContext]]

logger = logging.getLogger(__name__)


def validate_gather_options(options: GatherOptions) -> None:
    """Reject unknown types or modules, naming the first offending value."""
    for value in options.types:
        if value not in KNOWN_GATHER_TYPES:
            raise InvalidConfiguration(f'"{value}" is not a supported type')
    for value in options.modules:
        if value not in KNOWN_GATHER_MODULES:
            raise InvalidConfiguration(f'"{value}" is not a supported module')


class GatherOrchestrator:
    """Runs one collection per cluster with per-cluster failure isolation."""

    def __init__(
        self,
        collector: Collector,
        reporter: Reporter,
        max_workers: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._collector = collector
        self._reporter = reporter
        self._max_workers = max_workers
        self._timeout = timeout

    def run(self, clusters: ClusterSource, options: GatherOptions) -> GatherReport:
        """Gather from every cluster in *clusters*.

        *clusters* may be a callable; it is invoked only after the options
        pass validation, so bad input never causes a kubeconfig lookup.

        Raises:
            InvalidConfiguration: Unknown type or module.
        """
        validate_gather_options(options)
        targets = list(clusters() if callable(clusters) else clusters)
        if not targets:
            return GatherReport(directory=options.directory)

        logger.info("Gathering %s / %s from %d cluster(s) into %s",
                    ",".join(options.types), ",".join(options.modules), len(targets), options.directory)

        workers = max(1, self._max_workers or len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gather") as pool:
            futures = [pool.submit(self._gather_one, cluster, options) for cluster in targets]
            results = [future.result() for future in futures]

        return GatherReport(directory=options.directory, results=results)

    def _gather_one(self, cluster: ClusterContext, options: GatherOptions) -> ClusterGatherResult:
        reporter = self._reporter.for_cluster(cluster.name)
        reporter.start(f"Gathering data from cluster {cluster.name}")
        started = time.monotonic()
        try:
            directory = self._collector.collect(cluster, options, reporter, timeout=self._timeout)
        except Exception as exc:
            logger.warning("Gather failed on cluster %s: %s", cluster.name, exc, exc_info=True)
            reporter.error(f"Error gathering data from cluster {cluster.name}", exc)
            return ClusterGatherResult(
                cluster=cluster.name,
                success=False,
                error=str(exc) or type(exc).__name__,
                duration_ms=(time.monotonic() - started) * 1000,
            )
        reporter.end()
        return ClusterGatherResult(
            cluster=cluster.name,
            success=True,
            directory=str(directory),
            duration_ms=(time.monotonic() - started) * 1000,
        )
