"""
Inventory Reconciliation Module

Runs one poll cycle against an inventory source and turns each fetched
snapshot into exported series. Series that disappear from a snapshot are
removed by label tuple; families are never reset, so series that are still
valid never dip to zero between scrapes.

A failed fetch leaves that kind's series at their last known values.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import logging
import threading
import time

from access_exporter.inventory import (
    ResourceKind,
    InventorySource,
    NodeRecord,
    SubClusterRecord,
    DataStoreRecord,
    ApplicationRecord
)
from .families import ExporterMetrics
from .labels import (
    UNKNOWN,
    DEFAULT_SUB_KIND,
    normalize,
    extract_cluster_name,
    is_workload_cluster
)

logger = logging.getLogger(__name__)

LabelTuple = Tuple[str, ...]
# family attribute on ExporterMetrics -> {label tuple: value}
SeriesSet = Dict[str, Dict[LabelTuple, float]]


@dataclass
class CycleResult:
    """Outcome of a single poll cycle."""
    cluster_name: str
    duration: float
    identity_ok: bool = True
    failed_kinds: List[ResourceKind] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.identity_ok and not self.failed_kinds


class Reconciler:
    """Keeps exported series in line with the latest fetched inventory."""

    def __init__(self, source: InventorySource, metrics: Optional[ExporterMetrics] = None):
        self.source = source
        self.metrics = metrics if metrics is not None else ExporterMetrics()

        # Guards _tracked, _consecutive_errors and _last_cluster_name.
        # Never held across a fetch.
        self._lock = threading.Lock()
        self._tracked: Dict[ResourceKind, Dict[str, Set[LabelTuple]]] = {
            kind: {} for kind in ResourceKind
        }
        self._consecutive_errors = 0
        self._last_cluster_name = ""

        self._updaters: Dict[ResourceKind, Callable[[str, List[Any]], int]] = {
            ResourceKind.NODES: self.update_node_metrics,
            ResourceKind.SUB_CLUSTERS: self.update_kube_cluster_metrics,
            ResourceKind.DATA_STORES: self.update_database_metrics,
            ResourceKind.APPLICATIONS: self.update_app_metrics,
        }

    @property
    def consecutive_errors(self) -> int:
        with self._lock:
            return self._consecutive_errors

    @property
    def last_cluster_name(self) -> str:
        with self._lock:
            return self._last_cluster_name

    def tracked_series(self, kind: ResourceKind) -> Dict[str, Set[LabelTuple]]:
        """Copy of the label tuples last exported for a kind, by family."""
        with self._lock:
            return {name: set(keys) for name, keys in self._tracked[kind].items()}

    def record_failure(self) -> None:
        """Count a failed cycle towards backoff."""
        with self._lock:
            self._consecutive_errors += 1

    def _record_success(self) -> None:
        with self._lock:
            self._consecutive_errors = 0

    def run_cycle(self) -> CycleResult:
        """Fetch the cluster identity and every resource kind, and update series."""
        logger.debug("Collecting inventory from control plane")
        start = time.monotonic()

        try:
            cluster_name = self.source.fetch_identity()
        except Exception as e:
            logger.error(f"Failed to get cluster name: {e}")
            self.metrics.up.set(0)
            error_cluster = self.last_cluster_name or UNKNOWN
            self.metrics.collect_errors.labels(error_cluster).inc()
            self.record_failure()
            return CycleResult(
                cluster_name=error_cluster,
                duration=time.monotonic() - start,
                identity_ok=False
            )

        self.metrics.up.set(1)
        with self._lock:
            self._last_cluster_name = cluster_name

        failed_kinds = []
        for kind in ResourceKind:
            try:
                records = self.source.fetch(kind)
            except Exception as e:
                # Keep the previous series for this kind.
                logger.error(f"Failed to get {kind.value}: {e}")
                self.metrics.collect_errors.labels(cluster_name).inc()
                failed_kinds.append(kind)
                continue
            self.update(kind, cluster_name, records)

        duration = time.monotonic() - start
        self.metrics.collect_duration.labels(cluster_name).set(duration)

        if failed_kinds:
            self.record_failure()
        else:
            self._record_success()
            self.metrics.last_successful_collect.labels(cluster_name).set(time.time())

        logger.debug(f"Collection completed in {duration:.3f}s, failed kinds: {[k.value for k in failed_kinds]}")
        return CycleResult(cluster_name=cluster_name, duration=duration, failed_kinds=failed_kinds)

    def update(self, kind: ResourceKind, cluster_name: str, records: List[Any]) -> int:
        """Replace the exported series of one kind with those derived from records.

        Returns the number of series removed because they vanished.
        """
        return self._updaters[kind](cluster_name, records)

    def _apply(self, kind: ResourceKind, series: SeriesSet) -> int:
        """Set current values, remove vanished tuples and remember what was exported.

        Returns the number of removed series.
        """
        removed = 0
        with self._lock:
            tracked = self._tracked[kind]
            for family, values in series.items():
                gauge = getattr(self.metrics, family)
                for labels, value in values.items():
                    gauge.labels(*labels).set(value)

                for labels in tracked.get(family, set()) - values.keys():
                    gauge.remove(*labels)
                    removed += 1

                tracked[family] = set(values)
        return removed

    def update_node_metrics(self, cluster_name: str, nodes: List[NodeRecord]) -> int:
        by_sub_kind: Dict[LabelTuple, float] = {}
        identified = 0
        for node in nodes:
            key = (cluster_name, normalize(node.sub_kind, DEFAULT_SUB_KIND))
            by_sub_kind[key] = by_sub_kind.get(key, 0) + 1
            if extract_cluster_name(node) != UNKNOWN:
                identified += 1

        removed = self._apply(ResourceKind.NODES, {
            'nodes_total': {(cluster_name,): len(nodes)},
            'nodes_by_subkind': by_sub_kind,
            'nodes_identified_total': {(cluster_name,): identified},
            'nodes_unidentified_total': {(cluster_name,): len(nodes) - identified},
        })
        logger.debug(f"Updated node metrics: count={len(nodes)}, identified={identified}, "
                     f"sub_kinds={len(by_sub_kind)}, removed={removed}")
        return removed

    def update_kube_cluster_metrics(self, cluster_name: str, clusters: List[SubClusterRecord]) -> int:
        names = {cluster.name for cluster in clusters}
        workload = sum(1 for name in names if is_workload_cluster(name))

        removed = self._apply(ResourceKind.SUB_CLUSTERS, {
            'kube_clusters_total': {(cluster_name,): len(names)},
            'kube_management_clusters_total': {(cluster_name,): len(names) - workload},
            'kube_workload_clusters_total': {(cluster_name,): workload},
            'kube_cluster_info': {(cluster_name, name): 1 for name in names},
        })
        logger.debug(f"Updated Kubernetes cluster metrics: total={len(names)}, "
                     f"mc={len(names) - workload}, wc={workload}, removed={removed}")
        return removed

    def update_database_metrics(self, cluster_name: str, databases: List[DataStoreRecord]) -> int:
        pair_counts: Dict[Tuple[str, str], int] = {}
        for db in databases:
            pair = (normalize(db.protocol), normalize(db.store_type))
            pair_counts[pair] = pair_counts.get(pair, 0) + 1

        by_protocol: Dict[LabelTuple, float] = {}
        by_type: Dict[LabelTuple, float] = {}
        for (protocol, store_type), count in pair_counts.items():
            by_protocol[(cluster_name, protocol)] = by_protocol.get((cluster_name, protocol), 0) + count
            by_type[(cluster_name, store_type)] = by_type.get((cluster_name, store_type), 0) + count

        removed = self._apply(ResourceKind.DATA_STORES, {
            'databases_total': {(cluster_name,): len(databases)},
            'databases_by_protocol': by_protocol,
            'databases_by_type': by_type,
        })
        logger.debug(f"Updated database metrics: count={len(databases)}, protocols={len(by_protocol)}, "
                     f"types={len(by_type)}, removed={removed}")
        return removed

    def update_app_metrics(self, cluster_name: str, apps: List[ApplicationRecord]) -> int:
        names = {app.name for app in apps}

        removed = self._apply(ResourceKind.APPLICATIONS, {
            'apps_total': {(cluster_name,): len(names)},
            'app_info': {(cluster_name, name): 1 for name in names},
        })
        logger.debug(f"Updated application metrics: count={len(names)}, removed={removed}")
        return removed
