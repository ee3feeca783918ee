"""
Metric Families Module

Defines every series the exporter publishes. All families are bound to a
single CollectorRegistry owned by an ExporterMetrics instance, so tests and
embedders can run several exporters side by side.

Naming convention: per-entity series (one per registered resource) end in
``_info`` and are high cardinality. Everything else is an aggregate keyed by
cluster_name plus at most one low-cardinality dimension. Drop ``*_info``
from remote storage if cardinality becomes a concern.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge

NAMESPACE = "access_exporter"

CLUSTER_LABEL = "cluster_name"


class ExporterMetrics:
    """Container for the exporter's metric families."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        # Connection status
        self.up = self._gauge(
            "up",
            "Whether the exporter can reach the control plane (1 = connected, 0 = disconnected).",
            []
        )

        # Nodes
        self.nodes_total = self._gauge(
            "nodes_total",
            "Total number of SSH nodes registered in the cluster.",
            [CLUSTER_LABEL]
        )
        self.nodes_by_subkind = self._gauge(
            "nodes_by_subkind",
            "Number of SSH nodes by sub-kind (teleport, openssh, openssh-ec2-ice, ...).",
            [CLUSTER_LABEL, "sub_kind"]
        )
        self.nodes_identified_total = self._gauge(
            "nodes_identified_total",
            "Number of SSH nodes whose Kubernetes cluster was identified via labels or hostname.",
            [CLUSTER_LABEL]
        )
        self.nodes_unidentified_total = self._gauge(
            "nodes_unidentified_total",
            "Number of SSH nodes with an unknown Kubernetes cluster.",
            [CLUSTER_LABEL]
        )

        # Kubernetes clusters
        self.kube_clusters_total = self._gauge(
            "kubernetes_clusters_total",
            "Total number of Kubernetes clusters registered in the cluster.",
            [CLUSTER_LABEL]
        )
        self.kube_management_clusters_total = self._gauge(
            "kubernetes_management_clusters_total",
            "Number of management clusters (cluster names without hyphen).",
            [CLUSTER_LABEL]
        )
        self.kube_workload_clusters_total = self._gauge(
            "kubernetes_workload_clusters_total",
            "Number of workload clusters (cluster names with hyphen).",
            [CLUSTER_LABEL]
        )
        self.kube_cluster_info = self._gauge(
            "kubernetes_cluster_info",
            "Kubernetes cluster registered in the cluster (always 1).",
            [CLUSTER_LABEL, "kube_cluster"]
        )

        # Databases
        self.databases_total = self._gauge(
            "databases_total",
            "Total number of databases registered in the cluster.",
            [CLUSTER_LABEL]
        )
        self.databases_by_protocol = self._gauge(
            "databases_by_protocol_total",
            "Number of databases by protocol (postgres, mysql, mongodb, ...).",
            [CLUSTER_LABEL, "protocol"]
        )
        self.databases_by_type = self._gauge(
            "databases_by_type_total",
            "Number of databases by type (rds, self-hosted, cloud-sql, ...).",
            [CLUSTER_LABEL, "type"]
        )

        # Applications
        self.apps_total = self._gauge(
            "apps_total",
            "Total number of applications registered in the cluster.",
            [CLUSTER_LABEL]
        )
        self.app_info = self._gauge(
            "app_info",
            "Application registered in the cluster (always 1).",
            [CLUSTER_LABEL, "app_name"]
        )

        # Exporter health
        self.collect_duration = self._gauge(
            "collect_duration_seconds",
            "Duration of the last metrics collection in seconds.",
            [CLUSTER_LABEL]
        )
        self.collect_errors = Counter(
            "collect_errors",
            "Total number of errors encountered during metrics collection.",
            [CLUSTER_LABEL],
            namespace=NAMESPACE,
            registry=self.registry
        )
        self.last_successful_collect = self._gauge(
            "last_successful_collect_timestamp_seconds",
            "Unix timestamp of the last successful metrics collection.",
            [CLUSTER_LABEL]
        )

    def _gauge(self, name: str, documentation: str, labelnames) -> Gauge:
        return Gauge(name, documentation, labelnames, namespace=NAMESPACE, registry=self.registry)

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Current value of a series, or None if it is not exported."""
        return self.registry.get_sample_value(f"{NAMESPACE}_{name}", labels or {})
