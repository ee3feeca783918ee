"""
Label helpers shared by the update routines.

These are heuristics with literal fallbacks. Ambiguous or unusual input
resolves to the fallback rather than a guess.
"""

from typing import Tuple

from access_exporter.inventory import NodeRecord

UNKNOWN = "unknown"
DEFAULT_SUB_KIND = "default"

# Checked in order; the first non-empty value wins.
CLUSTER_LABEL_KEYS: Tuple[str, ...] = (
    "giantswarm.io/cluster",
    "cluster",
    "kubernetes-cluster",
    "kube-cluster",
    "teleport.dev/kubernetes-cluster",
)


def normalize(value: str, fallback: str = UNKNOWN) -> str:
    """Return value, or fallback when value is empty."""
    return value if value else fallback


def extract_cluster_name(node: NodeRecord) -> str:
    """
    Infer the Kubernetes cluster a node belongs to.

    Labels take precedence. Otherwise the second dot-separated hostname
    segment is used, e.g. "ip-10-0-0-1.us-west-2.compute.internal" gives
    "us-west-2" and "node-1.mycluster.local" gives "mycluster".
    """
    for key in CLUSTER_LABEL_KEYS:
        value = node.labels.get(key)
        if value:
            return value

    parts = node.hostname.split('.')
    if len(parts) >= 2 and parts[1]:
        return parts[1]

    return UNKNOWN


def is_workload_cluster(name: str) -> bool:
    """Workload cluster names contain a hyphen; management cluster names don't."""
    return '-' in name
