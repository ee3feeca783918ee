"""
Metrics module initialization.
"""

from .families import ExporterMetrics
from .labels import (
    extract_cluster_name,
    is_workload_cluster
)
from .reconciler import (
    CycleResult,
    Reconciler
)

__all__ = [
    'ExporterMetrics',
    'extract_cluster_name',
    'is_workload_cluster',
    'CycleResult',
    'Reconciler'
]
