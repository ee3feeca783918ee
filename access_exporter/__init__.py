"""
Access inventory exporter.

Polls an access-management control plane for its inventory and publishes it
as Prometheus metrics.
"""

__version__ = "0.1.0"

from .inventory import (
    ResourceKind,
    NodeRecord,
    SubClusterRecord,
    DataStoreRecord,
    ApplicationRecord,
    InventoryError,
    InventorySource,
    FileInventorySource,
    HttpInventorySource,
    InventorySourceFactory
)

from .metrics import (
    ExporterMetrics,
    CycleResult,
    Reconciler
)

from .scheduler import PollScheduler

__all__ = [
    '__version__',
    'ResourceKind',
    'NodeRecord',
    'SubClusterRecord',
    'DataStoreRecord',
    'ApplicationRecord',
    'InventoryError',
    'InventorySource',
    'FileInventorySource',
    'HttpInventorySource',
    'InventorySourceFactory',
    'ExporterMetrics',
    'CycleResult',
    'Reconciler',
    'PollScheduler'
]
