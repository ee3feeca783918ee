"""
Inventory module initialization.
"""

from .source import (
    InventoryError,
    InventoryConnectionError,
    InventoryResponseError,
    ResourceKind,
    NodeRecord,
    SubClusterRecord,
    DataStoreRecord,
    ApplicationRecord,
    InventorySource,
    FileInventorySource,
    HttpInventorySource,
    InventorySourceFactory
)

__all__ = [
    'InventoryError',
    'InventoryConnectionError',
    'InventoryResponseError',
    'ResourceKind',
    'NodeRecord',
    'SubClusterRecord',
    'DataStoreRecord',
    'ApplicationRecord',
    'InventorySource',
    'FileInventorySource',
    'HttpInventorySource',
    'InventorySourceFactory'
]
