"""
Inventory Source Module

This module provides an extensible interface for fetching the inventory of
an access-management control plane: the cluster identity plus the nodes,
Kubernetes clusters, databases and applications registered with it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any
import logging
import os
import threading

import requests
import yaml

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Raised when the control plane cannot be queried."""


class InventoryConnectionError(InventoryError):
    """The control plane could not be reached."""


class InventoryResponseError(InventoryError):
    """The control plane answered with something unusable."""


class ResourceKind(Enum):
    """Resource kinds fetched on every poll cycle, in fetch order."""
    NODES = "nodes"
    SUB_CLUSTERS = "kubernetes_clusters"
    DATA_STORES = "databases"
    APPLICATIONS = "apps"


@dataclass(frozen=True)
class NodeRecord:
    """An SSH node registered with the control plane."""
    name: str
    hostname: str = ""
    address: str = ""
    namespace: str = "default"
    sub_kind: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SubClusterRecord:
    """A Kubernetes cluster registered with the control plane."""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DataStoreRecord:
    """A database registered with the control plane."""
    name: str
    protocol: str = ""
    store_type: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ApplicationRecord:
    """An application published through the control plane."""
    name: str
    public_addr: str = ""
    uri: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


def _labels(data: Dict[str, Any]) -> Dict[str, str]:
    raw = data.get('labels') or {}
    return {str(k): str(v) for k, v in raw.items()}


def _dedupe_by_name(records: List[Any]) -> List[Any]:
    """Keep the last record per name; several agents may serve one resource."""
    by_name = {}
    for record in records:
        by_name[record.name] = record
    return list(by_name.values())


def parse_nodes(items: List[Dict[str, Any]]) -> List[NodeRecord]:
    return [
        NodeRecord(
            name=str(item['name']),
            hostname=item.get('hostname') or '',
            address=item.get('address') or item.get('addr') or '',
            namespace=item.get('namespace') or 'default',
            sub_kind=item.get('sub_kind') or item.get('subkind') or '',
            labels=_labels(item)
        )
        for item in items
    ]


def parse_sub_clusters(items: List[Dict[str, Any]]) -> List[SubClusterRecord]:
    return _dedupe_by_name([
        SubClusterRecord(name=str(item['name']), labels=_labels(item))
        for item in items
    ])


def parse_data_stores(items: List[Dict[str, Any]]) -> List[DataStoreRecord]:
    return _dedupe_by_name([
        DataStoreRecord(
            name=str(item['name']),
            protocol=item.get('protocol') or '',
            store_type=item.get('type') or '',
            labels=_labels(item)
        )
        for item in items
    ])


def parse_applications(items: List[Dict[str, Any]]) -> List[ApplicationRecord]:
    return _dedupe_by_name([
        ApplicationRecord(
            name=str(item['name']),
            public_addr=item.get('public_addr') or '',
            uri=item.get('uri') or '',
            labels=_labels(item)
        )
        for item in items
    ])


class InventorySource(ABC):
    """Abstract base class for control-plane inventory sources.

    Every fetch either returns the full list for its kind or raises
    InventoryError. Sources hold no inventory between calls.
    """

    @abstractmethod
    def fetch_identity(self) -> str:
        """Return the name of the connected control-plane cluster."""
        pass

    @abstractmethod
    def get_nodes(self) -> List[NodeRecord]:
        pass

    @abstractmethod
    def get_sub_clusters(self) -> List[SubClusterRecord]:
        pass

    @abstractmethod
    def get_data_stores(self) -> List[DataStoreRecord]:
        pass

    @abstractmethod
    def get_applications(self) -> List[ApplicationRecord]:
        pass

    def fetch(self, kind: ResourceKind) -> List[Any]:
        """Fetch the snapshot for one resource kind."""
        if kind is ResourceKind.NODES:
            return self.get_nodes()
        if kind is ResourceKind.SUB_CLUSTERS:
            return self.get_sub_clusters()
        if kind is ResourceKind.DATA_STORES:
            return self.get_data_stores()
        if kind is ResourceKind.APPLICATIONS:
            return self.get_applications()
        raise ValueError(f"Unknown resource kind: {kind}")

    def is_connected(self) -> bool:
        return True

    def close(self) -> None:
        pass


class FileInventorySource(InventorySource):
    """Inventory source that reads a YAML snapshot of the control plane.

    The file is re-read on every fetch, so edits show up on the next poll.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.file_path):
            raise InventoryConnectionError(f"Inventory file not found: {self.file_path}")

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, IOError) as e:
            raise InventoryResponseError(f"Failed to read inventory file {self.file_path}: {e}") from e

        if not isinstance(data, dict):
            raise InventoryResponseError(f"Inventory file {self.file_path} is not a mapping")
        return data

    def _items(self, key: str) -> List[Dict[str, Any]]:
        items = self._load().get(key) or []
        if not isinstance(items, list):
            raise InventoryResponseError(f"'{key}' in {self.file_path} is not a list")
        return items

    def fetch_identity(self) -> str:
        name = self._load().get('cluster_name')
        if not name:
            raise InventoryResponseError(f"No cluster_name in {self.file_path}")
        return str(name)

    def get_nodes(self) -> List[NodeRecord]:
        return parse_nodes(self._items('nodes'))

    def get_sub_clusters(self) -> List[SubClusterRecord]:
        return parse_sub_clusters(self._items('kubernetes_clusters'))

    def get_data_stores(self) -> List[DataStoreRecord]:
        return parse_data_stores(self._items('databases'))

    def get_applications(self) -> List[ApplicationRecord]:
        return parse_applications(self._items('apps'))

    def is_connected(self) -> bool:
        return os.path.exists(self.file_path)


class HttpInventorySource(InventorySource):
    """
    Inventory source backed by the control plane's HTTP JSON API.

    Endpoints (relative to base_url):
        /v1/cluster      -> {"cluster_name": "..."}
        /v1/nodes        -> {"items": [...]}
        /v1/kubernetes   -> {"items": [...]}
        /v1/databases    -> {"items": [...]}
        /v1/apps         -> {"items": [...]}

    The token file (identity file) holds a bearer token and is re-read on
    every request so rotated credentials are picked up without a restart.
    """

    ENDPOINTS = {
        ResourceKind.NODES: '/v1/nodes',
        ResourceKind.SUB_CLUSTERS: '/v1/kubernetes',
        ResourceKind.DATA_STORES: '/v1/databases',
        ResourceKind.APPLICATIONS: '/v1/apps',
    }
    IDENTITY_ENDPOINT = '/v1/cluster'

    def __init__(self, base_url: str, token_file: Optional[str] = None,
                 timeout: float = 30, insecure: bool = False):
        if not base_url:
            raise ValueError("base_url is required for the http inventory source")
        self.base_url = base_url.rstrip('/')
        self.token_file = token_file
        self.timeout = timeout
        self.insecure = insecure
        self._session = requests.Session()
        self._connected = False
        self._lock = threading.Lock()

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token_file:
            try:
                with open(self.token_file, 'r', encoding='utf-8') as f:
                    token = f.read().strip()
            except IOError as e:
                raise InventoryConnectionError(f"Failed to read identity file {self.token_file}: {e}") from e
            if token:
                headers['Authorization'] = f"Bearer {token}"
        return headers

    def _set_connected(self, connected: bool) -> None:
        with self._lock:
            self._connected = connected

    def _get(self, path: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url}")
        try:
            response = self._session.get(
                url,
                headers=self._headers(),
                timeout=self.timeout,
                verify=not self.insecure
            )
        except requests.RequestException as e:
            self._set_connected(False)
            raise InventoryConnectionError(f"GET {url} failed: {e}") from e

        self._set_connected(True)
        if response.status_code >= 400:
            raise InventoryResponseError(f"GET {url} failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise InventoryResponseError(f"GET {url} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise InventoryResponseError(f"GET {url} returned {type(data).__name__}, expected object")
        return data

    def _get_items(self, kind: ResourceKind) -> List[Dict[str, Any]]:
        data = self._get(self.ENDPOINTS[kind])
        items = data.get('items') or []
        if not isinstance(items, list):
            raise InventoryResponseError(f"'items' for {kind.value} is not a list")
        logger.debug(f"Fetched {len(items)} {kind.value}")
        return items

    def fetch_identity(self) -> str:
        data = self._get(self.IDENTITY_ENDPOINT)
        name = data.get('cluster_name')
        if not name:
            raise InventoryResponseError("Cluster identity response has no cluster_name")
        return str(name)

    def get_nodes(self) -> List[NodeRecord]:
        return parse_nodes(self._get_items(ResourceKind.NODES))

    def get_sub_clusters(self) -> List[SubClusterRecord]:
        return parse_sub_clusters(self._get_items(ResourceKind.SUB_CLUSTERS))

    def get_data_stores(self) -> List[DataStoreRecord]:
        return parse_data_stores(self._get_items(ResourceKind.DATA_STORES))

    def get_applications(self) -> List[ApplicationRecord]:
        return parse_applications(self._get_items(ResourceKind.APPLICATIONS))

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def close(self) -> None:
        self._set_connected(False)
        self._session.close()


class InventorySourceFactory:
    """Factory class for creating inventory sources."""

    @staticmethod
    def create(source_type: str, config: Dict[str, Any]) -> InventorySource:
        """Create an inventory source based on type and configuration."""
        if source_type == 'file':
            return FileInventorySource(config.get('file_path', 'config/inventory.yaml'))
        elif source_type == 'http':
            return HttpInventorySource(
                base_url=config.get('base_url', ''),
                token_file=config.get('token_file') or None,
                timeout=config.get('timeout', 30),
                insecure=bool(config.get('insecure', False))
            )
        else:
            raise ValueError(f"Unknown inventory source type: {source_type}")
