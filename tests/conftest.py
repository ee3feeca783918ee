import pytest
from prometheus_client import CollectorRegistry

from access_exporter.inventory import InventoryConnectionError, InventorySource, ResourceKind
from access_exporter.metrics import ExporterMetrics, Reconciler


class StubInventorySource(InventorySource):
    """In-memory source whose snapshots and failures tests set directly."""

    def __init__(self, cluster_name="test-cluster"):
        self.cluster_name = cluster_name
        self.identity_error = None
        self.snapshots = {kind: [] for kind in ResourceKind}
        self.errors = {}
        self.calls = []

    def fetch_identity(self):
        self.calls.append('identity')
        if self.identity_error:
            raise self.identity_error
        return self.cluster_name

    def fetch(self, kind):
        self.calls.append(kind)
        if kind in self.errors:
            raise self.errors[kind]
        return list(self.snapshots[kind])

    def get_nodes(self):
        return self.fetch(ResourceKind.NODES)

    def get_sub_clusters(self):
        return self.fetch(ResourceKind.SUB_CLUSTERS)

    def get_data_stores(self):
        return self.fetch(ResourceKind.DATA_STORES)

    def get_applications(self):
        return self.fetch(ResourceKind.APPLICATIONS)

    def fail(self, kind, message="connection refused"):
        self.errors[kind] = InventoryConnectionError(message)


@pytest.fixture
def source():
    return StubInventorySource()


@pytest.fixture
def metrics():
    return ExporterMetrics(CollectorRegistry())


@pytest.fixture
def reconciler(source, metrics):
    return Reconciler(source, metrics)
