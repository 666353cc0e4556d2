"""
Test fixtures and configuration for pytest
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from metrics.prometheus_client import MatrixSeries, VectorSample
from metrics.time_range import TimeRange
from model.app import App, AppContainer, AppMetadata, CpuInfo, MemoryInfo

MIB = 1024 ** 2
GIB = 1024 ** 3

# Query substrings that identify each collection query
Q_DEPLOYMENTS = 'kube_deployment_labels'
Q_VOLUMES = 'min(kube_pod_spec_volumes_persistentvolumeclaims_readonly'
Q_REPLICAS = 'kube_deployment_status_replicas'
Q_INVENTORY = 'kube_pod_container_info'
Q_RESTARTS = 'restarts_total'
Q_REQUESTS = '(kube_pod_container_resource_requests'
Q_LIMITS = 'kube_pod_container_resource_limits'
Q_CPU_USE = 'avg by (container) (rate(container_cpu_usage_seconds_total'
Q_MEMORY_USE = 'avg by (container) (container_memory_working_set_bytes'
Q_CPU_SATURATION = 'resource="cpu"'
Q_MEMORY_SATURATION = 'resource="memory"'
Q_THROTTLED = 'cfs_throttled'
Q_RX = 'receive_packets'
Q_TX = 'transmit_packets'


def vector(labels, value):
    return VectorSample(labels=dict(labels), value=float(value))


def matrix(labels, values, start=1767225600.0, step=3600.0):
    """Range series with one sample per step"""
    return MatrixSeries(labels=dict(labels),
                        samples=[(start + i * step, float(v)) for i, v in enumerate(values)])


class FakePrometheusClient:
    """In-memory stand-in for PrometheusClient.

    Queries are routed by substring: the first key of the matching table
    contained in the query wins. Keys in `errors` raise instead. Unknown
    queries return no data.
    """

    def __init__(self, instant=None, ranges=None, labels=None, errors=None, warnings=None):
        self.url = "http://fake-prometheus:9090"
        self.instant = instant or {}
        self.ranges = ranges or {}
        self.labels = labels or {}
        self.errors = errors or {}
        self.warnings = warnings or []
        self.queries = []
        self._lock = threading.Lock()

    def _route(self, table, query, ctx):
        with self._lock:
            self.queries.append(query)
        if ctx is not None:
            ctx.check()
        for key, exc in self.errors.items():
            if key in query:
                raise exc
        for key, value in table.items():
            if key in query:
                return list(value), list(self.warnings)
        return [], list(self.warnings)

    def query_instant(self, query, at=None, ctx=None):
        return self._route(self.instant, query, ctx)

    def query_range(self, query, start, end, step, ctx=None):
        return self._route(self.ranges, query, ctx)

    def label_values(self, label, start=None, end=None, ctx=None):
        return self._route(self.labels, label, ctx)


def healthy_workload_tables(container="api", cpu_request=0.5, cpu_usage=0.4,
                            memory_request=512 * MIB, memory_usage=384 * MIB, replicas=5, packets=20):
    """Instant and range tables describing one well-behaved single-container workload"""
    c = {"container": container}
    instant = {
        Q_INVENTORY: [vector(c, 1)],
        Q_REQUESTS: [vector({**c, "resource": "cpu"}, cpu_request),
                     vector({**c, "resource": "memory"}, memory_request)],
        Q_LIMITS: [vector({**c, "resource": "cpu"}, cpu_request),
                   vector({**c, "resource": "memory"}, memory_request)],
    }
    ranges = {
        Q_VOLUMES: [matrix({}, [1, 1, 1])],
        Q_REPLICAS: [matrix({"deployment": container}, [replicas] * 3)],
        Q_RESTARTS: [matrix(c, [0, 0, 0])],
        Q_CPU_USE: [matrix(c, [cpu_usage] * 3)],
        Q_MEMORY_USE: [matrix(c, [memory_usage] * 3)],
        Q_CPU_SATURATION: [matrix(c, [cpu_usage / cpu_request] * 3)],
        Q_MEMORY_SATURATION: [matrix(c, [memory_usage / memory_request] * 3)],
        Q_RX: [matrix({}, [packets] * 3)],
        Q_TX: [matrix({}, [packets] * 3)],
    }
    return instant, ranges


@pytest.fixture
def time_range():
    end = datetime(2026, 1, 8, tzinfo=timezone.utc)
    return TimeRange(start=end - timedelta(days=7), end=end, step=timedelta(hours=1))


@pytest.fixture
def fake_client_factory():
    return FakePrometheusClient


@pytest.fixture
def healthy_client():
    instant, ranges = healthy_workload_tables()
    return FakePrometheusClient(instant=instant, ranges=ranges)


@pytest.fixture
def make_app():
    """Build an App with a single container from plain numbers"""
    def _make(name="api", namespace="default", cpu_request=1.0, cpu_limit=1.0, cpu_usage=0.85,
              memory_request=GIB, memory_limit=GIB, memory_usage=0.85 * GIB,
              replicas=5, request_rate=10.0, containers=None):
        app = App(metadata=AppMetadata(namespace=namespace, workload=name))
        if containers is None:
            containers = [AppContainer(
                name=name,
                cpu=CpuInfo(request=cpu_request, limit=cpu_limit, usage=cpu_usage),
                memory=MemoryInfo(request=memory_request, limit=memory_limit, usage=memory_usage),
            )]
        app.containers = containers
        app.metrics.average_replicas = replicas
        app.metrics.request_rate = request_rate
        return app
    return _make


@pytest.fixture
def mock_prometheus_response():
    """Sample Prometheus instant query response"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"container": "api", "resource": "cpu"},
                    "value": [1767225600, "0.5"]
                }
            ]
        }
    }


@pytest.fixture
def mock_prometheus_range_response():
    """Sample Prometheus range query response"""
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [
                {
                    "metric": {"container": "api"},
                    "values": [[1767225600, "0.4"], [1767229200, "0.5"], [1767232800, "0.6"]]
                }
            ]
        }
    }
