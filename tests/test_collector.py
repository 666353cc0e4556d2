"""
Tests for per-workload collection
"""
import pytest

from conftest import (
    FakePrometheusClient,
    MIB,
    Q_CPU_USE,
    Q_INVENTORY,
    Q_REQUESTS,
    Q_RX,
    Q_THROTTLED,
    Q_VOLUMES,
    healthy_workload_tables,
    matrix,
    vector,
)
from metrics.collector import (
    Resource,
    ResourceField,
    collect_single_app,
    collect_workload_details,
    distribute_container_values,
    set_container_field,
)
from metrics.prometheus_client import PrometheusConnectionError
from model.app import App, AppContainer, AppMetadata


def _app(*containers):
    app = App(metadata=AppMetadata(namespace="default", workload="api"))
    app.containers = [AppContainer(name=c) for c in containers]
    return app


class TestFieldDispatch:

    def test_set_every_known_field(self):
        c = AppContainer(name="api")
        set_container_field(c, Resource.CPU, ResourceField.REQUEST, 0.5)
        set_container_field(c, Resource.CPU, ResourceField.SECONDS_THROTTLED, 0.2)
        set_container_field(c, Resource.MEMORY, ResourceField.LIMIT, 1024)
        set_container_field(c, None, ResourceField.RESTART_COUNT, 3)
        assert c.cpu.request == 0.5
        assert c.cpu.seconds_throttled == 0.2
        assert c.memory.limit == 1024
        assert c.restart_count == 3

    def test_unknown_combination_is_rejected(self):
        with pytest.raises(ValueError):
            set_container_field(AppContainer(name="api"), Resource.MEMORY, ResourceField.SECONDS_THROTTLED, 1)


class TestDistributeContainerValues:

    def test_values_land_on_matching_containers(self):
        app = _app("api", "envoy")
        warnings = distribute_container_values(app, {"api": 0.4, "envoy": 0.1}, Resource.CPU, ResourceField.USAGE)
        assert warnings == []
        assert app.container_by_name("api").cpu.usage == 0.4
        assert app.container_by_name("envoy").cpu.usage == 0.1

    def test_missing_and_unexpected_containers_warn(self):
        app = _app("api", "envoy")
        warnings = distribute_container_values(app, {"api": 0.4, "ghost": 1.0}, Resource.CPU, ResourceField.USAGE)
        assert len(warnings) == 2
        assert any("'envoy'" in w for w in warnings)
        assert any("ghost" in w for w in warnings)
        assert app.container_by_name("envoy").cpu.usage == 0

    def test_missing_throttling_is_not_a_warning(self):
        app = _app("api")
        assert distribute_container_values(app, {}, Resource.CPU, ResourceField.SECONDS_THROTTLED) == []


class TestCollectWorkload:

    def test_healthy_workload(self, healthy_client, time_range):
        app = collect_single_app(healthy_client, "default", "api", time_range)

        assert [c.name for c in app.containers] == ["api"]
        c = app.containers[0]
        assert c.cpu.request == 0.5
        assert c.cpu.limit == 0.5
        assert c.cpu.usage == 0.4
        assert c.cpu.saturation == 0.8
        assert c.memory.request == 512 * MIB
        assert c.memory.usage == 384 * MIB
        assert c.memory.saturation == 0.75
        assert c.restart_count == 0
        assert app.metrics.average_replicas == 5
        assert app.metrics.packet_receive_rate == 20
        assert app.metrics.packet_transmit_rate == 20
        assert app.settings.writeable_volume is False
        assert app.warnings == []

    def test_writeable_volume_detected(self, time_range):
        instant, ranges = healthy_workload_tables()
        ranges[Q_VOLUMES] = [matrix({}, [1, 0, 1])]
        app = collect_single_app(FakePrometheusClient(instant=instant, ranges=ranges), "default", "api", time_range)
        assert app.settings.writeable_volume is True

    def test_failed_step_does_not_stop_collection(self, time_range):
        instant, ranges = healthy_workload_tables()
        client = FakePrometheusClient(instant=instant, ranges=ranges,
                                      errors={Q_CPU_USE: PrometheusConnectionError("boom")})
        app = collect_single_app(client, "default", "api", time_range)

        assert app.containers[0].cpu.usage == 0
        assert app.containers[0].memory.usage == 384 * MIB
        assert app.metrics.average_replicas == 5
        assert any("CPU usage" in w and "boom" in w for w in app.warnings)

    def test_label_mismatch_becomes_warning(self, time_range):
        instant, ranges = healthy_workload_tables()
        instant[Q_REQUESTS] = [vector({"container": "api"}, 1)]
        app = collect_single_app(FakePrometheusClient(instant=instant, ranges=ranges), "default", "api", time_range)

        assert app.containers[0].cpu.request == 0
        assert app.containers[0].cpu.limit == 0.5
        assert any("resource requests" in w for w in app.warnings)

    def test_throttling_is_collected(self, time_range):
        instant, ranges = healthy_workload_tables()
        ranges[Q_THROTTLED] = [matrix({"container": "api"}, [0.3, 0.3])]
        app = collect_single_app(FakePrometheusClient(instant=instant, ranges=ranges), "default", "api", time_range)
        assert app.containers[0].cpu.seconds_throttled == 0.3

    def test_subnormal_samples_do_not_abort_collection(self, time_range):
        instant, ranges = healthy_workload_tables()
        ranges[Q_THROTTLED] = [matrix({"container": "api"}, [1e-310] * 3)]
        app = collect_single_app(FakePrometheusClient(instant=instant, ranges=ranges), "default", "api", time_range)

        assert 0 < app.containers[0].cpu.seconds_throttled < 1e-300
        assert app.metrics.packet_transmit_rate == 20

    def test_failed_receive_rate_still_collects_transmit_rate(self, time_range):
        instant, ranges = healthy_workload_tables()
        client = FakePrometheusClient(instant=instant, ranges=ranges,
                                      errors={Q_RX: PrometheusConnectionError("boom")})
        app = collect_single_app(client, "default", "api", time_range)

        assert app.metrics.packet_receive_rate == 0
        assert app.metrics.packet_transmit_rate == 20
        assert any("packet receive rate" in w for w in app.warnings)

    def test_no_data_leaves_zero_values(self, time_range):
        app = collect_single_app(FakePrometheusClient(), "default", "ghost", time_range)
        assert app.containers == []
        assert app.metrics.average_replicas == 0
        assert app.settings.writeable_volume is False

    def test_returns_only_new_warnings(self, time_range):
        instant, ranges = healthy_workload_tables()
        instant[Q_INVENTORY] = [vector({"container": "api"}, 1), vector({"container": "envoy"}, 1)]
        app = App(metadata=AppMetadata(namespace="default", workload="api"), warnings=["earlier"])

        new = collect_workload_details(FakePrometheusClient(instant=instant, ranges=ranges), app, time_range)

        assert "earlier" not in new
        assert app.warnings[0] == "earlier"
        assert any("'envoy'" in w for w in new)
        assert [c.name for c in app.containers] == ["api", "envoy"]

    def test_every_step_queries_the_workload_pods(self, healthy_client, time_range):
        collect_single_app(healthy_client, "default", "api", time_range)
        pod_queries = [q for q in healthy_client.queries if "kube_deployment_status_replicas" not in q]
        assert pod_queries
        assert all('pod=~"api-.*"' in q for q in pod_queries)
