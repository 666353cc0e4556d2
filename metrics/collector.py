"""
Per-workload collector: fills in settings, containers and metrics of one App.

Every collection step is independent. A failed or empty step leaves its
fields at their zero value and records a warning on the App; it never
stops the steps after it.
"""
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from metrics import templates as t
from metrics.prometheus_client import PrometheusError
from metrics.queries import (
    get_aggregate_metric,
    get_container_inventory,
    get_container_resources,
    get_container_values,
    get_ranged_metric,
)
from metrics.time_range import TimeRange
from model.app import App, AppContainer, AppMetadata
from normalize import math as m
from normalize.stats import NoDataError

logger = logging.getLogger(__name__)


class Resource(Enum):
    CPU = "cpu"
    MEMORY = "memory"


class ResourceField(Enum):
    REQUEST = "request"
    LIMIT = "limit"
    USAGE = "usage"
    SATURATION = "saturation"
    SECONDS_THROTTLED = "seconds_throttled"
    RESTART_COUNT = "restart_count"


def _set_cpu(attr: str) -> Callable[[AppContainer, float], None]:
    return lambda c, v: setattr(c.cpu, attr, v)


def _set_memory(attr: str) -> Callable[[AppContainer, float], None]:
    return lambda c, v: setattr(c.memory, attr, v)


FIELD_SETTERS: Dict[Tuple[Optional[Resource], ResourceField], Callable[[AppContainer, float], None]] = {
    (Resource.CPU, ResourceField.REQUEST): _set_cpu("request"),
    (Resource.CPU, ResourceField.LIMIT): _set_cpu("limit"),
    (Resource.CPU, ResourceField.USAGE): _set_cpu("usage"),
    (Resource.CPU, ResourceField.SATURATION): _set_cpu("saturation"),
    (Resource.CPU, ResourceField.SECONDS_THROTTLED): _set_cpu("seconds_throttled"),
    (Resource.MEMORY, ResourceField.REQUEST): _set_memory("request"),
    (Resource.MEMORY, ResourceField.LIMIT): _set_memory("limit"),
    (Resource.MEMORY, ResourceField.USAGE): _set_memory("usage"),
    (Resource.MEMORY, ResourceField.SATURATION): _set_memory("saturation"),
    (None, ResourceField.RESTART_COUNT): lambda c, v: setattr(c, "restart_count", v),
}

# series that are legitimately absent (no throttling happened)
OPTIONAL_FIELDS = (ResourceField.SECONDS_THROTTLED,)


def _field_label(resource: Optional[Resource], field: ResourceField) -> str:
    return f"{resource.value}.{field.value}" if resource else field.value


def set_container_field(container: AppContainer, resource: Optional[Resource], field: ResourceField, value: float) -> None:
    try:
        setter = FIELD_SETTERS[(resource, field)]
    except KeyError:
        raise ValueError(f"no container field {_field_label(resource, field)}")
    setter(container, value)


def distribute_container_values(app: App, values: Dict[str, float], resource: Optional[Resource],
                                field: ResourceField) -> List[str]:
    """Write a by-container value map onto the app's containers; return warnings for mismatches."""
    warnings: List[str] = []
    remaining = dict(values)
    label = _field_label(resource, field)
    for container in app.containers:
        if container.name not in remaining:
            if field not in OPTIONAL_FIELDS:
                msg = f"Didn't find value of {label} for container {container.name!r} of app {app.metadata}; assuming 0"
                logger.warning(msg)
                warnings.append(msg)
            continue
        set_container_field(container, resource, field, remaining.pop(container.name))
    if remaining:
        msg = f"Unexpected container data series for {label} (app {app.metadata}): {remaining}; ignoring"
        logger.warning(msg)
        warnings.append(msg)
    return warnings


def _record(app: App, label: str, warnings: List[str], error: Optional[Exception] = None) -> None:
    if error is not None:
        msg = f"Error querying Prometheus for {label} on app {app.metadata}: {error}; skipping value"
        logger.error(msg)
        app.warnings.append(msg)
    if warnings:
        logger.warning(f"Warnings while querying Prometheus for {label} on app {app.metadata}: {warnings}")
        app.warnings.extend(warnings)


def _collect_writeable_volume(client, app, selectors, time_range, ctx) -> List[str]:
    value, warnings = get_aggregate_metric(client, selectors, time_range, t.WRITEABLE_VOLUME_METRIC, "min", ctx=ctx)
    # the metric is 1 for read-only claims; a minimum of 0 means some pod has a writeable claim
    if value is not None and value == 0:
        app.settings.writeable_volume = True
    return warnings


def _collect_replicas(client, app, selectors, time_range, ctx) -> List[str]:
    value, warnings = get_ranged_metric(client, selectors, time_range, t.REPLICA_COUNT, ctx=ctx)
    if value is not None:
        app.metrics.average_replicas = value
    return warnings


def _collect_inventory(client, app, selectors, time_range, ctx) -> List[str]:
    names, warnings = get_container_inventory(client, selectors, time_range, t.CONTAINER_INFO, ctx=ctx)
    for name in names:
        if app.container_index_by_name(name) is None:
            app.containers.append(AppContainer(name=name))
    return warnings


def _values_step(template, resource, field):
    def step(client, app, selectors, time_range, ctx) -> List[str]:
        values, warnings = get_container_values(client, selectors, time_range, template, ctx=ctx)
        return warnings + distribute_container_values(app, values, resource, field)
    return step


def _resources_step(template, field):
    def step(client, app, selectors, time_range, ctx) -> List[str]:
        values, warnings = get_container_resources(client, selectors, time_range, template, ctx=ctx)
        for name, resource, value in values:
            container = app.container_by_name(name)
            if container is None:
                msg = f"Unexpected combination of container/resource: {name!r}/{resource!r}; ignoring value"
                logger.warning(msg)
                warnings.append(msg)
                continue
            set_container_field(container, Resource(resource), field, value)
        return warnings
    return step


def _collect_receive_rate(client, app, selectors, time_range, ctx) -> List[str]:
    rx, warnings = get_ranged_metric(client, selectors, time_range, t.POD_RX_PACKETS, ctx=ctx)
    if rx is not None:
        app.metrics.packet_receive_rate = m.magic_round(rx)
    return warnings


def _collect_transmit_rate(client, app, selectors, time_range, ctx) -> List[str]:
    tx, warnings = get_ranged_metric(client, selectors, time_range, t.POD_TX_PACKETS, ctx=ctx)
    if tx is not None:
        app.metrics.packet_transmit_rate = m.magic_round(tx)
    return warnings


COLLECTION_STEPS = [
    ("volume access", _collect_writeable_volume),
    ("replica count", _collect_replicas),
    ("container info", _collect_inventory),
    ("restart counts", _values_step(t.CONTAINER_RESTARTS, None, ResourceField.RESTART_COUNT)),
    ("resource requests", _resources_step(t.CONTAINER_RESOURCE_REQUESTS, ResourceField.REQUEST)),
    ("resource limits", _resources_step(t.CONTAINER_RESOURCE_LIMITS, ResourceField.LIMIT)),
    ("CPU usage", _values_step(t.CONTAINER_CPU_USE, Resource.CPU, ResourceField.USAGE)),
    ("memory usage", _values_step(t.CONTAINER_MEMORY_USE, Resource.MEMORY, ResourceField.USAGE)),
    ("CPU saturation", _values_step(t.CONTAINER_CPU_SATURATION, Resource.CPU, ResourceField.SATURATION)),
    ("memory saturation", _values_step(t.CONTAINER_MEMORY_SATURATION, Resource.MEMORY, ResourceField.SATURATION)),
    ("CPU throttling", _values_step(t.CONTAINER_CPU_SECONDS_THROTTLED, Resource.CPU, ResourceField.SECONDS_THROTTLED)),
    ("packet receive rate", _collect_receive_rate),
    ("packet transmit rate", _collect_transmit_rate),
]


def collect_workload_details(client, app: App, time_range: TimeRange, ctx=None) -> List[str]:
    """Run every collection step for `app`, in order; return the warnings recorded by this call."""
    selectors = t.selectors_for(app.metadata)
    first_warning = len(app.warnings)

    for label, step in COLLECTION_STEPS:
        try:
            warnings = step(client, app, selectors, time_range, ctx)
        except (PrometheusError, NoDataError) as e:
            _record(app, label, [], e)
            continue
        _record(app, label, warnings)

    logger.debug(f"App {app.metadata} has {len(app.containers)} container(s): {[c.name for c in app.containers]}")
    return app.warnings[first_warning:]


def collect_single_app(client, namespace: str, workload: str, time_range: TimeRange,
                       workload_kind: str = "Deployment", workload_api_version: str = "apps/v1", ctx=None) -> App:
    app = App(metadata=AppMetadata(
        namespace=namespace,
        workload=workload,
        workload_kind=workload_kind,
        workload_api_version=workload_api_version,
    ))
    collect_workload_details(client, app, time_range, ctx=ctx)
    return app
