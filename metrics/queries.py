"""
Typed queries on top of PrometheusClient.

Each function returns `(value, warnings)`: warnings are non-fatal and
attached to the owning workload by the collector; errors are raised as
PrometheusError / LabelMismatchError and are turned into warnings there too.
"""
import logging
from string import Template
from typing import Dict, List, Optional, Tuple

from metrics.prometheus_client import PrometheusError
from metrics.templates import QuerySelectors, render
from metrics.time_range import TimeRange
from normalize import math as m
from normalize.stats import NoDataError, value_from_samples

logger = logging.getLogger(__name__)

CONTAINER_LABEL = "container"
RESOURCE_LABEL = "resource"
KNOWN_RESOURCES = ("cpu", "memory")
# cAdvisor reports pause-container and pod-level series under these names
IGNORED_CONTAINERS = ("", "POD")


class LabelMismatchError(PrometheusError):
    """A query returned a label set other than the one it was written for."""
    pass


def get_aggregate_metric(client, selectors: QuerySelectors, time_range: TimeRange, metric: str,
                         aggregation: str, ctx=None) -> Tuple[Optional[float], List[str]]:
    """Aggregate `metric` over the workload's pods and reduce the resulting series with `aggregation`.

    Only `min` and `sum` are supported. Returns None when there is no data.
    """
    reducers = {"min": m.finite_min, "sum": m.finite_sum}
    if aggregation not in reducers:
        raise ValueError(f"aggregation {aggregation!r} is not supported")

    query = f'{aggregation}({metric}{{{selectors.pod_selector}}})'
    series, warnings = client.query_range(query, time_range.start, time_range.end, time_range.step, ctx=ctx)
    if not series:
        return None, warnings
    if len(series) != 1:
        raise LabelMismatchError(f"query {query!r} returned {len(series)} series instead of one")
    if series[0].labels:
        raise LabelMismatchError(f"query {query!r} returned labels {series[0].labels} for an aggregate series")

    values = [v for _, v in series[0].samples]
    if not values:
        return None, warnings
    return reducers[aggregation](values), warnings


def get_ranged_metric(client, selectors: QuerySelectors, time_range: TimeRange, template: Template,
                      ctx=None) -> Tuple[Optional[float], List[str]]:
    """Representative value of a single-series range query, or None when there is no data."""
    query = render(template, selectors)
    series, warnings = client.query_range(query, time_range.start, time_range.end, time_range.step, ctx=ctx)
    logger.debug(f"Application {selectors.namespace}/{selectors.workload}: query {query!r} returned {len(series)} series")
    if not series:
        return None, warnings
    if len(series) != 1:
        raise LabelMismatchError(f"query {query!r} returned {len(series)} series instead of one")

    value, stat_warnings = value_from_samples(series[0].samples, f"query {query!r}")
    return value, warnings + stat_warnings


def get_container_inventory(client, selectors: QuerySelectors, time_range: TimeRange,
                            template: Template, ctx=None) -> Tuple[List[str], List[str]]:
    """Distinct container names of the workload's pods, in the order Prometheus returned them."""
    query = render(template, selectors)
    samples, warnings = client.query_instant(query, at=time_range.end, ctx=ctx)
    names: List[str] = []
    for sample in samples:
        if set(sample.labels) != {CONTAINER_LABEL}:
            raise LabelMismatchError(f"query {query!r} returned labels {sample.labels}, expected ['{CONTAINER_LABEL}']")
        name = sample.labels[CONTAINER_LABEL]
        if name not in names:
            names.append(name)
    return names, warnings


def get_container_resources(client, selectors: QuerySelectors, time_range: TimeRange,
                            template: Template, ctx=None) -> Tuple[List[Tuple[str, str, float]], List[str]]:
    """Per-container resource settings as (container, resource, value) tuples."""
    query = render(template, selectors)
    samples, warnings = client.query_instant(query, at=time_range.end, ctx=ctx)
    values: List[Tuple[str, str, float]] = []
    for sample in samples:
        if set(sample.labels) != {CONTAINER_LABEL, RESOURCE_LABEL}:
            raise LabelMismatchError(
                f"query {query!r} returned labels {sample.labels}, expected ['{CONTAINER_LABEL}', '{RESOURCE_LABEL}']")
        resource = sample.labels[RESOURCE_LABEL]
        if resource not in KNOWN_RESOURCES:
            msg = f"query {query!r} returned unrecognized resource type {resource!r}, ignoring"
            logger.warning(msg)
            warnings.append(msg)
            continue
        values.append((sample.labels[CONTAINER_LABEL], resource, sample.value))
    return values, warnings


def get_container_values(client, selectors: QuerySelectors, time_range: TimeRange,
                         template: Template, ctx=None) -> Tuple[Dict[str, float], List[str]]:
    """Representative value per container of a by-container range query."""
    query = render(template, selectors)
    series, warnings = client.query_range(query, time_range.start, time_range.end, time_range.step, ctx=ctx)
    app_label = f"{selectors.namespace}/{selectors.workload}"

    values: Dict[str, float] = {}
    for s in series:
        if not s.labels:
            continue
        if CONTAINER_LABEL not in s.labels:
            msg = f"series returned for query {query!r} lacks the required {CONTAINER_LABEL!r} label ({s.labels}) for app {app_label}; skipping series"
            logger.error(msg)
            warnings.append(msg)
            continue
        if len(s.labels) > 1:
            msg = f"series returned for query {query!r} has labels {s.labels}, expected ['{CONTAINER_LABEL}'], ignoring extras (app {app_label})"
            logger.warning(msg)
            warnings.append(msg)
        name = s.labels[CONTAINER_LABEL]
        if name in IGNORED_CONTAINERS:
            continue

        label = f"app {app_label}, container {name!r}, query {query!r}"
        try:
            value, stat_warnings = value_from_samples(s.samples, label)
        except NoDataError as e:
            msg = f"Failed statistical processing for {label}: {e}; skipping series"
            logger.error(msg)
            warnings.append(msg)
            continue
        warnings.extend(stat_warnings)
        values[name] = value

    return values, warnings
