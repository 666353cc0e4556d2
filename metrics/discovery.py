import logging
from typing import List, Tuple

from metrics import templates as t
from metrics.time_range import TimeRange
from model.app import App, AppMetadata

logger = logging.getLogger(__name__)

SYSTEM_NAMESPACES = ("kube-system", "kube-public", "kube-node-lease")
DEPLOYMENT_LABEL = "deployment"


def _namespace_allowed(ns: str) -> bool:
    return ns not in SYSTEM_NAMESPACES


def discover_namespaces(client, time_range: TimeRange, ctx=None) -> Tuple[List[str], List[str]]:
    """
    Discover the namespaces seen during the analysis window, excluding
    system namespaces.

    Errors are raised to the caller: without namespaces there is nothing
    to collect.
    """
    raw, warnings = client.label_values("namespace", time_range.start, time_range.end, ctx=ctx)
    namespaces = [ns for ns in raw if _namespace_allowed(ns)]
    logger.debug(f"Namespaces: {namespaces} (excluded {sorted(set(raw) - set(namespaces))})")
    return namespaces, warnings


def discover_workloads(client, namespace: str, time_range: TimeRange, ctx=None,
                       workload_kind: str = "Deployment", workload_api_version: str = "apps/v1") -> Tuple[List[App], List[str]]:
    """
    Discover the deployments of a namespace via kube-state-metrics
    (`kube_deployment_labels`) at the end of the window.

    Returns one App stub (metadata only) per distinct deployment.
    """
    query = t.DEPLOYMENTS.substitute(namespace=namespace)
    samples, warnings = client.query_instant(query, at=time_range.end, ctx=ctx)

    apps: List[App] = []
    seen = set()
    for sample in samples:
        name = sample.labels.get(DEPLOYMENT_LABEL)
        if not name:
            msg = f"Deployment series without a {DEPLOYMENT_LABEL!r} label in namespace {namespace!r}: {sample.labels}; skipping"
            logger.warning(msg)
            warnings.append(msg)
            continue
        if name in seen:
            continue
        seen.add(name)
        apps.append(App(metadata=AppMetadata(
            namespace=namespace,
            workload=name,
            workload_kind=workload_kind,
            workload_api_version=workload_api_version,
        )))
    return apps, warnings
