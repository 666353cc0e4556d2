"""
Container-level analysis: saturation, pseudo-cost, main container and QoS class.
Pure functions over an already collected App; no Prometheus access.
"""
import logging
from typing import Tuple

from model.app import (
    App,
    AppContainer,
    QOS_BESTEFFORT,
    QOS_BURSTABLE,
    QOS_GUARANTEED,
    ResourceInfo,
)
from normalize import math as m

logger = logging.getLogger(__name__)

# pseudo-cost weights: per core and per GiB, per hour
CPU_COST_PER_CORE = 0.0175
MEMORY_COST_PER_GIB = 0.0125
GIB = 1024 ** 3

MAIN_CONTAINER_NAME = "main"
SATURATION_DIVERGENCE = 0.1


def calc_saturation(r: ResourceInfo, app: App, container: str, resource: str) -> float:
    """usage/request, else usage/limit, else 0. A retrieved saturation wins over the computed one."""
    base = r.request if r.request > 0 else r.limit
    if base <= 0:
        return 0.0

    sat = r.usage / base
    if r.saturation > 0:
        if abs(sat - r.saturation) / r.saturation > SATURATION_DIVERGENCE:
            logger.warning(f"Calculated {resource} saturation and retrieved saturation differ significantly "
                           f"for app {app.metadata} container {container} ({sat}!={r.saturation})")
        sat = r.saturation

    # it is OK for saturation to exceed 1.0, but rounding must not turn a small value into 0
    if sat > 0.01:
        rounded = m.round_half_away(sat * 100) / 100
        if rounded < 0.01:
            logger.warning(f"unexpected math result in resource rounding ({sat}->{rounded}); keeping original value")
        else:
            sat = rounded
    return max(sat, 0.0)


def container_costing_value(r: ResourceInfo) -> float:
    if r.usage > 0:
        return r.usage
    if r.request > 0:
        return r.request
    return r.limit


def container_pseudo_cost(c: AppContainer) -> float:
    cores = container_costing_value(c.cpu)
    gib = container_costing_value(c.memory) / GIB
    return m.magic_round(cores * CPU_COST_PER_CORE + gib * MEMORY_COST_PER_GIB)


def identify_main_container(app: App) -> str:
    """Name of the container to optimize, or "" when it cannot be determined.

    Expects containers sorted by ascending pseudo-cost.
    """
    if not app.containers:
        return ""
    if len(app.containers) == 1:
        return app.containers[0].name

    names = {c.name for c in app.containers}
    if MAIN_CONTAINER_NAME in names:
        return MAIN_CONTAINER_NAME
    if app.metadata.workload in names:
        return app.metadata.workload

    largest, runner_up = app.containers[-1], app.containers[-2]
    if largest.pseudo_cost > runner_up.pseudo_cost:
        return largest.name

    logger.warning(f"Could not identify application's main container for {app.metadata}")
    return ""


def analyze_containers(app: App) -> None:
    for c in app.containers:
        c.cpu.saturation = calc_saturation(c.cpu, app, c.name, "CPU")
        c.memory.saturation = calc_saturation(c.memory, app, c.name, "Memory")

    for c in app.containers:
        c.pseudo_cost = container_pseudo_cost(c)

    app.containers.sort(key=lambda c: c.pseudo_cost)

    if not app.analysis.main_container:
        app.analysis.main_container = identify_main_container(app)


def compute_pod_qos(app: App) -> str:
    """QoS class per the Kubernetes rules (init containers are not collected)."""
    all_match = bool(app.containers)
    one_specified = False
    for c in app.containers:
        for r in (c.cpu, c.memory):
            if r.limit > 0:
                if r.request > 0 and r.request != r.limit:
                    all_match = False
                one_specified = True
            elif r.request > 0:
                all_match = False
                one_specified = True
            else:
                all_match = False

    if all_match:
        return QOS_GUARANTEED
    if one_specified:
        return QOS_BURSTABLE
    return QOS_BESTEFFORT


def resources_limited(app: App) -> bool:
    if not app.containers:
        return False
    return all(c.cpu.limit > 0 and c.memory.limit > 0 for c in app.containers)


def resources_explicitly_defined(app: App) -> Tuple[bool, str]:
    """Check that the main container specifies CPU and memory; return a message if not."""
    if not app.analysis.main_container:
        return False, "main container not identified"
    main = app.container_by_name(app.analysis.main_container)
    if main is None:
        return False, f"main container {app.analysis.main_container!r} not found"

    cpu_good = main.cpu.request > 0 or main.cpu.limit > 0
    mem_good = main.memory.request > 0 or main.memory.limit > 0
    if cpu_good and mem_good:
        return True, ""
    if not cpu_good and not mem_good:
        return False, "Resources not specified (request or limit for cpu and memory is required)"
    if not cpu_good:
        return False, "CPU resources not specified (request or limit is required)"
    return False, "Memory resources not specified (request or limit is required)"
