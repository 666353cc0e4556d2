"""
App-level scoring.

analyze_app() turns a collected App into an AppAnalysis: flags, rating,
confidence, blockers, cautions, opportunities, recommendations, an
efficiency rate, a reliability risk and a conclusion. Missing data lowers
the quality of the result (null efficiency, insufficient-data conclusion)
but never raises.
"""
import logging
from typing import List, Optional, Tuple

from analysis.container_analysis import (
    analyze_containers,
    compute_pod_qos,
    resources_explicitly_defined,
    resources_limited,
)
from model.app import (
    App,
    AppAnalysis,
    AppFlag,
    Conclusion,
    QOS_BESTEFFORT,
    QOS_GUARANTEED,
    RiskLevel,
)
from normalize import math as m

logger = logging.getLogger(__name__)

CPU_WEIGHT = 0.6
MEMORY_WEIGHT = 0.4

# (lower bound of utilization %, rating bump); first match wins
UTILIZATION_RATINGS = [
    (100, 60),  # burstable: good opportunity for reliability/performance
    (80, 20),   # well-utilized: lower opportunity
    (40, 40),   # moderately utilized
    (1, 60),    # underutilized: good opportunity for efficiency
]

EFFICIENCY_OPPORTUNITY_BUMP = 30
EXCESSIVE_COST_EFFICIENCY = 60
EFFICIENCY_GOAL = 80

LOW_REQUEST_RATE = 2
HIGH_REQUEST_RATE = 100

MANY_REPLICAS = 7
SEVERAL_REPLICAS = 3

RATING_MIN, RATING_MAX = -100, 100
CONFIDENCE_MIN, CONFIDENCE_MAX = 0, 100


def utilization_rating(value: float) -> int:
    for lower, bump in UTILIZATION_RATINGS:
        if value >= lower:
            return bump
    return 0


def utilization_combined_rating(cpu_util: float, mem_util: float) -> int:
    cpu = utilization_rating(cpu_util)
    mem = utilization_rating(mem_util)
    if cpu == 0 or mem == 0:
        return 0
    return (cpu + mem) // 2


def pre_analyze_app(app: App) -> None:
    """Finalize the collected data so it can be scored."""
    analyze_containers(app)

    # app-level utilization follows the main container
    main = app.container_by_name(app.analysis.main_container) if app.analysis.main_container else None
    if main is not None:
        if main.cpu.saturation > 0:
            app.metrics.cpu_utilization = main.cpu.saturation * 100
        if main.memory.saturation > 0:
            app.metrics.memory_utilization = main.memory.saturation * 100

    if app.metrics.cpu_seconds_throttled == 0:
        app.metrics.cpu_seconds_throttled = m.finite_sum([c.cpu.seconds_throttled for c in app.containers])

    computed_qos = compute_pod_qos(app)
    if not app.settings.qos_class:
        app.settings.qos_class = computed_qos
    elif app.settings.qos_class != computed_qos:
        logger.warning(f"Computed QoS class {computed_qos!r} does not match discovered QoS class "
                       f"{app.settings.qos_class!r} for app {app.metadata}; assuming the latter")

    # packets received approximate requests, but only for request/reply (bidirectional) traffic
    computed_rps = 0.0
    if app.metrics.packet_receive_rate > 0 and app.metrics.packet_transmit_rate > 0:
        computed_rps = app.metrics.packet_receive_rate
    if app.metrics.request_rate == 0:
        app.metrics.request_rate = m.magic_round(computed_rps)


def efficiency_improvement_estimate(app: App) -> str:
    cpu = app.metrics.cpu_utilization
    mem = app.metrics.memory_utilization
    if cpu == 0 or mem == 0:
        return ""
    if cpu >= 80 or mem >= 80:
        return ""

    imp = m.round_half_away((160 - cpu - mem) / 2.0 / 10) * 10
    if imp >= 60:
        factor = 1 + m.round_half_away(100.0 / imp * 10) / 10
        return f"2x-{factor:g}x"
    if imp > 20:
        return f"{imp - 20:.0f}-{imp:.0f}%"
    return f"up to {imp:.0f}%"


def bump_risk(prior: Optional[RiskLevel], level: RiskLevel) -> RiskLevel:
    """Raise the risk to at least `level`; never lowers it."""
    if prior is None or level > prior:
        return level
    return prior


def risk_assessment(app: App) -> Tuple[RiskLevel, List[str]]:
    risk: Optional[RiskLevel] = None
    cautions: List[str] = []
    cpu = app.metrics.cpu_utilization
    mem = app.metrics.memory_utilization
    throttled = app.metrics.cpu_seconds_throttled

    if app.settings.qos_class == QOS_BESTEFFORT:
        risk = bump_risk(risk, RiskLevel.HIGH)
        cautions.append("Pod QoS class is Best Effort")
    elif app.settings.qos_class != QOS_GUARANTEED:
        risk = bump_risk(risk, RiskLevel.MEDIUM)
        cautions.append(f"Pod QoS class is {app.settings.qos_class.title()}")

    if cpu >= 200 or mem >= 200 or throttled >= 0.7:
        risk = bump_risk(risk, RiskLevel.HIGH)
        cautions.append("Resource utilization significantly exceeds allocation")
    elif cpu > 120 or mem > 120 or throttled > 0.25:
        risk = bump_risk(risk, RiskLevel.HIGH)
        cautions.append("Resource utilization exceeds allocation")
    elif cpu > 90 or mem > 90 or throttled > 0.1:
        risk = bump_risk(risk, RiskLevel.MEDIUM)
        cautions.append("Resource utilization close to allocation")

    return bump_risk(risk, RiskLevel.LOW), cautions


def _efficiency_rate(app: App) -> Optional[int]:
    cpu = app.metrics.cpu_utilization
    mem = app.metrics.memory_utilization
    if mem == 0:
        # no memory data: the app is likely not running, or metrics are missing
        return None
    if cpu == 0:
        return 0
    return int(m.round_half_away(min(cpu, 100) * CPU_WEIGHT + min(mem, 100) * MEMORY_WEIGHT))


def _conclusion(o: AppAnalysis) -> Conclusion:
    if o.reliability_risk is not None and o.reliability_risk >= RiskLevel.HIGH:
        return Conclusion.RELIABILITY_RISK
    if o.efficiency_rate is not None and o.efficiency_rate < EXCESSIVE_COST_EFFICIENCY:
        return Conclusion.EXCESSIVE_COST
    if o.reliability_risk is not None and o.reliability_risk <= RiskLevel.LOW:
        return Conclusion.OK
    return Conclusion.INSUFFICIENT_DATA


def analyze_app(app: App) -> AppAnalysis:
    """Score the app. Replaces app.analysis; a pre-set main container is kept."""
    o = AppAnalysis(main_container=app.analysis.main_container)
    app.analysis = o
    pre_analyze_app(app)
    flags = o.flags
    metrics = app.metrics

    if o.main_container:
        flags[AppFlag.MAIN_CONTAINER] = True
    else:
        flags[AppFlag.MAIN_CONTAINER] = False
        o.blockers.append("Could not identify main container")

    if app.containers:
        flags[AppFlag.MULTI_CONTAINER] = len(app.containers) > 1

    # a writeable volume makes the app stateful
    flags[AppFlag.WRITEABLE_VOLUME] = app.settings.writeable_volume
    if app.settings.writeable_volume:
        o.blockers.append("Stateful: pods have writeable volumes")

    flags[AppFlag.RESOURCE_GUARANTEED] = app.settings.qos_class == QOS_GUARANTEED
    flags[AppFlag.RESOURCE_LIMITS] = resources_limited(app)
    spec_ok, msg = resources_explicitly_defined(app)
    flags[AppFlag.RESOURCE_SPEC] = spec_ok
    if not spec_ok:
        o.blockers.append(msg)
        o.recommendations.append("Define resource levels to improve reliability")

    flags[AppFlag.UTILIZATION] = metrics.cpu_utilization > 0 and metrics.memory_utilization > 0
    bump = utilization_combined_rating(metrics.cpu_utilization, metrics.memory_utilization)
    flags[AppFlag.BURST] = False
    if bump == 0:
        o.cautions.append("Idle application")
    else:
        o.rating += bump
        o.confidence += 30
        if metrics.cpu_utilization >= 100 and metrics.memory_utilization >= 100:
            o.opportunities.append("Improve performance/reliability")
            flags[AppFlag.BURST] = True
        elif bump >= EFFICIENCY_OPPORTUNITY_BUMP:
            estimate = efficiency_improvement_estimate(app)
            o.opportunities.append(f"Improve efficiency by {estimate}" if estimate else "Improve efficiency")

    o.efficiency_rate = _efficiency_rate(app)

    if metrics.request_rate == 0:
        o.blockers.append("No requests are being processed")
        flags[AppFlag.TRAFFIC] = False
    elif metrics.request_rate < LOW_REQUEST_RATE:
        o.cautions.append("Low request rate")
        o.rating -= 10
        flags[AppFlag.TRAFFIC] = False
    else:
        flags[AppFlag.TRAFFIC] = True
        if metrics.request_rate > HIGH_REQUEST_RATE:
            # low confidence: traffic may be originated rather than served
            o.rating += 10

    if metrics.average_replicas <= 1:
        o.rating -= 20
        o.confidence += 10
        o.cautions.append("Less than 2 replicas")
        flags[AppFlag.SINGLE_REPLICA] = True
        flags[AppFlag.MANY_REPLICAS] = False
    elif metrics.average_replicas >= MANY_REPLICAS:
        o.rating += 20
        o.confidence += 30
        flags[AppFlag.SINGLE_REPLICA] = False
        flags[AppFlag.MANY_REPLICAS] = True
    else:
        if metrics.average_replicas > SEVERAL_REPLICAS:
            o.rating += 10
            o.confidence += 10
        flags[AppFlag.SINGLE_REPLICA] = False
        flags[AppFlag.MANY_REPLICAS] = False

    o.reliability_risk, risk_cautions = risk_assessment(app)
    o.cautions.extend(risk_cautions)

    if o.blockers:
        o.rating = RATING_MIN
        o.confidence = CONFIDENCE_MAX

    o.rating = max(RATING_MIN, min(RATING_MAX, o.rating))
    o.confidence = max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, o.confidence))

    o.conclusion = _conclusion(o)

    if not flags[AppFlag.WRITEABLE_VOLUME]:
        goals = []
        if o.efficiency_rate is not None and o.efficiency_rate < EFFICIENCY_GOAL:
            goals.append("efficiency")
        if o.reliability_risk is None or o.reliability_risk > RiskLevel.LOW:
            goals.append("reliability")
        if goals:
            o.recommendations.append(f"Optimize to improve {' and '.join(goals)}")

    logger.debug(f"App {app.metadata}: rating={o.rating} confidence={o.confidence} "
                 f"conclusion={o.conclusion.value} blockers={o.blockers}")
    return o
