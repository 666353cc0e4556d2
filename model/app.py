"""
Application (workload) data model.

An App is created by discovery with metadata only, filled in by the
collector (settings, containers, metrics) and finally by the analysis
engine (analysis). After that it is read-only.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

QOS_GUARANTEED = "guaranteed"
QOS_BURSTABLE = "burstable"
QOS_BESTEFFORT = "besteffort"

CPU_UNIT = "cores"
MEMORY_UNIT = "bytes"


class RiskLevel(IntEnum):
    """Ordinal reliability risk. Unknown is modelled as None, never as a level."""
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class Conclusion(str, Enum):
    INSUFFICIENT_DATA = "insufficient-data"
    RELIABILITY_RISK = "reliability-risk"
    EXCESSIVE_COST = "excessive-cost"
    OK = "ok"


class AppFlag(str, Enum):
    WRITEABLE_VOLUME = "V"
    RESOURCE_SPEC = "R"
    SINGLE_REPLICA = "S"
    MANY_REPLICAS = "M"
    TRAFFIC = "T"
    UTILIZATION = "U"
    BURST = "B"
    MAIN_CONTAINER = "C"
    MULTI_CONTAINER = "P"
    RESOURCE_GUARANTEED = "G"
    RESOURCE_LIMITS = "L"


@dataclass
class AppMetadata:
    namespace: str
    workload: str
    workload_kind: str = "Deployment"
    workload_api_version: str = "apps/v1"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.workload}"


@dataclass
class AppSettings:
    replicas: int = 0
    hpa_enabled: bool = False
    vpa_enabled: bool = False
    mpa_enabled: bool = False
    hpa_min_replicas: int = 0
    hpa_max_replicas: int = 0
    writeable_volume: bool = False
    qos_class: str = ""


@dataclass
class ResourceInfo:
    unit: str = ""
    request: float = 0.0
    limit: float = 0.0
    usage: float = 0.0
    # usage/request if request, else usage/limit if limit, else 0 (ratio, not percent)
    saturation: float = 0.0


@dataclass
class CpuInfo(ResourceInfo):
    unit: str = CPU_UNIT
    seconds_throttled: float = 0.0  # average rate across instances/time
    shares: float = 0.0


@dataclass
class MemoryInfo(ResourceInfo):
    unit: str = MEMORY_UNIT


@dataclass
class AppContainer:
    name: str
    cpu: CpuInfo = field(default_factory=CpuInfo)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    restart_count: float = 0.0
    pseudo_cost: float = 0.0


@dataclass
class AppMetrics:
    average_replicas: float = 0.0
    cpu_utilization: float = 0.0  # percent, can be 0 or >100
    memory_utilization: float = 0.0  # percent, can be 0 or >100
    cpu_seconds_throttled: float = 0.0
    packet_receive_rate: float = 0.0
    packet_transmit_rate: float = 0.0
    request_rate: float = 0.0


@dataclass
class AppAnalysis:
    rating: int = 0
    confidence: int = 0
    main_container: str = ""
    efficiency_rate: Optional[int] = None
    reliability_risk: Optional[RiskLevel] = None
    conclusion: Conclusion = Conclusion.INSUFFICIENT_DATA
    flags: Dict[AppFlag, bool] = field(default_factory=dict)
    opportunities: List[str] = field(default_factory=list)
    cautions: List[str] = field(default_factory=list)
    blockers: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class App:
    metadata: AppMetadata
    settings: AppSettings = field(default_factory=AppSettings)
    containers: List[AppContainer] = field(default_factory=list)
    metrics: AppMetrics = field(default_factory=AppMetrics)
    analysis: AppAnalysis = field(default_factory=AppAnalysis)
    warnings: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.metadata.namespace}/{self.metadata.workload}"

    def container_index_by_name(self, name: str) -> Optional[int]:
        for index, container in enumerate(self.containers):
            if container.name == name:
                return index
        return None

    def container_by_name(self, name: str) -> Optional[AppContainer]:
        index = self.container_index_by_name(name)
        if index is None:
            return None
        return self.containers[index]


def flags_string(flags: Dict[AppFlag, bool]) -> str:
    """Compact, sorted representation of the flags that are set, e.g. 'CRT'."""
    return "".join(sorted(flag.value for flag, on in flags.items() if on))


def _plain(value: Any) -> Any:
    if isinstance(value, RiskLevel):
        return value.name.lower()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {_plain(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def app_to_dict(app: App) -> Dict[str, Any]:
    """Convert an App into plain JSON/YAML-safe types."""
    data = _plain(asdict(app))
    data["analysis"]["flags_summary"] = flags_string(app.analysis.flags)
    return data
