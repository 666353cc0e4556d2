"""
PromQL query templates.

Templates are filled from QuerySelectors: `$namespace`, `$workload` and
`$pod_selector` (namespace plus a regex over pod names; pods of a
deployment are named <deployment>-<pod_spec_hash>-<pod_id>).
"""
from dataclasses import dataclass
from string import Template

from model.app import AppMetadata


@dataclass
class QuerySelectors:
    namespace: str
    workload: str
    pod_selector: str


def selectors_for(metadata: AppMetadata) -> QuerySelectors:
    pod_regex = f"{metadata.workload}-.*"
    return QuerySelectors(
        namespace=metadata.namespace,
        workload=metadata.workload,
        pod_selector=f'namespace="{metadata.namespace}",pod=~"{pod_regex}"',
    )


def render(template: Template, selectors: QuerySelectors) -> str:
    return template.substitute(
        namespace=selectors.namespace,
        workload=selectors.workload,
        pod_selector=selectors.pod_selector,
    )


# workloads
DEPLOYMENTS = Template('kube_deployment_labels{namespace="$namespace"}')
WRITEABLE_VOLUME_METRIC = "kube_pod_spec_volumes_persistentvolumeclaims_readonly"

# replica count (averaged over the range)
REPLICA_COUNT = Template(
    'kube_deployment_status_replicas{namespace="$namespace",deployment="$workload"}')

# container inventory & settings
CONTAINER_INFO = Template(
    'sum by (container) (kube_pod_container_info{$pod_selector})')
CONTAINER_RESTARTS = Template(
    'avg by (container) (rate(kube_pod_container_status_restarts_total{$pod_selector}[5m]))')
CONTAINER_RESOURCE_REQUESTS = Template(
    'avg by (container, resource) (kube_pod_container_resource_requests{$pod_selector})')
CONTAINER_RESOURCE_LIMITS = Template(
    'avg by (container, resource) (kube_pod_container_resource_limits{$pod_selector})')

# container use
CONTAINER_CPU_USE = Template(
    'avg by (container) (rate(container_cpu_usage_seconds_total{$pod_selector}[5m]))')
CONTAINER_MEMORY_USE = Template(
    'avg by (container) (container_memory_working_set_bytes{$pod_selector})')

# container saturation (usage relative to request)
CONTAINER_CPU_SATURATION = Template(
    'avg (rate(container_cpu_usage_seconds_total{$pod_selector,container!~"|POD"}[5m])'
    ' / on(pod, container) kube_pod_container_resource_requests{$pod_selector,resource="cpu"}) by (container)')
CONTAINER_MEMORY_SATURATION = Template(
    'avg (container_memory_working_set_bytes{$pod_selector,container!~"|POD"}'
    ' / on(pod, container) kube_pod_container_resource_requests{$pod_selector,resource="memory"}) by (container)')

# CPU throttling
CONTAINER_CPU_SECONDS_THROTTLED = Template(
    'avg by (container) (rate(container_cpu_cfs_throttled_seconds_total{$pod_selector}[5m]))')

# network traffic is per pod (container="POD"), not per container
POD_RX_PACKETS = Template(
    'avg (rate(container_network_receive_packets_total{$pod_selector}[5m]))')
POD_TX_PACKETS = Template(
    'avg (rate(container_network_transmit_packets_total{$pod_selector}[5m]))')
