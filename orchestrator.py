"""
Orchestrator: collect workload telemetry from Prometheus, analyze it and
write the ranked results.
"""
import logging
from datetime import datetime, timezone
import json
import os
import queue
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict, Any, Optional, Tuple

import yaml

import config
from config import ConfigValidationError, setup_logging, validate_config
from analysis.app_analysis import analyze_app
from metrics.collector import collect_single_app, collect_workload_details
from metrics.context import QueryContext
from metrics.discovery import discover_namespaces, discover_workloads
from metrics.prometheus_client import PrometheusClient, PrometheusError
from metrics.time_range import InvalidTimeRangeError, TimeRange
from model.app import App, Conclusion, app_to_dict
from progress import ProgressCallback, report, run_with_progress

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_analysis_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


# =============================================================================
# Collection
# =============================================================================
def _map_namespace(client, namespace: str, time_range: TimeRange, results: "queue.Queue[Optional[App]]",
                   workload_kind: str, workload_api_version: str,
                   progress_callback: Optional[ProgressCallback], ctx) -> None:
    """Discover and collect every workload of one namespace, sequentially.

    Apps are handed to the reducer through `results`, even when their
    collection is interrupted. Prometheus failures are logged, never raised.
    """
    try:
        apps, warnings = discover_workloads(client, namespace, time_range, ctx=ctx,
                                            workload_kind=workload_kind,
                                            workload_api_version=workload_api_version)
    except PrometheusError as e:
        logger.error(f"Failed to discover workloads in namespace {namespace}: {e}")
        report(progress_callback, namespaces_done=1)
        return
    if warnings:
        logger.warning(f"Warnings while discovering workloads in namespace {namespace}: {warnings}")

    report(progress_callback, workloads_total=len(apps))
    for app in apps:
        try:
            collect_workload_details(client, app, time_range, ctx=ctx)
        finally:
            # partially collected apps still reach the reducer
            results.put(app)
        report(progress_callback, workloads_done=1)
    report(progress_callback, namespaces_done=1)
    logger.debug(f"Namespace {namespace}: collected {len(apps)} workload(s)")


def collect_multiple_apps(client, namespaces: List[str], time_range: TimeRange,
                          workload_kind: str = "Deployment", workload_api_version: str = "apps/v1",
                          progress_callback: Optional[ProgressCallback] = None, ctx=None) -> List[App]:
    """Collect all workloads of `namespaces`, one worker thread per namespace.

    A single reducer thread owns the result list. The order of the result is
    unspecified.
    """
    if not namespaces:
        return []
    if ctx is None:
        ctx = QueryContext()

    results: "queue.Queue[Optional[App]]" = queue.Queue()
    apps: List[App] = []

    def _reduce():
        while True:
            app = results.get()
            if app is None:
                return
            apps.append(app)

    reducer = threading.Thread(target=_reduce, name="app-reducer", daemon=True)
    reducer.start()
    try:
        with ThreadPoolExecutor(max_workers=len(namespaces), thread_name_prefix="namespace") as pool:
            futures = [
                pool.submit(_map_namespace, client, ns, time_range, results,
                            workload_kind, workload_api_version, progress_callback, ctx)
                for ns in namespaces
            ]
            try:
                for f in as_completed(futures):
                    f.result()
            except BaseException:
                # unblock the remaining workers before the pool waits for them
                ctx.cancel()
                raise
    finally:
        results.put(None)
        reducer.join()
    return apps


def collect_apps(client, time_range: TimeRange, namespace: Optional[str] = None, workload: Optional[str] = None,
                 workload_kind: str = "Deployment", workload_api_version: str = "apps/v1",
                 progress_callback: Optional[ProgressCallback] = None, ctx=None) -> List[App]:
    """Collect one workload, one namespace or the whole cluster.

    Raises InvalidTimeRangeError before any query when the window is invalid,
    and PrometheusError when namespaces cannot be discovered.
    """
    time_range.validate()
    if workload and not namespace:
        raise ValueError("a workload can only be selected together with its namespace")

    if namespace:
        namespaces = [namespace]
    else:
        namespaces, warnings = discover_namespaces(client, time_range, ctx=ctx)
        if warnings:
            logger.warning(f"Warnings while discovering namespaces: {warnings}")
    report(progress_callback, relative=False, namespaces_total=len(namespaces))

    if workload:
        report(progress_callback, workloads_total=1)
        app = collect_single_app(client, namespace, workload, time_range,
                                 workload_kind=workload_kind, workload_api_version=workload_api_version, ctx=ctx)
        report(progress_callback, namespaces_done=1, workloads_done=1)
        return [app]

    return collect_multiple_apps(client, namespaces, time_range, workload_kind, workload_api_version,
                                 progress_callback=progress_callback, ctx=ctx)


# =============================================================================
# Analysis
# =============================================================================
def analyze_apps(apps: List[App]) -> List[App]:
    for app in apps:
        analyze_app(app)
    return apps


def opportunity_sort_key(app: App) -> Tuple[int, int, str, str]:
    """Best opportunities first: rating desc, then confidence desc (asc for negative ratings), then name"""
    rating = app.analysis.rating
    confidence = app.analysis.confidence
    return (-rating, -confidence if rating >= 0 else confidence,
            app.metadata.namespace, app.metadata.workload)


def _summary(apps: List[App]) -> Dict[str, Any]:
    by_conclusion = {c.value: 0 for c in Conclusion}
    for app in apps:
        by_conclusion[app.analysis.conclusion.value] += 1
    return {
        "app_count": len(apps),
        "namespace_count": len({app.metadata.namespace for app in apps}),
        "conclusions": by_conclusion,
        "warning_count": sum(len(app.warnings) for app in apps),
    }


# =============================================================================
# Entry points
# =============================================================================
def run_once(client: Optional[PrometheusClient] = None, ctx: Optional[QueryContext] = None) -> Dict[str, Any]:
    """Collect, analyze and rank apps using the current configuration"""
    if client is None:
        client = PrometheusClient(config.PROMETHEUS_URL)
    if ctx is None:
        ctx = QueryContext(timeout=config.COLLECTION_TIMEOUT_SECONDS or None)
    time_range = config.get_time_range()

    logger.info(f"Collecting from {client.url} for window {time_range.start.isoformat()} - "
                f"{time_range.end.isoformat()} (step {time_range.step})")

    def _collect(progress_callback: Optional[ProgressCallback] = None) -> List[App]:
        return collect_apps(
            client, time_range,
            namespace=config.TARGET_NAMESPACE,
            workload=config.TARGET_WORKLOAD,
            workload_kind=config.WORKLOAD_KIND,
            workload_api_version=config.WORKLOAD_API_VERSION,
            progress_callback=progress_callback,
            ctx=ctx,
        )

    try:
        apps = run_with_progress(_collect) if config.SHOW_PROGRESS else _collect()
    except KeyboardInterrupt:
        ctx.cancel()
        raise

    analyze_apps(apps)
    apps.sort(key=opportunity_sort_key)
    logger.info(f"Analyzed {len(apps)} app(s)")

    return {
        "generated_at": _now_iso(),
        "analysis_scope": {
            "prometheus_url": client.url,
            "namespace": config.TARGET_NAMESPACE,
            "workload": config.TARGET_WORKLOAD,
            "workload_kind": config.WORKLOAD_KIND,
            "start": time_range.start.isoformat(),
            "end": time_range.end.isoformat(),
            "step_seconds": int(time_range.step.total_seconds()),
        },
        "summary": _summary(apps),
        "apps": [app_to_dict(app) for app in apps],
    }


def render_output(out: Dict[str, Any], fmt: str) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(out, sort_keys=False, default_flow_style=False)
    return json.dumps(out, indent=2)


def main() -> int:
    # Setup logging first
    setup_logging()

    # Validate configuration
    try:
        validate_config()
        logger.info("Configuration validated successfully")
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        out = run_once()
    except InvalidTimeRangeError as e:
        logger.error(f"Invalid analysis window: {e}")
        return 1
    except PrometheusError as e:
        logger.error(f"Collection failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted; collection cancelled")
        return 130

    output_path = config.get_analysis_output_path()
    _atomic_write(output_path, render_output(out, config.OUTPUT_FORMAT))
    logger.info(f"Wrote analysis of {out['summary']['app_count']} app(s) to {output_path}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
