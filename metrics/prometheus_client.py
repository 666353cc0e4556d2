import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

# per-query timeout; not configurable
QUERY_TIMEOUT_SECONDS: float = 10


class PrometheusError(Exception):
    pass


class PrometheusConnectionError(PrometheusError):
    """Prometheus could not be reached or did not answer in time."""
    pass


class PrometheusQueryError(PrometheusError):
    """Prometheus rejected the query or reported a failure."""
    pass


class UnexpectedResultError(PrometheusError):
    """The response was malformed or had an unexpected result type."""
    pass


class QueryCancelledError(PrometheusError):
    """The collection was cancelled or ran past its deadline."""
    pass


@dataclass
class VectorSample:
    labels: Dict[str, str]
    value: float


@dataclass
class MatrixSeries:
    labels: Dict[str, str]
    samples: List[Tuple[float, float]] = field(default_factory=list)


def _timestamp(t: Optional[datetime]) -> Optional[str]:
    if t is None:
        return None
    return str(t.timestamp())


def _step(step: timedelta) -> str:
    return f"{int(step.total_seconds())}s"


def _parse_pair(pair: Any) -> Tuple[float, float]:
    try:
        ts, val = pair
        return float(ts), float(val)
    except (TypeError, ValueError) as e:
        raise UnexpectedResultError(f"malformed sample {pair!r}: {e}")


def parse_vector(data: Dict[str, Any]) -> List[VectorSample]:
    """Parse the `data` member of an instant query response (result type `vector`)."""
    result_type = data.get("resultType")
    if result_type != "vector":
        raise UnexpectedResultError(f"query returned {result_type!r} instead of vector")
    samples: List[VectorSample] = []
    for res in data.get("result") or []:
        if not isinstance(res, dict) or "value" not in res:
            raise UnexpectedResultError(f"malformed vector element {res!r}")
        _, value = _parse_pair(res["value"])
        samples.append(VectorSample(labels=dict(res.get("metric") or {}), value=value))
    return samples


def parse_matrix(data: Dict[str, Any]) -> List[MatrixSeries]:
    """Parse the `data` member of a range query response (result type `matrix`)."""
    result_type = data.get("resultType")
    if result_type != "matrix":
        raise UnexpectedResultError(f"query returned {result_type!r} instead of matrix")
    series: List[MatrixSeries] = []
    for res in data.get("result") or []:
        if not isinstance(res, dict) or "values" not in res:
            raise UnexpectedResultError(f"malformed matrix element {res!r}")
        samples = [_parse_pair(pair) for pair in res["values"] or []]
        series.append(MatrixSeries(labels=dict(res.get("metric") or {}), samples=samples))
    return series


class PrometheusClient:
    """Thin client for the Prometheus HTTP API (instant, range and label queries).

    Every call is bounded by `timeout` seconds, further limited by the
    remaining time of the optional QueryContext. Failed queries are never
    retried.
    """

    def __init__(self, url: str, timeout: float = QUERY_TIMEOUT_SECONDS):
        self.url = url.rstrip('/')
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"PrometheusClient({self.url!r})"

    def _get(self, path: str, params: Dict[str, Any], ctx=None) -> Tuple[Any, List[str]]:
        timeout = ctx.child_timeout(self.timeout) if ctx is not None else self.timeout
        url = f"{self.url}{path}"
        params = {k: v for k, v in params.items() if v is not None}
        try:
            r = requests.get(url, params=params, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise PrometheusConnectionError(f"request to {url} timed out after {timeout}s: {e}")
        except requests.RequestException as e:
            raise PrometheusConnectionError(f"request failed: {e}")

        if r.status_code != 200:
            raise PrometheusQueryError(f"prometheus returned status {r.status_code}: {r.text}")
        try:
            payload = r.json()
        except ValueError as e:
            raise UnexpectedResultError(f"invalid JSON in prometheus response: {e}")
        if not isinstance(payload, dict):
            raise UnexpectedResultError(f"unexpected prometheus response: {payload!r}")
        if payload.get("status") != "success":
            raise PrometheusQueryError(f"prometheus error: {payload.get('errorType')}: {payload.get('error')}")

        warnings = list(payload.get("warnings") or [])
        if warnings:
            logger.warning(f"Prometheus warnings for {params.get('query', path)!r}: {warnings}")
        return payload.get("data"), warnings

    def query_instant(self, query: str, at: Optional[datetime] = None, ctx=None) -> Tuple[List[VectorSample], List[str]]:
        """Run an instant query (`/api/v1/query`) and return its vector."""
        data, warnings = self._get("/api/v1/query", {"query": query, "time": _timestamp(at)}, ctx)
        if not isinstance(data, dict):
            raise UnexpectedResultError(f"query {query!r} returned no data member")
        return parse_vector(data), warnings

    def query_range(self, query: str, start: datetime, end: datetime, step: timedelta, ctx=None) -> Tuple[List[MatrixSeries], List[str]]:
        """Run a range query (`/api/v1/query_range`) and return its matrix."""
        params = {
            "query": query,
            "start": _timestamp(start),
            "end": _timestamp(end),
            "step": _step(step),
        }
        data, warnings = self._get("/api/v1/query_range", params, ctx)
        if not isinstance(data, dict):
            raise UnexpectedResultError(f"query {query!r} returned no data member")
        return parse_matrix(data), warnings

    def label_values(self, label: str, start: Optional[datetime] = None, end: Optional[datetime] = None, ctx=None) -> Tuple[List[str], List[str]]:
        """List the values of a label seen between `start` and `end`."""
        params = {"start": _timestamp(start), "end": _timestamp(end)}
        data, warnings = self._get(f"/api/v1/label/{label}/values", params, ctx)
        if not isinstance(data, list):
            raise UnexpectedResultError(f"label values for {label!r} is not a list: {data!r}")
        return [str(v) for v in data], warnings
