"""Metrics-timeseries backend speaking the SignalFx REST API."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

import httpx

from querybridge.backends.base import Backend, BackendHandle, Operation
from querybridge.common.errors import (
    AuthError,
    BackendConnectionError,
    BackendError,
    ConfigurationError,
    InvalidQueryError,
)
from querybridge.common.logger import get_logger
from querybridge.execution.contracts import Query, QueryKind
from querybridge.normalization.kinds import ScalarKind
from querybridge.normalization.table import Table, TableBuilder

if TYPE_CHECKING:
    from querybridge.datasources.models import DatasourceSettings

logger = get_logger(__name__)

TOKEN_HEADER = "X-SF-Token"
DEFAULT_LOOKBACK = timedelta(hours=1)
DEFAULT_METRIC_LIMIT = 100
SERIES_PLACEHOLDER = "{{series}}"


class SignalFxHandle(BackendHandle):
    """Authenticated HTTP client bound to one API realm."""

    def __init__(self, client: httpx.Client):
        self.client = client

    def get_json(self, path: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            response = self.client.get(path, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise BackendConnectionError(f"Request to {path} timed out") from exc
        except httpx.TransportError as exc:
            raise BackendConnectionError(f"Request to {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthError(f"Metrics API rejected the token ({response.status_code})")
        if response.status_code >= 500:
            raise BackendConnectionError(f"Metrics API unavailable ({response.status_code})")
        if response.status_code >= 400:
            raise InvalidQueryError(
                f"Metrics API rejected the request ({response.status_code}): {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Metrics API returned a non-JSON body for {path}") from exc

    def close(self) -> None:
        self.client.close()


class SignalFxBackend(Backend):
    backend_type = "signalfx"

    def create_handle(self, settings: DatasourceSettings, host: Optional[str]) -> BackendHandle:
        token = settings.credentials.token
        if token is None or not token.get_secret_value():
            raise ConfigurationError(f"Datasource '{settings.id}': an API token is required")
        base_url = host if host.startswith(("http://", "https://")) else f"https://{host}"
        client = httpx.Client(
            base_url=base_url,
            headers={TOKEN_HEADER: token.get_secret_value(), "Accept": "application/json"},
            timeout=settings.request_timeout_sec,
        )
        return SignalFxHandle(client)

    def operations(self) -> Mapping[QueryKind, Operation]:
        return {
            QueryKind.LIST_METRICS: list_metrics,
            QueryKind.DATAPOINTS: get_datapoints,
        }


def list_metrics(handle: SignalFxHandle, query: Query, timeout: float, token=None) -> Table:
    """Lists metric names matching the program (a metric search query)."""
    params = {
        "query": query.program or "*",
        "limit": int(query.options.get("limit", DEFAULT_METRIC_LIMIT)),
    }
    payload = handle.get_json("/v2/metric", params, timeout)

    builder = TableBuilder(name="metrics")
    builder.add_column("name", ScalarKind.STRING)
    builder.add_column("type", ScalarKind.STRING)
    builder.add_column("description", ScalarKind.STRING)
    for result in payload.get("results") or []:
        builder.append_row([result.get("name"), result.get("type"), result.get("description")])
    return builder.build(meta={"count": payload.get("count")})


def get_datapoints(handle: SignalFxHandle, query: Query, timeout: float, token=None) -> Table:
    """Fetches datapoints of the time series matching the program, in long format."""
    if not query.program.strip():
        raise InvalidQueryError("Metric program is empty")
    start, stop = resolve_window(query)
    params: Dict[str, Any] = {
        "query": query.program,
        "startMs": to_millis(start),
        "endMs": to_millis(stop),
    }
    if query.min_resolution > 0:
        params["resolution"] = query.min_resolution
    payload = handle.get_json("/v1/timeserieswindow", params, timeout)

    for error in payload.get("errors") or []:
        logger.warning(f"Metrics API reported an error for query '{query.ref_id}': {error}")

    builder = TableBuilder(name=query.ref_id)
    builder.add_column("time", ScalarKind.TIMESTAMP)
    builder.add_column("series", ScalarKind.STRING)
    builder.add_column("value", ScalarKind.FLOAT64)
    for series_id, points in (payload.get("data") or {}).items():
        name = series_name(query.alias, series_id)
        for timestamp_ms, value in points:
            builder.append_row([from_millis(timestamp_ms), name, value])
    return builder.build()


def series_name(alias: Optional[str], series_id: str) -> str:
    """Display name of a series: the alias with ``{{series}}`` expanded, or the id."""
    if not alias:
        return series_id
    return alias.replace(SERIES_PLACEHOLDER, series_id)


def resolve_window(query: Query, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Derives the datapoint window.

    Without a stop time the window ends ``max_delay`` milliseconds before now,
    so points still being ingested are not reported as gaps. Without a start
    time it spans one hour.
    """
    stop = query.time_range.stop
    if stop is None:
        stop = (now or datetime.now(timezone.utc)) - timedelta(milliseconds=query.max_delay)
    start = query.time_range.start or stop - DEFAULT_LOOKBACK
    return start, stop


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
