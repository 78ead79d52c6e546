from datetime import datetime, timedelta, timezone

import httpx
import pytest

from querybridge.backends.signalfx import (
    SignalFxBackend,
    SignalFxHandle,
    get_datapoints,
    list_metrics,
    resolve_window,
    series_name,
)
from querybridge.common.errors import AuthError, BackendConnectionError, ConfigurationError, InvalidQueryError
from querybridge.datasources.models import Credentials, DatasourceSettings
from querybridge.execution.contracts import Query, QueryKind, TimeRange
from querybridge.normalization.kinds import ScalarKind


def _handle(handler):
    client = httpx.Client(
        base_url="https://api.example.com",
        headers={"X-SF-Token": "tok"},
        transport=httpx.MockTransport(handler),
    )
    return SignalFxHandle(client)


def test_list_metrics_returns_names():
    # Arrange
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["token"] = request.headers["X-SF-Token"]
        return httpx.Response(200, json={
            "count": 2,
            "results": [
                {"name": "cpu.utilization", "type": "GAUGE", "description": "CPU"},
                {"name": "memory.free", "type": "GAUGE"},
            ],
        })

    query = Query(ref_id="M", datasource_id="sfx", kind=QueryKind.LIST_METRICS, program="cpu*")

    # Act
    table = list_metrics(_handle(handler), query, timeout=1.0)

    # Assert
    assert seen == {"path": "/v2/metric", "params": {"query": "cpu*", "limit": "100"}, "token": "tok"}
    assert table.column("name").values == ("cpu.utilization", "memory.free")
    assert table.column("description").values == ("CPU", None)
    assert table.meta == {"count": 2}


def test_datapoints_are_returned_in_long_format():
    # Arrange
    seen = {}
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stop = start + timedelta(minutes=5)

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(200, json={
            "data": {
                "AAA": [[1704067200000, 1.5], [1704067260000, 2]],
                "BBB": [[1704067200000, None]],
            },
            "errors": [],
        })

    query = Query(
        ref_id="D",
        datasource_id="sfx",
        kind=QueryKind.DATAPOINTS,
        program="sf_metric:cpu.utilization",
        time_range=TimeRange(start=start, stop=stop),
        min_resolution=60000,
    )

    # Act
    table = get_datapoints(_handle(handler), query, timeout=1.0)

    # Assert
    assert seen["startMs"] == "1704067200000"
    assert seen["endMs"] == "1704067500000"
    assert seen["resolution"] == "60000"
    assert table.column("series").values == ("AAA", "AAA", "BBB")
    assert table.column("value").values == (1.5, 2.0, None)
    assert table.column("value").kind is ScalarKind.FLOAT64
    assert table.column("time").values[0] == start


def test_window_defaults_respect_max_delay():
    # Arrange
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    query = Query(ref_id="D", datasource_id="sfx", kind=QueryKind.DATAPOINTS, program="x", max_delay=30000)

    # Act
    start, stop = resolve_window(query, now=now)

    # Assert
    assert stop == now - timedelta(seconds=30)
    assert start == stop - timedelta(hours=1)


@pytest.mark.parametrize(
    "status, expected",
    [(401, AuthError), (403, AuthError), (400, InvalidQueryError), (503, BackendConnectionError)],
)
def test_http_errors_are_translated(status, expected):
    # Arrange
    handle = _handle(lambda request: httpx.Response(status, text="nope"))
    query = Query(ref_id="M", datasource_id="sfx", kind=QueryKind.LIST_METRICS)

    # Act / Assert
    with pytest.raises(expected):
        list_metrics(handle, query, timeout=1.0)


def test_transport_failures_are_connection_errors():
    # Arrange
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    query = Query(ref_id="M", datasource_id="sfx", kind=QueryKind.LIST_METRICS)

    # Act / Assert
    with pytest.raises(BackendConnectionError):
        list_metrics(_handle(handler), query, timeout=1.0)


def test_backend_requires_a_token():
    # Arrange
    settings = DatasourceSettings(id="sfx", type="signalfx", host="api.us1.signalfx.com")

    # Act / Assert
    with pytest.raises(ConfigurationError, match="token"):
        SignalFxBackend().create_handle(settings, settings.host)


def test_backend_builds_an_authenticated_client():
    # Arrange
    settings = DatasourceSettings(
        id="sfx",
        type="signalfx",
        host="api.us1.signalfx.com",
        credentials=Credentials(token="abc"),
    )

    # Act
    handle = SignalFxBackend().create_handle(settings, settings.host)

    # Assert
    assert handle.client.base_url.host == "api.us1.signalfx.com"
    assert handle.client.base_url.scheme == "https"
    assert handle.client.headers["X-SF-Token"] == "abc"
    handle.close()


def test_alias_names_the_returned_series():
    # Arrange
    def handler(request):
        return httpx.Response(200, json={"data": {"AAA": [[1704067200000, 1.0]]}})

    query = Query(
        ref_id="D",
        datasource_id="sfx",
        kind=QueryKind.DATAPOINTS,
        program="sf_metric:cpu.utilization",
        alias="cpu {{series}}",
    )

    # Act
    table = get_datapoints(_handle(handler), query, timeout=1.0)

    # Assert
    assert table.column("series").values == ("cpu AAA",)
    assert series_name(None, "AAA") == "AAA"
    assert series_name("fixed", "AAA") == "fixed"
