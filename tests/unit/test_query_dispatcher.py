import pytest

from querybridge.common.cancellation import CancellationToken
from querybridge.common.errors import (
    ConfigurationError,
    ErrorCode,
    InvalidQueryError,
    QueryCancelledError,
    ServiceUnavailableError,
)
from querybridge.common.resilience import BreakerRegistry
from querybridge.datasources.models import DatasourceSettings
from querybridge.execution.contracts import Query, QueryKind
from querybridge.execution.dispatcher import QueryDispatcher


def _query(kind=QueryKind.CQL, **kwargs):
    return Query(ref_id=kwargs.pop("ref_id", "A"), datasource_id=kwargs.pop("datasource_id", "ds1"), kind=kind, **kwargs)


def test_dispatch_selects_operation_by_kind(fake_registry):
    # Arrange
    dispatcher = QueryDispatcher(fake_registry)

    # Act
    table = dispatcher.execute(_query(program="SELECT 1"), CancellationToken(), timeout=1.0)

    # Assert
    assert table.to_row_dicts() == [{"ref_id": "A", "host": "10.0.0.1"}]


def test_query_host_overrides_the_default_target(fake_registry):
    # Arrange
    dispatcher = QueryDispatcher(fake_registry)

    # Act
    table = dispatcher.execute(_query(host="10.0.0.7"), CancellationToken(), timeout=1.0)

    # Assert
    assert table.column("host").values == ("10.0.0.7",)


def test_unsupported_kind_is_an_invalid_query(fake_registry):
    # Arrange
    dispatcher = QueryDispatcher(fake_registry)

    # Act / Assert
    with pytest.raises(InvalidQueryError, match="does not support 'list_objects'"):
        dispatcher.execute(_query(kind=QueryKind.LIST_OBJECTS), CancellationToken(), timeout=1.0)


def test_unknown_datasource_is_a_configuration_error(fake_registry):
    # Act / Assert
    with pytest.raises(ConfigurationError):
        QueryDispatcher(fake_registry).execute(_query(datasource_id="nope"), CancellationToken(), timeout=1.0)


def test_cancelled_token_stops_before_the_backend_call(fake_registry):
    # Arrange
    token = CancellationToken()
    token.cancel("user aborted")

    # Act / Assert
    with pytest.raises(QueryCancelledError, match="user aborted"):
        QueryDispatcher(fake_registry).execute(_query(), token, timeout=1.0)
    assert fake_registry.get_manager("ds1").backend.created == []


def test_open_breaker_fails_fast_with_service_unavailable(fake_registry):
    # Validates fail-fast because a broken backend must not tie up workers.
    # Arrange
    dispatcher = QueryDispatcher(fake_registry, breakers=BreakerRegistry(fail_max=2, reset_timeout=60))
    failing = _query(kind=QueryKind.LIST_METRICS)
    codes = []

    # Act
    for _ in range(4):
        try:
            dispatcher.execute(failing, CancellationToken(), timeout=1.0)
        except ServiceUnavailableError as e:
            codes.append(e.error_code)
        except RuntimeError:
            codes.append("runtime")

    # Assert
    assert codes[0] == "runtime"
    assert codes[-1] == ErrorCode.SERVICE_UNAVAILABLE
    assert dispatcher.breakers.get("ds1").current_state == "open"


def test_client_errors_do_not_trip_the_breaker(fake_registry):
    # Arrange
    fake_registry.register_datasource(DatasourceSettings(id="nohost", type="fake"))
    dispatcher = QueryDispatcher(fake_registry, breakers=BreakerRegistry(fail_max=1, reset_timeout=60))

    # Act
    for _ in range(3):
        with pytest.raises(ConfigurationError, match="no host supplied"):
            dispatcher.execute(_query(datasource_id="nohost"), CancellationToken(), timeout=1.0)

    # Assert
    assert dispatcher.breakers.get("nohost").current_state == "closed"


def test_unlisted_host_override_is_rejected(fake_registry):
    # Arrange
    dispatcher = QueryDispatcher(fake_registry, breakers=BreakerRegistry(fail_max=1, reset_timeout=60))

    # Act / Assert
    with pytest.raises(ConfigurationError, match="not in the configured hosts"):
        dispatcher.execute(_query(host="evil.example:9042"), CancellationToken(), timeout=1.0)
    assert fake_registry.get_manager("ds1").backend.created == []
    assert dispatcher.breakers.get("ds1").current_state == "closed"


def test_client_error_between_failures_resets_the_breaker_count(fake_registry):
    # Validates pybreaker's handling of excluded errors because they count as successes.
    # Arrange
    dispatcher = QueryDispatcher(fake_registry, breakers=BreakerRegistry(fail_max=2, reset_timeout=60))
    failing = _query(kind=QueryKind.LIST_METRICS)

    # Act
    with pytest.raises(RuntimeError):
        dispatcher.execute(failing, CancellationToken(), timeout=1.0)
    with pytest.raises(ConfigurationError):
        dispatcher.execute(_query(host="unlisted"), CancellationToken(), timeout=1.0)
    with pytest.raises(RuntimeError):
        dispatcher.execute(failing, CancellationToken(), timeout=1.0)

    # Assert
    assert dispatcher.breakers.get("ds1").current_state == "closed"
